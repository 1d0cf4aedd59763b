from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from kts_office.schemas.settings import CompanyInfo


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    PAID = "paid"
    CANCELLED = "cancelled"


class InvoiceLineItem(BaseModel):
    description: str
    quantity: float = Field(1, gt=0)
    rate: float = Field(0.0, ge=0)
    amount: float = 0.0


class InvoiceDraft(BaseModel):
    appointment_id: Optional[str] = None
    invoice_date: str
    due_date: str
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    items: List[InvoiceLineItem] = Field(default_factory=list)
    subtotal: float = 0.0
    tax_rate: float = 18.0
    tax_amount: float = 0.0
    discount: float = Field(0.0, ge=0)
    total: float = 0.0
    notes: str = ""
    terms: str = "Payment is due within 7 days of invoice date."
    company: Optional[CompanyInfo] = None


class Invoice(InvoiceDraft):
    id: str
    invoice_number: str
    status: InvoiceStatus = InvoiceStatus.ISSUED
    created_at: Optional[str] = None


class InvoiceListResponse(BaseModel):
    total: int
    items: List[Invoice]


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus


class InvoiceNumberResponse(BaseModel):
    prefix: str
    invoice_number: str
