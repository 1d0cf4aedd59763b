from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from kts_office.schemas.catalog import Service


class WizardState(str, Enum):
    CHAT = "chat"
    DATE = "date"
    TIME = "time"
    DETAILS = "details"
    CONFIRM = "confirm"


class ContactDetails(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""


class ChatMessageRequest(BaseModel):
    text: str = Field(..., min_length=1)


class DateSelection(BaseModel):
    date: str = Field(..., description="ISO date or free text such as 'next monday'")


class TimeSelection(BaseModel):
    time: str


class DetailsUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    service_id: Optional[str] = None
    coupon_code: Optional[str] = None


class BookingConfirmation(BaseModel):
    appointment_id: str
    reference_id: Optional[str] = None
    service_name: str
    date: str
    time: str
    price: Optional[float] = None
    final_price: Optional[float] = None
    discount_percent: Optional[int] = None
    coupon_code: Optional[str] = None
    summary: str


class WizardView(BaseModel):
    session_id: str
    state: WizardState
    reply: Optional[str] = None
    selected_date: Optional[str] = None
    selected_time: Optional[str] = None
    available_slots: List[str] = Field(default_factory=list)
    details: ContactDetails = Field(default_factory=ContactDetails)
    service_id: Optional[str] = None
    coupon_code: Optional[str] = None
    discount_percent: Optional[int] = None
    services: List[Service] = Field(default_factory=list)
    quick_options: List[str] = Field(default_factory=list)
    confirmation: Optional[BookingConfirmation] = None
