from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Appointment(BaseModel):
    id: str
    reference_id: Optional[str] = None
    user_id: Optional[str] = None
    service_id: Optional[str] = None
    appointment_date: str
    appointment_time: str
    status: AppointmentStatus = AppointmentStatus.PENDING
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    coupon_code: Optional[str] = None
    discount_percent: Optional[int] = None
    final_price: Optional[float] = None
    notes: Optional[str] = None
    technician_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AppointmentListRequest(BaseModel):
    status: Optional[AppointmentStatus] = None
    search: Optional[str] = None
    user_id: Optional[str] = None


class AppointmentListResponse(BaseModel):
    total: int
    items: List[Appointment]


class StatusUpdateRequest(BaseModel):
    status: AppointmentStatus


class DeletionRequestCreate(BaseModel):
    reason: str = ""


class DeletionRequestRecord(BaseModel):
    id: str
    request_type: str
    target_id: str
    requested_by: str
    reason: Optional[str] = None
    status: str = "pending"
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    created_at: Optional[str] = None


class DeletionOutcome(BaseModel):
    deleted: bool
    request: Optional[DeletionRequestRecord] = None
    message: str


class DeletionReview(BaseModel):
    approve: bool = Field(..., description="True to approve and delete, False to reject")
