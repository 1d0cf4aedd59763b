from typing import Dict, List, Optional

from pydantic import BaseModel, Field

CLOCK_PATTERN = r"^([01]?\d|2[0-3]):[0-5]\d$"


class SettingUpdate(BaseModel):
    value: str


class SettingsResponse(BaseModel):
    settings: Dict[str, str] = Field(default_factory=dict)


class CompanyInfo(BaseModel):
    name: str = "Krishna Tech Solutions"
    address: str = "Main Road, Karnataka"
    email: str = "krishnatechsolutions2024@gmail.com"
    phone: str = "+91 7026292525"
    gst: str = ""


class BookingPopupSettings(BaseModel):
    enabled: bool = False
    button_text: str = "Book Appointment"
    title: Optional[str] = None


class SlotConfiguration(BaseModel):
    slot_duration_minutes: int = Field(180, ge=1)
    start_time: str = Field("09:00", pattern=CLOCK_PATTERN)
    end_time: str = Field("18:00", pattern=CLOCK_PATTERN)


class PaymentGatewaySettings(BaseModel):
    enabled: bool = False
    key_id: str = ""
    test_mode: bool = True


class PaymentGatewayUpdate(BaseModel):
    enabled: Optional[bool] = None
    key_id: Optional[str] = None
    test_mode: Optional[bool] = None


class SlotList(BaseModel):
    date: str
    slots: List[str]
