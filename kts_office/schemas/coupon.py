from typing import Optional

from pydantic import BaseModel, Field


class Coupon(BaseModel):
    id: str
    code: str
    discount_percent: int
    valid_from: Optional[str] = None
    valid_until: str
    is_active: bool = True
    max_uses: Optional[int] = None
    current_uses: int = 0


class CouponCreateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    discount_percent: int = Field(..., ge=0, le=100)
    valid_from: Optional[str] = None  # ISO date or datetime, defaults to now
    valid_until: str
    max_uses: Optional[int] = Field(None, ge=1)
    is_active: bool = True


class CouponUpdateRequest(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=64)
    discount_percent: Optional[int] = Field(None, ge=0, le=100)
    valid_from: Optional[str] = None
    valid_until: Optional[str] = None
    max_uses: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None


class CouponValidationRequest(BaseModel):
    code: str = ""


class CouponValidationResponse(BaseModel):
    applied: bool
    code: Optional[str] = None
    discount_percent: Optional[int] = None
    message: str
