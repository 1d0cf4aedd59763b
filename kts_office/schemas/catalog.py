from typing import List, Optional

from pydantic import BaseModel, Field


class Service(BaseModel):
    id: str
    name: str
    price: Optional[float] = None
    description: Optional[str] = None
    duration_minutes: Optional[int] = None
    features: List[str] = Field(default_factory=list)
    icon: Optional[str] = None
    is_active: bool = True
    is_visible: bool = True
    display_order: Optional[int] = None


class ServiceCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, ge=1)
    features: List[str] = Field(default_factory=list)
    icon: Optional[str] = None
    is_active: bool = True
    is_visible: bool = True


class ServiceUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, ge=1)
    features: Optional[List[str]] = None
    icon: Optional[str] = None
    is_active: Optional[bool] = None
    is_visible: Optional[bool] = None


class ReorderRequest(BaseModel):
    service_ids: List[str] = Field(..., min_length=1)
