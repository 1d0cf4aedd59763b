from typing import Dict, Optional

from pydantic import BaseModel, Field


class AdminSummary(BaseModel):
    user_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    is_super_admin: bool = False


class AdminPermissions(BaseModel):
    user_id: str
    is_super_admin: bool = False
    permissions: Dict[str, bool] = Field(default_factory=dict)


class PermissionUpdateRequest(BaseModel):
    permissions: Dict[str, bool]
