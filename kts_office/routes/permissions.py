from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from kts_office.dependencies.services import get_actor, get_permission_service
from kts_office.routes.errors import to_http_error
from kts_office.schemas.permissions import AdminPermissions, AdminSummary, PermissionUpdateRequest
from kts_office.services import PermissionService
from kts_office.services.exceptions import ServiceError
from kts_office.services.permissions import AdminActor

router = APIRouter()


@router.get("/me", response_model=AdminPermissions)
async def my_permissions(actor: Optional[AdminActor] = Depends(get_actor)):
    if actor is None or not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return AdminPermissions(
        user_id=actor.user_id,
        is_super_admin=actor.is_super_admin,
        permissions=actor.permissions,
    )


@router.get("", response_model=List[AdminSummary])
async def list_admins(
    service: PermissionService = Depends(get_permission_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.list_admins(actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/{admin_user_id}/permissions", response_model=AdminPermissions)
async def get_permissions(
    admin_user_id: str,
    service: PermissionService = Depends(get_permission_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.get_permissions(admin_user_id, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.put("/{admin_user_id}/permissions", response_model=AdminPermissions)
async def update_permissions(
    admin_user_id: str,
    req: PermissionUpdateRequest,
    service: PermissionService = Depends(get_permission_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.update_permissions(admin_user_id, req.permissions, actor)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ServiceError as exc:
        raise to_http_error(exc) from exc
