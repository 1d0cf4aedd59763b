from typing import List, Optional

from fastapi import APIRouter, Depends

from kts_office.dependencies.services import (
    get_actor,
    get_appointment_service,
    get_deletion_request_service,
    require_user_id,
)
from kts_office.routes.errors import to_http_error
from kts_office.schemas.appointment import (
    Appointment,
    AppointmentListRequest,
    AppointmentListResponse,
    AppointmentStatus,
    DeletionOutcome,
    DeletionRequestCreate,
    DeletionRequestRecord,
    DeletionReview,
    StatusUpdateRequest,
)
from kts_office.services import AppointmentService, DeletionRequestService
from kts_office.services.exceptions import ServiceError
from kts_office.services.permissions import AdminActor

router = APIRouter()
deletion_router = APIRouter()


@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    status: Optional[AppointmentStatus] = None,
    search: Optional[str] = None,
    service: AppointmentService = Depends(get_appointment_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.list(AppointmentListRequest(status=status, search=search), actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/mine", response_model=List[Appointment])
async def my_appointments(
    service: AppointmentService = Depends(get_appointment_service),
    user_id: str = Depends(require_user_id),
):
    try:
        return await service.list_for_user(user_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{appointment_id}/status", response_model=Appointment)
async def update_status(
    appointment_id: str,
    req: StatusUpdateRequest,
    service: AppointmentService = Depends(get_appointment_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.update_status(appointment_id, req.status, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{appointment_id}/cancel", response_model=Appointment)
async def cancel_own_appointment(
    appointment_id: str,
    service: AppointmentService = Depends(get_appointment_service),
    user_id: str = Depends(require_user_id),
):
    try:
        return await service.cancel_own(appointment_id, user_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{appointment_id}/delete", response_model=DeletionOutcome)
async def delete_appointment(
    appointment_id: str,
    req: DeletionRequestCreate,
    service: AppointmentService = Depends(get_appointment_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.delete(appointment_id, actor, reason=req.reason)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@deletion_router.get("", response_model=List[DeletionRequestRecord])
async def list_deletion_requests(
    status: Optional[str] = None,
    service: DeletionRequestService = Depends(get_deletion_request_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.list(actor, status=status)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@deletion_router.post("/{request_id}/review", response_model=DeletionRequestRecord)
async def review_deletion_request(
    request_id: str,
    req: DeletionReview,
    service: DeletionRequestService = Depends(get_deletion_request_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        if req.approve:
            return await service.approve(request_id, actor)
        return await service.reject(request_id, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
