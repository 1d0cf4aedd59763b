from typing import Optional

from fastapi import APIRouter, Depends

from kts_office.dependencies.services import get_booking_service, get_user_id
from kts_office.routes.errors import to_http_error
from kts_office.schemas.booking import (
    ChatMessageRequest,
    DateSelection,
    DetailsUpdate,
    TimeSelection,
    WizardView,
)
from kts_office.services import BookingService
from kts_office.services.exceptions import ServiceError

router = APIRouter()


@router.get("/{session_id}", response_model=WizardView)
async def wizard_state(
    session_id: str,
    service: BookingService = Depends(get_booking_service),
    user_id: Optional[str] = Depends(get_user_id),
):
    try:
        return await service.view(session_id, user_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{session_id}/message", response_model=WizardView)
async def send_message(
    session_id: str,
    req: ChatMessageRequest,
    service: BookingService = Depends(get_booking_service),
    user_id: Optional[str] = Depends(get_user_id),
):
    try:
        return await service.message(session_id, req.text, user_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{session_id}/date", response_model=WizardView)
async def choose_date(
    session_id: str,
    req: DateSelection,
    service: BookingService = Depends(get_booking_service),
    user_id: Optional[str] = Depends(get_user_id),
):
    try:
        return await service.choose_date(session_id, req.date, user_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{session_id}/time", response_model=WizardView)
async def choose_time(
    session_id: str,
    req: TimeSelection,
    service: BookingService = Depends(get_booking_service),
    user_id: Optional[str] = Depends(get_user_id),
):
    try:
        return await service.choose_time(session_id, req.time, user_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{session_id}/details", response_model=WizardView)
async def update_details(
    session_id: str,
    req: DetailsUpdate,
    service: BookingService = Depends(get_booking_service),
    user_id: Optional[str] = Depends(get_user_id),
):
    try:
        return await service.update_details(session_id, user_id=user_id, **req.model_dump())
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{session_id}/change-time", response_model=WizardView)
async def change_time(
    session_id: str,
    service: BookingService = Depends(get_booking_service),
    user_id: Optional[str] = Depends(get_user_id),
):
    try:
        return await service.change_time(session_id, user_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{session_id}/submit", response_model=WizardView)
async def submit_booking(
    session_id: str,
    service: BookingService = Depends(get_booking_service),
    user_id: Optional[str] = Depends(get_user_id),
):
    try:
        return await service.submit(session_id, user_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{session_id}/cancel", response_model=WizardView)
async def cancel_booking(
    session_id: str,
    service: BookingService = Depends(get_booking_service),
    user_id: Optional[str] = Depends(get_user_id),
):
    try:
        return await service.cancel(session_id, user_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
