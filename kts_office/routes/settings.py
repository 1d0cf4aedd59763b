from typing import Dict, Optional

from fastapi import APIRouter, Depends

from kts_office.dependencies.services import get_actor, get_booking_service, get_settings_service
from kts_office.routes.errors import to_http_error
from kts_office.schemas.settings import (
    BookingPopupSettings,
    CompanyInfo,
    PaymentGatewaySettings,
    PaymentGatewayUpdate,
    SettingsResponse,
    SettingUpdate,
    SlotConfiguration,
    SlotList,
)
from kts_office.services import BookingService, SettingsService
from kts_office.services.exceptions import ServiceError
from kts_office.services.permissions import AdminActor

router = APIRouter()


@router.get("", response_model=SettingsResponse)
async def read_settings(service: SettingsService = Depends(get_settings_service)):
    try:
        return SettingsResponse(settings=await service.all())
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.put("/keys/{key}", response_model=SettingsResponse)
async def write_setting(
    key: str,
    req: SettingUpdate,
    service: SettingsService = Depends(get_settings_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return SettingsResponse(settings=await service.set(key, req.value, actor))
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.patch("", response_model=SettingsResponse)
async def write_settings(
    req: Dict[str, str],
    service: SettingsService = Depends(get_settings_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return SettingsResponse(settings=await service.set_many(req, actor))
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/company", response_model=CompanyInfo)
async def company_info(service: SettingsService = Depends(get_settings_service)):
    try:
        return await service.company_info()
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/booking-popup", response_model=BookingPopupSettings)
async def booking_popup(service: SettingsService = Depends(get_settings_service)):
    try:
        return await service.booking_popup()
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/slots", response_model=SlotConfiguration)
async def slot_configuration(service: SettingsService = Depends(get_settings_service)):
    try:
        return await service.slot_configuration()
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/slots/{day}", response_model=SlotList)
async def available_slots(day: str, booking: BookingService = Depends(get_booking_service)):
    try:
        parsed, slots = await booking.slots_for(day)
        return SlotList(date=parsed.isoformat(), slots=slots)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/payment-gateway", response_model=PaymentGatewaySettings)
async def payment_gateway(
    service: SettingsService = Depends(get_settings_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.payment_gateway(actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.put("/payment-gateway", response_model=PaymentGatewaySettings)
async def update_payment_gateway(
    req: PaymentGatewayUpdate,
    service: SettingsService = Depends(get_settings_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.update_payment_gateway(req, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
