from typing import Optional

from fastapi import APIRouter, Depends

from kts_office.dependencies.services import get_actor, get_invoice_service
from kts_office.routes.errors import to_http_error
from kts_office.schemas.billing import (
    Invoice,
    InvoiceDraft,
    InvoiceListResponse,
    InvoiceNumberResponse,
    InvoiceStatusUpdate,
)
from kts_office.services import InvoiceService
from kts_office.services.exceptions import ServiceError
from kts_office.services.permissions import AdminActor, PermissionFlag, require

router = APIRouter()


@router.get("", response_model=InvoiceListResponse)
async def list_invoices(
    service: InvoiceService = Depends(get_invoice_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.list(actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/next-number", response_model=InvoiceNumberResponse)
async def next_invoice_number(
    service: InvoiceService = Depends(get_invoice_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        require(PermissionFlag.MANAGE_INVOICES, actor)
        number = await service.next_invoice_number()
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return InvoiceNumberResponse(prefix=number.rsplit("-", 1)[0], invoice_number=number)


@router.get("/draft/{appointment_id}", response_model=InvoiceDraft)
async def draft_invoice(
    appointment_id: str,
    service: InvoiceService = Depends(get_invoice_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.draft_from_appointment(appointment_id, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("", response_model=Invoice, status_code=201)
async def create_invoice(
    req: InvoiceDraft,
    service: InvoiceService = Depends(get_invoice_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.create_invoice(req, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/{invoice_id}", response_model=Invoice)
async def get_invoice(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.get(invoice_id, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{invoice_id}/status", response_model=Invoice)
async def update_invoice_status(
    invoice_id: str,
    req: InvoiceStatusUpdate,
    service: InvoiceService = Depends(get_invoice_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.update_status(invoice_id, req.status, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
