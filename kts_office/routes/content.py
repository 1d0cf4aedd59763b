from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request

from kts_office.dependencies.services import get_actor, get_contact_service, get_content_service
from kts_office.routes.errors import to_http_error
from kts_office.schemas.content import (
    ContactMessage,
    ContactMessageInput,
    ContactMessageList,
    ContentRecord,
    UploadResponse,
)
from kts_office.services import ContactService, ContentService
from kts_office.services.exceptions import ServiceError
from kts_office.services.permissions import AdminActor

router = APIRouter()
contact_router = APIRouter()


@router.get("/blog/posts/{slug}", response_model=ContentRecord)
async def read_post(slug: str, service: ContentService = Depends(get_content_service)):
    try:
        return await service.get_post(slug)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/{kind}", response_model=List[ContentRecord])
async def list_public(kind: str, service: ContentService = Depends(get_content_service)):
    try:
        return await service.list_public(kind)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/{kind}/all", response_model=List[ContentRecord])
async def list_all(
    kind: str,
    service: ContentService = Depends(get_content_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.list_all(kind, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{kind}", response_model=ContentRecord, status_code=201)
async def create_entry(
    kind: str,
    req: Dict[str, Any],
    service: ContentService = Depends(get_content_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.create(kind, req, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.patch("/{kind}/{record_id}", response_model=ContentRecord)
async def update_entry(
    kind: str,
    record_id: str,
    req: Dict[str, Any],
    service: ContentService = Depends(get_content_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.update(kind, record_id, req, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{kind}/{record_id}/toggle-visibility", response_model=ContentRecord)
async def toggle_entry(
    kind: str,
    record_id: str,
    service: ContentService = Depends(get_content_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.toggle_visibility(kind, record_id, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.delete("/{kind}/{record_id}", status_code=204)
async def delete_entry(
    kind: str,
    record_id: str,
    service: ContentService = Depends(get_content_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        await service.delete(kind, record_id, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{kind}/upload", response_model=UploadResponse, status_code=201)
async def upload_image(
    kind: str,
    request: Request,
    filename: str = Query(..., min_length=1),
    service: ContentService = Depends(get_content_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    data = await request.body()
    content_type = request.headers.get("content-type", "application/octet-stream")
    try:
        url = await service.upload_image(kind, filename, data, content_type, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return UploadResponse(url=url)


@contact_router.post("", response_model=ContactMessage, status_code=201)
async def send_contact_message(
    req: ContactMessageInput,
    service: ContactService = Depends(get_contact_service),
):
    try:
        return await service.create(req)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@contact_router.get("", response_model=ContactMessageList)
async def list_contact_messages(
    unread_only: bool = False,
    service: ContactService = Depends(get_contact_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.list(actor, unread_only=unread_only)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@contact_router.post("/{message_id}/read", response_model=ContactMessage)
async def mark_message_read(
    message_id: str,
    service: ContactService = Depends(get_contact_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.mark_read(message_id, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
