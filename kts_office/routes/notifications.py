import json
from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from kts_office.dependencies.services import get_actor, get_notification_service, require_user_id
from kts_office.routes.errors import to_http_error
from kts_office.schemas.notifications import Notification, NotificationBatch
from kts_office.services import NotificationService
from kts_office.services.exceptions import ServiceError
from kts_office.services.permissions import AdminActor

router = APIRouter()


def _broadcast(actor: Optional[AdminActor]) -> bool:
    return bool(actor and actor.is_admin)


@router.get("", response_model=List[Notification])
async def list_notifications(
    unread_only: bool = False,
    service: NotificationService = Depends(get_notification_service),
    user_id: str = Depends(require_user_id),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.list(
            user_id, include_broadcast=_broadcast(actor), unread_only=unread_only
        )
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/poll/{session_id}", response_model=NotificationBatch)
async def poll_notifications(
    session_id: str,
    service: NotificationService = Depends(get_notification_service),
    user_id: str = Depends(require_user_id),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.poll(session_id, user_id, include_broadcast=_broadcast(actor))
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/stream/{session_id}")
async def stream_notifications(
    session_id: str,
    service: NotificationService = Depends(get_notification_service),
    user_id: str = Depends(require_user_id),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    async def events():
        async for notification in service.stream(
            session_id, user_id, include_broadcast=_broadcast(actor)
        ):
            yield f"data: {json.dumps(notification.model_dump())}\n\n"

    return StreamingResponse(events(), media_type="text/event-stream")


@router.post("/{notification_id}/read", response_model=Notification)
async def mark_read(
    notification_id: str,
    service: NotificationService = Depends(get_notification_service),
    user_id: str = Depends(require_user_id),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.mark_read(
            notification_id, user_id, include_broadcast=_broadcast(actor)
        )
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/read-all")
async def mark_all_read(
    service: NotificationService = Depends(get_notification_service),
    user_id: str = Depends(require_user_id),
):
    try:
        updated = await service.mark_all_read(user_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return {"updated": updated}
