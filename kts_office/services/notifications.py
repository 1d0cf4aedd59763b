"""Admin notifications with a per-session delivery watermark.

The watermark (``created_at``, ``id``) of the last delivered notification is
persisted in ``notification_watermarks`` so a reconnecting session resumes
where it stopped and never sees the same notification twice.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from kts_office.clients.query import Filter, Order, comparable
from kts_office.schemas.notifications import Notification, NotificationBatch
from kts_office.services.base import BackendService
from kts_office.services.exceptions import NotFoundError

logger = logging.getLogger(__name__)

Watermark = Tuple[Any, str]


def _position(row: Dict[str, Any]) -> Watermark:
    return comparable(row.get("created_at")), str(row.get("id"))


def is_after(row: Dict[str, Any], watermark: Optional[Watermark]) -> bool:
    if watermark is None:
        return True
    return _position(row) > (comparable(watermark[0]), watermark[1])


def is_visible(row: Dict[str, Any], user_id: str, include_broadcast: bool) -> bool:
    owner = row.get("user_id")
    if owner is None:
        return include_broadcast
    return str(owner) == user_id


class NotificationService(BackendService):
    async def _load_watermark(self, session_id: str) -> Optional[Watermark]:
        rows = await self._select(
            "notification_watermarks", [Filter("session_id", "eq", session_id)], limit=1
        )
        if not rows or rows[0].get("last_created_at") is None:
            return None
        return rows[0]["last_created_at"], str(rows[0].get("last_id") or "")

    async def _store_watermark(self, session_id: str, user_id: str, row: Dict[str, Any]) -> None:
        await self._upsert(
            "notification_watermarks",
            {
                "session_id": session_id,
                "user_id": user_id,
                "last_created_at": row.get("created_at"),
                "last_id": row.get("id"),
            },
            on_conflict="session_id",
        )

    async def poll(
        self, session_id: str, user_id: str, *, include_broadcast: bool = False
    ) -> NotificationBatch:
        watermark = await self._load_watermark(session_id)
        filters = []
        if watermark is not None:
            filters.append(Filter("created_at", "gte", watermark[0]))
        rows = await self._select(
            "notifications", filters, order=[Order("created_at"), Order("id")]
        )
        fresh = [
            row for row in rows
            if is_after(row, watermark) and is_visible(row, user_id, include_broadcast)
        ][: self._settings.notification_page_size]
        if fresh:
            await self._store_watermark(session_id, user_id, fresh[-1])
            logger.info("Delivering %s notifications to session %s", len(fresh), session_id)
        latest = fresh[-1].get("created_at") if fresh else (watermark[0] if watermark else None)
        return NotificationBatch(
            session_id=session_id,
            items=[Notification(**row) for row in fresh],
            watermark=str(latest) if latest is not None else None,
        )

    async def stream(
        self, session_id: str, user_id: str, *, include_broadcast: bool = False
    ) -> AsyncIterator[Notification]:
        """Yield new notifications as they are inserted."""

        watermark = await self._load_watermark(session_id)
        async for event in self._backend.subscribe("notifications", ("INSERT",)):
            row = event.new or {}
            if not is_visible(row, user_id, include_broadcast) or not is_after(row, watermark):
                continue
            await self._store_watermark(session_id, user_id, row)
            watermark = row.get("created_at"), str(row.get("id"))
            yield Notification(**row)

    async def list(self, user_id: str, *, include_broadcast: bool = False, unread_only: bool = False) -> List[Notification]:
        filters = [Filter("is_read", "eq", False)] if unread_only else []
        rows = await self._select(
            "notifications", filters, order=Order("created_at", ascending=False)
        )
        return [
            Notification(**row) for row in rows if is_visible(row, user_id, include_broadcast)
        ]

    async def mark_read(
        self, notification_id: str, user_id: str, *, include_broadcast: bool = False
    ) -> Notification:
        row = await self._get("notifications", notification_id, label="Notification")
        if not is_visible(row, user_id, include_broadcast):
            raise NotFoundError(f"Notification {notification_id} not found")
        return Notification(**await self._update_one("notifications", notification_id, {"is_read": True}))

    async def mark_all_read(self, user_id: str) -> int:
        rows = await self._update(
            "notifications",
            [Filter("user_id", "eq", user_id), Filter("is_read", "eq", False)],
            {"is_read": True},
        )
        return len(rows)
