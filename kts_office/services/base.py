from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Sequence
from zoneinfo import ZoneInfo

from kts_office.clients.backend import BackendClient
from kts_office.clients.query import DataBackend, Filter, Order
from kts_office.config import Settings, get_settings
from kts_office.services.exceptions import NotFoundError, ServiceError
from kts_office.services.mock_store import get_mock_store

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BackendService:
    """Shared plumbing for services that read and write backend tables.

    In mock mode every call is routed to the shared in-memory store, otherwise
    to the live client. Unexpected failures are logged and wrapped in
    ``ServiceError`` so routers only deal with the service exception family.
    """

    def __init__(
        self,
        client: BackendClient,
        *,
        backend: DataBackend | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or get_settings()
        self._backend: DataBackend = backend or client
        if self._client.use_mock_data:
            self._backend = backend or get_mock_store()

    def _now(self) -> datetime:
        return utc_now()

    def _today(self) -> date:
        return self._now().astimezone(ZoneInfo(self._settings.timezone)).date()

    async def _guard(self, description: str, coro) -> Any:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
        try:
            return await coro
        except ServiceError:
            raise
        except Exception as exc:  # pragma: no cover
            logger.exception("Unexpected error while trying to %s", description)
            raise ServiceError(f"Failed to {description}", cause=exc)

    async def _select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        *,
        order: Order | Sequence[Order] | None = None,
        limit: int | None = None,
    ) -> List[Dict[str, Any]]:
        return await self._guard(
            f"read {table}",
            self._backend.select(table, filters, order=order, limit=limit),
        )

    async def _get(self, table: str, record_id: str, *, label: str | None = None) -> Dict[str, Any]:
        rows = await self._select(table, [Filter("id", "eq", record_id)], limit=1)
        if not rows:
            raise NotFoundError(f"{label or table.rstrip('s').capitalize()} {record_id} not found")
        return rows[0]

    async def _insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        return await self._guard(f"write {table}", self._backend.insert(table, record))

    async def _update(
        self, table: str, filters: Sequence[Filter], patch: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        return await self._guard(f"update {table}", self._backend.update(table, filters, patch))

    async def _update_one(self, table: str, record_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        rows = await self._update(table, [Filter("id", "eq", record_id)], patch)
        if not rows:
            raise NotFoundError(f"{table.rstrip('s').capitalize()} {record_id} not found")
        return rows[0]

    async def _delete(self, table: str, filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        return await self._guard(f"delete from {table}", self._backend.delete(table, filters))

    async def _upsert(self, table: str, record: Dict[str, Any], *, on_conflict: str) -> Dict[str, Any]:
        return await self._guard(
            f"write {table}", self._backend.upsert(table, record, on_conflict=on_conflict)
        )
