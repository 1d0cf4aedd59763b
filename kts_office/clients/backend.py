from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence
from urllib.parse import quote

import httpx

from kts_office.clients.query import ChangeEvent, Filter, Order, as_orders
from kts_office.services.exceptions import ConflictError, DownstreamServiceError

logger = logging.getLogger(__name__)


class BackendClient:
    """Async HTTP client for the hosted backend's table and storage APIs."""

    def __init__(
        self,
        base_url: str | None,
        *,
        api_key: str | None = None,
        timeout: float = 10.0,
        use_mock_data: bool = True,
        poll_interval: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = str(base_url).rstrip("/") if base_url else None
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._transport = transport
        self.use_mock_data = use_mock_data or not self._base_url
        self._headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if api_key:
            self._headers.update({"apikey": api_key, "Authorization": f"Bearer {api_key}"})
        self._client: Optional[httpx.AsyncClient] = None
        if not self.use_mock_data and self._base_url:
            self._client = self._build_client()

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self.use_mock_data or not self._base_url:
            raise RuntimeError("HTTP client requested while running in mock mode")
        if self._client is None:
            self._client = self._build_client()
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: List[tuple[str, str]] | None = None,
        json: Any = None,
        content: bytes | None = None,
        headers: Dict[str, str] | None = None,
    ) -> Any:
        if self.use_mock_data:
            raise RuntimeError("Real HTTP call requested while mock mode is enabled")
        client = await self._ensure_client()
        try:
            response = await client.request(
                method, path, params=params, json=json, content=content, headers=headers
            )
            response.raise_for_status()
            if not response.content:
                return None
            return response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 409:
                logger.warning("Backend rejected %s %s with a conflict", method, path)
                raise ConflictError(
                    "Backend reported a unique constraint violation", cause=exc
                ) from exc
            logger.exception("Backend returned error %s", status)
            raise DownstreamServiceError(
                "Backend returned an error response",
                status_code=status,
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            logger.exception("Unable to reach backend: %s", exc)
            raise DownstreamServiceError(
                "Unable to reach backend", status_code=None, cause=exc
            ) from exc

    @staticmethod
    def _filter_params(filters: Sequence[Filter]) -> List[tuple[str, str]]:
        return [item.to_param() for item in filters]

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        *,
        order: Order | Sequence[Order] | None = None,
        limit: int | None = None,
    ) -> List[Dict[str, Any]]:
        params = [("select", "*")] + self._filter_params(filters)
        orders = as_orders(order)
        if orders:
            params.append(("order", ",".join(item.to_param() for item in orders)))
        if limit is not None:
            params.append(("limit", str(limit)))
        data = await self._request("GET", f"/rest/v1/{table}", params=params)
        return list(data or [])

    async def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request(
            "POST",
            f"/rest/v1/{table}",
            json=record,
            headers={"Prefer": "return=representation"},
        )
        rows = list(data or [])
        if not rows:
            raise DownstreamServiceError(f"Insert into {table} returned no row")
        return rows[0]

    async def update(
        self, table: str, filters: Sequence[Filter], patch: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("Refusing to update without filters")
        data = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=self._filter_params(filters),
            json=patch,
            headers={"Prefer": "return=representation"},
        )
        return list(data or [])

    async def upsert(
        self, table: str, record: Dict[str, Any], *, on_conflict: str
    ) -> Dict[str, Any]:
        data = await self._request(
            "POST",
            f"/rest/v1/{table}",
            params=[("on_conflict", on_conflict)],
            json=record,
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        rows = list(data or [])
        return rows[0] if rows else dict(record)

    async def delete(self, table: str, filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("Refusing to delete without filters")
        data = await self._request(
            "DELETE",
            f"/rest/v1/{table}",
            params=self._filter_params(filters),
            headers={"Prefer": "return=representation"},
        )
        return list(data or [])

    async def subscribe(
        self, table: str, event_types: Iterable[str] = ("INSERT",)
    ) -> AsyncIterator[ChangeEvent]:
        """Yield INSERT events by polling for rows newer than a watermark."""

        wanted = {event.upper() for event in event_types}
        if wanted - {"INSERT"}:
            logger.warning(
                "Live subscribe on %s only delivers INSERT events; ignoring %s",
                table,
                sorted(wanted - {"INSERT"}),
            )
        watermark = datetime.now(timezone.utc).isoformat()
        while True:
            rows = await self.select(
                table,
                [Filter("created_at", "gt", watermark)],
                order=Order("created_at"),
            )
            for row in rows:
                watermark = str(row.get("created_at") or watermark)
                yield ChangeEvent(table=table, event_type="INSERT", new=row)
            await asyncio.sleep(self._poll_interval)

    async def upload_file(
        self, bucket: str, key: str, data: bytes, *, content_type: str = "application/octet-stream"
    ) -> str:
        object_path = f"{quote(bucket)}/{quote(key)}"
        await self._request(
            "POST",
            f"/storage/v1/object/{object_path}",
            content=data,
            headers={"Content-Type": content_type, "x-upsert": "true"},
        )
        return f"{self._base_url}/storage/v1/object/public/{object_path}"

    async def simulate_latency(self) -> None:
        """Allow services to await for latency even when mocking responses."""

        await asyncio.sleep(0)
