from __future__ import annotations

import logging
from typing import List, Sequence

from kts_office.clients.query import Filter, Order
from kts_office.schemas.catalog import Service, ServiceCreateRequest, ServiceUpdateRequest
from kts_office.services.base import BackendService
from kts_office.services.exceptions import NotFoundError
from kts_office.services.permissions import AdminActor, PermissionFlag, require

logger = logging.getLogger(__name__)

_DISPLAY_ORDER = [Order("display_order"), Order("created_at")]


class CatalogService(BackendService):
    async def list(self, *, visible_only: bool = True) -> List[Service]:
        filters = []
        if visible_only:
            filters = [Filter("is_visible", "eq", True), Filter("is_active", "eq", True)]
        rows = await self._select("services", filters, order=_DISPLAY_ORDER)
        return [Service(**row) for row in rows]

    async def get(self, service_id: str) -> Service:
        return Service(**await self._get("services", service_id, label="Service"))

    async def create(self, request: ServiceCreateRequest, actor: AdminActor | None) -> Service:
        require(PermissionFlag.MANAGE_SERVICES, actor)
        existing = await self._select("services")
        logger.info("Creating service %s", request.name)
        row = await self._insert(
            "services",
            {**request.model_dump(), "display_order": len(existing) + 1},
        )
        return Service(**row)

    async def update(
        self, service_id: str, request: ServiceUpdateRequest, actor: AdminActor | None
    ) -> Service:
        require(PermissionFlag.MANAGE_SERVICES, actor)
        patch = request.model_dump(exclude_unset=True)
        if not patch:
            return await self.get(service_id)
        logger.info("Updating service %s", service_id)
        return Service(**await self._update_one("services", service_id, patch))

    async def toggle_visibility(self, service_id: str, actor: AdminActor | None) -> Service:
        require(PermissionFlag.MANAGE_SERVICES, actor)
        current = await self.get(service_id)
        row = await self._update_one("services", service_id, {"is_visible": not current.is_visible})
        return Service(**row)

    async def reorder(self, service_ids: Sequence[str], actor: AdminActor | None) -> List[Service]:
        require(PermissionFlag.MANAGE_SERVICES, actor)
        known = {service.id for service in await self.list(visible_only=False)}
        missing = [service_id for service_id in service_ids if service_id not in known]
        if missing:
            raise NotFoundError(f"Unknown services: {', '.join(missing)}")
        for position, service_id in enumerate(service_ids, start=1):
            await self._update_one("services", service_id, {"display_order": position})
        return await self.list(visible_only=False)

    async def delete(self, service_id: str, actor: AdminActor | None) -> None:
        require(PermissionFlag.MANAGE_SERVICES, actor)
        removed = await self._delete("services", [Filter("id", "eq", service_id)])
        if not removed:
            raise NotFoundError(f"Service {service_id} not found")
        logger.info("Deleted service %s", service_id)
