from typing import List, Optional

from fastapi import APIRouter, Depends

from kts_office.dependencies.services import get_actor, get_catalog_service
from kts_office.routes.errors import to_http_error
from kts_office.schemas.catalog import (
    ReorderRequest,
    Service,
    ServiceCreateRequest,
    ServiceUpdateRequest,
)
from kts_office.services import CatalogService
from kts_office.services.exceptions import ServiceError
from kts_office.services.permissions import AdminActor, PermissionFlag, require

router = APIRouter()


@router.get("", response_model=List[Service])
async def list_services(service: CatalogService = Depends(get_catalog_service)):
    try:
        return await service.list()
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/all", response_model=List[Service])
async def list_all_services(
    service: CatalogService = Depends(get_catalog_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        require(PermissionFlag.VIEW_SERVICES, actor)
        return await service.list(visible_only=False)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/{service_id}", response_model=Service)
async def get_service(service_id: str, service: CatalogService = Depends(get_catalog_service)):
    try:
        return await service.get(service_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("", response_model=Service, status_code=201)
async def create_service(
    req: ServiceCreateRequest,
    service: CatalogService = Depends(get_catalog_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.create(req, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.patch("/{service_id}", response_model=Service)
async def update_service(
    service_id: str,
    req: ServiceUpdateRequest,
    service: CatalogService = Depends(get_catalog_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.update(service_id, req, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{service_id}/toggle-visibility", response_model=Service)
async def toggle_service_visibility(
    service_id: str,
    service: CatalogService = Depends(get_catalog_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.toggle_visibility(service_id, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/reorder", response_model=List[Service])
async def reorder_services(
    req: ReorderRequest,
    service: CatalogService = Depends(get_catalog_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.reorder(req.service_ids, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.delete("/{service_id}", status_code=204)
async def delete_service(
    service_id: str,
    service: CatalogService = Depends(get_catalog_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        await service.delete(service_id, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
