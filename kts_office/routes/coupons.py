from typing import List, Optional

from fastapi import APIRouter, Depends

from kts_office.dependencies.services import get_actor, get_coupon_service
from kts_office.routes.errors import to_http_error
from kts_office.schemas.coupon import (
    Coupon,
    CouponCreateRequest,
    CouponUpdateRequest,
    CouponValidationRequest,
    CouponValidationResponse,
)
from kts_office.services import CouponService
from kts_office.services.coupons import generate_code
from kts_office.services.exceptions import ServiceError
from kts_office.services.permissions import AdminActor, PermissionFlag, require

router = APIRouter()


@router.post("/validate", response_model=CouponValidationResponse)
async def validate_coupon(
    req: CouponValidationRequest,
    service: CouponService = Depends(get_coupon_service),
):
    try:
        coupon = await service.validate(req.code)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    if coupon is None:
        return CouponValidationResponse(applied=False, message="No coupon entered.")
    return CouponValidationResponse(
        applied=True,
        code=coupon.code,
        discount_percent=coupon.discount_percent,
        message=f"{coupon.discount_percent}% discount applied.",
    )


@router.get("", response_model=List[Coupon])
async def list_coupons(
    service: CouponService = Depends(get_coupon_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.list(actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/generate-code")
async def new_coupon_code(actor: Optional[AdminActor] = Depends(get_actor)):
    try:
        require(PermissionFlag.MANAGE_COUPONS, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return {"code": generate_code()}


@router.post("", response_model=Coupon, status_code=201)
async def create_coupon(
    req: CouponCreateRequest,
    service: CouponService = Depends(get_coupon_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.create(req, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.patch("/{coupon_id}", response_model=Coupon)
async def update_coupon(
    coupon_id: str,
    req: CouponUpdateRequest,
    service: CouponService = Depends(get_coupon_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.update(coupon_id, req, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/{coupon_id}/toggle", response_model=Coupon)
async def toggle_coupon(
    coupon_id: str,
    service: CouponService = Depends(get_coupon_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.toggle_active(coupon_id, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.delete("/{coupon_id}", status_code=204)
async def delete_coupon(
    coupon_id: str,
    service: CouponService = Depends(get_coupon_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        await service.delete(coupon_id, actor)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
