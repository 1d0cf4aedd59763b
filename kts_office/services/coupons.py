"""Coupon validation, redemption and administration."""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from kts_office.clients.query import Filter, Order, comparable
from kts_office.schemas.coupon import Coupon, CouponCreateRequest, CouponUpdateRequest
from kts_office.services.base import BackendService
from kts_office.services.exceptions import CouponRejectedError, NotFoundError
from kts_office.services.permissions import AdminActor, PermissionFlag, require

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def normalise_code(code: str | None) -> str:
    return (code or "").strip().upper()


def rejection_reason(coupon: Mapping[str, Any] | None, now: datetime) -> Optional[str]:
    """Return why a coupon cannot be used right now, or ``None`` if it can."""

    if not coupon or not coupon.get("is_active"):
        return "invalid"
    valid_until = coupon.get("valid_until")
    if valid_until is None:
        return "invalid"
    try:
        if comparable(valid_until) < comparable(now):
            return "invalid"
    except TypeError:
        return "invalid"
    max_uses = coupon.get("max_uses")
    if max_uses is not None and int(coupon.get("current_uses") or 0) >= int(max_uses):
        return "limit_reached"
    return None


def is_applicable(coupon: Mapping[str, Any] | None, now: datetime) -> bool:
    return rejection_reason(coupon, now) is None


def discounted_price(price: float | None, discount_percent: int | None) -> float | None:
    if price is None:
        return None
    if not discount_percent:
        return round(float(price), 2)
    return round(float(price) * (1 - discount_percent / 100), 2)


def generate_code(length: int = 8) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class CouponService(BackendService):
    async def _find(self, code: str) -> Optional[Dict[str, Any]]:
        rows = await self._select("coupons", [Filter("code", "eq", code)], limit=1)
        return rows[0] if rows else None

    async def validate(self, code: str | None, now: datetime | None = None) -> Optional[Coupon]:
        """Look a code up without side effects.

        An empty code means "no coupon" and returns ``None``. Unusable codes
        raise ``CouponRejectedError``.
        """

        normalised = normalise_code(code)
        if not normalised:
            return None
        logger.info("Validating coupon %s", normalised)
        coupon = await self._find(normalised)
        reason = rejection_reason(coupon, now or self._now())
        if reason:
            logger.warning("Coupon %s rejected: %s", normalised, reason)
            raise CouponRejectedError(reason)
        return Coupon(**coupon)

    async def redeem(self, coupon_id: str) -> Coupon:
        """Consume one usage with a compare-and-set on ``current_uses``."""

        attempts = self._settings.coupon_redeem_attempts
        for attempt in range(1, attempts + 1):
            row = await self._get("coupons", coupon_id, label="Coupon")
            reason = rejection_reason(row, self._now())
            if reason:
                logger.warning("Coupon %s cannot be redeemed: %s", row.get("code"), reason)
                raise CouponRejectedError(reason)
            current = int(row.get("current_uses") or 0)
            updated = await self._update(
                "coupons",
                [Filter("id", "eq", coupon_id), Filter("current_uses", "eq", current)],
                {"current_uses": current + 1},
            )
            if updated:
                logger.info("Redeemed coupon %s (%s uses)", row.get("code"), current + 1)
                return Coupon(**updated[0])
            logger.warning(
                "Concurrent redemption of coupon %s, attempt %s/%s", coupon_id, attempt, attempts
            )
        raise CouponRejectedError("limit_reached")

    async def list(self, actor: AdminActor | None) -> List[Coupon]:
        require(PermissionFlag.VIEW_COUPONS, actor)
        rows = await self._select("coupons", order=Order("created_at", ascending=False))
        return [Coupon(**row) for row in rows]

    async def create(self, request: CouponCreateRequest, actor: AdminActor | None) -> Coupon:
        require(PermissionFlag.MANAGE_COUPONS, actor)
        record = request.model_dump()
        record["code"] = normalise_code(request.code)
        record["valid_from"] = request.valid_from or self._now().isoformat()
        record["current_uses"] = 0
        logger.info("Creating coupon %s", record["code"])
        return Coupon(**await self._insert("coupons", record))

    async def update(
        self, coupon_id: str, request: CouponUpdateRequest, actor: AdminActor | None
    ) -> Coupon:
        require(PermissionFlag.MANAGE_COUPONS, actor)
        patch = request.model_dump(exclude_unset=True)
        if "code" in patch:
            patch["code"] = normalise_code(patch["code"])
        if not patch:
            return Coupon(**await self._get("coupons", coupon_id, label="Coupon"))
        return Coupon(**await self._update_one("coupons", coupon_id, patch))

    async def toggle_active(self, coupon_id: str, actor: AdminActor | None) -> Coupon:
        require(PermissionFlag.MANAGE_COUPONS, actor)
        row = await self._get("coupons", coupon_id, label="Coupon")
        return Coupon(
            **await self._update_one("coupons", coupon_id, {"is_active": not row.get("is_active")})
        )

    async def delete(self, coupon_id: str, actor: AdminActor | None) -> None:
        require(PermissionFlag.MANAGE_COUPONS, actor)
        removed = await self._delete("coupons", [Filter("id", "eq", coupon_id)])
        if not removed:
            raise NotFoundError(f"Coupon {coupon_id} not found")
