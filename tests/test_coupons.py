import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from kts_office.schemas.coupon import CouponCreateRequest, CouponUpdateRequest
from kts_office.services import base
from kts_office.services.coupons import (
    CouponService,
    discounted_price,
    generate_code,
    is_applicable,
    rejection_reason,
)
from kts_office.services.exceptions import CouponRejectedError, PermissionDeniedError
from kts_office.services.mock_store import get_mock_store, reset_mock_store
from kts_office.services.permissions import AdminActor


NOW = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)
TOMORROW = (NOW + timedelta(days=1)).isoformat()
YESTERDAY = (NOW - timedelta(days=1)).isoformat()
SUPER_ADMIN = AdminActor(user_id="usr-superadmin", is_super_admin=True, is_admin=True)


@pytest.fixture(autouse=True)
def _reset_store(monkeypatch) -> None:
    reset_mock_store()
    monkeypatch.setattr(base, "utc_now", lambda: NOW)
    yield
    reset_mock_store()


class MockLatencyClient:
    def __init__(self) -> None:
        self.use_mock_data = True
        self.latency_called = False

    async def simulate_latency(self) -> None:
        self.latency_called = True


def _seed_coupon(**overrides):
    record = {
        "code": "SAVE10",
        "discount_percent": 10,
        "valid_from": YESTERDAY,
        "valid_until": TOMORROW,
        "is_active": True,
        "max_uses": 5,
        "current_uses": 0,
    }
    record.update(overrides)
    return asyncio.run(get_mock_store().insert("coupons", record))


def test_usage_cap_decides_between_accept_and_limit_reached() -> None:
    exhausted = {"is_active": True, "valid_until": TOMORROW, "max_uses": 5, "current_uses": 5}
    almost = dict(exhausted, current_uses=4)

    assert rejection_reason(exhausted, NOW) == "limit_reached"
    assert is_applicable(almost, NOW)


@pytest.mark.parametrize(
    "coupon",
    [
        None,
        {"is_active": False, "valid_until": TOMORROW, "max_uses": None, "current_uses": 0},
        {"is_active": True, "valid_until": YESTERDAY, "max_uses": None, "current_uses": 0},
    ],
)
def test_missing_inactive_or_expired_coupons_are_invalid(coupon) -> None:
    assert rejection_reason(coupon, NOW) == "invalid"


def test_unlimited_coupon_is_usable_regardless_of_uses() -> None:
    coupon = {"is_active": True, "valid_until": TOMORROW, "max_uses": None, "current_uses": 900}
    assert is_applicable(coupon, NOW)


def test_validate_normalises_code_and_has_no_side_effects() -> None:
    client = MockLatencyClient()
    created = _seed_coupon()
    service = CouponService(client)

    coupon = asyncio.run(service.validate("  save10 "))

    assert coupon is not None
    assert coupon.id == created["id"]
    assert coupon.discount_percent == 10
    assert client.latency_called is True
    assert get_mock_store().rows("coupons")[0]["current_uses"] == 0


def test_empty_code_means_no_coupon() -> None:
    service = CouponService(MockLatencyClient())

    assert asyncio.run(service.validate("   ")) is None
    assert asyncio.run(service.validate(None)) is None


def test_validate_reports_rejection_reason() -> None:
    _seed_coupon(code="FULL", current_uses=5)
    service = CouponService(MockLatencyClient())

    with pytest.raises(CouponRejectedError) as limit:
        asyncio.run(service.validate("full"))
    with pytest.raises(CouponRejectedError) as unknown:
        asyncio.run(service.validate("NOPE"))

    assert limit.value.reason == "limit_reached"
    assert str(limit.value) == "This coupon has reached its limit."
    assert unknown.value.reason == "invalid"


def test_redeem_increments_usage_once() -> None:
    created = _seed_coupon()
    service = CouponService(MockLatencyClient())

    redeemed = asyncio.run(service.redeem(created["id"]))

    assert redeemed.current_uses == 1
    assert get_mock_store().rows("coupons")[0]["current_uses"] == 1


def test_redeem_refuses_to_go_past_the_cap() -> None:
    created = _seed_coupon(max_uses=1)
    service = CouponService(MockLatencyClient())

    asyncio.run(service.redeem(created["id"]))
    with pytest.raises(CouponRejectedError) as excinfo:
        asyncio.run(service.redeem(created["id"]))

    assert excinfo.value.reason == "limit_reached"
    assert get_mock_store().rows("coupons")[0]["current_uses"] == 1


def test_redeem_retries_after_losing_a_race(monkeypatch) -> None:
    created = _seed_coupon(max_uses=3)
    store = get_mock_store()
    original_update = store.update
    raced = {"done": False}

    async def racing_update(table, filters, patch):
        if table == "coupons" and not raced["done"]:
            raced["done"] = True
            # Another booking slips in between our read and our write.
            await original_update(table, [filters[0]], {"current_uses": 1})
        return await original_update(table, filters, patch)

    monkeypatch.setattr(store, "update", racing_update)
    service = CouponService(MockLatencyClient())

    redeemed = asyncio.run(service.redeem(created["id"]))

    assert redeemed.current_uses == 2


def test_concurrent_redemptions_never_exceed_the_cap() -> None:
    created = _seed_coupon(max_uses=2)
    service = CouponService(MockLatencyClient())

    async def redeem_many():
        return await asyncio.gather(
            *(service.redeem(created["id"]) for _ in range(4)), return_exceptions=True
        )

    results = asyncio.run(redeem_many())

    accepted = [result for result in results if not isinstance(result, Exception)]
    rejected = [result for result in results if isinstance(result, CouponRejectedError)]
    assert len(accepted) == 2
    assert len(rejected) == 2
    assert get_mock_store().rows("coupons")[0]["current_uses"] == 2


def test_admin_create_uppercases_code_and_starts_unused() -> None:
    service = CouponService(MockLatencyClient())

    coupon = asyncio.run(
        service.create(
            CouponCreateRequest(code="diwali25", discount_percent=25, valid_until=TOMORROW),
            SUPER_ADMIN,
        )
    )

    assert coupon.code == "DIWALI25"
    assert coupon.current_uses == 0
    assert coupon.valid_from == NOW.isoformat()


def test_toggle_and_update_require_manage_permission() -> None:
    created = _seed_coupon()
    service = CouponService(MockLatencyClient())
    viewer = AdminActor(user_id="usr-viewer", is_admin=True, permissions={"can_view_coupons": True})

    with pytest.raises(PermissionDeniedError):
        asyncio.run(service.toggle_active(created["id"], viewer))

    toggled = asyncio.run(service.toggle_active(created["id"], SUPER_ADMIN))
    updated = asyncio.run(
        service.update(created["id"], CouponUpdateRequest(discount_percent=15), SUPER_ADMIN)
    )

    assert toggled.is_active is False
    assert updated.discount_percent == 15
    assert len(asyncio.run(service.list(viewer))) == 1


def test_generated_codes_use_upper_alphanumerics() -> None:
    code = generate_code()

    assert len(code) == 8
    assert code.isalnum() and code == code.upper()


def test_discounted_price() -> None:
    assert discounted_price(999, 10) == 899.1
    assert discounted_price(299, None) == 299
    assert discounted_price(None, 50) is None
