"""Key/value site settings with typed views over the well-known keys."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from kts_office.clients.query import Order
from kts_office.schemas.settings import (
    BookingPopupSettings,
    CompanyInfo,
    PaymentGatewaySettings,
    PaymentGatewayUpdate,
    SlotConfiguration,
)
from kts_office.services.base import BackendService
from kts_office.services.permissions import AdminActor, PermissionFlag, can_perform, require

logger = logging.getLogger(__name__)

_COMPANY_DEFAULTS = CompanyInfo()

SLOT_SETTING_KEYS = {
    "booking_slot_duration_minutes": "slot_duration_minutes",
    "booking_start_time": "start_time",
    "booking_end_time": "end_time",
}


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return str(value).strip().lower() == "true"


def mask_secret(value: str, visible: int = 4) -> str:
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]


class SettingsService(BackendService):
    """Settings are read once per instance and reused for its lifetime."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._cache: Dict[str, str] | None = None

    async def all(self) -> Dict[str, str]:
        if self._cache is None:
            rows = await self._select("site_settings", order=Order("key"))
            self._cache = {
                str(row["key"]): "" if row.get("value") is None else str(row["value"])
                for row in rows
            }
        return dict(self._cache)

    async def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        settings = await self.all()
        return settings.get(key, default)

    async def get_many(self, keys: Iterable[str]) -> Dict[str, str]:
        settings = await self.all()
        return {key: settings[key] for key in keys if key in settings}

    async def set(self, key: str, value: str, actor: AdminActor | None) -> Dict[str, str]:
        require(PermissionFlag.MANAGE_SETTINGS, actor)
        logger.info("Updating site setting %s", key)
        await self._upsert("site_settings", {"key": key, "value": value}, on_conflict="key")
        if self._cache is not None:
            self._cache[key] = value
        return await self.all()

    async def set_many(self, values: Dict[str, str], actor: AdminActor | None) -> Dict[str, str]:
        require(PermissionFlag.MANAGE_SETTINGS, actor)
        for key, value in values.items():
            await self.set(key, value, actor)
        return await self.all()

    async def company_info(self) -> CompanyInfo:
        settings = await self.all()
        return CompanyInfo(
            name=settings.get("site_name") or _COMPANY_DEFAULTS.name,
            address=settings.get("contact_address") or _COMPANY_DEFAULTS.address,
            email=settings.get("contact_email") or _COMPANY_DEFAULTS.email,
            phone=settings.get("contact_phone") or _COMPANY_DEFAULTS.phone,
            gst=settings.get("gst_number") or "",
        )

    async def booking_popup(self) -> BookingPopupSettings:
        settings = await self.all()
        return BookingPopupSettings(
            enabled=_flag(settings.get("booking_popup_enabled")),
            button_text=settings.get("booking_popup_text") or "Book Appointment",
            title=settings.get("booking_popup_title") or None,
        )

    async def slot_configuration(self) -> SlotConfiguration:
        """Slot settings with any unparseable admin value replaced by its default."""

        stored = await self.get_many(SLOT_SETTING_KEYS)
        values: Dict[str, object] = {}
        for key, field_name in SLOT_SETTING_KEYS.items():
            raw = stored.get(key)
            if not raw:
                continue
            try:
                SlotConfiguration(**{field_name: raw.strip()})
            except ValidationError:
                logger.warning("Ignoring invalid value %r for setting %s", raw, key)
                continue
            values[field_name] = raw.strip()
        return SlotConfiguration(**values)

    async def payment_gateway(self, actor: AdminActor | None = None) -> PaymentGatewaySettings:
        settings = await self.all()
        key_id = settings.get("razorpay_key_id") or ""
        if key_id and not can_perform(PermissionFlag.MANAGE_SETTINGS, actor):
            key_id = mask_secret(key_id)
        return PaymentGatewaySettings(
            enabled=_flag(settings.get("razorpay_enabled")),
            key_id=key_id,
            test_mode=_flag(settings.get("razorpay_test_mode"), default=True),
        )

    async def update_payment_gateway(
        self, update: PaymentGatewayUpdate, actor: AdminActor | None
    ) -> PaymentGatewaySettings:
        require(PermissionFlag.MANAGE_SETTINGS, actor)
        changes: Dict[str, str] = {}
        if update.enabled is not None:
            changes["razorpay_enabled"] = "true" if update.enabled else "false"
        if update.key_id is not None:
            changes["razorpay_key_id"] = update.key_id.strip()
        if update.test_mode is not None:
            changes["razorpay_test_mode"] = "true" if update.test_mode else "false"
        await self.set_many(changes, actor)
        return await self.payment_gateway(actor)


def slot_labels(config: SlotConfiguration) -> List[str]:
    """Generate slot start labels that fit fully inside the working window."""

    start_h, start_m = (int(part) for part in config.start_time.split(":"))
    end_h, end_m = (int(part) for part in config.end_time.split(":"))
    cursor = start_h * 60 + start_m
    end = end_h * 60 + end_m
    step = max(config.slot_duration_minutes, 1)
    labels: List[str] = []
    while cursor + step <= end:
        labels.append(f"{cursor // 60:02d}:{cursor % 60:02d}")
        cursor += step
    return labels
