"""Service package public API definitions.

``kts_office.clients.backend`` imports ``kts_office.services.exceptions``,
which executes this module first. Importing the service implementations
eagerly here would pull the backend client back in and cause a circular
import at start up, so they are loaded lazily on first access.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "AnalyticsService",
    "AppointmentService",
    "BookingService",
    "CatalogService",
    "ContactService",
    "ContentService",
    "CouponService",
    "DeletionRequestService",
    "InvoiceService",
    "NotificationService",
    "PermissionService",
    "SettingsService",
]

_SERVICE_MODULES = {
    "AnalyticsService": "analytics",
    "AppointmentService": "appointment",
    "BookingService": "booking",
    "CatalogService": "catalog",
    "ContactService": "content",
    "ContentService": "content",
    "CouponService": "coupons",
    "DeletionRequestService": "appointment",
    "InvoiceService": "invoice",
    "NotificationService": "notifications",
    "PermissionService": "permissions",
    "SettingsService": "settings",
}


def __getattr__(name: str) -> Any:
    if name not in _SERVICE_MODULES:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module = import_module(f".{_SERVICE_MODULES[name]}", __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .analytics import AnalyticsService as AnalyticsService
    from .appointment import AppointmentService as AppointmentService
    from .appointment import DeletionRequestService as DeletionRequestService
    from .booking import BookingService as BookingService
    from .catalog import CatalogService as CatalogService
    from .content import ContactService as ContactService
    from .content import ContentService as ContentService
    from .coupons import CouponService as CouponService
    from .invoice import InvoiceService as InvoiceService
    from .notifications import NotificationService as NotificationService
    from .permissions import PermissionService as PermissionService
    from .settings import SettingsService as SettingsService
