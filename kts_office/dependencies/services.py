from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException

from kts_office.clients.backend import BackendClient
from kts_office.config import Settings, get_settings
from kts_office.services import (
    AnalyticsService,
    AppointmentService,
    BookingService,
    CatalogService,
    ContactService,
    ContentService,
    CouponService,
    DeletionRequestService,
    InvoiceService,
    NotificationService,
    PermissionService,
    SettingsService,
)
from kts_office.services.exceptions import ServiceError
from kts_office.services.permissions import AdminActor

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_backend_client_cached() -> BackendClient:
    settings = get_settings()
    return BackendClient(
        str(settings.backend_url) if settings.backend_url else None,
        api_key=settings.backend_api_key,
        timeout=settings.backend_timeout,
        use_mock_data=settings.use_mock_data,
        poll_interval=settings.subscribe_poll_interval,
    )


def get_backend_client(settings: Settings = Depends(get_settings)) -> BackendClient:
    return get_backend_client_cached()


def get_settings_service(
    client: BackendClient = Depends(get_backend_client),
) -> SettingsService:
    return SettingsService(client)


def get_catalog_service(
    client: BackendClient = Depends(get_backend_client),
) -> CatalogService:
    return CatalogService(client)


def get_coupon_service(
    client: BackendClient = Depends(get_backend_client),
) -> CouponService:
    return CouponService(client)


def get_booking_service(
    client: BackendClient = Depends(get_backend_client),
) -> BookingService:
    return BookingService(client)


def get_appointment_service(
    client: BackendClient = Depends(get_backend_client),
) -> AppointmentService:
    return AppointmentService(client)


def get_deletion_request_service(
    client: BackendClient = Depends(get_backend_client),
) -> DeletionRequestService:
    return DeletionRequestService(client)


def get_invoice_service(
    client: BackendClient = Depends(get_backend_client),
) -> InvoiceService:
    return InvoiceService(client)


def get_analytics_service(
    client: BackendClient = Depends(get_backend_client),
) -> AnalyticsService:
    return AnalyticsService(client)


def get_permission_service(
    client: BackendClient = Depends(get_backend_client),
) -> PermissionService:
    return PermissionService(client)


def get_notification_service(
    client: BackendClient = Depends(get_backend_client),
) -> NotificationService:
    return NotificationService(client)


def get_content_service(
    client: BackendClient = Depends(get_backend_client),
) -> ContentService:
    return ContentService(client)


def get_contact_service(
    client: BackendClient = Depends(get_backend_client),
) -> ContactService:
    return ContactService(client)


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """User id asserted by the authentication proxy in front of the API."""

    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


def require_user_id(user_id: Optional[str] = Depends(get_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Sign in required")
    return user_id


async def get_actor(
    user_id: Optional[str] = Depends(get_user_id),
    permissions: PermissionService = Depends(get_permission_service),
) -> Optional[AdminActor]:
    if not user_id:
        return None
    try:
        return await permissions.load_actor(user_id)
    except ServiceError as exc:
        logger.warning("Could not load permissions for %s: %s", user_id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
