from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kts_office.config import get_settings
from kts_office.dependencies.services import get_backend_client_cached

from kts_office.health import router as health_router
from kts_office.routes.analytics import router as analytics_router
from kts_office.routes.appointments import deletion_router, router as appointment_router
from kts_office.routes.booking import router as booking_router
from kts_office.routes.catalog import router as catalog_router
from kts_office.routes.content import contact_router, router as content_router
from kts_office.routes.coupons import router as coupon_router
from kts_office.routes.invoices import router as invoice_router
from kts_office.routes.notifications import router as notification_router
from kts_office.routes.permissions import router as permission_router
from kts_office.routes.settings import router as settings_router


def configure_logging() -> None:
    """Ensure application logs use the INFO level by default."""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    else:
        root_logger.setLevel(logging.INFO)


# Configure logging as soon as the module is loaded
configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    settings_snapshot = settings.model_dump(exclude={"backend_api_key"})
    logger.info("Application settings on startup: %s", settings_snapshot)

    client = get_backend_client_cached()
    logger.info(
        "Application startup complete (%s backend).",
        "mock" if client.use_mock_data else "live",
    )

    try:
        yield
    finally:
        logger.info("Closing backend client connection.")
        await client.close()
        logger.info("Application shutdown complete.")


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
    redirect_slashes=False,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin).rstrip("/") for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(settings_router, prefix="/settings", tags=["settings"])
app.include_router(catalog_router, prefix="/services", tags=["services"])
app.include_router(coupon_router, prefix="/coupons", tags=["coupons"])
app.include_router(booking_router, prefix="/booking", tags=["booking"])
app.include_router(appointment_router, prefix="/appointments", tags=["appointments"])
app.include_router(deletion_router, prefix="/deletion-requests", tags=["appointments"])
app.include_router(invoice_router, prefix="/invoices", tags=["invoices"])
app.include_router(analytics_router, prefix="/analytics", tags=["analytics"])
app.include_router(permission_router, prefix="/admins", tags=["permissions"])
app.include_router(notification_router, prefix="/notifications", tags=["notifications"])
app.include_router(content_router, prefix="/content", tags=["content"])
app.include_router(contact_router, prefix="/contact", tags=["contact"])
app.include_router(health_router)
