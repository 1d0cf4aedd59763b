# kts_office/health.py
from fastapi import APIRouter

from kts_office.config import get_settings

router = APIRouter()


@router.get("/health")
def health():
    return {"ok": True}


@router.get("/health/info")
def info():
    settings = get_settings()
    return {
        "status": "ok",
        "app": settings.app_name,
        "backend": "mock" if settings.use_mock_data or not settings.backend_url else "live",
    }
