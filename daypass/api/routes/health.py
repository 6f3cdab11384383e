from fastapi import APIRouter

from daypass.core.config import get_settings

router = APIRouter()
settings = get_settings()


@router.get("/health")
def health():
    return {
        "status": "ok",
        "emailConfigured": settings.email_configured,
        "environment": settings.ENVIRONMENT,
    }
