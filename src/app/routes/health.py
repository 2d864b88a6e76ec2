from fastapi import APIRouter

from src.app.core.config import get_settings

router = APIRouter()

@router.get("/health", tags=["Health"])
def health_check() -> dict:
    return {"status": "ok", "service": get_settings().APP_NAME}
