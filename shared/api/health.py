"""Health check API endpoints."""
from fastapi import APIRouter

from config import get_settings
from database import get_db_manager

router = APIRouter(tags=["health"])


@router.get("/")
def read_root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "Study Canvas Backend",
        "version": "1.0.0"
    }


@router.get("/health/db")
def database_health():
    """Database health check (only meaningful for the database session store)."""
    settings = get_settings()
    if settings.session_store_backend != "database":
        return {"status": "ok", "database": f"not used (store: {settings.session_store_backend})"}

    try:
        db_manager = get_db_manager()
        is_healthy = db_manager.health_check()

        if is_healthy:
            return {"status": "ok", "database": "connected"}
        else:
            return {"status": "error", "database": "connection_failed"}
    except Exception as e:
        return {"status": "error", "database": f"error: {str(e)}"}
