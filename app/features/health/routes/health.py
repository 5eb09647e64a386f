from fastapi import APIRouter, status
from sqlalchemy import text

from app.platform.config import settings
from app.platform.db.session import SessionLocal
from app.platform.logger import get_logger
from app.platform.response import api_response

logger = get_logger("health")

router = APIRouter()


@router.get("/health", tags=["health"])
async def health_check():
    database = "ok"
    try:
        async with SessionLocal() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database = "unavailable"

    return api_response(
        data={"status": "ok", "service": settings.APP_NAME, "database": database},
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )
