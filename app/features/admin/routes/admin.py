from typing import Optional

from fastapi import APIRouter, Depends

from app.features.admin.utils.auth import require_admin_token
from app.features.audit.schemas.audit import CleanupIn
from app.features.audit.services.audit_history import audit_history
from app.features.audit.services.cache import cache_service
from app.platform.logger import get_logger
from app.platform.response import api_response
from app.platform.security_logger import security_logger

logger = get_logger("admin_routes")
router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin_token)])


@router.api_route("/stats", methods=["GET", "POST"], summary="Get audit statistics")
async def get_stats():
    """
    Global audit statistics, cache usage, popular domains and
    security event counters.
    """
    stats = {
        "audits": await audit_history.get_global_statistics(),
        "cache": await cache_service.get_statistics(),
        "popularDomains": await audit_history.get_popular_domains(10),
        "mostCachedDomains": await cache_service.most_cached_domains(10),
        "security": security_logger.get_statistics(),
    }
    return api_response(data=stats, message="Statistics retrieved successfully")


@router.post("/cleanup", summary="Delete old audits and expired cache entries")
async def cleanup(cleanup_in: Optional[CleanupIn] = None):
    cleanup_in = cleanup_in or CleanupIn()
    results = {"deletedAudits": 0, "deletedCacheEntries": 0}

    if cleanup_in.clean_old_audits:
        results["deletedAudits"] = await audit_history.cleanup_old_audits(cleanup_in.days_old)
    if cleanup_in.clean_expired_cache:
        results["deletedCacheEntries"] = await cache_service.clean_expired()

    logger.info(
        f"Cleanup done: {results['deletedAudits']} audits, "
        f"{results['deletedCacheEntries']} cache entries"
    )
    return api_response(data=results, message="Cleanup completed")
