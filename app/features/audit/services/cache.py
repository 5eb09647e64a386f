from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.features.audit.models.audit import AuditCache
from app.features.audit.schemas.audit import AuditMode, AuditResult
from app.platform.config import settings
from app.platform.db.base import utcnow
from app.platform.db.session import SessionLocal
from app.platform.logger import get_logger
from app.platform.utils.validators import normalize_domain

logger = get_logger("audit_cache")

DEFAULT_TTL = timedelta(hours=settings.CACHE_TTL_HOURS)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo; they are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _mode_value(mode: AuditMode | str) -> str:
    return AuditMode(mode).value


class CacheService:
    """
    Audit results keyed by (domain, mode) with a TTL.

    Expired rows are swept lazily on every read. Storage errors never reach
    the caller: reads degrade to a miss and writes to a no-op.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.clock = clock

    async def get(self, domain: str, mode: AuditMode | str) -> Optional[AuditResult]:
        key_domain, key_mode = normalize_domain(domain), _mode_value(mode)
        try:
            await self.clean_expired()

            async with self.session_factory() as db:
                result = await db.execute(
                    select(AuditCache).where(
                        AuditCache.domain == key_domain, AuditCache.mode == key_mode
                    )
                )
                cached = result.scalar_one_or_none()

                if cached is None:
                    logger.info(f"[CACHE] Miss for {key_domain} ({key_mode})")
                    return None

                if _as_utc(cached.expires_at) <= self.clock():
                    await db.delete(cached)
                    await db.commit()
                    logger.info(f"[CACHE] Expired entry dropped for {key_domain} ({key_mode})")
                    return None

                logger.info(f"[CACHE] Hit for {key_domain} ({key_mode})")
                return AuditResult.model_validate(cached.results)
        except Exception as e:
            logger.error(f"Cache read failed for {key_domain} ({key_mode}): {e}")
            return None

    async def set(
        self,
        domain: str,
        mode: AuditMode | str,
        result: AuditResult,
        ttl: timedelta = DEFAULT_TTL,
    ) -> None:
        if ttl <= timedelta(0):
            raise ValueError("Cache TTL must be positive")

        key_domain, key_mode = normalize_domain(domain), _mode_value(mode)
        now = self.clock()
        expires_at = now + ttl
        payload = result.model_dump(mode="json", by_alias=True)

        try:
            async with self.session_factory() as db:
                existing = await db.execute(
                    select(AuditCache).where(
                        AuditCache.domain == key_domain, AuditCache.mode == key_mode
                    )
                )
                entry = existing.scalar_one_or_none()
                if entry is None:
                    db.add(
                        AuditCache(
                            domain=key_domain,
                            mode=key_mode,
                            results=payload,
                            created_at=now,
                            updated_at=now,
                            expires_at=expires_at,
                        )
                    )
                else:
                    entry.results = payload
                    entry.created_at = now
                    entry.updated_at = now
                    entry.expires_at = expires_at
                await db.commit()

            logger.info(f"[CACHE] Stored {key_domain} ({key_mode}) - expires {expires_at.isoformat()}")
        except Exception as e:
            logger.error(f"Cache write failed for {key_domain} ({key_mode}): {e}")

    async def invalidate(self, domain: str, mode: AuditMode | str | None = None) -> int:
        key_domain = normalize_domain(domain)
        stmt = delete(AuditCache).where(AuditCache.domain == key_domain)
        if mode is not None:
            stmt = stmt.where(AuditCache.mode == _mode_value(mode))

        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                await db.commit()
            deleted = result.rowcount or 0
            logger.info(f"[CACHE] Invalidated {deleted} entries for {key_domain}")
            return deleted
        except Exception as e:
            logger.error(f"Cache invalidation failed for {key_domain}: {e}")
            return 0

    async def clean_expired(self) -> int:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    delete(AuditCache).where(AuditCache.expires_at <= self.clock())
                )
                await db.commit()
            deleted = result.rowcount or 0
            if deleted:
                logger.info(f"[CACHE] Cleaned {deleted} expired entries")
            return deleted
        except Exception as e:
            logger.error(f"Cache cleanup failed: {e}")
            return 0

    async def get_statistics(self) -> Dict[str, Any]:
        try:
            async with self.session_factory() as db:
                total = await db.scalar(select(func.count()).select_from(AuditCache))
                expired = await db.scalar(
                    select(func.count())
                    .select_from(AuditCache)
                    .where(AuditCache.expires_at <= self.clock())
                )
                rows = await db.execute(
                    select(AuditCache.mode, func.count()).group_by(AuditCache.mode)
                )
                by_mode = {mode: count for mode, count in rows.all()}
            total, expired = total or 0, expired or 0
            return {"total": total, "active": total - expired, "expired": expired, "byMode": by_mode}
        except Exception as e:
            logger.error(f"Cache statistics failed: {e}")
            return {"total": 0, "active": 0, "expired": 0, "byMode": {}}

    async def clear_all(self) -> int:
        try:
            async with self.session_factory() as db:
                result = await db.execute(delete(AuditCache))
                await db.commit()
            deleted = result.rowcount or 0
            logger.info(f"[CACHE] Cleared all entries ({deleted})")
            return deleted
        except Exception as e:
            logger.error(f"Cache clear failed: {e}")
            return 0

    async def most_cached_domains(self, limit: int = 10) -> List[Dict[str, Any]]:
        try:
            async with self.session_factory() as db:
                count = func.count(AuditCache.id).label("count")
                rows = await db.execute(
                    select(AuditCache.domain, count)
                    .group_by(AuditCache.domain)
                    .order_by(count.desc())
                    .limit(limit)
                )
                return [{"domain": domain, "count": total} for domain, total in rows.all()]
        except Exception as e:
            logger.error(f"Most cached domains lookup failed: {e}")
            return []


cache_service = CacheService(SessionLocal)
