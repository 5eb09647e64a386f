from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.features.audit.models.audit import Audit, AuditStatistics, AuditStatus, PopularDomain
from app.features.audit.schemas.audit import AuditMode, AuditResult
from app.platform.db.base import utcnow
from app.platform.db.session import SessionLocal
from app.platform.exceptions import DependencyFailure
from app.platform.logger import get_logger

logger = get_logger("audit_history")


@dataclass
class AuditRecord:
    domain: str
    mode: AuditMode
    result: AuditResult
    email: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    pdf_generated: bool = False
    email_sent: bool = False
    email_message_id: Optional[str] = None


class AuditHistoryService:
    """Persists audits and keeps the daily statistics and popular domains up to date."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.clock = clock

    async def save_audit(self, record: AuditRecord) -> Audit:
        payload = record.result.to_payload()
        audit = Audit(
            domain=record.domain,
            email=record.email,
            mode=AuditMode(record.mode).value,
            ip_address=record.ip_address,
            user_agent=(record.user_agent or "")[:500] or None,
            request_id=record.request_id,
            lighthouse_results=payload["lighthouse"],
            seo_basic_results=payload["seoBasic"],
            security_results=payload.get("security"),
            rgpd_results=payload.get("rgpd"),
            cookies_results=payload.get("cookies"),
            seo_advanced_results=payload.get("seoAdvanced"),
            execution_time=record.result.execution_time,
            pdf_generated=record.pdf_generated,
            email_sent=record.email_sent,
            email_message_id=record.email_message_id,
            status=AuditStatus.completed,
        )

        try:
            async with self.session_factory() as db:
                db.add(audit)
                await db.commit()
                await db.refresh(audit)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save audit for {record.domain}: {e}")
            raise DependencyFailure(f"Could not save audit: {e}") from e

        await self._update_statistics(record)
        await self._update_popular_domain(record.domain, record.result)
        return audit

    async def save_failed_audit(
        self,
        domain: str,
        mode: AuditMode,
        error_message: str,
        email: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        execution_time: int = 0,
    ) -> Audit:
        audit = Audit(
            domain=domain,
            email=email,
            mode=AuditMode(mode).value,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:500] or None,
            execution_time=execution_time,
            pdf_generated=False,
            email_sent=False,
            status=AuditStatus.failed,
            error_message=error_message,
        )
        try:
            async with self.session_factory() as db:
                db.add(audit)
                await db.commit()
                await db.refresh(audit)
            return audit
        except SQLAlchemyError as e:
            logger.error(f"Failed to save failed audit for {domain}: {e}")
            raise DependencyFailure(f"Could not save failed audit: {e}") from e

    async def _ensure_row(self, model, criterion, **values) -> None:
        """Inserts the zeroed row unless it exists; losing an insert race is fine."""
        async with self.session_factory() as db:
            if (await db.execute(select(model.id).where(criterion))).first() is not None:
                return
            db.add(model(**values))
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                logger.debug(f"{model.__tablename__} row already created by a concurrent save")

    async def _update_statistics(self, record: AuditRecord) -> None:
        today = self.clock().date()
        mode = AuditMode(record.mode)
        execution_time = float(record.result.execution_time)
        stats = AuditStatistics

        values = {
            # Every right-hand side reads the pre-update row.
            "avg_execution_time": stats.avg_execution_time
            + (execution_time - stats.avg_execution_time) / (stats.total_audits + 1),
            "total_audits": stats.total_audits + 1,
        }
        if mode == AuditMode.fast:
            values["fast_audits"] = stats.fast_audits + 1
        else:
            values["complete_audits"] = stats.complete_audits + 1
        if record.email:
            if record.email_sent:
                values["emails_sent"] = stats.emails_sent + 1
            else:
                values["emails_failed"] = stats.emails_failed + 1

        try:
            await self._ensure_row(
                stats,
                stats.date == today,
                date=today,
                total_audits=0,
                fast_audits=0,
                complete_audits=0,
                emails_sent=0,
                emails_failed=0,
                avg_execution_time=0.0,
            )
            async with self.session_factory() as db:
                await db.execute(
                    update(stats)
                    .where(stats.date == today)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update audit statistics: {e}")

    async def _update_popular_domain(self, domain: str, result: AuditResult) -> None:
        scores = result.lighthouse
        entry = PopularDomain

        def averaged(column, value):
            return column + (float(value) - column) / (entry.audit_count + 1)

        try:
            await self._ensure_row(
                entry,
                entry.domain == domain,
                domain=domain,
                audit_count=0,
                avg_performance=0.0,
                avg_seo=0.0,
                avg_accessibility=0.0,
                avg_best_practices=0.0,
            )
            async with self.session_factory() as db:
                await db.execute(
                    update(entry)
                    .where(entry.domain == domain)
                    .values(
                        avg_performance=averaged(entry.avg_performance, scores.performance),
                        avg_seo=averaged(entry.avg_seo, scores.seo),
                        avg_accessibility=averaged(entry.avg_accessibility, scores.accessibility),
                        avg_best_practices=averaged(entry.avg_best_practices, scores.best_practices),
                        audit_count=entry.audit_count + 1,
                        last_audit_at=self.clock(),
                    )
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update popular domain {domain}: {e}")

    async def get_audit_history(self, domain: str, limit: int = 10) -> List[Dict[str, Any]]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(Audit)
                    .where(Audit.domain == domain, Audit.status == AuditStatus.completed)
                    .order_by(Audit.created_at.desc())
                    .limit(limit)
                )
                return [
                    {
                        "id": audit.id,
                        "createdAt": audit.created_at,
                        "mode": audit.mode,
                        "executionTime": audit.execution_time,
                        "lighthouse": audit.lighthouse_results,
                    }
                    for audit in result.scalars().all()
                ]
        except SQLAlchemyError as e:
            logger.error(f"Failed to load audit history for {domain}: {e}")
            return []

    async def get_user_audits(self, email: str, limit: int = 20) -> List[Dict[str, Any]]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(Audit)
                    .where(Audit.email == email, Audit.status == AuditStatus.completed)
                    .order_by(Audit.created_at.desc())
                    .limit(limit)
                )
                return [
                    {
                        "id": audit.id,
                        "domain": audit.domain,
                        "createdAt": audit.created_at,
                        "mode": audit.mode,
                        "executionTime": audit.execution_time,
                        "lighthouse": audit.lighthouse_results,
                    }
                    for audit in result.scalars().all()
                ]
        except SQLAlchemyError as e:
            logger.error(f"Failed to load audits for {email}: {e}")
            return []

    async def get_global_statistics(self) -> Dict[str, Any]:
        try:
            async with self.session_factory() as db:
                row = (
                    await db.execute(
                        select(
                            func.coalesce(func.sum(AuditStatistics.total_audits), 0),
                            func.coalesce(func.sum(AuditStatistics.fast_audits), 0),
                            func.coalesce(func.sum(AuditStatistics.complete_audits), 0),
                            func.coalesce(func.sum(AuditStatistics.emails_sent), 0),
                            func.coalesce(func.sum(AuditStatistics.emails_failed), 0),
                            func.coalesce(func.avg(AuditStatistics.avg_execution_time), 0),
                        )
                    )
                ).one()
            total, fast, complete, sent, failed, avg_time = row
            return {
                "totalAudits": int(total),
                "fastAudits": int(fast),
                "completeAudits": int(complete),
                "emailsSent": int(sent),
                "emailsFailed": int(failed),
                "avgExecutionTime": float(avg_time),
            }
        except SQLAlchemyError as e:
            logger.error(f"Failed to load global statistics: {e}")
            return {
                "totalAudits": 0,
                "fastAudits": 0,
                "completeAudits": 0,
                "emailsSent": 0,
                "emailsFailed": 0,
                "avgExecutionTime": 0.0,
            }

    async def get_popular_domains(self, limit: int = 10) -> List[Dict[str, Any]]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(PopularDomain).order_by(PopularDomain.audit_count.desc()).limit(limit)
                )
                return [
                    {
                        "domain": entry.domain,
                        "auditCount": entry.audit_count,
                        "lastAuditAt": entry.last_audit_at,
                        "avgPerformance": round(entry.avg_performance, 1),
                        "avgSeo": round(entry.avg_seo, 1),
                        "avgAccessibility": round(entry.avg_accessibility, 1),
                        "avgBestPractices": round(entry.avg_best_practices, 1),
                    }
                    for entry in result.scalars().all()
                ]
        except SQLAlchemyError as e:
            logger.error(f"Failed to load popular domains: {e}")
            return []

    async def cleanup_old_audits(self, days_to_keep: int = 90) -> int:
        cutoff = self.clock() - timedelta(days=days_to_keep)
        try:
            async with self.session_factory() as db:
                result = await db.execute(delete(Audit).where(Audit.created_at < cutoff))
                await db.commit()
            deleted = result.rowcount or 0
            logger.info(f"Deleted {deleted} audits older than {days_to_keep} days")
            return deleted
        except SQLAlchemyError as e:
            logger.error(f"Failed to clean up old audits: {e}")
            return 0


audit_history = AuditHistoryService(SessionLocal)
