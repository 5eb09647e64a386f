import asyncio
from typing import Optional, Tuple

from app.features.audit.schemas.audit import AuditRequestContext, AuditResult, PdfOptions
from app.features.audit.services.audit_history import AuditRecord, audit_history
from app.features.audit.services.cache import cache_service
from app.features.audit.services.orchestrator import run_audit
from app.features.audit.services.pdf_report import generate_audit_pdf
from app.platform.config import settings
from app.platform.exceptions import AppError, AuditFailed, DependencyFailure
from app.platform.logger import get_logger
from app.platform.services.email import EmailResult, email_service

logger = get_logger("audit_service")


async def run_audit_with_timeout(ctx: AuditRequestContext) -> AuditResult:
    try:
        return await asyncio.wait_for(
            run_audit(ctx.domain, ctx.mode), timeout=settings.AUDIT_TIMEOUT_SECONDS
        )
    except asyncio.TimeoutError as e:
        logger.error(f"Audit of {ctx.domain} exceeded {settings.AUDIT_TIMEOUT_SECONDS:g}s")
        raise AuditFailed("Audit timed out") from e


async def get_or_run_audit(
    ctx: AuditRequestContext, email: Optional[str] = None
) -> Tuple[AuditResult, bool]:
    """Returns (result, cached). Fresh results are written back to the cache."""
    cached = await cache_service.get(ctx.domain, ctx.mode)
    if cached is not None:
        return cached, True

    try:
        result = await run_audit_with_timeout(ctx)
    except AuditFailed as e:
        await record_failed_audit(ctx, e.reason, email=email)
        raise

    await cache_service.set(ctx.domain, ctx.mode, result)
    return result, False


async def record_audit(
    ctx: AuditRequestContext,
    result: AuditResult,
    email: Optional[str] = None,
    pdf_generated: bool = False,
    email_result: Optional[EmailResult] = None,
) -> None:
    record = AuditRecord(
        domain=ctx.domain,
        mode=ctx.mode,
        result=result,
        email=email,
        ip_address=ctx.client_ip,
        user_agent=ctx.user_agent,
        pdf_generated=pdf_generated,
        email_sent=bool(email_result and email_result.success),
        email_message_id=email_result.message_id if email_result else None,
    )
    try:
        await audit_history.save_audit(record)
    except DependencyFailure as e:
        logger.warning(f"Audit of {ctx.domain} not persisted: {e}")


async def record_failed_audit(ctx: AuditRequestContext, reason: str, email: Optional[str] = None) -> None:
    try:
        await audit_history.save_failed_audit(
            ctx.domain,
            ctx.mode,
            reason,
            email=email,
            ip_address=ctx.client_ip,
            user_agent=ctx.user_agent,
        )
    except DependencyFailure as e:
        logger.warning(f"Failed audit of {ctx.domain} not persisted: {e}")


async def render_pdf(domain: str, result: AuditResult, options: Optional[PdfOptions] = None) -> bytes:
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(generate_audit_pdf, domain, result, options),
            timeout=settings.PDF_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError as e:
        logger.error(f"PDF generation for {domain} timed out")
        raise AppError("PDF generation timed out") from e
    except Exception as e:
        logger.error(f"PDF generation for {domain} failed: {e}", exc_info=True)
        raise AppError(f"PDF generation failed: {e}") from e


async def try_render_pdf(
    domain: str, result: AuditResult, options: Optional[PdfOptions] = None
) -> Optional[bytes]:
    """Like render_pdf but gives up quietly; oversized reports are dropped too."""
    try:
        pdf_bytes = await render_pdf(domain, result, options)
    except AppError:
        return None
    if len(pdf_bytes) > settings.MAX_PDF_BYTES:
        logger.warning(f"PDF for {domain} is {len(pdf_bytes)} bytes; sending without attachment")
        return None
    return pdf_bytes


async def send_report(email: str, domain: str, result: AuditResult, pdf_bytes: Optional[bytes]) -> EmailResult:
    return await asyncio.to_thread(email_service.send_audit_report, email, domain, result, pdf_bytes)
