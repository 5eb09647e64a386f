import time
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from app.features.audit.schemas.audit import (
    AuditIn,
    AuditMode,
    AuditRequestContext,
    PdfDemoIn,
    PdfIn,
    SendAuditIn,
)
from app.features.audit.services.audit import (
    get_or_run_audit,
    record_audit,
    render_pdf,
    send_report,
    try_render_pdf,
)
from app.features.audit.services.pdf_report import sample_audit_result
from app.platform.config import settings
from app.platform.exceptions import AppError, ForbiddenError, ValidationError
from app.platform.logger import get_logger
from app.platform.security_logger import security_logger
from app.platform.utils.rate_limit import (
    audit_rate_limiter,
    email_rate_limiter,
    get_client_ip,
    rate_limit,
)
from app.platform.utils.validators import validate_timestamp

logger = get_logger("audit_routes")
router = APIRouter(tags=["audit"])

limit_audits = rate_limit(audit_rate_limiter, "Too many audit requests. Please try again later.")
limit_emails = rate_limit(email_rate_limiter, "Too many email requests. Please try again later.")


async def require_xhr(request: Request) -> None:
    if request.headers.get("x-requested-with") != "XMLHttpRequest":
        security_logger.log_suspicious_activity(
            get_client_ip(request), request.headers.get("user-agent"), "missing X-Requested-With header"
        )
        raise ForbiddenError("Unauthorized request")


def build_context(request: Request, domain: str, mode: AuditMode, timestamp: Optional[float]) -> AuditRequestContext:
    if timestamp is not None:
        is_valid, error = validate_timestamp(timestamp, settings.REQUEST_MAX_AGE_SECONDS)
        if not is_valid:
            raise ValidationError(error)
    return AuditRequestContext(
        domain=domain,
        mode=mode,
        client_ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def pdf_response(pdf_bytes: bytes, domain: str) -> Response:
    filename = f"audit-{domain}-{int(time.time() * 1000)}.pdf"
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Content-Length": str(len(pdf_bytes)),
        },
    )


@router.post("/audit", dependencies=[Depends(limit_audits)])
async def audit_site(audit_in: AuditIn, request: Request):
    ctx = build_context(request, audit_in.domain, audit_in.mode, audit_in.timestamp)
    security_logger.log_audit_request(ctx.client_ip, ctx.user_agent, ctx.domain, ctx.mode.value)
    logger.info(f"Starting {ctx.mode.value} audit for {ctx.domain}")

    result, cached = await get_or_run_audit(ctx)
    if not cached:
        await record_audit(ctx, result)

    return {"success": True, "cached": cached, **result.to_payload()}


@router.post("/send-audit", dependencies=[Depends(require_xhr), Depends(limit_emails)])
async def send_audit(send_in: SendAuditIn, request: Request):
    ctx = build_context(request, send_in.domain, send_in.mode, send_in.timestamp)
    security_logger.log_audit_request(
        ctx.client_ip, ctx.user_agent, ctx.domain, ctx.mode.value, email=send_in.email
    )
    logger.info(f"Starting {ctx.mode.value} audit for {ctx.domain} (report by email)")

    result, _ = await get_or_run_audit(ctx, email=send_in.email)

    pdf_bytes = await try_render_pdf(ctx.domain, result, send_in.options)
    email_result = await send_report(send_in.email, ctx.domain, result, pdf_bytes)

    await record_audit(
        ctx,
        result,
        email=send_in.email,
        pdf_generated=pdf_bytes is not None,
        email_result=email_result,
    )

    if not email_result.success:
        logger.error(f"Email delivery to {send_in.email} failed: {email_result.error}")
        raise AppError(f"Email sending failed: {email_result.error}")

    return {
        "success": True,
        "message": f"Audit report for {ctx.domain} sent to {send_in.email}",
        "auditResults": result.to_payload(),
        "emailSent": True,
        "messageId": email_result.message_id,
        "pdfGenerated": pdf_bytes is not None,
    }


@router.post("/pdf", dependencies=[Depends(limit_audits)])
async def download_pdf(pdf_in: PdfIn, request: Request):
    ctx = build_context(request, pdf_in.domain, pdf_in.mode, pdf_in.timestamp)
    security_logger.log_audit_request(ctx.client_ip, ctx.user_agent, ctx.domain, ctx.mode.value)

    result, _ = await get_or_run_audit(ctx)
    pdf_bytes = await render_pdf(ctx.domain, result, pdf_in.options)
    return pdf_response(pdf_bytes, ctx.domain)


@router.post("/pdf-demo")
async def demo_pdf(demo_in: Optional[PdfDemoIn] = None):
    demo_in = demo_in or PdfDemoIn()
    logger.info(f"Rendering demo PDF for {demo_in.domain}")
    pdf_bytes = await render_pdf(demo_in.domain, sample_audit_result(demo_in.mode))
    return pdf_response(pdf_bytes, demo_in.domain)
