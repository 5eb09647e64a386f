import base64
import os
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Optional

import requests
from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.features.audit.schemas.audit import AuditResult
from app.platform.config import settings
from app.platform.logger import get_logger

# Initialize Logger
logger = get_logger("email_service")

current_dir = os.path.dirname(os.path.abspath(__file__))
template_dir = os.path.join(current_dir, "../../features/audit/template")

if not os.path.exists(template_dir):
    template_dir = os.path.join(os.getcwd(), "app/features/audit/template")

env = Environment(loader=FileSystemLoader(template_dir), autoescape=select_autoescape(["html"]))


class EmailDeliveryError(Exception):
    pass


@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def attachment_filename(domain: str, sent_at: Optional[datetime] = None) -> str:
    sent_at = sent_at or datetime.now(timezone.utc)
    return f"audit-{domain}-{sent_at.strftime('%Y-%m-%d')}.pdf"


def render_audit_email(domain: str, result: AuditResult) -> str:
    template = env.get_template("audit_report_email.html")
    return template.render(
        domain=domain,
        result=result,
        app_name=settings.APP_NAME,
        site_url=settings.SITE_URL,
    )


class EmailService:
    """
    Sends audit reports by email.
    Uses the Brevo transactional API when an API key is configured and
    falls back to direct SMTP otherwise or when the API call fails.
    """

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.BREVO_API_KEY
        self.api_url = api_url or settings.BREVO_API_URL

    def send_audit_report(
        self,
        email: str,
        domain: str,
        result: AuditResult,
        pdf_bytes: Optional[bytes] = None,
    ) -> EmailResult:
        subject = f"Your site audit for {domain} is ready"
        html = render_audit_email(domain, result)
        filename = attachment_filename(domain)

        if self.api_key:
            try:
                message_id = self.send_via_api(email, subject, html, pdf_bytes, filename)
                logger.info(f"Audit report for {domain} sent to {email} via API")
                return EmailResult(success=True, message_id=message_id)
            except EmailDeliveryError as e:
                logger.error(f"Email API failed: {str(e)}")
                logger.info("Attempting direct SMTP as fallback...")
        else:
            logger.warning("Email API not configured, attempting direct SMTP")

        try:
            message_id = self.send_via_smtp(email, subject, html, pdf_bytes, filename)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"CRITICAL EMAIL ERROR: {str(e)}")
            return EmailResult(success=False, error=str(e))

        logger.info(f"Audit report for {domain} sent to {email} via SMTP")
        return EmailResult(success=True, message_id=message_id)

    def send_via_api(
        self,
        to_email: str,
        subject: str,
        html: str,
        pdf_bytes: Optional[bytes],
        filename: str,
    ) -> str:
        payload = {
            "sender": {"name": settings.MAIL_FROM_NAME, "email": settings.MAIL_FROM_ADDRESS},
            "to": [{"email": to_email}],
            "subject": subject,
            "htmlContent": html,
        }
        if pdf_bytes:
            payload["attachment"] = [
                {"name": filename, "content": base64.b64encode(pdf_bytes).decode("ascii")}
            ]

        headers = {
            "api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            response = requests.post(
                self.api_url,
                json=payload,
                headers=headers,
                timeout=settings.EMAIL_TIMEOUT,
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            logger.error(f"Email API timeout for {to_email}")
            raise EmailDeliveryError("Email API timeout") from e
        except requests.exceptions.RequestException as e:
            if getattr(e, "response", None) is not None:
                logger.error(f"Response status: {e.response.status_code}")
                logger.error(f"Response body: {e.response.text}")
            raise EmailDeliveryError(f"Email API error: {str(e)}") from e

        try:
            return response.json().get("messageId") or "unknown"
        except ValueError:
            return "unknown"

    def send_via_smtp(
        self,
        to_email: str,
        subject: str,
        html: str,
        pdf_bytes: Optional[bytes],
        filename: str,
    ) -> str:
        msg = MIMEMultipart("mixed")
        msg["Subject"] = subject
        msg["From"] = formataddr((settings.MAIL_FROM_NAME, settings.MAIL_FROM_ADDRESS))
        msg["To"] = to_email
        message_id = make_msgid()
        msg["Message-ID"] = message_id

        msg.attach(MIMEText(html, "html"))
        if pdf_bytes:
            attachment = MIMEApplication(pdf_bytes, _subtype="pdf")
            attachment.add_header("Content-Disposition", "attachment", filename=filename)
            msg.attach(attachment)

        port = settings.MAIL_PORT
        if port == 465:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(settings.MAIL_HOST, port, context=context, timeout=settings.EMAIL_TIMEOUT) as server:
                server.login(settings.MAIL_USERNAME, settings.MAIL_PASSWORD)
                server.sendmail(settings.MAIL_FROM_ADDRESS, to_email, msg.as_string())
        else:
            with smtplib.SMTP(settings.MAIL_HOST, port, timeout=settings.EMAIL_TIMEOUT) as server:
                server.ehlo()

                if str(settings.MAIL_ENCRYPTION).upper() in ["TLS", "TRUE"]:
                    server.starttls()
                    server.ehlo()

                if settings.MAIL_USERNAME:
                    server.login(settings.MAIL_USERNAME, settings.MAIL_PASSWORD)
                server.sendmail(settings.MAIL_FROM_ADDRESS, to_email, msg.as_string())

        return message_id


email_service = EmailService()
