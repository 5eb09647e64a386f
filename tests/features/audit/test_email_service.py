import base64
import smtplib
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import requests

from app.platform.services.email import (
    EmailDeliveryError,
    EmailService,
    attachment_filename,
    render_audit_email,
)


def test_attachment_filename():
    sent_at = datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc)
    assert attachment_filename("example.com", sent_at) == "audit-example.com-2026-10-19.pdf"


def test_render_audit_email_lists_scores_and_recommendations(sample_result):
    html = render_audit_email("example.com", sample_result)

    assert "example.com" in html
    assert "90/100" in html
    assert "Add an X-Frame-Options header" in html


def test_render_audit_email_escapes_content(result_factory):
    html = render_audit_email("example.com", result_factory(recommendations=["<script>alert(1)</script>"]))
    assert "<script>alert(1)</script>" not in html
    assert "&lt;script&gt;" in html


def test_send_via_api_posts_brevo_payload(sample_result):
    service = EmailService(api_key="brevo-key", api_url="https://api.brevo.test/v3/smtp/email")
    response = MagicMock()
    response.json.return_value = {"messageId": "<msg-1@brevo>"}

    with patch("app.platform.services.email.requests.post", return_value=response) as mock_post:
        result = service.send_audit_report("user@example.com", "example.com", sample_result, b"%PDF-1.4")

    assert result.success is True
    assert result.message_id == "<msg-1@brevo>"

    _, kwargs = mock_post.call_args
    assert kwargs["headers"]["api-key"] == "brevo-key"
    payload = kwargs["json"]
    assert payload["to"] == [{"email": "user@example.com"}]
    assert payload["subject"] == "Your site audit for example.com is ready"
    (attachment,) = payload["attachment"]
    assert attachment["name"].startswith("audit-example.com-")
    assert base64.b64decode(attachment["content"]) == b"%PDF-1.4"


def test_send_via_api_without_pdf_has_no_attachment(sample_result):
    service = EmailService(api_key="brevo-key")
    response = MagicMock()
    response.json.return_value = {"messageId": "m"}

    with patch("app.platform.services.email.requests.post", return_value=response) as mock_post:
        service.send_audit_report("user@example.com", "example.com", sample_result, None)

    assert "attachment" not in mock_post.call_args.kwargs["json"]


def test_api_failure_falls_back_to_smtp(sample_result):
    service = EmailService(api_key="brevo-key")

    with patch(
        "app.platform.services.email.requests.post",
        side_effect=requests.exceptions.ConnectionError("unreachable"),
    ), patch.object(service, "send_via_smtp", return_value="<smtp-id>") as mock_smtp:
        result = service.send_audit_report("user@example.com", "example.com", sample_result, b"%PDF")

    assert result.success is True
    assert result.message_id == "<smtp-id>"
    mock_smtp.assert_called_once()


def test_send_via_api_wraps_request_errors(sample_result):
    service = EmailService(api_key="brevo-key")
    with patch(
        "app.platform.services.email.requests.post",
        side_effect=requests.exceptions.Timeout(),
    ):
        try:
            service.send_via_api("user@example.com", "s", "<p>x</p>", None, "a.pdf")
        except EmailDeliveryError as e:
            assert "timeout" in str(e)
        else:
            raise AssertionError("EmailDeliveryError not raised")


def test_smtp_without_api_key(sample_result):
    service = EmailService(api_key="")
    server = MagicMock()

    with patch("app.platform.services.email.smtplib.SMTP") as mock_smtp, patch(
        "app.platform.services.email.requests.post"
    ) as mock_post:
        mock_smtp.return_value.__enter__.return_value = server
        result = service.send_audit_report("user@example.com", "example.com", sample_result, b"%PDF")

    mock_post.assert_not_called()
    assert result.success is True
    assert result.message_id
    server.sendmail.assert_called_once()
    _, to_address, message = server.sendmail.call_args.args
    assert to_address == "user@example.com"
    assert "application/pdf" in message
    assert "audit-example.com-" in message


def test_smtp_failure_is_reported(sample_result):
    service = EmailService(api_key="")

    with patch(
        "app.platform.services.email.smtplib.SMTP",
        side_effect=smtplib.SMTPConnectError(421, "unavailable"),
    ):
        result = service.send_audit_report("user@example.com", "example.com", sample_result)

    assert result.success is False
    assert result.message_id is None
    assert "unavailable" in result.error
