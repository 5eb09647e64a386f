import asyncio
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.features.audit.schemas.audit import AuditMode
from app.features.audit.services.audit_history import audit_history
from app.features.audit.services.cache import cache_service
from app.platform.config import settings
from app.platform.exceptions import AuditFailed, DependencyFailure
from app.platform.services.email import EmailResult, email_service

XHR = {"X-Requested-With": "XMLHttpRequest"}


def now_ms() -> int:
    return int(time.time() * 1000)


@pytest.fixture
def audit_mocks(sample_result):
    """Orchestrator, cache and persistence replaced with mocks."""
    with patch(
        "app.features.audit.services.audit.run_audit", new=AsyncMock(return_value=sample_result)
    ) as run_audit, patch.object(
        cache_service, "get", new=AsyncMock(return_value=None)
    ) as cache_get, patch.object(
        cache_service, "set", new=AsyncMock()
    ) as cache_set, patch.object(
        audit_history, "save_audit", new=AsyncMock()
    ) as save_audit, patch.object(
        audit_history, "save_failed_audit", new=AsyncMock()
    ) as save_failed:
        yield MagicMock(
            run_audit=run_audit,
            cache_get=cache_get,
            cache_set=cache_set,
            save_audit=save_audit,
            save_failed=save_failed,
        )


# ── /audit ──────────────────────────────────


def test_audit_runs_and_caches(client, audit_mocks, sample_result):
    response = client.post("/api/audit", json={"domain": "https://Example.com/", "mode": "fast"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["cached"] is False
    assert payload["mode"] == "fast"
    assert payload["lighthouse"]["performance"] == 90
    assert payload["seoBasic"]["hasRobotsTxt"] is True
    assert payload["security"]["headerScore"] == 50
    assert payload["failedProbes"] == []
    assert "rgpd" not in payload

    audit_mocks.run_audit.assert_awaited_once_with("example.com", AuditMode.fast)
    audit_mocks.cache_set.assert_awaited_once_with("example.com", AuditMode.fast, sample_result)
    audit_mocks.save_audit.assert_awaited_once()
    assert response.headers["Cache-Control"].startswith("no-store")


def test_audit_served_from_cache(client, audit_mocks, sample_result):
    audit_mocks.cache_get.return_value = sample_result

    response = client.post("/api/audit", json={"domain": "example.com"})

    assert response.status_code == 200
    assert response.json()["cached"] is True
    audit_mocks.run_audit.assert_not_awaited()
    audit_mocks.save_audit.assert_not_awaited()


@pytest.mark.parametrize(
    "body, message",
    [
        ({"domain": "<script>.com"}, "Invalid or potentially dangerous domain"),
        ({"domain": "localhost.localdomain"}, "Local or private domains cannot be audited"),
        ({"domain": "nope"}, "Invalid domain format"),
    ],
)
def test_audit_rejects_bad_domains(client, audit_mocks, body, message):
    response = client.post("/api/audit", json=body)

    assert response.status_code == 400
    payload = response.json()
    assert payload["success"] is False
    assert payload["error"] == message
    assert payload["fields"] == ["domain"]
    audit_mocks.run_audit.assert_not_awaited()


def test_audit_rejects_unknown_mode(client, audit_mocks):
    response = client.post("/api/audit", json={"domain": "example.com", "mode": "turbo"})
    assert response.status_code == 400
    assert response.json()["fields"] == ["mode"]


def test_audit_rejects_stale_timestamp(client, audit_mocks):
    stale = now_ms() - (settings.REQUEST_MAX_AGE_SECONDS + 60) * 1000
    response = client.post("/api/audit", json={"domain": "example.com", "timestamp": stale})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Request expired"}


def test_audit_mandatory_failure_is_500(client, audit_mocks):
    audit_mocks.run_audit.side_effect = AuditFailed("performance probe failed")

    response = client.post("/api/audit", json={"domain": "example.com"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}
    audit_mocks.save_failed.assert_awaited_once()
    audit_mocks.cache_set.assert_not_awaited()


def test_audit_timeout_is_500(client, audit_mocks, monkeypatch):
    async def slow(*args):
        await asyncio.sleep(5)

    audit_mocks.run_audit.side_effect = slow
    monkeypatch.setattr(settings, "AUDIT_TIMEOUT_SECONDS", 0.01)

    response = client.post("/api/audit", json={"domain": "example.com"})

    assert response.status_code == 500
    assert audit_mocks.save_failed.await_args.args[2] == "Audit timed out"


def test_audit_survives_persistence_outage(client, audit_mocks):
    audit_mocks.save_audit.side_effect = DependencyFailure("database is down")

    response = client.post("/api/audit", json={"domain": "example.com"})

    assert response.status_code == 200
    assert response.json()["success"] is True


# ── /send-audit ─────────────────────────────


def send_body(**overrides):
    body = {"domain": "example.com", "email": "User@Example.com", "mode": "fast", "timestamp": now_ms()}
    body.update(overrides)
    return body


def test_send_audit_requires_xhr_header(client, audit_mocks):
    response = client.post("/api/send-audit", json=send_body())

    assert response.status_code == 403
    assert response.json()["success"] is False
    audit_mocks.run_audit.assert_not_awaited()


def test_send_audit_requires_timestamp(client, audit_mocks):
    body = send_body()
    del body["timestamp"]

    response = client.post("/api/send-audit", json=body, headers=XHR)

    assert response.status_code == 400
    assert response.json()["fields"] == ["timestamp"]


def test_send_audit_rejects_bad_email(client, audit_mocks):
    response = client.post("/api/send-audit", json=send_body(email="not-an-email"), headers=XHR)
    assert response.status_code == 400
    payload = response.json()
    assert payload["error"].startswith("value is not a valid email address")
    assert payload["fields"] == ["email"]


def test_send_audit_emails_report(client, audit_mocks):
    with patch.object(
        email_service, "send_audit_report", return_value=EmailResult(success=True, message_id="<id-1>")
    ) as send:
        response = client.post("/api/send-audit", json=send_body(), headers=XHR)

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["emailSent"] is True
    assert payload["messageId"] == "<id-1>"
    assert payload["pdfGenerated"] is True
    assert payload["auditResults"]["lighthouse"]["performance"] == 90

    email, domain, _, pdf_bytes = send.call_args.args
    assert (email, domain) == ("user@example.com", "example.com")
    assert pdf_bytes.startswith(b"%PDF")

    record = audit_mocks.save_audit.await_args.args[0]
    assert record.email == "user@example.com"
    assert record.email_sent is True
    assert record.pdf_generated is True


def test_send_audit_tolerates_pdf_failure(client, audit_mocks):
    with patch(
        "app.features.audit.services.audit.generate_audit_pdf", side_effect=RuntimeError("font missing")
    ), patch.object(
        email_service, "send_audit_report", return_value=EmailResult(success=True, message_id="<id-2>")
    ) as send:
        response = client.post("/api/send-audit", json=send_body(), headers=XHR)

    assert response.status_code == 200
    assert response.json()["pdfGenerated"] is False
    assert send.call_args.args[3] is None


def test_send_audit_email_failure_is_500(client, audit_mocks):
    with patch.object(
        email_service, "send_audit_report", return_value=EmailResult(success=False, error="smtp down")
    ):
        response = client.post("/api/send-audit", json=send_body(), headers=XHR)

    assert response.status_code == 500
    assert response.json()["success"] is False
    record = audit_mocks.save_audit.await_args.args[0]
    assert record.email_sent is False


def test_send_audit_failed_run_keeps_email(client, audit_mocks):
    audit_mocks.run_audit.side_effect = AuditFailed("performance probe failed")

    response = client.post("/api/send-audit", json=send_body(), headers=XHR)

    assert response.status_code == 500
    audit_mocks.save_failed.assert_awaited_once()
    assert audit_mocks.save_failed.await_args.kwargs["email"] == "user@example.com"


def test_send_audit_rate_limit(client, audit_mocks):
    with patch.object(email_service, "send_audit_report", return_value=EmailResult(success=True, message_id="m")):
        for _ in range(settings.EMAIL_RATE_LIMIT_MAX):
            assert client.post("/api/send-audit", json=send_body(), headers=XHR).status_code == 200
        response = client.post("/api/send-audit", json=send_body(), headers=XHR)

    assert response.status_code == 429
    assert int(response.headers["Retry-After"]) > 0


# ── /pdf and /pdf-demo ──────────────────────


def test_pdf_download(client, audit_mocks):
    response = client.post(
        "/api/pdf",
        json={"domain": "example.com", "mode": "fast", "options": {"includeRecommendations": False}},
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    disposition = response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="audit-example.com-')
    assert disposition.endswith('.pdf"')
    assert response.content.startswith(b"%PDF")


def test_pdf_generation_failure_is_500(client, audit_mocks):
    with patch("app.features.audit.services.audit.generate_audit_pdf", side_effect=RuntimeError("boom")):
        response = client.post("/api/pdf", json={"domain": "example.com"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}


def test_pdf_demo_needs_no_audit(client, audit_mocks):
    response = client.post("/api/pdf-demo", json={"domain": "demo.example.org", "mode": "complete"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert 'filename="audit-demo.example.org-' in response.headers["content-disposition"]
    audit_mocks.run_audit.assert_not_awaited()


def test_pdf_demo_defaults(client):
    response = client.post("/api/pdf-demo")
    assert response.status_code == 200
    assert "audit-example.com-" in response.headers["content-disposition"]
