import time

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.features.audit.schemas.audit import SendAuditIn
from app.platform.utils.validators import (
    normalize_domain,
    validate_domain,
    validate_timestamp,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Example.COM", "example.com"),
        ("https://example.com/", "example.com"),
        ("http://www.example.com:8080/path?q=1", "www.example.com"),
        ("example.com.", "example.com"),
    ],
)
def test_normalize_domain(raw, expected):
    assert normalize_domain(raw) == expected


def test_validate_domain_accepts_and_normalizes():
    is_valid, domain, error = validate_domain("https://Sub.Example.org/")
    assert is_valid is True
    assert domain == "sub.example.org"
    assert error == ""


@pytest.mark.parametrize(
    "raw",
    [
        "<script>alert(1)</script>.com",
        "javascript:alert(1)",
        "data:text/html,hi",
        "file:///etc/passwd",
        "ftp://example.com",
        'exa"mple.com',
    ],
)
def test_validate_domain_rejects_injection(raw):
    is_valid, domain, error = validate_domain(raw)
    assert is_valid is False
    assert domain == ""
    assert error == "Invalid or potentially dangerous domain"


@pytest.mark.parametrize("raw", ["not a domain", "example", "example.c0m", "-bad-.com", "a" * 250 + ".com"])
def test_validate_domain_rejects_bad_format(raw):
    is_valid, _, error = validate_domain(raw)
    assert is_valid is False
    assert error == "Invalid domain format"


@pytest.mark.parametrize("raw", ["printer.local", "intranet.internal", "app.localhost"])
def test_validate_domain_rejects_local_hosts(raw):
    is_valid, _, error = validate_domain(raw)
    assert is_valid is False
    assert error == "Local or private domains cannot be audited"


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_validate_domain_requires_value(raw):
    assert validate_domain(raw) == (False, "", "Domain is required")


def send_body(email):
    return {"domain": "example.com", "email": email, "timestamp": time.time() * 1000}


def test_send_audit_email_is_normalised():
    assert SendAuditIn.model_validate(send_body(" User@Example.com ")).email == "user@example.com"


@pytest.mark.parametrize(
    "email, message",
    [
        ("<script>@x.com", "Invalid or potentially dangerous email"),
        ("user@", "value is not a valid email address"),
        ("a" * 250 + "@example.com", "value is not a valid email address"),
    ],
)
def test_send_audit_rejects_bad_email(email, message):
    with pytest.raises(PydanticValidationError) as exc:
        SendAuditIn.model_validate(send_body(email))
    assert message in str(exc.value)


def test_send_audit_requires_email():
    with pytest.raises(PydanticValidationError):
        SendAuditIn.model_validate({"domain": "example.com", "timestamp": time.time() * 1000})


def test_validate_timestamp_window():
    now = time.time()
    assert validate_timestamp(now * 1000, 300, now=now) == (True, "")
    assert validate_timestamp((now - 299) * 1000, 300, now=now) == (True, "")
    assert validate_timestamp((now - 301) * 1000, 300, now=now) == (False, "Request expired")
    assert validate_timestamp((now + 301) * 1000, 300, now=now) == (False, "Request expired")
    assert validate_timestamp(None, 300) == (False, "Timestamp is required")
