import ipaddress
import re
import time
from typing import Optional, Tuple
from urllib.parse import urlparse

MAX_DOMAIN_LENGTH = 253

DOMAIN_REGEX = re.compile(
    r"^(https?://)?([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,}/?$"
)

INJECTION_MARKERS = ("<", ">", '"', "'", "javascript:", "data:", "file:", "ftp:")
EMAIL_INJECTION_MARKERS = ("<", ">", '"', "'", "script", "javascript:")
BLOCKED_HOSTS = {"localhost", "localhost.localdomain", "0.0.0.0", "::1"}
BLOCKED_SUFFIXES = (".localhost", ".local", ".internal", ".lan", ".home.arpa")


def normalize_domain(domain: str) -> str:
    """
    Canonical host used for cache keys and persistence:
    lowercase, no scheme, path, port, credentials or trailing dot.
    """
    value = domain.strip().lower()
    if "://" not in value:
        value = f"http://{value}"
    host = urlparse(value).hostname or ""
    return host.rstrip(".")


def _is_private_host(host: str) -> bool:
    if host in BLOCKED_HOSTS or host.endswith(BLOCKED_SUFFIXES):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return address.is_private or address.is_loopback or address.is_link_local or address.is_reserved


def has_injection_markers(value: str, markers: Tuple[str, ...] = INJECTION_MARKERS) -> bool:
    lowered = value.strip().lower()
    return any(marker in lowered for marker in markers)


def validate_domain(domain: Optional[str]) -> Tuple[bool, str, str]:
    """Returns (is_valid, normalized_domain, error_message)."""
    if not domain or not isinstance(domain, str) or not domain.strip():
        return False, "", "Domain is required"

    cleaned = domain.strip().lower()

    if has_injection_markers(cleaned):
        return False, "", "Invalid or potentially dangerous domain"

    if len(cleaned) > MAX_DOMAIN_LENGTH or not DOMAIN_REGEX.match(cleaned):
        return False, "", "Invalid domain format"

    host = normalize_domain(cleaned)
    if not host or _is_private_host(host):
        return False, "", "Local or private domains cannot be audited"

    return True, host, ""


def validate_timestamp(timestamp_ms: Optional[float], max_age_seconds: int, now: Optional[float] = None) -> Tuple[bool, str]:
    """Rejects request timestamps (ms since epoch) too far from server time."""
    if timestamp_ms is None:
        return False, "Timestamp is required"
    now_ms = (time.time() if now is None else now) * 1000
    if abs(now_ms - float(timestamp_ms)) > max_age_seconds * 1000:
        return False, "Request expired"
    return True, ""
