from typing import Dict, List, Optional

import httpx

from app.features.audit.schemas.audit import SecurityProbeResult, SecurityResult
from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger("security_probe")

REQUEST_TIMEOUT = 15

SECURITY_HEADERS = (
    "content-security-policy",
    "strict-transport-security",
    "x-frame-options",
    "x-content-type-options",
    "referrer-policy",
    "permissions-policy",
)

MISSING_HEADER_ADVICE = {
    "content-security-policy": "Add a Content-Security-Policy header",
    "strict-transport-security": "Add a Strict-Transport-Security (HSTS) header",
    "x-frame-options": "Add an X-Frame-Options header",
    "x-content-type-options": "Add an X-Content-Type-Options header",
}

UNREACHABLE_ADVICE = "Unable to analyse the security headers"


def score_headers(flags: Dict[str, bool]) -> int:
    return round(sum(flags.values()) / len(SECURITY_HEADERS) * 100)


def evaluate_headers(headers: httpx.Headers, https: bool) -> SecurityProbeResult:
    flags = {name: name in headers for name in SECURITY_HEADERS}
    recommendations: List[str] = [
        advice for name, advice in MISSING_HEADER_ADVICE.items() if not flags[name]
    ]
    return SecurityProbeResult(
        security=SecurityResult(https=https, headers=flags, header_score=score_headers(flags)),
        recommendations=recommendations,
    )


def unreachable_result() -> SecurityProbeResult:
    flags = {name: False for name in SECURITY_HEADERS}
    return SecurityProbeResult(
        security=SecurityResult(https=False, headers=flags, header_score=0),
        recommendations=[UNREACHABLE_ADVICE],
    )


async def run_security_probe(
    domain: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SecurityProbeResult:
    url = f"https://{domain}"
    try:
        async with httpx.AsyncClient(
            transport=transport,
            timeout=REQUEST_TIMEOUT,
            follow_redirects=True,
            headers={"User-Agent": settings.USER_AGENT},
        ) as client:
            response = await client.head(url)
    except httpx.HTTPError as e:
        logger.error(f"Basic security audit failed for {domain}: {e}")
        return unreachable_result()

    return evaluate_headers(response.headers, https=response.url.scheme == "https")
