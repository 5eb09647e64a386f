"""Lighthouse category scores through the PageSpeed Insights v5 API."""

from typing import Any, Dict, Optional

import httpx

from app.features.audit.schemas.audit import LighthouseScores
from app.platform.config import settings
from app.platform.exceptions import ProbeError
from app.platform.logger import get_logger

logger = get_logger("performance_probe")

PROBE_NAME = "performance"
CATEGORIES = ("performance", "seo", "accessibility", "best-practices")


def to_score(category: Optional[Dict[str, Any]]) -> int:
    """Lighthouse reports 0..1 floats (or null); normalise to a 0..100 int."""
    raw = (category or {}).get("score") or 0
    return max(0, min(100, round(float(raw) * 100)))


def parse_lighthouse_categories(payload: Dict[str, Any]) -> LighthouseScores:
    categories = (payload.get("lighthouseResult") or {}).get("categories")
    if not categories:
        raise ProbeError(PROBE_NAME, "PageSpeed response has no Lighthouse categories")

    return LighthouseScores(
        performance=to_score(categories.get("performance")),
        seo=to_score(categories.get("seo")),
        accessibility=to_score(categories.get("accessibility")),
        best_practices=to_score(categories.get("best-practices")),
    )


async def run_performance_probe(
    domain: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LighthouseScores:
    params = [("url", f"https://{domain}"), ("strategy", settings.PAGESPEED_STRATEGY)]
    params.extend(("category", category) for category in CATEGORIES)
    if settings.PAGESPEED_API_KEY:
        params.append(("key", settings.PAGESPEED_API_KEY))

    logger.info(f"Running Lighthouse audit for {domain}")
    try:
        async with httpx.AsyncClient(
            transport=transport, timeout=settings.PROBE_TIMEOUT_SECONDS
        ) as client:
            response = await client.get(settings.PAGESPEED_API_URL, params=params)
            response.raise_for_status()
            payload = response.json()
    except httpx.HTTPStatusError as e:
        raise ProbeError(PROBE_NAME, f"PageSpeed returned HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise ProbeError(PROBE_NAME, f"PageSpeed request failed: {e}") from e
    except ValueError as e:
        raise ProbeError(PROBE_NAME, "PageSpeed returned invalid JSON") from e

    return parse_lighthouse_categories(payload)
