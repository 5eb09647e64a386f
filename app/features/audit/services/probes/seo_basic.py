from typing import Optional

import httpx
from bs4 import BeautifulSoup

from app.features.audit.schemas.audit import SeoBasic
from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger("seo_basic_probe")

REQUEST_TIMEOUT = 20


def parse_seo_basic(html: str) -> SeoBasic:
    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""

    description_tag = soup.find("meta", attrs={"name": "description"})
    description = (description_tag.get("content") or "").strip() if description_tag else ""

    h1 = [text for text in (tag.get_text(strip=True) for tag in soup.find_all("h1")) if text]

    canonical_tag = soup.find("link", rel="canonical")
    canonical = canonical_tag.get("href") if canonical_tag else None

    return SeoBasic(
        title=title or None,
        description=description or None,
        h1=h1,
        canonical=canonical or None,
    )


async def url_exists(client: httpx.AsyncClient, url: str) -> bool:
    try:
        response = await client.head(url)
        return response.is_success
    except httpx.HTTPError:
        return False


async def run_seo_basic_probe(
    domain: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SeoBasic:
    """
    Static-HTML SEO checks. An unreachable site yields an empty fragment
    instead of an error so that the rest of the audit still runs.
    """
    url = f"https://{domain}"
    async with httpx.AsyncClient(
        transport=transport,
        timeout=REQUEST_TIMEOUT,
        follow_redirects=True,
        headers={"User-Agent": settings.USER_AGENT},
    ) as client:
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            logger.warning(f"[SEO-BASIC] Connection error for {url}: {e}")
            return SeoBasic()

        if not response.is_success:
            logger.warning(f"[SEO-BASIC] Site unreachable ({response.status_code}): {url}")
            return SeoBasic()

        fragment = parse_seo_basic(response.text)
        has_robots_txt = await url_exists(client, f"{url}/robots.txt")
        has_sitemap = await url_exists(client, f"{url}/sitemap.xml")

    return fragment.model_copy(update={"has_robots_txt": has_robots_txt, "has_sitemap": has_sitemap})
