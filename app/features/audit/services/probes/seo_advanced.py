"""Rendered-DOM SEO analysis in headless Chrome (complete mode only)."""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import httpx
from selenium.common.exceptions import WebDriverException

from app.features.audit.schemas.audit import ContentStats, HtmlStructure, SeoAdvanced, TechnicalSeo
from app.features.audit.services.probes.browser import chrome_driver, load_page
from app.features.audit.services.probes.seo_basic import url_exists
from app.platform.config import settings
from app.platform.exceptions import ProbeError
from app.platform.logger import get_logger

logger = get_logger("seo_advanced_probe")

PROBE_NAME = "seo_advanced"

TITLE_MIN_LENGTH = 30
TITLE_MAX_LENGTH = 60
DESCRIPTION_MIN_LENGTH = 120
DESCRIPTION_MAX_LENGTH = 160
MIN_TEXT_LENGTH = 300
SLOW_RESPONSE_MS = 3000

HTML_STRUCTURE_SCRIPT = """
const title = document.querySelector('title');
const titleText = title && title.textContent ? title.textContent.trim() : '';
const meta = document.querySelector('meta[name="description"]');
const metaText = meta && meta.getAttribute('content') ? meta.getAttribute('content').trim() : '';
const h1Count = document.querySelectorAll('h1').length;
return {
    hasTitle: titleText.length > 0,
    titleLength: titleText.length,
    hasMetaDescription: metaText.length > 0,
    metaDescriptionLength: metaText.length,
    hasH1: h1Count > 0,
    h1Count: h1Count,
    hasCanonical: !!document.querySelector('link[rel="canonical"]'),
    hasOpenGraph: !!document.querySelector('meta[property="og:title"]'),
    hasTwitterCard: !!document.querySelector('meta[name="twitter:card"]'),
    hasViewport: !!document.querySelector('meta[name="viewport"]'),
    hasLang: !!document.documentElement.getAttribute('lang'),
    hasSchemaMarkup: document.querySelectorAll('script[type="application/ld+json"]').length > 0
};
"""

CONTENT_SCRIPT = """
const host = window.location.hostname;
const images = Array.from(document.querySelectorAll('img'));
const anchors = Array.from(document.querySelectorAll('a[href]'));
let internal = 0;
let external = 0;
for (const a of anchors) {
    const href = a.getAttribute('href') || '';
    if (href.startsWith('/') || href.includes(host)) { internal++; }
    else if (href.startsWith('http')) { external++; }
}
const count = (tag) => document.querySelectorAll(tag).length;
return {
    imageCount: images.length,
    imagesWithoutAlt: images.filter(img => !(img.getAttribute('alt') || '').trim()).length,
    internalLinks: internal,
    externalLinks: external,
    textLength: (document.body ? document.body.textContent || '' : '').trim().length,
    headingsStructure: {h1: count('h1'), h2: count('h2'), h3: count('h3'), h4: count('h4'), h5: count('h5'), h6: count('h6')}
};
"""


def collect_rendered_dom(url: str) -> Tuple[Dict[str, Any], Dict[str, Any], str, int]:
    with chrome_driver() as driver:
        final_url, response_time = load_page(driver, url)
        structure = driver.execute_script(HTML_STRUCTURE_SCRIPT) or {}
        content = driver.execute_script(CONTENT_SCRIPT) or {}
    return structure, content, final_url, response_time


def build_recommendations(
    structure: HtmlStructure, technical: TechnicalSeo, content: ContentStats
) -> List[str]:
    recommendations: List[str] = []

    if not structure.has_title:
        recommendations.append("Add a <title> tag to the page")
    elif not TITLE_MIN_LENGTH <= structure.title_length <= TITLE_MAX_LENGTH:
        recommendations.append(
            f"Adjust the title length ({TITLE_MIN_LENGTH}-{TITLE_MAX_LENGTH} characters recommended)"
        )

    if not structure.has_meta_description:
        recommendations.append("Add a meta description")
    elif not DESCRIPTION_MIN_LENGTH <= structure.meta_description_length <= DESCRIPTION_MAX_LENGTH:
        recommendations.append(
            f"Adjust the meta description length ({DESCRIPTION_MIN_LENGTH}-{DESCRIPTION_MAX_LENGTH} characters)"
        )

    if not structure.has_h1:
        recommendations.append("Add a main H1 heading")
    elif structure.h1_count > 1:
        recommendations.append("Use a single H1 heading per page")

    if not structure.has_canonical:
        recommendations.append("Add a canonical URL")
    if not structure.has_open_graph:
        recommendations.append("Add Open Graph tags for social sharing")
    if not structure.has_viewport:
        recommendations.append("Add a viewport meta tag for responsive layouts")
    if not structure.has_lang:
        recommendations.append("Declare the page language with the lang attribute")
    if not structure.has_schema_markup:
        recommendations.append("Add structured data (Schema.org)")

    if not technical.robots_txt_exists:
        recommendations.append("Create a robots.txt file")
    if not technical.sitemap_exists:
        recommendations.append("Create an XML sitemap")
    if not technical.https_enabled:
        recommendations.append("Enable HTTPS")

    if content.images_without_alt > 0:
        recommendations.append(f"Add alt attributes to {content.images_without_alt} image(s)")
    if technical.response_time > SLOW_RESPONSE_MS:
        recommendations.append("Improve server response time (over 3s)")
    if content.text_length < MIN_TEXT_LENGTH:
        recommendations.append(f"Add more text content (at least {MIN_TEXT_LENGTH} characters)")

    return recommendations


async def run_seo_advanced_probe(
    domain: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SeoAdvanced:
    url = f"https://{domain}"
    try:
        structure_raw, content_raw, final_url, response_time = await asyncio.to_thread(
            collect_rendered_dom, url
        )
    except WebDriverException as e:
        raise ProbeError(PROBE_NAME, e.msg or "browser error") from e

    async with httpx.AsyncClient(
        transport=transport,
        timeout=10,
        follow_redirects=True,
        headers={"User-Agent": settings.USER_AGENT},
    ) as client:
        robots_txt_exists = await url_exists(client, f"{url}/robots.txt")
        sitemap_exists = await url_exists(client, f"{url}/sitemap.xml")

    structure = HtmlStructure.model_validate(structure_raw)
    content = ContentStats.model_validate(content_raw)
    technical = TechnicalSeo(
        robots_txt_exists=robots_txt_exists,
        sitemap_exists=sitemap_exists,
        https_enabled=final_url.startswith("https://"),
        has_redirect=final_url.rstrip("/") != url,
        response_time=response_time,
    )

    return SeoAdvanced(
        html_structure=structure,
        technical_seo=technical,
        content=content,
        recommendations=build_recommendations(structure, technical, content),
    )
