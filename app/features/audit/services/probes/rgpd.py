"""Cookie inventory and RGPD (GDPR) consent signals from a rendered page."""

import asyncio
from typing import Any, Dict, List, Tuple
from urllib.parse import urlparse

from selenium.common.exceptions import WebDriverException

from app.features.audit.schemas.audit import CookieInfo, CookiesResult, RgpdProbeResult, RgpdResult
from app.features.audit.services.probes.browser import chrome_driver, load_page
from app.platform.exceptions import ProbeError
from app.platform.logger import get_logger

logger = get_logger("rgpd_probe")

PROBE_NAME = "rgpd"

RGPD_SCRIPT = """
const text = (document.body ? document.body.innerText || '' : '').toLowerCase();
const links = Array.from(document.querySelectorAll('a')).map(a => (a.textContent || '').toLowerCase());
const anyLink = (needles) => links.some(link => needles.some(n => link.includes(n)));
return {
    hasCookieBanner: !!(
        document.querySelector('[class*="cookie"], [id*="cookie"], [class*="consent"], [id*="consent"]') ||
        text.includes('cookie') || text.includes('consentement') || text.includes('accepter')
    ),
    hasPrivacyPolicy: anyLink(['privacy policy', 'privacy', 'politique de confidentialité', 'vie privée']),
    hasTermsOfService: anyLink(['terms of service', 'terms', "conditions d'utilisation", 'mentions légales']),
    cookieConsentDetected: !!(
        document.querySelector('[class*="gdpr"], [id*="gdpr"], [class*="cookieConsent"]') ||
        text.includes('gdpr') || text.includes('rgpd')
    )
};
"""


def is_third_party(cookie_domain: str, host: str) -> bool:
    cookie_host = cookie_domain.lstrip(".").lower()
    site_host = host.lower()
    site_root = site_host.removeprefix("www.")
    return not (
        site_host == cookie_host
        or site_host.endswith(f".{cookie_host}")
        or cookie_host.endswith(f".{site_root}")
        or cookie_host == site_root
    )


def to_cookie_info(raw: Dict[str, Any], host: str) -> CookieInfo:
    domain = raw.get("domain") or host
    return CookieInfo(
        name=raw.get("name", ""),
        domain=domain,
        http_only=bool(raw.get("httpOnly", False)),
        secure=bool(raw.get("secure", False)),
        same_site=raw.get("sameSite"),
        is_third_party=is_third_party(domain, host),
    )


def summarize_cookies(details: List[CookieInfo]) -> CookiesResult:
    return CookiesResult(
        total=len(details),
        third_party=sum(1 for cookie in details if cookie.is_third_party),
        secure_count=sum(1 for cookie in details if cookie.secure and cookie.http_only),
        details=details,
    )


def build_recommendations(rgpd: RgpdResult, cookies: CookiesResult) -> List[str]:
    recommendations: List[str] = []

    if not rgpd.has_cookie_banner and cookies.total > 0:
        recommendations.append("Add a cookie consent banner (RGPD)")
    if not rgpd.has_privacy_policy:
        recommendations.append("Publish a privacy policy")
    if cookies.third_party > 0 and not rgpd.cookie_consent_detected:
        recommendations.append("Collect GDPR consent before setting third-party cookies")
    if cookies.total > 0 and cookies.secure_count < cookies.total:
        recommendations.append("Set the Secure and HttpOnly flags on every cookie")

    return recommendations


def collect_cookies_and_signals(url: str) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    with chrome_driver() as driver:
        load_page(driver, url)
        cookies = driver.get_cookies()
        signals = driver.execute_script(RGPD_SCRIPT) or {}
    return cookies, signals


async def run_rgpd_probe(domain: str) -> RgpdProbeResult:
    url = f"https://{domain}"
    try:
        raw_cookies, signals = await asyncio.to_thread(collect_cookies_and_signals, url)
    except WebDriverException as e:
        raise ProbeError(PROBE_NAME, e.msg or "browser error") from e

    host = urlparse(url).hostname or domain
    cookies = summarize_cookies([to_cookie_info(raw, host) for raw in raw_cookies])
    rgpd = RgpdResult.model_validate(signals)

    return RgpdProbeResult(
        rgpd=rgpd,
        cookies=cookies,
        recommendations=build_recommendations(rgpd, cookies),
    )
