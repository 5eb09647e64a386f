from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from app.platform.utils.validators import (
    EMAIL_INJECTION_MARKERS,
    has_injection_markers,
    validate_domain,
)


class AuditMode(str, Enum):
    fast = "fast"
    complete = "complete"


class Fragment(BaseModel):
    """Immutable result fragment serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class LighthouseScores(Fragment):
    performance: int = Field(ge=0, le=100)
    seo: int = Field(ge=0, le=100)
    accessibility: int = Field(ge=0, le=100)
    best_practices: int = Field(ge=0, le=100)


class SeoBasic(Fragment):
    title: Optional[str] = None
    description: Optional[str] = None
    h1: List[str] = Field(default_factory=list)
    canonical: Optional[str] = None
    has_robots_txt: bool = False
    has_sitemap: bool = False


class SecurityResult(Fragment):
    https: bool
    headers: Dict[str, bool]
    header_score: int = Field(ge=0, le=100)


class RgpdResult(Fragment):
    has_cookie_banner: bool = False
    has_privacy_policy: bool = False
    has_terms_of_service: bool = False
    cookie_consent_detected: bool = False


class CookieInfo(Fragment):
    name: str
    domain: str
    http_only: bool = False
    secure: bool = False
    same_site: Optional[str] = None
    is_third_party: bool = False


class CookiesResult(Fragment):
    total: int = 0
    third_party: int = 0
    secure_count: int = 0
    details: List[CookieInfo] = Field(default_factory=list)


class HtmlStructure(Fragment):
    has_title: bool = False
    title_length: int = 0
    has_meta_description: bool = False
    meta_description_length: int = 0
    has_h1: bool = False
    h1_count: int = 0
    has_canonical: bool = False
    has_open_graph: bool = False
    has_twitter_card: bool = False
    has_viewport: bool = False
    has_lang: bool = False
    has_schema_markup: bool = False


class HeadingsStructure(Fragment):
    h1: int = 0
    h2: int = 0
    h3: int = 0
    h4: int = 0
    h5: int = 0
    h6: int = 0


class ContentStats(Fragment):
    image_count: int = 0
    images_without_alt: int = 0
    internal_links: int = 0
    external_links: int = 0
    text_length: int = 0
    headings_structure: HeadingsStructure = Field(default_factory=HeadingsStructure)


class TechnicalSeo(Fragment):
    robots_txt_exists: bool = False
    sitemap_exists: bool = False
    https_enabled: bool = False
    has_redirect: bool = False
    response_time: int = 0


class SeoAdvanced(Fragment):
    html_structure: HtmlStructure
    technical_seo: TechnicalSeo = Field(alias="technicalSEO")
    content: ContentStats
    recommendations: List[str] = Field(default_factory=list)


class SecurityProbeResult(Fragment):
    security: SecurityResult
    recommendations: List[str] = Field(default_factory=list)


class RgpdProbeResult(Fragment):
    rgpd: RgpdResult
    cookies: CookiesResult
    recommendations: List[str] = Field(default_factory=list)


class AuditResult(Fragment):
    lighthouse: LighthouseScores
    seo_basic: SeoBasic
    security: Optional[SecurityResult] = None
    rgpd: Optional[RgpdResult] = None
    cookies: Optional[CookiesResult] = None
    seo_advanced: Optional[SeoAdvanced] = None
    recommendations: List[str] = Field(default_factory=list)
    failed_probes: List[str] = Field(default_factory=list)
    execution_time: int = Field(ge=0)
    mode: AuditMode

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict; fragments that were not produced are left out."""
        payload = self.model_dump(mode="json", by_alias=True)
        for key in ("security", "rgpd", "cookies", "seoAdvanced"):
            if payload.get(key) is None:
                payload.pop(key, None)
        return payload


# ── Requests ───────────────────────────────────


class PdfOptions(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    include_details: Optional[bool] = None
    include_recommendations: bool = True
    page_format: Literal["A4", "Letter"] = Field(
        default="A4", validation_alias=AliasChoices("pageFormat", "page_format", "format")
    )


class AuditIn(BaseModel):
    domain: str
    mode: AuditMode = AuditMode.fast
    timestamp: Optional[float] = None

    @field_validator("domain")
    @classmethod
    def check_domain(cls, value: str) -> str:
        is_valid, normalized, error = validate_domain(value)
        if not is_valid:
            raise ValueError(error)
        return normalized


class PdfIn(AuditIn):
    options: PdfOptions = Field(default_factory=PdfOptions)


class SendAuditIn(PdfIn):
    email: EmailStr
    timestamp: float

    @field_validator("email", mode="before")
    @classmethod
    def reject_markup(cls, value: Any) -> Any:
        if isinstance(value, str) and has_injection_markers(value, EMAIL_INJECTION_MARKERS):
            raise ValueError("Invalid or potentially dangerous email")
        return value.strip() if isinstance(value, str) else value

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class PdfDemoIn(BaseModel):
    domain: str = "example.com"
    mode: AuditMode = AuditMode.fast

    @field_validator("domain")
    @classmethod
    def check_domain(cls, value: str) -> str:
        is_valid, normalized, error = validate_domain(value)
        if not is_valid:
            raise ValueError(error)
        return normalized


class CleanupIn(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    clean_old_audits: bool = True
    clean_expired_cache: bool = True
    days_old: int = Field(default=30, ge=1)


@dataclass(frozen=True)
class AuditRequestContext:
    """Who asked for an audit; built once per inbound call."""

    domain: str
    mode: AuditMode
    client_ip: str
    user_agent: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
