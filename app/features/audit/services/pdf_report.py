from datetime import datetime, timezone
from io import BytesIO
from typing import List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, LETTER
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Flowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.features.audit.schemas.audit import (
    AuditMode,
    AuditResult,
    ContentStats,
    CookieInfo,
    CookiesResult,
    HeadingsStructure,
    HtmlStructure,
    LighthouseScores,
    PdfOptions,
    RgpdResult,
    SecurityResult,
    SeoAdvanced,
    SeoBasic,
    TechnicalSeo,
)
from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger("pdf_report")

PAGE_SIZES = {"A4": A4, "Letter": LETTER}

GOOD_SCORE = 80
FAIR_SCORE = 60


def score_color(score: float):
    if score >= GOOD_SCORE:
        return colors.green
    if score >= FAIR_SCORE:
        return colors.orange
    return colors.red


def score_label(score: float) -> str:
    if score >= GOOD_SCORE:
        return "Good"
    if score >= FAIR_SCORE:
        return "Needs improvement"
    return "Poor"


class NumberedCanvas(canvas.Canvas):
    """Canvas that stamps 'Page x of y' once the page count is known."""

    footer_text = "Site Audit Report"

    def __init__(self, *args, **kwargs):
        canvas.Canvas.__init__(self, *args, **kwargs)
        self._saved_page_states = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        num_pages = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self.draw_page_number(num_pages)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    def draw_page_number(self, page_count: int):
        self.setFont("Helvetica", 9)
        self.setFillColor(colors.grey)
        page_text = f"Page {self._pageNumber} of {page_count} | {self.footer_text}"
        self.drawRightString(self._pagesize[0] - 20 * mm, 12 * mm, page_text)


class ScoreBar(Flowable):
    def __init__(self, score, width=440, height=18, max_score=100):
        Flowable.__init__(self)
        self.score = min(max(float(score or 0), 0), max_score)
        self.width = width
        self.height = height
        self.max_score = max_score

    def wrap(self, *args):
        return self.width, self.height + 6

    def draw(self):
        self.canv.saveState()
        self.canv.setFillColor(colors.lightgrey)
        self.canv.rect(0, 0, self.width, self.height, fill=1, stroke=0)

        fillw = (self.score / self.max_score) * self.width
        self.canv.setFillColor(score_color(self.score))
        self.canv.rect(0, 0, fillw, self.height, fill=1, stroke=0)

        self.canv.setStrokeColor(colors.black)
        self.canv.rect(0, 0, self.width, self.height, fill=0, stroke=1)

        self.canv.setFont("Helvetica-Bold", 10)
        txt = f"{self.score:.0f}/100"
        if fillw > 60:
            self.canv.setFillColor(colors.white)
            self.canv.drawCentredString(fillw / 2, 5, txt)
        else:
            self.canv.setFillColor(colors.black)
            self.canv.drawString(fillw + 8, 5, txt)
        self.canv.restoreState()


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _table(rows: List[List[str]], col_widths: List[float], header_color=colors.darkblue) -> Table:
    table = Table(rows, colWidths=col_widths)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), header_color),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ("PADDING", (0, 0), (-1, -1), 6),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("FONTSIZE", (0, 0), (-1, -1), 10),
            ]
        )
    )
    return table


def _p(text: Optional[str], style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(text or "-"), style)


def _lighthouse_section(scores: LighthouseScores, h2, normal) -> list:
    story = [Paragraph("Lighthouse scores", h2)]
    for label, score in (
        ("Performance", scores.performance),
        ("SEO", scores.seo),
        ("Accessibility", scores.accessibility),
        ("Best practices", scores.best_practices),
    ):
        story.append(Paragraph(f"{label}: {score_label(score)}", normal))
        story.append(ScoreBar(score))
    story.append(Spacer(1, 10))
    return story


def _seo_basic_section(seo: SeoBasic, h2, normal) -> list:
    rows = [
        ["Check", "Value"],
        ["Title", _p(seo.title or "Missing", normal)],
        ["Meta description", _p(seo.description or "Missing", normal)],
        ["H1 headings", _p(", ".join(seo.h1) or "None", normal)],
        ["Canonical URL", _p(seo.canonical or "Missing", normal)],
        ["robots.txt", _yes_no(seo.has_robots_txt)],
        ["sitemap.xml", _yes_no(seo.has_sitemap)],
    ]
    return [Paragraph("Basic SEO", h2), _table(rows, [130, 320]), Spacer(1, 14)]


def _security_section(security: SecurityResult, h2, normal) -> list:
    rows = [["Header", "Present"]]
    rows.extend([name, _yes_no(present)] for name, present in security.headers.items())
    return [
        Paragraph("Security", h2),
        Paragraph(f"HTTPS: {_yes_no(security.https)}", normal),
        Paragraph(f"Security headers score: {security.header_score}/100", normal),
        ScoreBar(security.header_score),
        _table(rows, [300, 150], header_color=colors.darkgreen),
        Spacer(1, 14),
    ]


def _rgpd_section(rgpd: RgpdResult, cookies: Optional[CookiesResult], h2, normal) -> list:
    rows = [
        ["Check", "Detected"],
        ["Cookie banner", _yes_no(rgpd.has_cookie_banner)],
        ["Privacy policy", _yes_no(rgpd.has_privacy_policy)],
        ["Terms of service", _yes_no(rgpd.has_terms_of_service)],
        ["GDPR consent", _yes_no(rgpd.cookie_consent_detected)],
    ]
    story = [Paragraph("RGPD compliance", h2), _table(rows, [300, 150]), Spacer(1, 10)]

    if cookies is not None:
        story.append(
            Paragraph(
                f"Cookies: {cookies.total} total, {cookies.third_party} third-party, "
                f"{cookies.secure_count} secure",
                normal,
            )
        )
        if cookies.details:
            cookie_rows = [["Name", "Domain", "Secure", "HttpOnly", "Third-party"]]
            cookie_rows.extend(
                [
                    _p(cookie.name, normal),
                    _p(cookie.domain, normal),
                    _yes_no(cookie.secure),
                    _yes_no(cookie.http_only),
                    _yes_no(cookie.is_third_party),
                ]
                for cookie in cookies.details
            )
            story.append(_table(cookie_rows, [110, 130, 60, 70, 80]))
    story.append(Spacer(1, 14))
    return story


def _seo_advanced_section(seo: SeoAdvanced, h2, normal) -> list:
    structure = seo.html_structure
    technical = seo.technical_seo
    content = seo.content
    rows = [
        ["Check", "Value"],
        ["Title length", str(structure.title_length)],
        ["Meta description length", str(structure.meta_description_length)],
        ["H1 count", str(structure.h1_count)],
        ["Open Graph", _yes_no(structure.has_open_graph)],
        ["Twitter card", _yes_no(structure.has_twitter_card)],
        ["Viewport", _yes_no(structure.has_viewport)],
        ["Schema.org markup", _yes_no(structure.has_schema_markup)],
        ["HTTPS", _yes_no(technical.https_enabled)],
        ["Redirect", _yes_no(technical.has_redirect)],
        ["Response time", f"{technical.response_time} ms"],
        ["Images without alt", f"{content.images_without_alt} / {content.image_count}"],
        ["Internal / external links", f"{content.internal_links} / {content.external_links}"],
        ["Text length", str(content.text_length)],
    ]
    story = [Paragraph("Advanced SEO", h2), _table(rows, [250, 200]), Spacer(1, 10)]
    if seo.recommendations:
        story.append(Paragraph("SEO recommendations", h2))
        story.extend(_p(f"- {item}", normal) for item in seo.recommendations)
    story.append(Spacer(1, 14))
    return story


def generate_audit_pdf(
    domain: str,
    result: AuditResult,
    options: Optional[PdfOptions] = None,
) -> bytes:
    """
    Renders an audit result to PDF bytes.

    Details (RGPD, cookies, advanced SEO) are included by default for
    complete audits only.
    """
    options = options or PdfOptions()
    include_details = options.include_details
    if include_details is None:
        include_details = result.mode == AuditMode.complete

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=PAGE_SIZES[options.page_format],
        rightMargin=20 * mm,
        leftMargin=20 * mm,
        topMargin=20 * mm,
        bottomMargin=20 * mm,
        title=f"Audit report - {domain}",
        author=settings.APP_NAME,
    )

    styles = getSampleStyleSheet()
    h1 = ParagraphStyle("AuditTitle", parent=styles["Title"], textColor=colors.darkblue)
    h2 = ParagraphStyle("AuditHeading", parent=styles["Heading2"], fontSize=14, spaceAfter=8)
    normal = ParagraphStyle("AuditNormal", parent=styles["Normal"], fontSize=10, leading=13)

    generated_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    story = [
        Paragraph(f"Audit report: {escape(domain)}", h1),
        Paragraph(
            f"Mode: {result.mode.value} | Generated: {generated_at} | "
            f"Execution time: {result.execution_time / 1000:.1f}s",
            normal,
        ),
        Spacer(1, 16),
    ]

    story.extend(_lighthouse_section(result.lighthouse, h2, normal))
    story.extend(_seo_basic_section(result.seo_basic, h2, normal))
    if result.security is not None:
        story.extend(_security_section(result.security, h2, normal))

    if include_details:
        if result.rgpd is not None:
            story.extend(_rgpd_section(result.rgpd, result.cookies, h2, normal))
        if result.seo_advanced is not None:
            story.extend(_seo_advanced_section(result.seo_advanced, h2, normal))

    if result.failed_probes:
        story.append(
            Paragraph(
                f"Some checks could not be completed: {escape(', '.join(result.failed_probes))}",
                normal,
            )
        )
        story.append(Spacer(1, 10))

    if options.include_recommendations and result.recommendations:
        story.append(Paragraph("Recommendations", h2))
        story.extend(_p(f"- {item}", normal) for item in result.recommendations)

    doc.build(story, canvasmaker=NumberedCanvas)
    pdf_bytes = buffer.getvalue()
    logger.info(f"Generated PDF report for {domain} ({len(pdf_bytes)} bytes)")
    return pdf_bytes


def sample_audit_result(mode: AuditMode = AuditMode.fast) -> AuditResult:
    """Fixed sample data used to render demonstration reports."""
    complete = AuditMode(mode) == AuditMode.complete
    return AuditResult(
        lighthouse=LighthouseScores(performance=92, seo=85, accessibility=78, best_practices=88),
        seo_basic=SeoBasic(
            title="Example Website - Home",
            description="A well optimised meta description containing the important keywords.",
            h1=["Welcome to our website", "Main section"],
            canonical="https://example.com/",
            has_robots_txt=True,
            has_sitemap=True,
        ),
        security=SecurityResult(
            https=True,
            headers={
                "content-security-policy": True,
                "strict-transport-security": True,
                "x-frame-options": True,
                "x-content-type-options": True,
                "referrer-policy": True,
                "permissions-policy": False,
            },
            header_score=83,
        ),
        rgpd=(
            RgpdResult(
                has_cookie_banner=True,
                has_privacy_policy=True,
                has_terms_of_service=True,
                cookie_consent_detected=True,
            )
            if complete
            else None
        ),
        cookies=(
            CookiesResult(
                total=2,
                third_party=1,
                secure_count=1,
                details=[
                    CookieInfo(name="_ga", domain=".analytics.example.net", secure=True, same_site="Lax", is_third_party=True),
                    CookieInfo(name="session_id", domain="example.com", http_only=True, secure=True, same_site="Strict"),
                ],
            )
            if complete
            else None
        ),
        seo_advanced=(
            SeoAdvanced(
                html_structure=HtmlStructure(
                    has_title=True,
                    title_length=45,
                    has_meta_description=True,
                    meta_description_length=155,
                    has_h1=True,
                    h1_count=2,
                    has_canonical=True,
                    has_open_graph=True,
                    has_viewport=True,
                    has_lang=True,
                ),
                technical_seo=TechnicalSeo(
                    robots_txt_exists=True,
                    sitemap_exists=True,
                    https_enabled=True,
                    response_time=1250,
                ),
                content=ContentStats(
                    image_count=12,
                    images_without_alt=2,
                    internal_links=15,
                    external_links=5,
                    text_length=1450,
                    headings_structure=HeadingsStructure(h1=2, h2=4, h3=6, h4=2),
                ),
                recommendations=[
                    "Use a single H1 heading per page",
                    "Add structured data (Schema.org)",
                    "Add alt attributes to 2 image(s)",
                ],
            )
            if complete
            else None
        ),
        recommendations=["Add a Permissions-Policy header"],
        execution_time=1850 if not complete else 14200,
        mode=mode,
    )
