import pytest
from reportlab.lib.pagesizes import A4, LETTER

from app.features.audit.schemas.audit import AuditMode, PdfOptions
from app.features.audit.services import pdf_report
from app.features.audit.services.pdf_report import generate_audit_pdf, sample_audit_result, score_label


def test_fast_report_is_a_pdf(sample_result):
    pdf_bytes = generate_audit_pdf("example.com", sample_result)

    assert pdf_bytes.startswith(b"%PDF")
    assert b"%%EOF" in pdf_bytes[-1024:]


def test_complete_sample_renders_with_details():
    result = sample_audit_result(AuditMode.complete)
    assert result.rgpd is not None
    assert result.seo_advanced is not None

    detailed = generate_audit_pdf("example.com", result, PdfOptions(include_details=True))
    summary = generate_audit_pdf("example.com", result, PdfOptions(include_details=False))

    assert detailed.startswith(b"%PDF")
    assert len(detailed) > len(summary)


def test_fast_sample_has_no_deep_fragments():
    result = sample_audit_result(AuditMode.fast)
    assert result.rgpd is None
    assert result.cookies is None
    assert result.seo_advanced is None
    assert result.mode == AuditMode.fast


@pytest.mark.parametrize("page_format, page_size", [("A4", A4), ("Letter", LETTER)])
def test_page_format_option(monkeypatch, sample_result, page_format, page_size):
    captured = {}
    original = pdf_report.SimpleDocTemplate

    def capture(*args, **kwargs):
        captured["pagesize"] = kwargs["pagesize"]
        return original(*args, **kwargs)

    monkeypatch.setattr(pdf_report, "SimpleDocTemplate", capture)

    generate_audit_pdf("example.com", sample_result, PdfOptions(page_format=page_format))

    assert captured["pagesize"] == page_size


def test_text_is_escaped(result_factory):
    from app.features.audit.schemas.audit import SeoBasic

    result = result_factory(seo_basic=SeoBasic(title="<b>Tom & Jerry</b>", h1=["<i>"]))
    assert generate_audit_pdf("example.com", result).startswith(b"%PDF")


def test_pdf_options_accept_camel_case():
    options = PdfOptions.model_validate({"includeDetails": True, "includeRecommendations": False, "pageFormat": "Letter"})
    assert options.include_details is True
    assert options.include_recommendations is False
    assert options.page_format == "Letter"


def test_score_label_thresholds():
    assert score_label(95) == "Good"
    assert score_label(80) == "Good"
    assert score_label(65) == "Needs improvement"
    assert score_label(10) == "Poor"


@pytest.mark.parametrize("key", ["pageFormat", "page_format", "format"])
def test_page_format_accepts_legacy_key(key):
    assert PdfOptions.model_validate({key: "Letter"}).page_format == "Letter"
