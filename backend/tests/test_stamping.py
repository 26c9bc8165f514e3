import io
from datetime import datetime

import pytest
from pypdf import PdfReader, PdfWriter
from pypdf.generic import RectangleObject
from reportlab.lib.pagesizes import A4

from docsign.core.errors import RenderError
from docsign.fieldmap import HOST_CONTRACT
from docsign.services.stamping import PdfStamper, StampRequest, format_signed_at, summary_rows

SIGNED_AT = datetime(2025, 3, 14, 15, 9, 26)
DOCUMENT_ID = "5f0c2b8e-93a4-4f6e-9d1e-2b7c2f0b9a11"


def _request(signature_png: bytes, form_data: dict[str, str]) -> StampRequest:
    return StampRequest(
        document_id=DOCUMENT_ID,
        signer_name="Jane Doe",
        signed_at=SIGNED_AT,
        signature_png=signature_png,
        form_data=form_data,
    )


def test_every_page_gets_a_footer_and_a_summary_is_appended(original_pdf, signature_png) -> None:
    stamped = PdfStamper(HOST_CONTRACT).stamp(original_pdf, _request(signature_png, {"host_name": "Jane Doe"}))
    reader = PdfReader(io.BytesIO(stamped))

    assert len(reader.pages) == 4
    for number, page in enumerate(reader.pages[:3], start=1):
        text = page.extract_text()
        assert f"original page {number}" in text
        assert "Signed by: Jane Doe" in text
        assert f"Page {number} of 3" in text
        assert "ID: 5f0c2b8e..." in text

    summary = reader.pages[-1].extract_text()
    assert "SIGNATURE PAGE" in summary
    assert "Host name: Jane Doe" in summary
    assert f"Document ID: {DOCUMENT_ID}" in summary
    assert "Timestamp: 2025-03-14T15:09:26" in summary
    assert "Total pages signed: 3" in summary
    assert float(reader.pages[-1].mediabox.width) == pytest.approx(612)
    assert float(reader.pages[-1].mediabox.height) == pytest.approx(792)


def test_field_values_land_on_their_pages(pdf_factory, signature_png) -> None:
    original = pdf_factory(4, A4)
    stamped = PdfStamper(HOST_CONTRACT).stamp(
        original,
        _request(
            signature_png,
            {
                "host_name": "Jane Doe",
                "lease_period_months": "24",
                "compensation_model": "option_b",
                "fixed_monthly_sum_figures": "45000",
                "unmapped_note": "kept in summary only",
            },
        ),
    )
    pages = PdfReader(io.BytesIO(stamped)).pages

    assert "Jane Doe" in pages[0].extract_text()
    assert "24" in pages[1].extract_text()
    page_four = pages[3].extract_text()
    assert "Option B: Fixed Lease" in page_four
    assert "option_b" not in page_four
    assert "45000" in page_four
    assert "kept in summary only" not in "".join(page.extract_text() for page in pages[:4])
    assert "Unmapped note: kept in summary only" in pages[-1].extract_text()


def test_every_submitted_mapped_value_is_stamped_and_summarised(pdf_factory, signature_png) -> None:
    stamped = PdfStamper(HOST_CONTRACT).stamp(
        pdf_factory(4),
        _request(signature_png, {"compensation_model": "option_a", "fixed_monthly_sum_figures": "777111"}),
    )
    pages = PdfReader(io.BytesIO(stamped)).pages
    assert "777111" in pages[3].extract_text()
    assert "777111" in pages[-1].extract_text()


def test_summary_rows_use_labels_and_option_text() -> None:
    rows = summary_rows(HOST_CONTRACT, {"compensation_model": "option_a", "host_name": " Jane Doe ", "gps_login": ""})
    assert rows == [("Host name", "Jane Doe"), ("Compensation model", "Option A: Revenue Share")]


def test_unreadable_original_is_a_render_error(signature_png) -> None:
    with pytest.raises(RenderError):
        PdfStamper(HOST_CONTRACT).stamp(b"%PDF-1.4 broken", _request(signature_png, {}))


def test_signed_at_format() -> None:
    assert format_signed_at(SIGNED_AT) == "March 14, 2025 at 03:09 PM UTC"


def _footer_baseline(page) -> float | None:
    found: list[float] = []

    def visitor(text, cm, tm, font_dict, font_size):
        if text.startswith("Signed by"):
            found.append(tm[4] * cm[1] + tm[5] * cm[3] + cm[5])

    page.extract_text(visitor_text=visitor)
    return min(found) if found else None


def test_footer_follows_an_offset_mediabox(original_pdf, signature_png) -> None:
    source = PdfReader(io.BytesIO(original_pdf))
    writer = PdfWriter()
    for page in source.pages:
        page.mediabox = RectangleObject((100, 200, 712, 992))
        writer.add_page(page)
    shifted = io.BytesIO()
    writer.write(shifted)

    stamped = PdfStamper(HOST_CONTRACT).stamp(shifted.getvalue(), _request(signature_png, {}))
    first = PdfReader(io.BytesIO(stamped)).pages[0]

    baseline = _footer_baseline(first)
    assert baseline is not None
    assert 200 < baseline < 260


def test_rotated_pages_are_normalised_before_stamping(original_pdf, signature_png) -> None:
    source = PdfReader(io.BytesIO(original_pdf))
    writer = PdfWriter()
    for page in source.pages:
        page.rotate(90)
        writer.add_page(page)
    rotated = io.BytesIO()
    writer.write(rotated)

    stamped = PdfStamper(HOST_CONTRACT).stamp(rotated.getvalue(), _request(signature_png, {}))
    first = PdfReader(io.BytesIO(stamped)).pages[0]

    assert first.rotation == 0
    assert float(first.mediabox.width) == pytest.approx(792)
    assert "Page 1 of 3" in first.extract_text()
    assert _footer_baseline(first) < 60
