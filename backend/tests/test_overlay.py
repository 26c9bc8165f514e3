import io

import pytest
from pypdf import PdfReader

from docsign.client.form_state import FormStateEngine
from docsign.client.overlay import ControlState, OverlayRenderer, PageGeometry, to_absolute, to_percent
from docsign.fieldmap import HOST_CONTRACT

LETTER_PAGE = PageGeometry(612.0, 792.0)


def _renderer(pages: int = 4, zoom: float = 1.0) -> OverlayRenderer:
    return OverlayRenderer(HOST_CONTRACT, [LETTER_PAGE] * pages, zoom=zoom)


def test_percent_coordinates_round_trip() -> None:
    rendered = LETTER_PAGE.scaled(1.37)
    for field in HOST_CONTRACT:
        x, y, _ = to_absolute(field, rendered)
        top_pct, left_pct = to_percent(x, y, rendered)
        assert top_pct == pytest.approx(field.top_pct)
        assert left_pct == pytest.approx(field.left_pct)


def test_zoom_change_recomputes_positions() -> None:
    renderer = _renderer()
    state = FormStateEngine(HOST_CONTRACT)
    host_name = HOST_CONTRACT.get("host_name")

    before = next(c for c in renderer.layout_page(1, state).controls if c.field.id == "host_name")
    renderer.zoom = 2.0
    after = next(c for c in renderer.layout_page(1, state).controls if c.field.id == "host_name")

    assert before.x == pytest.approx(612.0 * host_name.left_pct / 100)
    assert after.x == pytest.approx(before.x * 2)
    assert after.y == pytest.approx(before.y * 2)
    assert after.font_size == pytest.approx(before.font_size * 2)


def test_pages_without_fields_are_read_only() -> None:
    overlay = _renderer().layout_page(3, FormStateEngine(HOST_CONTRACT))
    assert overlay.read_only
    assert overlay.controls == ()


def test_inactive_fields_are_not_laid_out() -> None:
    renderer = _renderer()
    state = FormStateEngine(HOST_CONTRACT)
    state.set_field("compensation_model", "option_a")
    ids = {control.field.id for control in renderer.layout_page(4, state).controls}
    assert "fixed_monthly_sum_figures" not in ids

    state.set_field("compensation_model", "option_b")
    ids = {control.field.id for control in renderer.layout_page(4, state).controls}
    assert {"fixed_monthly_sum_words", "fixed_monthly_sum_figures"} <= ids


def test_control_states() -> None:
    renderer = _renderer()
    state = FormStateEngine(HOST_CONTRACT)
    state.set_field("host_name", "Jane Doe")

    controls = {c.field.id: c for c in renderer.layout_page(1, state, show_errors=True).controls}
    assert controls["host_name"].state == ControlState.FILLED
    assert controls["host_name"].value == "Jane Doe"
    assert controls["host_id_number"].state == ControlState.ERROR

    controls = {c.field.id: c for c in renderer.layout_page(1, state).controls}
    assert controls["host_id_number"].state == ControlState.UNFILLED


def test_layout_outside_document_raises() -> None:
    with pytest.raises(IndexError):
        _renderer(pages=2).layout_page(4, FormStateEngine(HOST_CONTRACT))
    with pytest.raises(ValueError):
        _renderer().zoom = 0


def test_render_preview_scales_pages(original_pdf: bytes) -> None:
    geometries = PageGeometry.from_pdf(original_pdf)
    renderer = OverlayRenderer(HOST_CONTRACT, geometries, zoom=1.5)
    state = FormStateEngine(HOST_CONTRACT)
    state.set_field("host_name", "Jane Doe")

    preview = PdfReader(io.BytesIO(renderer.render_preview(original_pdf, state)))

    assert len(preview.pages) == 3
    assert float(preview.pages[0].mediabox.width) == pytest.approx(612.0 * 1.5)
    assert "Jane Doe" in preview.pages[0].extract_text()
