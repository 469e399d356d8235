"""
Tests for the compositing engine: geometry, page scope and failure policy.
"""

from io import BytesIO

import fitz
import pytest
from pypdf import PdfReader

from app.core.errors import UnsupportedFormatError, ValidationError
from app.services.compositing_service import CompositingEngine, CompositingService, load_document
from app.services.coordinate_transform import CoordinateTransform, PageSize
from app.services.watermarks import (
    ImageContent,
    PageSet,
    PresetPosition,
    TextContent,
    Watermark,
    baseline_factor,
    measure_text,
)
from app.storage.local import LocalStorage

LETTER = PageSize(612, 792)


def text_watermark(text="DRAFT", **fields) -> Watermark:
    fields.setdefault("rotation", 0)
    fields.setdefault("position", PresetPosition.CENTER)
    return Watermark(content=TextContent(text, font_size=40), **fields)


@pytest.fixture
def engine():
    return CompositingEngine()


class TestLoadDocument:
    def test_reads_page_sizes(self, sample_pdf):
        document = load_document(sample_pdf)
        assert document.page_count == 3
        assert document.pages[0] == LETTER

    def test_rejects_non_pdf(self):
        with pytest.raises(ValidationError):
            load_document(b"plain text, not a pdf")


class TestPlanPage:
    """Document-space geometry used for drawing."""

    def test_centered_text_anchor_ignores_preview_scale(self, engine):
        watermark = text_watermark()
        # A preview at an arbitrary scale must not influence the export.
        CoordinateTransform.for_container(LETTER, (1200, 1553), (333, 777)).document_to_pixel(0.5, 0.5)

        (placement,) = engine.plan_page(LETTER, 1, [watermark])

        width = measure_text("DRAFT", 40)
        assert placement.anchor == pytest.approx((306, 396))
        assert placement.origin == pytest.approx((306 - width / 2, 396 - 40 * baseline_factor()))
        assert placement.width == pytest.approx(width)

    def test_mediabox_origin_is_respected(self, engine):
        page = PageSize(200, 100, left=50, bottom=30)
        (placement,) = engine.plan_page(page, 1, [text_watermark(position=PresetPosition.TOP_RIGHT)])
        assert placement.anchor == pytest.approx((50 + 180, 30 + 90))

    def test_image_is_centered_on_anchor(self, engine, png_bytes):
        watermark = Watermark(content=ImageContent.from_bytes(png_bytes, scale=0.5), position=PresetPosition.BOTTOM_LEFT)
        (placement,) = engine.plan_page(LETTER, 1, [watermark])
        assert (placement.width, placement.height) == (20, 10)
        assert placement.anchor == pytest.approx((61.2, 79.2))
        assert placement.origin == pytest.approx((51.2, 74.2))

    def test_paint_order_and_scope(self, engine):
        first = text_watermark("ONE")
        second = text_watermark("TWO", pages=PageSet(frozenset({2})))
        third = text_watermark("THREE")
        assert [p.watermark for p in engine.plan_page(LETTER, 1, [first, second, third])] == [first, third]
        assert [p.watermark for p in engine.plan_page(LETTER, 2, [first, second, third])] == [first, second, third]


class TestComposite:
    """Output bytes inspected with pypdf and PyMuPDF."""

    def test_page_scoped_watermark(self, engine, sample_pdf):
        watermark = text_watermark(pages=PageSet(frozenset({2})))
        result = engine.composite(sample_pdf, [watermark])

        with fitz.open(stream=result, filetype="pdf") as document:
            assert document.page_count == 3
            assert document[0].search_for("DRAFT") == []
            assert document[2].search_for("DRAFT") == []
            (rect,) = document[1].search_for("DRAFT")

        # PyMuPDF uses a top-left origin; the page is 792 points tall.
        assert (rect.x0 + rect.x1) / 2 == pytest.approx(306, abs=2)
        assert (rect.y0 + rect.y1) / 2 == pytest.approx(792 - 396, abs=8)

    def test_input_is_not_mutated(self, engine, sample_pdf):
        original = bytes(sample_pdf)
        result = engine.composite(sample_pdf, [text_watermark()])
        assert sample_pdf == original
        assert result != sample_pdf
        assert "DRAFT" not in PdfReader(BytesIO(sample_pdf)).pages[0].extract_text()
        assert "DRAFT" in PdfReader(BytesIO(result)).pages[0].extract_text()

    def test_image_watermark_is_embedded(self, engine, sample_pdf, jpeg_bytes):
        watermark = Watermark(content=ImageContent.from_bytes(jpeg_bytes), rotation=30)
        result = engine.composite(load_document(sample_pdf), [watermark])
        with fitz.open(stream=result, filetype="pdf") as document:
            assert all(page.get_images() for page in document)

    def test_undecodable_image_aborts_everything(self, engine, sample_pdf):
        good = text_watermark()
        broken = Watermark(content=ImageContent(data=b"\x89PNG broken", pixel_width=10, pixel_height=10))
        with pytest.raises(UnsupportedFormatError) as exc_info:
            engine.composite(sample_pdf, [good, broken])
        assert exc_info.value.watermark_id == broken.id
        assert broken.id in str(exc_info.value)

    def test_unsupported_codec_aborts(self, engine, sample_pdf, gif_bytes):
        gif = Watermark(content=ImageContent(data=gif_bytes, pixel_width=40, pixel_height=20))
        with pytest.raises(UnsupportedFormatError):
            engine.composite(sample_pdf, [gif])


class TestCompositingService:
    def test_apply_writes_result_to_storage(self, tmp_path, sample_pdf):
        source = tmp_path / "source.pdf"
        source.write_bytes(sample_pdf)

        result_path = CompositingService(LocalStorage()).apply(source, [text_watermark()])

        assert result_path.exists()
        assert load_document(result_path.read_bytes()).page_count == 3
        result_path.unlink()
