"""
Tests for the document <-> display coordinate mapping.
"""

import pytest

from app.core.errors import TransformUnavailable
from app.services.coordinate_transform import (
    CoordinateTransform,
    DisplayArea,
    PageSize,
    fit_display_area,
)

LETTER = PageSize(612, 792)


def letter_transform(container=(1200, 1553)) -> CoordinateTransform:
    return CoordinateTransform.for_container(LETTER, (1200, 1553), container)


class TestFitDisplayArea:
    """Letterboxing of the raster inside its container."""

    def test_wider_image_fits_width(self):
        area = fit_display_area(200, 100, 400, 400)
        assert area == DisplayArea(400, 200, 0, 100)

    def test_taller_image_fits_height(self):
        area = fit_display_area(100, 200, 400, 400)
        assert area == DisplayArea(200, 400, 100, 0)

    def test_unknown_natural_size_fills_box(self):
        assert fit_display_area(0, 0, 300, 200) == DisplayArea(300, 200)


class TestCoordinateTransform:
    """Forward, inverse and length mappings."""

    def test_scale_factors(self):
        transform = letter_transform(container=(600, 776.5))
        assert transform.render_scale == pytest.approx(1200 / 612)
        assert transform.display_scale_x == pytest.approx(0.5)
        assert transform.display_scale_y == pytest.approx(0.5)

    def test_corners_flip_y(self):
        transform = letter_transform()
        assert transform.document_to_pixel(0, 1) == pytest.approx((0, 0))
        bottom_right = transform.document_to_pixel(1, 0)
        assert bottom_right.x == pytest.approx(1200)
        assert bottom_right.y == pytest.approx(792 * 1200 / 612)

    def test_letterbox_offset_is_applied(self):
        transform = letter_transform(container=(2000, 1553))
        assert transform.display.offset_x == pytest.approx(400)
        assert transform.document_to_pixel(0, 1) == pytest.approx((400, 0))
        assert transform.pixel_to_document(400, 0) == pytest.approx((0, 1))

    def test_inverse_clamps_to_unit_square(self):
        transform = letter_transform(container=(2000, 1553))
        assert transform.pixel_to_document(-50, -50) == (0.0, 1.0)
        assert transform.pixel_to_document(5000, 5000) == (1.0, 0.0)

    @pytest.mark.parametrize(
        "page, raster, container",
        [
            (PageSize(612, 792), (1200, 1553), (1200, 1553)),
            (PageSize(612, 792), (1200, 1553), (800, 600)),
            (PageSize(842, 595), (1200, 848), (500, 900)),
            (PageSize(300, 300, 20, 40), (640, 640), (1024, 768)),
        ],
    )
    def test_round_trip(self, page, raster, container):
        transform = CoordinateTransform.for_container(page, raster, container)
        for x in (0.0, 0.1, 0.5, 0.73, 1.0):
            for y in (0.0, 0.25, 0.9, 1.0):
                pixel = transform.document_to_pixel(x, y)
                assert transform.pixel_to_document(*pixel) == pytest.approx((x, y), abs=1e-3)

    def test_length_has_no_translation(self):
        transform = letter_transform(container=(2000, 1553))
        assert transform.length_to_pixels(48) == pytest.approx(48 * 1200 / 612)
        assert transform.length_to_pixels(0) == 0

    def test_contains(self):
        transform = letter_transform(container=(2000, 1553))
        assert transform.contains(1000, 700)
        assert not transform.contains(100, 700)

    def test_unloaded_raster_is_unavailable(self):
        with pytest.raises(TransformUnavailable):
            CoordinateTransform(LETTER, 0, 0, DisplayArea(100, 100))
