"""
تحويل الإحداثيات بين فضاء المستند وفضاء المعاينة.

فضاء المستند: نقاط، الأصل أسفل يسار الصفحة، y للأعلى.
فضاء العرض: بكسلات، الأصل أعلى يسار الصورة، y للأسفل.

المسار الأمامي: نقطة مُطبَّعة -> نقاط -> بكسلات الصورة المرسومة (R) ->
بكسلات العرض (S) + إزاحة التأطير. المسار العكسي يطبق الخطوات نفسها بالترتيب
المعاكس. يجب أن تمر كل حسابات الموضع والحجم في المعاينة عبر هذا الصنف
بالعاملين نفسيهما حتى يطابق التصدير ما يراه المستخدم.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Tuple

from app.core.errors import TransformUnavailable
from app.services.watermarks import Anchor


class PageSize(NamedTuple):
    """
    الصفحة كما تُعرض: أبعاد صندوق القص بالنقاط بعد تطبيق /Rotate، مع أصل
    صندوق القص وزاوية التدوير (مع عقارب الساعة) في فضاء المستند غير المُدار.

    هذه هي الهندسة نفسها التي يرسمها PyMuPDF (``page.rect``)، لذلك تتطابق
    المعاينة والتصدير حتى في الصفحات المقصوصة أو المُدارة.
    """

    width: float
    height: float
    left: float = 0.0
    bottom: float = 0.0
    rotation: int = 0

    @classmethod
    def from_box(
        cls,
        width: float,
        height: float,
        left: float = 0.0,
        bottom: float = 0.0,
        rotation: int = 0,
    ) -> "PageSize":
        """بناء الأبعاد المعروضة من صندوق القص غير المُدار وقيمة /Rotate."""
        rotation = int(rotation) % 360
        if rotation not in (0, 90, 180, 270):
            rotation = 0
        if rotation in (90, 270):
            width, height = height, width
        return cls(float(width), float(height), float(left), float(bottom), rotation)

    def to_user_space(self, x: float, y: float) -> Tuple[float, float]:
        """مرساة مُطبَّعة على الصفحة المعروضة (y للأعلى) -> نقاط في فضاء المستند."""
        dx = x * self.width
        dy = y * self.height
        if self.rotation == 90:
            u, v = self.height - dy, dx
        elif self.rotation == 180:
            u, v = self.width - dx, self.height - dy
        elif self.rotation == 270:
            u, v = dy, self.width - dx
        else:
            u, v = dx, dy
        return self.left + u, self.bottom + v


class Pixel(NamedTuple):
    x: float
    y: float


@dataclass(frozen=True)
class DisplayArea:
    """المساحة التي تشغلها الصورة داخل الحاوية بعد التأطير (object-fit: contain)."""

    width: float
    height: float
    offset_x: float = 0.0
    offset_y: float = 0.0


def fit_display_area(natural_width: float, natural_height: float, box_width: float, box_height: float) -> DisplayArea:
    if natural_width <= 0 or natural_height <= 0 or box_width <= 0 or box_height <= 0:
        return DisplayArea(width=box_width, height=box_height)

    image_aspect = natural_width / natural_height
    box_aspect = box_width / box_height

    if image_aspect > box_aspect:
        # الصورة أعرض: ملاءمة العرض
        width = box_width
        height = box_width / image_aspect
        return DisplayArea(width, height, 0.0, (box_height - height) / 2)

    height = box_height
    width = box_height * image_aspect
    return DisplayArea(width, height, (box_width - width) / 2, 0.0)


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


class CoordinateTransform:
    """تحويل ثنائي الاتجاه بين المرساة المُطبَّعة وبكسلات الشاشة لصفحة واحدة."""

    def __init__(
        self,
        page: PageSize,
        raster_width: float,
        raster_height: float,
        display: DisplayArea,
    ) -> None:
        if page.width <= 0 or page.height <= 0:
            raise TransformUnavailable("page size is not known yet")
        if raster_width <= 0 or raster_height <= 0:
            raise TransformUnavailable("page raster has not finished loading")
        if display.width <= 0 or display.height <= 0:
            raise TransformUnavailable("preview container has no size yet")

        self.page = page
        self.raster_width = float(raster_width)
        self.raster_height = float(raster_height)
        self.display = display

        self.render_scale = self.raster_width / page.width
        self.display_scale_x = display.width / self.raster_width
        self.display_scale_y = display.height / self.raster_height

    @classmethod
    def for_container(
        cls,
        page: PageSize,
        raster_size: Tuple[float, float],
        container_size: Tuple[float, float],
    ) -> "CoordinateTransform":
        raster_width, raster_height = raster_size
        display = fit_display_area(raster_width, raster_height, *container_size)
        return cls(page, raster_width, raster_height, display)

    def __repr__(self) -> str:
        return (
            f"CoordinateTransform(R={self.render_scale:.4f}, "
            f"S=({self.display_scale_x:.4f}, {self.display_scale_y:.4f}), "
            f"offset=({self.display.offset_x:.1f}, {self.display.offset_y:.1f}))"
        )

    # ------------------------------------------------------------------
    def document_to_pixel(self, x: float, y: float) -> Pixel:
        screen_y = 1.0 - y

        points_x = x * self.page.width
        points_y = screen_y * self.page.height

        raster_x = points_x * self.render_scale
        raster_y = points_y * self.render_scale

        return Pixel(
            self.display.offset_x + raster_x * self.display_scale_x,
            self.display.offset_y + raster_y * self.display_scale_y,
        )

    def pixel_to_document(self, pixel_x: float, pixel_y: float) -> Anchor:
        raster_x = (pixel_x - self.display.offset_x) / self.display_scale_x
        raster_y = (pixel_y - self.display.offset_y) / self.display_scale_y

        points_x = raster_x / self.render_scale
        points_y = raster_y / self.render_scale

        x = points_x / self.page.width
        y = 1.0 - points_y / self.page.height
        return Anchor(_clamp_unit(x), _clamp_unit(y))

    def length_to_pixels(self, points: float, axis: str = "x") -> float:
        """طول بالنقاط إلى بكسلات العرض، دون إزاحة."""
        scale = self.display_scale_x if axis == "x" else self.display_scale_y
        return points * self.render_scale * scale

    def contains(self, pixel_x: float, pixel_y: float) -> bool:
        """هل تقع النقطة داخل الصورة المعروضة (خارج أشرطة التأطير)؟"""
        return (
            self.display.offset_x <= pixel_x <= self.display.offset_x + self.display.width
            and self.display.offset_y <= pixel_y <= self.display.offset_y + self.display.height
        )
