from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from app.core.errors import TransformUnavailable
from app.core.logging import configure_logging
from app.services.coordinate_transform import CoordinateTransform, PageSize, Pixel
from app.services.placement_session import PlacementSession
from app.services.watermarks import (
    ImageContent,
    TextContent,
    Watermark,
    WatermarkCollection,
    applies_to,
    measure_text,
    resolve_anchor,
)

logger = configure_logging("preview")


@dataclass(frozen=True)
class OverlayBox:
    """صندوق العلامة المائية على الشاشة، متمركز حول مرساتها."""

    watermark_id: str
    kind: str
    center_x: float
    center_y: float
    width: float
    height: float
    rotation: float
    opacity: float
    selected: bool = False
    dragging: bool = False

    def contains(self, x: float, y: float) -> bool:
        angle = math.radians(self.rotation)
        dx = x - self.center_x
        dy = y - self.center_y
        local_x = dx * math.cos(angle) + dy * math.sin(angle)
        local_y = -dx * math.sin(angle) + dy * math.cos(angle)
        return abs(local_x) <= self.width / 2 and abs(local_y) <= self.height / 2

    def to_dict(self) -> dict:
        return {
            "watermark_id": self.watermark_id,
            "kind": self.kind,
            "left": self.center_x,
            "top": self.center_y,
            "width": self.width,
            "height": self.height,
            "rotation": self.rotation,
            "opacity": self.opacity,
            "selected": self.selected,
            "dragging": self.dragging,
        }


def content_size_points(watermark: Watermark) -> Tuple[float, float]:
    """أبعاد محتوى العلامة بالنقاط، بالمقاييس نفسها التي يستخدمها التصدير."""
    content = watermark.content
    if isinstance(content, TextContent):
        return measure_text(content.text, content.font_size), content.font_size
    if isinstance(content, ImageContent):
        return content.scaled_size
    return 0.0, 0.0


class PreviewSurface:
    """
    سطح معاينة صفحة واحدة: يحمل أبعاد الصفحة وصورتها والحاوية، ويوجه
    أحداث المؤشر إلى ``PlacementSession``.
    """

    def __init__(
        self,
        collection: WatermarkCollection,
        session: Optional[PlacementSession] = None,
    ) -> None:
        self.collection = collection
        self.session = session or PlacementSession(collection.commit_position)
        self.page_number = 1
        self.page: Optional[PageSize] = None
        self.raster_size: Optional[Tuple[float, float]] = None
        self.container_size: Optional[Tuple[float, float]] = None

    # ------------------------------------------------------------------
    # حالة الصفحة
    # ------------------------------------------------------------------
    def load_page(self, page_number: int, page: PageSize) -> None:
        """بدء تحميل صفحة جديدة؛ التحويل غير متاح حتى ``raster_ready``."""
        if self.session.is_dragging:
            self.session.cancel()
        self.page_number = page_number
        self.page = page
        self.raster_size = None
        logger.debug("Loading preview page %s", page_number)

    def raster_ready(self, raster_width: float, raster_height: float) -> None:
        self.raster_size = (raster_width, raster_height)

    def resize(self, container_width: float, container_height: float) -> None:
        self.container_size = (container_width, container_height)

    def transform(self) -> CoordinateTransform:
        if self.page is None or self.raster_size is None:
            raise TransformUnavailable(f"page {self.page_number} raster is still loading")
        container = self.container_size or self.raster_size
        return CoordinateTransform.for_container(self.page, self.raster_size, container)

    # ------------------------------------------------------------------
    # العلامات المعروضة
    # ------------------------------------------------------------------
    def visible_watermarks(self) -> List[Watermark]:
        return [w for w in self.collection if applies_to(w, self.page_number)]

    def selected(self) -> Optional[Watermark]:
        """العلامة المحددة للتعديل، مع اختيار الأولى تلقائيًا عند عدم وجود تحديد."""
        watermarks = self.collection.list()
        if not watermarks:
            return None
        if self.session.selected_id not in self.collection:
            self.session.select(watermarks[0].id)
        return self.collection.get(self.session.selected_id)

    def overlays(self) -> List[OverlayBox]:
        try:
            transform: Optional[CoordinateTransform] = self.transform()
        except TransformUnavailable:
            transform = None

        boxes: List[OverlayBox] = []
        for watermark in self.visible_watermarks():
            anchor = resolve_anchor(watermark, self.session.preview_position(watermark.id))
            width_pt, height_pt = content_size_points(watermark)

            if transform is not None:
                center = transform.document_to_pixel(anchor.x, anchor.y)
                width = transform.length_to_pixels(width_pt, "x")
                height = transform.length_to_pixels(height_pt, "y")
            else:
                center = self._neutral_center()
                width, height = width_pt, height_pt

            boxes.append(
                OverlayBox(
                    watermark_id=watermark.id,
                    kind=watermark.kind,
                    center_x=center.x,
                    center_y=center.y,
                    width=width,
                    height=height,
                    # y معكوس بين الفضاءين، فالدوران عكس عقارب الساعة في المستند
                    # يظهر مع عقارب الساعة على الشاشة.
                    rotation=-watermark.rotation,
                    opacity=watermark.opacity / 100.0,
                    selected=watermark.id == self.session.selected_id,
                    dragging=watermark.id == self.session.dragging_id,
                )
            )
        return boxes

    def _neutral_center(self) -> Pixel:
        if self.container_size:
            return Pixel(self.container_size[0] / 2, self.container_size[1] / 2)
        return Pixel(0.0, 0.0)

    def hit_test(self, pixel: Pixel) -> Optional[str]:
        """أعلى علامة (آخرها رسمًا) يقع المؤشر داخل صندوقها."""
        for box in reversed(self.overlays()):
            if box.contains(pixel[0], pixel[1]):
                return box.watermark_id
        return None

    # ------------------------------------------------------------------
    # أحداث المؤشر
    # ------------------------------------------------------------------
    def click(self, pixel: Pixel) -> Optional[str]:
        watermark_id = self.hit_test(pixel)
        if watermark_id is not None:
            self.session.select(watermark_id)
        return watermark_id

    def pointer_down(self, pixel: Pixel) -> Optional[str]:
        watermark_id = self.hit_test(pixel)
        if watermark_id is not None:
            self.session.pointer_down(watermark_id, pixel)
        return watermark_id

    def pointer_move(self, pixel: Pixel):
        return self.session.pointer_move(pixel, self.transform)

    def pointer_up(self) -> None:
        self.session.pointer_up()

    def pointer_leave(self) -> None:
        self.session.pointer_leave()

    def close(self) -> None:
        self.session.cancel()
