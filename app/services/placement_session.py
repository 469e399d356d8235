from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Dict, Optional

from app.core.config import get_settings
from app.core.errors import TransformUnavailable
from app.core.logging import configure_logging
from app.services.coordinate_transform import CoordinateTransform, Pixel
from app.services.watermarks import Anchor

logger = configure_logging("placement")

CommitFn = Callable[[str, Anchor], object]


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


class CommitThrottle:
    """بوابة زمنية تسمح بتمرير عملية واحدة على الأكثر في كل فترة."""

    def __init__(self, interval_s: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval_s = interval_s
        self.clock = clock
        self.last_commit: Optional[float] = None

    def ready(self) -> bool:
        if self.last_commit is None:
            return True
        return self.clock() - self.last_commit >= self.interval_s

    def mark(self) -> None:
        self.last_commit = self.clock()

    def reset(self) -> None:
        self.last_commit = None


class PlacementSession:
    """
    آلة حالات السحب لعلامة مائية واحدة في كل مرة.

    المواضع المؤقتة تُحدَّث مع كل حركة للمؤشر، أما الحفظ في النموذج فيمر
    عبر ``commit`` بحد أقصى مرة واحدة لكل فترة، مع حفظ نهائي إجباري عند
    إفلات المؤشر أو خروجه من سطح المعاينة.
    """

    def __init__(
        self,
        commit: CommitFn,
        interval_ms: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_ms is None:
            interval_ms = get_settings().drag_commit_interval_ms
        self.commit = commit
        self.throttle = CommitThrottle(interval_ms / 1000.0, clock)

        self.state = DragState.IDLE
        self.dragging_id: Optional[str] = None
        self.drag_start: Optional[Pixel] = None
        self.selected_id: Optional[str] = None
        self._preview_positions: Dict[str, Anchor] = {}

    @property
    def is_dragging(self) -> bool:
        return self.state is DragState.DRAGGING

    def preview_position(self, watermark_id: str) -> Optional[Anchor]:
        if self.dragging_id != watermark_id:
            return None
        return self._preview_positions.get(watermark_id)

    def select(self, watermark_id: Optional[str]) -> None:
        self.selected_id = watermark_id

    # ------------------------------------------------------------------
    # أحداث المؤشر
    # ------------------------------------------------------------------
    def pointer_down(self, watermark_id: str, pixel: Pixel) -> None:
        if self.is_dragging:
            logger.debug("Ignoring pointer down on %s, %s is dragging", watermark_id, self.dragging_id)
            return
        self.selected_id = watermark_id
        self.dragging_id = watermark_id
        self.drag_start = Pixel(*pixel)
        self.state = DragState.DRAGGING
        self.throttle.reset()
        logger.debug("Drag started for %s at %s", watermark_id, self.drag_start)

    def pointer_move(self, pixel: Pixel, transform: CoordinateTransform | Callable[[], CoordinateTransform]) -> Optional[Anchor]:
        """
        تحويل موضع المؤشر إلى مرساة مُطبَّعة وتحديث الموضع المؤقت.
        ``transform`` قد يكون كائن تحويل أو دالة تعيده (وقد ترفع
        ``TransformUnavailable`` أثناء تحميل الصورة فيُتجاوز هذا الإطار).
        """
        if not self.is_dragging:
            return None

        try:
            if callable(transform):
                transform = transform()
            anchor = transform.pixel_to_document(pixel[0], pixel[1])
        except TransformUnavailable:
            logger.debug("Transform unavailable, skipping drag frame")
            return None

        self._preview_positions[self.dragging_id] = anchor

        if self.throttle.ready():
            self.commit(self.dragging_id, anchor)
            self.throttle.mark()
        return anchor

    def pointer_up(self) -> None:
        self._finish(final_commit=True)

    def pointer_leave(self) -> None:
        self._finish(final_commit=True)

    def cancel(self) -> None:
        """إغلاق سطح المعاينة: إنهاء السحب وإهمال الموضع المؤقت دون حفظ نهائي."""
        self._finish(final_commit=False)

    def _finish(self, final_commit: bool) -> None:
        if not self.is_dragging:
            return

        watermark_id = self.dragging_id
        final = self._preview_positions.get(watermark_id)
        # نقرة بلا حركة لا تحمل موضعًا جديدًا، فتكتفي بتغيير التحديد.
        if final_commit and final is not None:
            self.commit(watermark_id, final)
            self.throttle.mark()

        logger.debug("Drag finished for %s (committed=%s)", watermark_id, final_commit and final is not None)
        self.state = DragState.IDLE
        self.dragging_id = None
        self.drag_start = None
        self._preview_positions.clear()
