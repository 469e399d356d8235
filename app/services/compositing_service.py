from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError
from pypdf.generic import RectangleObject
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from app.core.config import get_settings
from app.core.errors import UnsupportedFormatError, ValidationError
from app.core.logging import configure_logging
from app.services.coordinate_transform import PageSize
from app.services.watermarks import (
    ImageContent,
    TextContent,
    Watermark,
    applies_to,
    baseline_offset,
    decode_image,
    measure_text,
    resolve_anchor,
)
from app.storage.local import LocalStorage

logger = configure_logging("compositing")


@dataclass(frozen=True)
class Document:
    data: bytes
    pages: Tuple[PageSize, ...]

    @property
    def page_count(self) -> int:
        return len(self.pages)


@dataclass(frozen=True)
class Placement:
    """
    هندسة علامة واحدة على صفحة واحدة بنقاط المستند.

    ``origin`` نقطة بدء الرسم قبل التدوير حول ``anchor``؛ و ``rotation``
    تشمل زاوية /Rotate للصفحة حتى تظهر العلامة كما في المعاينة.
    """

    watermark: Watermark
    anchor: Tuple[float, float]
    origin: Tuple[float, float]
    width: float
    height: float
    rotation: float


def load_document(data: bytes) -> Document:
    """
    قراءة هندسة الصفحات المعروضة: صندوق القص بعد تطبيق /Rotate، وهي نفس
    الأبعاد التي ترسمها المعاينة.
    """
    try:
        reader = PdfReader(BytesIO(data))
        pages = tuple(
            PageSize.from_box(
                width=float(page.cropbox.width),
                height=float(page.cropbox.height),
                left=float(page.cropbox.left),
                bottom=float(page.cropbox.bottom),
                rotation=page.rotation,
            )
            for page in reader.pages
        )
    except (PdfReadError, ValueError) as exc:
        raise ValidationError(f"document is not a readable PDF: {exc}") from exc

    if not pages:
        raise ValidationError("document has no pages")
    return Document(data=bytes(data), pages=pages)


class CompositingEngine:
    """
    رسم العلامات المائية على نسخة جديدة من المستند.

    تُستخدم إحداثيات المستند مباشرة (R = 1 و S = 1 دون إزاحة)، وبنفس
    جدول المرساة ومقاييس الخط التي تعتمدها المعاينة.
    """

    def __init__(self, font_name: str | None = None) -> None:
        self.font_name = font_name or get_settings().watermark_font

    # ------------------------------------------------------------------
    # الهندسة
    # ------------------------------------------------------------------
    def plan_page(self, page: PageSize, page_number: int, watermarks: Sequence[Watermark]) -> List[Placement]:
        placements: List[Placement] = []
        for watermark in watermarks:
            if not applies_to(watermark, page_number):
                continue

            anchor = resolve_anchor(watermark)
            anchor_x, anchor_y = page.to_user_space(anchor.x, anchor.y)

            content = watermark.content
            if isinstance(content, TextContent):
                width = measure_text(content.text, content.font_size, self.font_name)
                height = content.font_size
                origin = (anchor_x - width / 2, anchor_y - baseline_offset(content.font_size, self.font_name))
            else:
                width, height = content.scaled_size
                origin = (anchor_x - width / 2, anchor_y - height / 2)

            placements.append(
                Placement(
                    watermark=watermark,
                    anchor=(anchor_x, anchor_y),
                    origin=origin,
                    width=width,
                    height=height,
                    # /Rotate يدير الصفحة مع عقارب الساعة عند العرض.
                    rotation=watermark.rotation + page.rotation,
                )
            )
        return placements

    # ------------------------------------------------------------------
    # التصدير
    # ------------------------------------------------------------------
    def composite(self, document: Document | bytes, watermarks: Iterable[Watermark]) -> bytes:
        if not isinstance(document, Document):
            document = load_document(document)
        watermarks = list(watermarks)
        self._check_images(watermarks)

        reader = PdfReader(BytesIO(document.data))
        writer = PdfWriter()

        for page_number, (page, size) in enumerate(zip(reader.pages, document.pages), start=1):
            placements = self.plan_page(size, page_number, watermarks)
            if placements:
                overlay = self._create_overlay_page(page.mediabox, placements)
                page.merge_page(overlay.pages[0])
            writer.add_page(page)

        buffer = BytesIO()
        writer.write(buffer)
        logger.info(
            "Composited %d watermark(s) onto %d page(s)",
            len(watermarks),
            document.page_count,
        )
        return buffer.getvalue()

    @staticmethod
    def _check_images(watermarks: Sequence[Watermark]) -> None:
        # أي صورة غير قابلة للفك تُلغي العملية بالكامل بدل إخراج ملف ناقص.
        for watermark in watermarks:
            if isinstance(watermark.content, ImageContent):
                try:
                    decode_image(watermark.content.data)
                except UnsupportedFormatError as exc:
                    logger.warning("Aborting export: watermark %s image is undecodable", watermark.id)
                    raise UnsupportedFormatError(
                        f"watermark {watermark.id} has an undecodable image: {exc}",
                        watermark_id=watermark.id,
                    ) from exc

    def _create_overlay_page(self, mediabox: RectangleObject, placements: Sequence[Placement]) -> PdfReader:
        packet = BytesIO()
        c = canvas.Canvas(packet, pagesize=(max(float(mediabox.right), 1.0), max(float(mediabox.top), 1.0)))

        for placement in placements:
            c.saveState()
            c.translate(*placement.anchor)
            c.rotate(placement.rotation)
            opacity = placement.watermark.opacity / 100.0
            c.setFillAlpha(opacity)
            c.setStrokeAlpha(opacity)

            content = placement.watermark.content
            dx = placement.origin[0] - placement.anchor[0]
            dy = placement.origin[1] - placement.anchor[1]
            if isinstance(content, TextContent):
                self._draw_text(c, content, dx, dy)
            else:
                self._draw_image(c, content, dx, dy, placement.width, placement.height)
            c.restoreState()

        c.save()
        packet.seek(0)
        overlay = PdfReader(packet)
        # merge_page يقص الطبقة على صندوقها، فيجب أن يطابق صندوق الصفحة الهدف.
        overlay.pages[0].mediabox = RectangleObject(mediabox)
        overlay.pages[0].cropbox = RectangleObject(mediabox)
        return overlay

    def _draw_text(self, canvas_: canvas.Canvas, content: TextContent, x: float, y: float) -> None:
        canvas_.setFont(self.font_name, content.font_size)
        canvas_.setFillColorRGB(*content.color)
        canvas_.drawString(x, y, content.text)

    @staticmethod
    def _draw_image(canvas_: canvas.Canvas, content: ImageContent, x: float, y: float, width: float, height: float) -> None:
        canvas_.drawImage(
            ImageReader(BytesIO(content.data)),
            x,
            y,
            width=width,
            height=height,
            mask="auto",
        )


class CompositingService:
    """واجهة الخدمة: تطبيق العلامات على ملف محفوظ وحفظ الناتج في التخزين."""

    def __init__(self, storage: LocalStorage | None = None, engine: CompositingEngine | None = None) -> None:
        self.storage = storage or LocalStorage()
        self.engine = engine or CompositingEngine()

    def apply(self, pdf_path: Path, watermarks: Iterable[Watermark]) -> Path:
        document = load_document(Path(pdf_path).read_bytes())
        result = self.engine.composite(document, watermarks)
        return self.storage.save_bytes(result, suffix=".pdf")
