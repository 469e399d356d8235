from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from io import BytesIO
from typing import ClassVar, Dict, FrozenSet, Iterable, Iterator, List, NamedTuple, Optional, Tuple, Union
from uuid import uuid4

from PIL import Image, UnidentifiedImageError
from reportlab.pdfbase import pdfmetrics

from app.core.config import get_settings
from app.core.errors import UnsupportedFormatError, ValidationError, WatermarkNotFound
from app.core.logging import configure_logging

logger = configure_logging("watermarks")

SUPPORTED_IMAGE_FORMATS = {"PNG", "JPEG"}
DEFAULT_COLOR: Tuple[float, float, float] = (0.7, 0.7, 0.7)


class Anchor(NamedTuple):
    """نقطة مُطبَّعة (0-1) في فضاء المستند، y = 0 في أسفل الصفحة."""

    x: float
    y: float


# ----------------------------------------------------------------------
# الموضع
# ----------------------------------------------------------------------
class PresetPosition(str, Enum):
    CENTER = "center"
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    DIAGONAL = "diagonal"


# الشكل المائل يأتي من الدوران فقط، لذلك يقع DIAGONAL في المركز.
PRESET_ANCHORS: Dict[PresetPosition, Anchor] = {
    PresetPosition.CENTER: Anchor(0.5, 0.5),
    PresetPosition.TOP_LEFT: Anchor(0.1, 0.9),
    PresetPosition.TOP_RIGHT: Anchor(0.9, 0.9),
    PresetPosition.BOTTOM_LEFT: Anchor(0.1, 0.1),
    PresetPosition.BOTTOM_RIGHT: Anchor(0.9, 0.1),
    PresetPosition.DIAGONAL: Anchor(0.5, 0.5),
}


@dataclass(frozen=True)
class CustomPosition:
    x: float
    y: float

    def __post_init__(self) -> None:
        for axis, value in (("x", self.x), ("y", self.y)):
            if not (0.0 <= value <= 1.0):
                raise ValidationError(f"custom anchor {axis} must be within [0, 1], got {value}")

    @property
    def anchor(self) -> Anchor:
        return Anchor(self.x, self.y)


Position = Union[PresetPosition, CustomPosition]


def to_position(value) -> Position:
    """تحويل قيمة واردة (اسم موضع أو زوج إحداثيات) إلى موضع صالح."""
    if isinstance(value, (PresetPosition, CustomPosition)):
        return value
    if isinstance(value, str):
        try:
            return PresetPosition(value)
        except ValueError:
            raise ValidationError(f"unknown preset position {value!r}") from None
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return CustomPosition(float(value[0]), float(value[1]))
    raise ValidationError(f"unsupported position value {value!r}")


# ----------------------------------------------------------------------
# المحتوى: نص أو صورة
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class TextContent:
    kind: ClassVar[str] = "text"

    text: str
    font_size: float = 48
    color: Tuple[float, float, float] = DEFAULT_COLOR

    def __post_init__(self) -> None:
        if not self.text or not self.text.strip():
            raise ValidationError("text watermark requires non-empty text")
        if not math.isfinite(self.font_size) or self.font_size <= 0:
            raise ValidationError(f"font_size must be positive, got {self.font_size}")
        color = tuple(float(c) for c in self.color)
        if len(color) != 3 or any(not (0.0 <= c <= 1.0) for c in color):
            raise ValidationError(f"color must be three components within [0, 1], got {self.color}")
        object.__setattr__(self, "color", color)


@dataclass(frozen=True)
class ImageContent:
    kind: ClassVar[str] = "image"

    data: bytes
    pixel_width: int
    pixel_height: int
    scale: float = 0.5

    def __post_init__(self) -> None:
        if not self.data:
            raise ValidationError("image watermark requires image bytes")
        if self.pixel_width <= 0 or self.pixel_height <= 0:
            raise ValidationError(
                f"image size must be positive, got {self.pixel_width}x{self.pixel_height}"
            )
        if not math.isfinite(self.scale) or self.scale <= 0:
            raise ValidationError(f"scale must be positive, got {self.scale}")

    @classmethod
    def from_bytes(cls, data: bytes, scale: float = 0.5) -> "ImageContent":
        _, width, height = decode_image(data)
        return cls(data=bytes(data), pixel_width=width, pixel_height=height, scale=scale)

    @property
    def scaled_size(self) -> Tuple[float, float]:
        """الأبعاد بالنقاط: بكسل المصدر يساوي نقطة واحدة عند المقياس 1."""
        return self.pixel_width * self.scale, self.pixel_height * self.scale


Content = Union[TextContent, ImageContent]


def decode_image(data: bytes) -> Tuple[str, int, int]:
    """فك ترميز الصورة والتحقق من أنها PNG أو JPEG، وإرجاع (الصيغة، العرض، الارتفاع)."""
    try:
        with Image.open(BytesIO(data)) as image:
            image_format = image.format
            width, height = image.size
            image.load()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise UnsupportedFormatError(f"image bytes could not be decoded: {exc}") from exc

    if image_format not in SUPPORTED_IMAGE_FORMATS:
        raise UnsupportedFormatError(f"unsupported image format {image_format!r}, use PNG or JPEG")
    return image_format, width, height


# ----------------------------------------------------------------------
# نطاق الصفحات
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class AllPages:
    def includes(self, page_number: int) -> bool:
        return True


ALL_PAGES = AllPages()


@dataclass(frozen=True)
class PageSet:
    pages: FrozenSet[int]

    def __post_init__(self) -> None:
        object.__setattr__(self, "pages", frozenset(int(p) for p in self.pages))

    def includes(self, page_number: int) -> bool:
        return page_number in self.pages

    def sorted(self) -> List[int]:
        return sorted(self.pages)


PageScope = Union[AllPages, PageSet]


def to_scope(value) -> PageScope:
    if value is None or isinstance(value, AllPages):
        return ALL_PAGES
    if isinstance(value, PageSet):
        return value
    return PageSet(frozenset(value))


def canonical_scope(scope: PageScope, page_count: int) -> PageScope:
    """
    توحيد تمثيل "كل الصفحات": مجموعة فارغة أو مجموعة تغطي كل الصفحات
    تصبح ``ALL_PAGES`` حتى لا يتعايش تمثيلان لنفس المعنى.
    """
    if isinstance(scope, AllPages):
        return ALL_PAGES
    for page in scope.pages:
        if page < 1 or page > page_count:
            raise ValidationError(f"page {page} is outside the document (1-{page_count})")
    if not scope.pages or len(scope.pages) == page_count:
        return ALL_PAGES
    return scope


# ----------------------------------------------------------------------
# العلامة المائية
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Watermark:
    content: Content
    position: Position = PresetPosition.DIAGONAL
    opacity: float = 30
    rotation: float = -45
    pages: PageScope = ALL_PAGES
    id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        if not isinstance(self.content, (TextContent, ImageContent)):
            raise ValidationError("watermark content must be text or image")
        if not isinstance(self.position, (PresetPosition, CustomPosition)):
            raise ValidationError(f"unsupported position {self.position!r}")
        if not (0 <= self.opacity <= 100):
            raise ValidationError(f"opacity must be within [0, 100], got {self.opacity}")
        if not math.isfinite(self.rotation):
            raise ValidationError(f"rotation must be finite, got {self.rotation}")

    @property
    def kind(self) -> str:
        return self.content.kind


def resolve_anchor(watermark: Watermark, override: Optional[Anchor] = None) -> Anchor:
    """
    الموضع المُطبَّع للعلامة. الموضع المؤقت أثناء السحب (override) يتقدم
    على القيمة المحفوظة دون تعديلها.
    """
    if override is not None:
        return Anchor(*override)
    if isinstance(watermark.position, CustomPosition):
        return watermark.position.anchor
    return PRESET_ANCHORS.get(watermark.position, PRESET_ANCHORS[PresetPosition.CENTER])


def applies_to(watermark: Watermark, page_number: int) -> bool:
    return watermark.pages.includes(page_number)


# ----------------------------------------------------------------------
# مقاييس الخط المشتركة بين المعاينة والتصدير
# ----------------------------------------------------------------------
def measure_text(text: str, font_size: float, font_name: Optional[str] = None) -> float:
    font_name = font_name or get_settings().watermark_font
    return pdfmetrics.stringWidth(text, font_name, font_size)


def baseline_factor(font_name: Optional[str] = None) -> float:
    """
    المسافة بين مركز صندوق النص (ارتفاعه = حجم الخط) وخط الأساس، كنسبة من
    حجم الخط. تساوي (الصعود + النزول) / 2 لأن النزول سالب.
    """
    font_name = font_name or get_settings().watermark_font
    ascent, descent = pdfmetrics.getAscentDescent(font_name, 1000)
    return (ascent + descent) / 2000.0


def baseline_offset(font_size: float, font_name: Optional[str] = None) -> float:
    return font_size * baseline_factor(font_name)


# ----------------------------------------------------------------------
# قائمة العلامات (CRUD)
# ----------------------------------------------------------------------
_CONTENT_FIELDS = {
    "text": ("text",),
    "image": ("scale",),
}
_SHARED_CONTENT_FIELDS = {"font_size", "color"}
_WATERMARK_FIELDS = {"position", "opacity", "rotation", "pages"}


class WatermarkCollection:
    """
    قائمة العلامات المائية لمستند واحد. ترتيب القائمة هو ترتيب الرسم
    (العناصر اللاحقة في الأعلى)، وكل تعديل يمر بتوحيد نطاق الصفحات.
    """

    def __init__(self, page_count: int, watermarks: Iterable[Watermark] = ()) -> None:
        if page_count < 1:
            raise ValidationError(f"document must have at least one page, got {page_count}")
        self.page_count = page_count
        self._items: List[Watermark] = []
        for watermark in watermarks:
            self.add(watermark)

    def __iter__(self) -> Iterator[Watermark]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, watermark_id: str) -> bool:
        return any(w.id == watermark_id for w in self._items)

    def list(self) -> List[Watermark]:
        return list(self._items)

    # ------------------------------------------------------------------
    def add(self, watermark: Watermark) -> Watermark:
        if watermark.id in self:
            raise ValidationError(f"watermark {watermark.id!r} already exists")
        watermark = replace(watermark, pages=canonical_scope(watermark.pages, self.page_count))
        self._items.append(watermark)
        logger.info("Added %s watermark %s", watermark.kind, watermark.id)
        return watermark

    def create_text(
        self,
        text: str,
        font_size: Optional[float] = None,
        color: Optional[Tuple[float, float, float]] = None,
        **options,
    ) -> Watermark:
        settings = get_settings()
        content = TextContent(
            text=text,
            font_size=settings.default_font_size if font_size is None else font_size,
            color=DEFAULT_COLOR if color is None else tuple(color),
        )
        return self.add(self._new(content, **options))

    def create_image(self, data: bytes, scale: Optional[float] = None, **options) -> Watermark:
        settings = get_settings()
        content = ImageContent.from_bytes(data, settings.default_image_scale if scale is None else scale)
        return self.add(self._new(content, **options))

    @staticmethod
    def _new(content: Content, **options) -> Watermark:
        settings = get_settings()
        unknown = set(options) - _WATERMARK_FIELDS
        if unknown:
            raise ValidationError(f"unknown watermark fields: {', '.join(sorted(unknown))}")
        return Watermark(
            content=content,
            position=to_position(options.get("position", PresetPosition.DIAGONAL)),
            opacity=options.get("opacity", settings.default_opacity),
            rotation=options.get("rotation", settings.default_rotation),
            pages=to_scope(options.get("pages")),
        )

    def get(self, watermark_id: str) -> Watermark:
        for watermark in self._items:
            if watermark.id == watermark_id:
                return watermark
        raise WatermarkNotFound(watermark_id)

    def _index(self, watermark_id: str) -> int:
        for index, watermark in enumerate(self._items):
            if watermark.id == watermark_id:
                return index
        raise WatermarkNotFound(watermark_id)

    def update(self, watermark_id: str, **changes) -> Watermark:
        """تعديل أي حقل؛ حقول المحتوى تُطبَّق على النص أو الصورة حسب النوع."""
        index = self._index(watermark_id)
        current = self._items[index]

        allowed_content = set(_CONTENT_FIELDS[current.kind])
        if current.kind == "text":
            allowed_content |= _SHARED_CONTENT_FIELDS
        unknown = set(changes) - allowed_content - _WATERMARK_FIELDS
        if unknown:
            raise ValidationError(
                f"fields not valid for a {current.kind} watermark: {', '.join(sorted(unknown))}"
            )

        content_changes = {k: v for k, v in changes.items() if k in allowed_content}
        content = replace(current.content, **content_changes) if content_changes else current.content

        watermark_changes = {k: v for k, v in changes.items() if k in _WATERMARK_FIELDS}
        if "position" in watermark_changes:
            watermark_changes["position"] = to_position(watermark_changes["position"])
        if "pages" in watermark_changes:
            watermark_changes["pages"] = canonical_scope(to_scope(watermark_changes["pages"]), self.page_count)

        updated = replace(current, content=content, **watermark_changes)
        self._items[index] = updated
        logger.debug("Updated watermark %s: %s", watermark_id, sorted(changes))
        return updated

    def commit_position(self, watermark_id: str, anchor: Anchor) -> Watermark:
        return self.update(watermark_id, position=CustomPosition(anchor[0], anchor[1]))

    def duplicate(self, watermark_id: str) -> Watermark:
        source = self.get(watermark_id)
        # كل الحقول ثابتة (bytes, tuple, frozenset) فلا توجد بنية مشتركة قابلة للتعديل.
        copy = replace(source, id=uuid4().hex)
        self._items.append(copy)
        logger.info("Duplicated watermark %s as %s", watermark_id, copy.id)
        return copy

    def delete(self, watermark_id: str) -> None:
        index = self._index(watermark_id)
        del self._items[index]
        logger.info("Deleted watermark %s", watermark_id)

    def move(self, watermark_id: str, index: int) -> None:
        """تغيير ترتيب الرسم."""
        watermark = self._items.pop(self._index(watermark_id))
        index = max(0, min(index, len(self._items)))
        self._items.insert(index, watermark)

    # ------------------------------------------------------------------
    # نطاق الصفحات
    # ------------------------------------------------------------------
    def toggle_page(self, watermark_id: str, page_number: int) -> Watermark:
        current = self.get(watermark_id)
        if page_number < 1 or page_number > self.page_count:
            raise ValidationError(f"page {page_number} is outside the document (1-{self.page_count})")
        pages = set(range(1, self.page_count + 1)) if isinstance(current.pages, AllPages) else set(current.pages.pages)
        pages.symmetric_difference_update({page_number})
        return self.update(watermark_id, pages=pages)

    def apply_to_all_pages(self, watermark_id: str) -> Watermark:
        return self.update(watermark_id, pages=ALL_PAGES)

    def only_page(self, watermark_id: str, page_number: int) -> Watermark:
        return self.update(watermark_id, pages={page_number})

    def set_page_count(self, page_count: int) -> None:
        """تحديث عدد صفحات المستند مع إسقاط الصفحات التي لم تعد موجودة."""
        if page_count < 1:
            raise ValidationError(f"document must have at least one page, got {page_count}")
        self.page_count = page_count
        for index, watermark in enumerate(self._items):
            if isinstance(watermark.pages, PageSet):
                kept = PageSet(frozenset(p for p in watermark.pages.pages if p <= page_count))
                self._items[index] = replace(watermark, pages=canonical_scope(kept, page_count))
