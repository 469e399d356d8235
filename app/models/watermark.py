from typing import List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator

from app.core.config import get_settings
from app.services.watermarks import AllPages, CustomPosition, ImageContent, TextContent, Watermark

PresetName = Literal["center", "top-left", "top-right", "bottom-left", "bottom-right", "diagonal"]


class RGBColor(BaseModel):
    r: float = Field(..., ge=0, le=1)
    g: float = Field(..., ge=0, le=1)
    b: float = Field(..., ge=0, le=1)

    def as_tuple(self) -> Tuple[float, float, float]:
        return self.r, self.g, self.b


class CustomAnchor(BaseModel):
    x: float = Field(..., ge=0, le=1, description="المرساة الأفقية المُطبَّعة (0 = يسار).")
    y: float = Field(..., ge=0, le=1, description="المرساة الرأسية المُطبَّعة (0 = أسفل الصفحة).")


class WatermarkFields(BaseModel):
    """الحقول المشتركة بين الإنشاء والتعديل؛ كل حقل غير مُرسل يبقى كما هو."""

    position: Optional[Union[PresetName, CustomAnchor]] = Field(default=None, description="موضع جاهز أو مرساة مخصصة.")
    opacity: Optional[float] = Field(default=None, ge=0, le=100, description="الشفافية بين 0 و 100.")
    rotation: Optional[float] = Field(default=None, description="زاوية الدوران بالدرجات.")
    pages: Optional[List[int]] = Field(default=None, description="أرقام الصفحات (تبدأ من 1)، أو لا شيء لكل الصفحات.")
    page_range: Optional[str] = Field(default=None, description="نطاق صفحات نصي مثل 1-3,5 أو all.")

    @field_validator("rotation")
    @classmethod
    def limit_rotation(cls, value: Optional[float]) -> Optional[float]:
        limit = get_settings().rotation_limit
        if value is not None and not (-limit <= value <= limit):
            raise ValueError(f"يجب أن تكون زاوية الدوران بين {-limit} و {limit} درجة.")
        return value

    def domain_options(self) -> dict:
        options: dict = {}
        if self.position is not None:
            options["position"] = (
                self.position if isinstance(self.position, str) else (self.position.x, self.position.y)
            )
        if self.opacity is not None:
            options["opacity"] = self.opacity
        if self.rotation is not None:
            options["rotation"] = self.rotation
        return options


class TextWatermarkCreate(WatermarkFields):
    text: str = Field(..., min_length=1, description="نص العلامة المائية.")
    font_size: Optional[float] = Field(default=None, gt=0, description="حجم الخط بالنقاط.")
    color: Optional[RGBColor] = None


class WatermarkUpdate(WatermarkFields):
    text: Optional[str] = Field(default=None, min_length=1)
    font_size: Optional[float] = Field(default=None, gt=0)
    color: Optional[RGBColor] = None
    scale: Optional[float] = Field(default=None, gt=0)
    all_pages: bool = Field(False, description="إعادة العلامة إلى كل الصفحات.")

    def content_changes(self) -> dict:
        changes: dict = {}
        if self.text is not None:
            changes["text"] = self.text
        if self.font_size is not None:
            changes["font_size"] = self.font_size
        if self.color is not None:
            changes["color"] = self.color.as_tuple()
        if self.scale is not None:
            changes["scale"] = self.scale
        return changes


class LayoutRequest(BaseModel):
    page: int = Field(1, ge=1)
    raster_width: float = Field(0, ge=0, description="عرض صورة الصفحة المرسومة بالبكسل؛ 0 أثناء التحميل.")
    raster_height: float = Field(0, ge=0)
    container_width: Optional[float] = Field(default=None, gt=0, description="عرض الحاوية المعروضة.")
    container_height: Optional[float] = Field(default=None, gt=0)


class WatermarkCommitRequest(BaseModel):
    file_id: str = Field(..., description="معرف ملف PDF المسجل.")
    output_filename: str | None = Field(default=None, description="اسم الملف الناتج (اختياري).")


class WatermarkOut(BaseModel):
    id: str
    kind: Literal["text", "image"]
    position: Union[PresetName, CustomAnchor]
    opacity: float
    rotation: float
    pages: Optional[List[int]] = None
    text: Optional[str] = None
    font_size: Optional[float] = None
    color: Optional[RGBColor] = None
    pixel_width: Optional[int] = None
    pixel_height: Optional[int] = None
    scale: Optional[float] = None

    @classmethod
    def from_domain(cls, watermark: Watermark) -> "WatermarkOut":
        position = watermark.position
        data: dict = {
            "id": watermark.id,
            "kind": watermark.kind,
            "position": (
                CustomAnchor(x=position.x, y=position.y) if isinstance(position, CustomPosition) else position.value
            ),
            "opacity": watermark.opacity,
            "rotation": watermark.rotation,
            "pages": None if isinstance(watermark.pages, AllPages) else watermark.pages.sorted(),
        }
        content = watermark.content
        if isinstance(content, TextContent):
            r, g, b = content.color
            data.update(text=content.text, font_size=content.font_size, color=RGBColor(r=r, g=g, b=b))
        elif isinstance(content, ImageContent):
            data.update(pixel_width=content.pixel_width, pixel_height=content.pixel_height, scale=content.scale)
        return cls(**data)
