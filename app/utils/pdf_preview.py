import base64
from dataclasses import dataclass
from pathlib import Path

import fitz  # PyMuPDF


@dataclass(frozen=True)
class PageRaster:
    png: bytes
    raster_width: int
    raster_height: int
    page_width: float
    page_height: float

    @property
    def render_scale(self) -> float:
        return self.raster_width / self.page_width

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.png).decode("utf-8")
        return f"data:image/png;base64,{encoded}"


def render_page_raster(pdf_path: Path, page_number: int = 1, target_width: int = 1200) -> PageRaster:
    """
    رسم صفحة من ملف PDF كصورة PNG بعرض مطلوب بالبكسل.

    Args:
        pdf_path: المسار إلى ملف PDF.
        page_number: رقم الصفحة (يبدأ من 1).
        target_width: عرض الصورة الناتجة بالبكسل؛ مقياس الرسم = العرض / عرض الصفحة بالنقاط.
    """
    if page_number < 1:
        raise ValueError("page_number must be >= 1")
    if target_width < 1:
        raise ValueError("target_width must be >= 1")

    with fitz.open(pdf_path) as document:
        if page_number > document.page_count:
            raise ValueError("page_number exceeds document pages")

        page = document.load_page(page_number - 1)
        # page.rect هو صندوق القص بعد تطبيق /Rotate، كما في load_document.
        page_width = page.rect.width
        page_height = page.rect.height
        zoom = target_width / page_width
        pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
        image_bytes = pixmap.tobytes("png")

    return PageRaster(
        png=image_bytes,
        raster_width=pixmap.width,
        raster_height=pixmap.height,
        page_width=page_width,
        page_height=page_height,
    )


def render_page_preview(
    pdf_path: Path,
    page_number: int = 1,
    zoom: float = 1.5,
) -> str:
    """
    إنشاء صورة مصغرة للصفحة المحددة داخل ملف PDF وإرجاعها كسلسلة base64.
    """
    with fitz.open(pdf_path) as document:
        if page_number < 1 or page_number > document.page_count:
            raise ValueError("page_number is outside the document")
        width = document.load_page(page_number - 1).rect.width

    raster = render_page_raster(pdf_path, page_number, target_width=max(1, round(width * zoom)))
    return raster.to_data_url()
