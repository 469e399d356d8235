from typing import List, Tuple

from fastapi import HTTPException, UploadFile, status

from app.core.errors import ParseError
from app.services.watermarks import PageScope, PageSet, canonical_scope

ALL_PAGES_KEYWORD = "all"
IMAGE_CONTENT_TYPES = {"image/png", "image/jpeg", "image/jpg"}


def ensure_pdf(upload: UploadFile) -> None:
    """التحقق من أن الملف المرفوع هو PDF."""
    content_type = (upload.content_type or "").lower()
    if not content_type.endswith("pdf"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="يجب أن يكون الملف من نوع PDF.",
        )


def ensure_image(upload: UploadFile) -> None:
    """التحقق من أن صورة العلامة المائية من نوع PNG أو JPEG."""
    content_type = (upload.content_type or "").lower()
    if content_type not in IMAGE_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="صيغة الصورة غير مدعومة. استخدم PNG أو JPEG.",
        )


def _parse_number(token: str, raw: str) -> int:
    raw = raw.strip()
    if not raw.isdecimal():
        raise ParseError(token)
    return int(raw)


def _clamp(page: int, total_pages: int) -> int:
    return max(1, min(page, total_pages))


def split_page_tokens(expression: str) -> List[Tuple[str, int, int]]:
    """
    تقسيم نص النطاقات (مثل 1-3,5,8-10) إلى أجزاء (النص، البداية، النهاية) دون تقييد.
    """
    result: List[Tuple[str, int, int]] = []
    segments = [segment.strip() for segment in expression.split(",") if segment.strip()]
    if not segments:
        raise ParseError(expression.strip() or expression, "page range has no pages")

    for segment in segments:
        if "-" in segment:
            start_str, end_str = segment.split("-", 1)
            start = _parse_number(segment, start_str)
            end = _parse_number(segment, end_str)
            if start > end:
                raise ParseError(segment, "range start is greater than its end")
        else:
            start = end = _parse_number(segment, segment)
        result.append((segment, start, end))

    return result


def parse_page_range(expression: str | None, total_pages: int) -> List[int]:
    """
    تحويل نص النطاقات إلى فهارس صفحات مرتبة تبدأ من الصفر ودون تكرار.

    النص الفارغ أو الكلمة ``all`` يعنيان جميع الصفحات، والأرقام خارج
    حدود الملف تُقيَّد ضمن [1, total_pages] بدلًا من رفض الطلب.
    """
    if total_pages < 1:
        return []

    if expression is None or not expression.strip() or expression.strip().lower() == ALL_PAGES_KEYWORD:
        return list(range(total_pages))

    indices = set()
    for _, start, end in split_page_tokens(expression):
        first = _clamp(start, total_pages)
        last = _clamp(end, total_pages)
        indices.update(range(first - 1, last))

    return sorted(indices)


def page_set_from_range(expression: str | None, total_pages: int) -> PageScope:
    """نطاق الصفحات النصي كنطاق علامة مائية موحَّد (كل الصفحات تصبح ALL_PAGES)."""
    pages = PageSet(frozenset(index + 1 for index in parse_page_range(expression, total_pages)))
    return canonical_scope(pages, total_pages)
