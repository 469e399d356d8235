from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional
from uuid import uuid4

from fastapi import HTTPException, status

from app.core.errors import ValidationError
from app.services.compositing_service import Document, load_document
from app.services.watermarks import WatermarkCollection


@dataclass
class RegisteredFile:
    file_id: str
    path: Path
    filename: str
    size_bytes: int
    created_at: datetime
    mime_type: str
    document: Document
    watermarks: WatermarkCollection = field(repr=False)

    @property
    def page_count(self) -> int:
        return self.document.page_count

    def to_card(self, preview: Optional[str] = None) -> dict:
        card: dict = {
            "file_id": self.file_id,
            "filename": self.filename,
            "size_bytes": self.size_bytes,
            "page_count": self.page_count,
            "pages": [
                {"page": number, "width": size.width, "height": size.height}
                for number, size in enumerate(self.document.pages, start=1)
            ],
        }
        if preview:
            card["preview"] = preview
        return card


_registry: Dict[str, RegisteredFile] = {}
_ttl = timedelta(hours=2)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def register_document(path: Path, filename: str | None = None) -> RegisteredFile:
    """تسجيل ملف PDF مؤقتًا مع قائمة علامات مائية فارغة."""
    cleanup()
    filename = filename or path.name
    mime_type, _ = mimetypes.guess_type(filename)

    try:
        document = load_document(path.read_bytes())
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"تعذر قراءة ملف PDF: {exc}",
        ) from exc

    file_id = uuid4().hex
    entry = RegisteredFile(
        file_id=file_id,
        path=path,
        filename=filename,
        size_bytes=path.stat().st_size,
        created_at=_now(),
        mime_type=mime_type or "application/pdf",
        document=document,
        watermarks=WatermarkCollection(document.page_count),
    )
    _registry[file_id] = entry
    return entry


def get_document(file_id: str) -> RegisteredFile:
    cleanup()
    entry = _registry.get(file_id)
    if not entry:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="المعرف المطلوب غير موجود أو انتهت صلاحيته.",
        )
    if not entry.path.exists():
        _registry.pop(file_id, None)
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail="الملف لم يعد متاحًا على الخادم.",
        )
    return entry


def unregister_document(file_id: str) -> None:
    _registry.pop(file_id, None)


def cleanup() -> None:
    """حذف السجلات المنتهية الصلاحية وفق مدة الاحتفاظ المحددة."""
    now = _now()
    expired = [file_id for file_id, entry in _registry.items() if now - entry.created_at > _ttl]
    for file_id in expired:
        _registry.pop(file_id, None)
