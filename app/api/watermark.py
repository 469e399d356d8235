from pathlib import Path
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile, status
from pydantic import ValidationError as SchemaValidationError

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.models import (
    LayoutRequest,
    TextWatermarkCreate,
    WatermarkCommitRequest,
    WatermarkOut,
    WatermarkUpdate,
)
from app.models.watermark import WatermarkFields
from app.services.compositing_service import CompositingService
from app.services.preview_service import PreviewSurface
from app.services.watermarks import ALL_PAGES
from app.storage.local import LocalStorage
from app.storage.registry import RegisteredFile, get_document, register_document, unregister_document
from app.utils.file_utils import ensure_image, ensure_pdf, page_set_from_range
from app.utils.pdf_preview import render_page_preview, render_page_raster

router = APIRouter(prefix="/pdf/watermark", tags=["PDF Watermark"])

settings = get_settings()
logger = configure_logging("api.watermark")
storage = LocalStorage()
compositing_service = CompositingService(storage)


def _card(entry: RegisteredFile) -> dict:
    preview = render_page_preview(entry.path, 1)
    card = entry.to_card(preview=preview)
    card["is_temp"] = True
    return card


def _check_page(entry: RegisteredFile, page: int) -> None:
    if page < 1 or page > entry.page_count:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"رقم الصفحة {page} خارج نطاق الملف ({entry.page_count} صفحة).",
        )


def _scope_options(entry: RegisteredFile, fields: WatermarkFields) -> dict:
    options = fields.domain_options()
    if fields.page_range is not None:
        options["pages"] = page_set_from_range(fields.page_range, entry.page_count)
    elif fields.pages is not None:
        options["pages"] = set(fields.pages)
    return options


def _listing(entry: RegisteredFile) -> list[dict]:
    return [WatermarkOut.from_domain(w).model_dump() for w in entry.watermarks]


# ----------------------------------------------------------------------
# الملف والمعاينة
# ----------------------------------------------------------------------
@router.post("/upload", summary="رفع ملف لتحضير تطبيق العلامة المائية")
async def upload_pdf(file: UploadFile = File(...)) -> dict:
    ensure_pdf(file)
    temp_path = storage.save_upload(file, temp=True)
    entry = register_document(temp_path, file.filename)
    logger.info("تم رفع ملف للعلامة المائية: %s (%d صفحة)", file.filename, entry.page_count)
    return {"status": "ok", "file": _card(entry)}


@router.delete("/{file_id}", summary="إغلاق الملف وحذف علاماته المائية")
async def close_document(file_id: str) -> dict:
    entry = get_document(file_id)
    unregister_document(file_id)
    storage.cleanup([entry.path])
    return {"status": "ok"}


@router.get("/{file_id}/pages/{page}", summary="صورة الصفحة للمعاينة التفاعلية مع أبعادها")
async def page_raster(file_id: str, page: int, width: Optional[int] = Query(default=None, gt=0)) -> dict:
    entry = get_document(file_id)
    _check_page(entry, page)
    raster = render_page_raster(entry.path, page, target_width=width or settings.preview_max_width)
    return {
        "status": "ok",
        "page": page,
        "preview": raster.to_data_url(),
        "raster_width": raster.raster_width,
        "raster_height": raster.raster_height,
        "page_width": raster.page_width,
        "page_height": raster.page_height,
        "render_scale": raster.render_scale,
    }


@router.post("/{file_id}/layout", summary="مواضع العلامات المائية على صورة الصفحة المعروضة")
async def overlay_layout(file_id: str, payload: LayoutRequest) -> dict:
    entry = get_document(file_id)
    _check_page(entry, payload.page)

    surface = PreviewSurface(entry.watermarks)
    surface.load_page(payload.page, entry.document.pages[payload.page - 1])
    surface.raster_ready(payload.raster_width, payload.raster_height)
    surface.resize(
        payload.container_width or payload.raster_width,
        payload.container_height or payload.raster_height,
    )
    transform = surface.transform()
    return {
        "status": "ok",
        "page": payload.page,
        "render_scale": transform.render_scale,
        "display": {
            "width": transform.display.width,
            "height": transform.display.height,
            "offset_x": transform.display.offset_x,
            "offset_y": transform.display.offset_y,
        },
        "overlays": [box.to_dict() for box in surface.overlays()],
    }


@router.post("/{file_id}/preview", summary="معاينة صفحة بعد تطبيق العلامات المائية فعليًا")
async def preview_watermark(file_id: str, page: int = Query(default=1, ge=1)) -> dict:
    entry = get_document(file_id)
    _check_page(entry, page)
    temp_path = compositing_service.apply(entry.path, entry.watermarks)
    try:
        preview = render_page_raster(temp_path, page, target_width=settings.preview_max_width)
    finally:
        storage.cleanup([temp_path])
    return {"status": "ok", "page": page, "preview": preview.to_data_url()}


# ----------------------------------------------------------------------
# العلامات المائية (CRUD)
# ----------------------------------------------------------------------
@router.get("/{file_id}/watermarks", summary="قائمة العلامات المائية بترتيب الرسم")
async def list_watermarks(file_id: str) -> dict:
    entry = get_document(file_id)
    return {"status": "ok", "watermarks": _listing(entry)}


@router.post("/{file_id}/watermarks/text", summary="إضافة علامة مائية نصية")
async def create_text_watermark(file_id: str, payload: TextWatermarkCreate) -> dict:
    entry = get_document(file_id)
    watermark = entry.watermarks.create_text(
        payload.text,
        font_size=payload.font_size,
        color=payload.color.as_tuple() if payload.color else None,
        **_scope_options(entry, payload),
    )
    logger.info("تمت إضافة علامة نصية %s إلى الملف %s", watermark.id, entry.filename)
    return {"status": "ok", "watermark": WatermarkOut.from_domain(watermark).model_dump()}


@router.post("/{file_id}/watermarks/image", summary="إضافة علامة مائية من صورة PNG أو JPEG")
async def create_image_watermark(
    file_id: str,
    file: UploadFile = File(...),
    scale: Optional[float] = Form(default=None, gt=0),
    position: Optional[str] = Form(default=None),
    opacity: Optional[float] = Form(default=None),
    rotation: Optional[float] = Form(default=None),
    page_range: Optional[str] = Form(default=None),
) -> dict:
    entry = get_document(file_id)
    ensure_image(file)
    try:
        fields = WatermarkFields(position=position, opacity=opacity, rotation=rotation, page_range=page_range)
    except SchemaValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="; ".join(error["msg"] for error in exc.errors()),
        ) from exc

    data = await file.read()
    watermark = entry.watermarks.create_image(data, scale=scale, **_scope_options(entry, fields))
    logger.info("تمت إضافة علامة صورة %s إلى الملف %s", watermark.id, entry.filename)
    return {"status": "ok", "watermark": WatermarkOut.from_domain(watermark).model_dump()}


@router.patch("/{file_id}/watermarks/{watermark_id}", summary="تعديل حقول علامة مائية")
async def update_watermark(file_id: str, watermark_id: str, payload: WatermarkUpdate) -> dict:
    entry = get_document(file_id)
    changes = {**payload.content_changes(), **_scope_options(entry, payload)}
    if payload.all_pages:
        changes["pages"] = ALL_PAGES
    watermark = entry.watermarks.update(watermark_id, **changes)
    return {"status": "ok", "watermark": WatermarkOut.from_domain(watermark).model_dump()}


@router.post("/{file_id}/watermarks/{watermark_id}/duplicate", summary="نسخ علامة مائية بمعرف جديد")
async def duplicate_watermark(file_id: str, watermark_id: str) -> dict:
    entry = get_document(file_id)
    watermark = entry.watermarks.duplicate(watermark_id)
    return {"status": "ok", "watermark": WatermarkOut.from_domain(watermark).model_dump()}


@router.delete("/{file_id}/watermarks/{watermark_id}", summary="حذف علامة مائية")
async def delete_watermark(file_id: str, watermark_id: str) -> dict:
    entry = get_document(file_id)
    entry.watermarks.delete(watermark_id)
    return {"status": "ok", "watermarks": _listing(entry)}


# ----------------------------------------------------------------------
# التصدير
# ----------------------------------------------------------------------
@router.post("/commit", summary="تطبيق العلامات المائية وإرجاع ملف جديد")
async def commit_watermark(payload: WatermarkCommitRequest) -> dict:
    entry = get_document(payload.file_id)
    if not len(entry.watermarks):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="أضف علامة مائية واحدة على الأقل قبل التصدير.",
        )

    result_path = compositing_service.apply(entry.path, entry.watermarks)

    output_name = payload.output_filename or f"{Path(entry.filename).stem}_wm.pdf"
    public_path = storage.register_public_download(result_path, output_name)
    storage.cleanup([result_path])
    result_entry = register_document(public_path, public_path.name)

    card = result_entry.to_card(preview=render_page_preview(public_path, 1))
    card["download_url"] = f"/downloads/{public_path.name}"
    card["is_temp"] = False

    logger.info("تم تطبيق %d علامة مائية على الملف %s", len(entry.watermarks), entry.filename)

    return {
        "status": "ok",
        "message": "تم تطبيق العلامة المائية بنجاح.",
        "result": card,
    }
