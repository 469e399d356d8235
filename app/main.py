from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Iterable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.api import routers
from app.core.config import get_settings
from app.core.errors import WatermarkError
from app.core.logging import configure_logging

# === إعدادات وتسجيل ===
settings = get_settings()
logger = configure_logging()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
)


# === CORS ===
def _as_list(val: Iterable | str | None, fallback: list[str]) -> list[str]:
    if val is None:
        return fallback
    if isinstance(val, (list, tuple, set)):
        return [str(x).strip() for x in val if str(x).strip()] or fallback
    s = str(val).strip()
    if not s:
        return fallback
    # يدعم "a,b,c" أو JSON list مثل '["a","b"]'
    if s.startswith("["):
        try:
            return [str(x).strip() for x in json.loads(s) if str(x).strip()]
        except ValueError:
            logger.warning("تعذر قراءة قائمة الأصول المسموح بها: %s", s)
    return [x.strip() for x in s.split(",") if x.strip()]


allow_origins = _as_list(settings.allow_origins or os.getenv("ALLOWED_ORIGINS"), fallback=["*"])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


# === أخطاء العلامات المائية ===
@app.exception_handler(WatermarkError)
async def watermark_error_handler(request: Request, exc: WatermarkError) -> JSONResponse:
    logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


# === Routers ===
for router in routers:
    app.include_router(router)

# === Static downloads ===
downloads_dir: Path = settings.public_dir / "downloads"
downloads_dir.mkdir(parents=True, exist_ok=True)
app.mount("/downloads", StaticFiles(directory=str(downloads_dir)), name="downloads")


@app.get("/health")
async def health_check() -> dict:
    logger.debug("Health check invoked")
    return {"status": "ok", "message": "PDF Watermark Studio is running"}
