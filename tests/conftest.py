"""
Pytest configuration for the watermark service.
"""

import logging
import os
import sys
import tempfile
from io import BytesIO
from pathlib import Path

# Storage must point at a scratch directory before the settings are cached.
_SCRATCH = Path(tempfile.mkdtemp(prefix="wm-tests-"))
os.environ.setdefault("STORAGE_DIR", str(_SCRATCH / "outputs"))
os.environ.setdefault("PUBLIC_DIR", str(_SCRATCH / "public"))

import pytest
from PIL import Image
from reportlab.pdfgen import canvas

from app.services.watermarks import WatermarkCollection


@pytest.fixture(autouse=True)
def configure_logging():
    """Keep test output quiet: only warnings and errors reach the console."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(name)s - %(levelname)s - %(message)s"))

    root_logger.addHandler(console_handler)
    root_logger.setLevel(logging.WARNING)

    yield

    root_logger.handlers.clear()


def build_pdf(page_count: int = 3, pagesize=(612, 792)) -> bytes:
    packet = BytesIO()
    c = canvas.Canvas(packet, pagesize=pagesize)
    for number in range(1, page_count + 1):
        c.setFont("Helvetica", 12)
        c.drawString(72, 72, f"Body text on sheet {number}")
        c.showPage()
    c.save()
    return packet.getvalue()


def build_image(fmt: str = "PNG", size=(40, 20), color=(200, 30, 30)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def sample_pdf() -> bytes:
    """Three letter-size pages."""
    return build_pdf()


@pytest.fixture
def png_bytes() -> bytes:
    return build_image("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return build_image("JPEG")


@pytest.fixture
def gif_bytes() -> bytes:
    return build_image("GIF")


@pytest.fixture
def collection() -> WatermarkCollection:
    return WatermarkCollection(page_count=3)


class FakeClock:
    """Manually advanced clock for throttle tests."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
