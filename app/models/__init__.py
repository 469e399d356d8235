from .watermark import (
    CustomAnchor,
    LayoutRequest,
    RGBColor,
    TextWatermarkCreate,
    WatermarkCommitRequest,
    WatermarkOut,
    WatermarkUpdate,
)

__all__ = [
    "CustomAnchor",
    "LayoutRequest",
    "RGBColor",
    "TextWatermarkCreate",
    "WatermarkCommitRequest",
    "WatermarkOut",
    "WatermarkUpdate",
]
