from . import watermark

routers = [
    watermark.router,
]

__all__ = [
    "routers",
]
