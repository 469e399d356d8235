import logging
from logging import Logger

from .config import get_settings


def configure_logging(name: str | None = None) -> Logger:
    """تهيئة مسجل موحد للتطبيق، مع مسجلات فرعية اختيارية لكل وحدة."""
    settings = get_settings()

    root = logging.getLogger(settings.app_name)
    if not root.handlers:
        root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

        handler = logging.StreamHandler()
        formatter = logging.Formatter("[%(levelname)s] %(asctime)s | %(name)s | %(message)s")
        handler.setFormatter(formatter)

        root.addHandler(handler)
        root.propagate = False

    if name:
        return root.getChild(name)
    return root
