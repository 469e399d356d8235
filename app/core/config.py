from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """إعدادات التطبيق العامة مع تحميل القيم من ملف .env عند توفره."""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[2] / ".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "PDF Watermark Studio"
    app_version: str = "0.1.0"

    base_dir: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2])
    storage_dir: Optional[Path] = None
    public_dir: Optional[Path] = None
    outputs_dir: Optional[Path] = None
    temp_dir: Optional[Path] = None

    allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    # --- المعاينة والسحب ---
    preview_max_width: int = Field(1200, gt=0)
    drag_commit_interval_ms: int = Field(50, ge=0)

    # --- القيم الافتراضية للعلامات المائية ---
    watermark_font: str = "Helvetica"
    default_font_size: float = Field(48, gt=0)
    default_opacity: float = Field(30, ge=0, le=100)
    default_rotation: float = -45
    default_image_scale: float = Field(0.5, gt=0)
    rotation_limit: float = Field(90, gt=0)

    log_level: str = "INFO"

    def configure_paths(self) -> None:
        """تهيئة المسارات الافتراضية وإنشاء المجلدات في حال غيابها."""
        self.storage_dir = (self.storage_dir or (self.base_dir / "outputs")).resolve()
        self.public_dir = (self.public_dir or (self.base_dir / "public")).resolve()
        self.outputs_dir = (self.outputs_dir or (self.storage_dir / "processed")).resolve()
        self.temp_dir = (self.temp_dir or (self.storage_dir / "tmp")).resolve()

        for directory in (self.storage_dir, self.outputs_dir, self.temp_dir, self.public_dir):
            directory.mkdir(parents=True, exist_ok=True)

        (self.public_dir / "downloads").mkdir(parents=True, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    settings = Settings()
    settings.configure_paths()
    return settings
