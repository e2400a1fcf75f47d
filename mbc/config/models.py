from pathlib import Path
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

MB = 1024 * 1024

DEFAULT_EXTENSIONS: Dict[str, List[str]] = {
    "image": [".jpg", ".jpeg", ".png", ".webp", ".heic", ".heif", ".tiff", ".svg", ".bmp"],
    "audio": [".mp3", ".wav", ".flac", ".aac", ".ogg", ".m4a", ".opus", ".wma"],
    "video": [".mp4", ".avi", ".mkv", ".mov", ".webm", ".3gp", ".wmv", ".flv"],
    "document": [".pdf", ".docx", ".txt", ".epub", ".rtf", ".md", ".doc", ".html", ".htm"],
}

def _normalize_extensions(values: List[str]) -> List[str]:
    return [v.lower() if v.startswith(".") else f".{v.lower()}" for v in values]

class GeneralConfig(BaseModel):
    output_dir: str = "~/.mbc/output"
    gallery_dir: Optional[str] = "~/Pictures"
    album_name: str = "ConvertPro"
    log_path: Optional[str] = None
    debug: bool = False
    item_timeout_s: Optional[float] = Field(default=None, gt=0)

    @property
    def output_path(self) -> Path:
        return Path(self.output_dir).expanduser()

    @property
    def gallery_path(self) -> Optional[Path]:
        return Path(self.gallery_dir).expanduser() if self.gallery_dir else None

class HistoryConfig(BaseModel):
    """Conversion history storage."""
    path: str = "~/.mbc/storage.json"
    key: str = "conversion_history"
    max_items: int = Field(default=50, ge=1)

class LimitsConfig(BaseModel):
    """Maximum accepted input size per media type, in bytes."""
    image: int = Field(default=50 * MB, gt=0)
    audio: int = Field(default=100 * MB, gt=0)
    video: int = Field(default=500 * MB, gt=0)
    document: int = Field(default=25 * MB, gt=0)

    def for_type(self, media_type: str) -> int:
        return getattr(self, media_type)

class ExtensionsConfig(BaseModel):
    image: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS["image"]))
    audio: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS["audio"]))
    video: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS["video"]))
    document: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS["document"]))

    @field_validator("image", "audio", "video", "document")
    @classmethod
    def normalize(cls, v: List[str]) -> List[str]:
        return _normalize_extensions(v)

    def for_type(self, media_type: str) -> List[str]:
        return getattr(self, media_type)

class FFmpegConfig(BaseModel):
    binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    log_level: str = "warning"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"quiet", "panic", "fatal", "error", "warning", "info", "verbose", "debug"}
        if v not in allowed:
            raise ValueError(f"Invalid ffmpeg log_level '{v}'. Must be one of: {', '.join(sorted(allowed))}")
        return v

class UiConfig(BaseModel):
    """UI display configuration."""
    recent_items_max: int = Field(default=8, ge=1, le=50)

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    extensions: ExtensionsConfig = Field(default_factory=ExtensionsConfig)
    ffmpeg: FFmpegConfig = Field(default_factory=FFmpegConfig)
    ui: UiConfig = Field(default_factory=UiConfig)
