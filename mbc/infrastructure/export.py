import shutil
from pathlib import Path

from mbc.infrastructure.media_library import unique_path

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".mp3": "audio/mpeg",
    ".aac": "audio/aac",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".mp4": "video/mp4",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".mkv": "video/x-matroska",
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".html": "text/html",
    ".txt": "text/plain",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def mime_type_for(path: Path) -> str:
    return MIME_TYPES.get(Path(path).suffix.lower(), DEFAULT_MIME_TYPE)


def export_file(path: Path, dest_dir: Path) -> Path:
    """Copies a converted file into dest_dir without overwriting anything there."""
    if not path.is_file():
        raise FileNotFoundError(f"Nothing to export: {path}")
    dest_dir.mkdir(parents=True, exist_ok=True)
    target = unique_path(dest_dir / path.name)
    shutil.copy2(path, target)
    return target
