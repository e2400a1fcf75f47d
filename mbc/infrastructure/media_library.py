import logging
import shutil
from pathlib import Path
from typing import Optional


def tmp_path_for(output_path: Path) -> Path:
    """Sibling path used while an output is still being written."""
    return output_path.with_name(output_path.name + ".tmp")


def unique_path(path: Path) -> Path:
    """Appends ` (n)` to the stem until the path is free."""
    if not path.exists():
        return path
    n = 1
    while True:
        candidate = path.with_name(f"{path.stem} ({n}){path.suffix}")
        if not candidate.exists():
            return candidate
        n += 1


class MediaLibrary:
    """Publishes finished outputs into an album folder inside the shared gallery."""

    def __init__(self, gallery_dir: Path, album_name: str = "ConvertPro"):
        self.gallery_dir = Path(gallery_dir).expanduser()
        self.album_name = album_name
        self.logger = logging.getLogger(__name__)

    @property
    def album_dir(self) -> Path:
        return self.gallery_dir / self.album_name

    def save(self, output_path: Path) -> Optional[Path]:
        """Copies output_path into the album. Returns None when the copy fails."""
        try:
            self.album_dir.mkdir(parents=True, exist_ok=True)
            target = unique_path(self.album_dir / output_path.name)
            shutil.copy2(output_path, target)
        except OSError as exc:
            self.logger.warning(f"GALLERY_SAVE_FAILED: {output_path.name} ({exc}), kept in {output_path.parent}")
            return None
        self.logger.info(f"GALLERY_SAVE: {output_path.name} -> {target}")
        return target
