import logging
import os
from pathlib import Path
from typing import Optional

from mbc.domain.models import MediaType

# Media types whose outputs may also be published to the shared gallery
GALLERY_MEDIA_TYPES = {MediaType.IMAGE, MediaType.AUDIO, MediaType.VIDEO}


class PermissionGate:
    """Decides once per batch whether outputs may be written to the shared gallery."""

    def __init__(self, gallery_dir: Optional[Path]):
        self.gallery_dir = Path(gallery_dir).expanduser() if gallery_dir else None
        self.logger = logging.getLogger(__name__)

    def request(self, media_type: MediaType) -> bool:
        """Returns True when the gallery directory exists (or can be created) and is writable."""
        if media_type not in GALLERY_MEDIA_TYPES or self.gallery_dir is None:
            return False
        try:
            self.gallery_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self.logger.warning(f"GALLERY_PERMISSION: denied for {self.gallery_dir} ({exc})")
            return False
        granted = os.access(self.gallery_dir, os.W_OK)
        self.logger.info(f"GALLERY_PERMISSION: {'granted' if granted else 'denied'} for {self.gallery_dir}")
        return granted
