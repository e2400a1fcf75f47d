import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from PIL import Image, ImageOps

from mbc.infrastructure.media_library import tmp_path_for

logger = logging.getLogger(__name__)

PIL_FORMATS = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
}

LOSSY_FORMATS = {"JPEG", "WEBP"}


def pil_format(output_format: str) -> str:
    try:
        return PIL_FORMATS[output_format.lower()]
    except KeyError:
        raise ValueError(f"Unsupported image output format: {output_format}") from None


def fit_within(size: Tuple[int, int], max_width: Optional[int], max_height: Optional[int]) -> Tuple[int, int]:
    """Downscale-only fit preserving aspect ratio."""
    width, height = size
    scale = 1.0
    if max_width and width > max_width:
        scale = min(scale, max_width / float(width))
    if max_height and height > max_height:
        scale = min(scale, max_height / float(height))
    if scale >= 1.0:
        return width, height
    return max(1, int(width * scale)), max(1, int(height * scale))


def flatten_alpha(im: Image.Image, background=(255, 255, 255)) -> Image.Image:
    """Composites transparent pixels onto a solid background for formats without alpha."""
    if im.mode == "P" and "transparency" in im.info:
        im = im.convert("RGBA")
    if im.mode in ("RGBA", "LA", "PA"):
        rgba = im.convert("RGBA")
        flat = Image.new("RGB", rgba.size, background)
        flat.paste(rgba, mask=rgba.split()[3])
        return flat
    if im.mode not in ("RGB", "L"):
        return im.convert("RGB")
    return im


def save_image(
    src: Path,
    dest: Path,
    output_format: str,
    quality: Optional[int] = None,
    max_width: Optional[int] = None,
    max_height: Optional[int] = None,
) -> Path:
    """Re-encodes src into dest with Pillow. Raises OSError for unreadable sources.

    The image is written to a `.tmp` sibling and renamed once complete.
    """
    fmt = pil_format(output_format)
    with Image.open(src) as im:
        im.load()
        im = ImageOps.exif_transpose(im)

        new_size = fit_within(im.size, max_width, max_height)
        if new_size != im.size:
            logger.debug(f"IMAGE_RESIZE: {src.name} {im.size} -> {new_size}")
            im = im.resize(new_size, Image.Resampling.LANCZOS)

        save_kwargs: Dict[str, Any] = {"format": fmt}
        icc = im.info.get("icc_profile")
        if icc:
            save_kwargs["icc_profile"] = icc

        if fmt == "JPEG":
            im = flatten_alpha(im)
            q = int(quality or 90)
            save_kwargs.update(quality=q, optimize=True, progressive=True, subsampling=1 if q < 85 else 0)
        elif fmt == "PNG":
            save_kwargs.update(optimize=True, compress_level=6)
        else:
            if im.mode not in ("RGB", "RGBA"):
                im = im.convert("RGBA" if im.mode in ("P", "LA", "PA") else "RGB")
            save_kwargs.update(quality=int(quality or 80), method=6)

        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = tmp_path_for(dest)
        try:
            im.save(tmp_path, **save_kwargs)
        except (OSError, ValueError):
            tmp_path.unlink(missing_ok=True)
            raise
    tmp_path.replace(dest)
    return dest
