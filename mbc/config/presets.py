"""Output format options, compression presets and size estimators."""

from typing import Dict, List, Optional
from mbc.domain.models import CompressionPreset, FormatOption, MediaType

AUDIO_BITRATES = [64, 96, 128, 192, 256, 320]

CONVERSION_OPTIONS: Dict[MediaType, List[FormatOption]] = {
    MediaType.IMAGE: [
        FormatOption(id="jpg", name="JPG", extension="jpg", quality=True),
        FormatOption(id="png", name="PNG", extension="png"),
        FormatOption(id="webp", name="WebP", extension="webp", quality=True),
    ],
    MediaType.AUDIO: [
        FormatOption(id="mp3", name="MP3", extension="mp3", quality=AUDIO_BITRATES),
        FormatOption(id="wav", name="WAV", extension="wav"),
        FormatOption(id="aac", name="AAC", extension="aac", quality=AUDIO_BITRATES),
        FormatOption(id="flac", name="FLAC", extension="flac"),
        FormatOption(id="ogg", name="OGG", extension="ogg", quality=AUDIO_BITRATES),
    ],
    MediaType.VIDEO: [
        FormatOption(id="mp4", name="MP4", extension="mp4", quality=[480, 720, 1080]),
        FormatOption(id="avi", name="AVI", extension="avi", quality=[720, 1080]),
        FormatOption(id="mov", name="MOV", extension="mov", quality=[720, 1080]),
        FormatOption(id="mkv", name="MKV", extension="mkv", quality=[720, 1080]),
    ],
    MediaType.DOCUMENT: [
        FormatOption(id="txt", name="TXT", extension="txt"),
        FormatOption(id="html", name="HTML", extension="html"),
    ],
}

IMAGE_PRESETS: List[CompressionPreset] = [
    CompressionPreset(
        id="high_quality",
        name="High Quality",
        description="Minimal compression, best quality",
        settings={"quality": 95, "max_width": 2048, "format": "jpeg"},
    ),
    CompressionPreset(
        id="balanced",
        name="Balanced",
        description="Good balance of quality and size",
        settings={"quality": 80, "max_width": 1920, "format": "jpeg"},
    ),
    CompressionPreset(
        id="small_size",
        name="Small Size",
        description="Maximum compression, smaller files",
        settings={"quality": 60, "max_width": 1280, "format": "jpeg"},
    ),
    CompressionPreset(
        id="web_optimized",
        name="Web Optimized",
        description="Optimized for web sharing",
        settings={"quality": 75, "max_width": 1600, "format": "webp"},
    ),
]

AUDIO_PRESETS: List[CompressionPreset] = [
    CompressionPreset(id="low", name="Low", description="Smallest files, voice quality",
                      settings={"bitrate": 64, "sample_rate": 22050, "format": "mp3"}),
    CompressionPreset(id="medium", name="Medium", description="Good for podcasts and music",
                      settings={"bitrate": 128, "sample_rate": 44100, "format": "mp3"}),
    CompressionPreset(id="high", name="High", description="Near-transparent music",
                      settings={"bitrate": 192, "sample_rate": 44100, "format": "mp3"}),
    CompressionPreset(id="ultra", name="Ultra", description="Highest quality AAC",
                      settings={"bitrate": 256, "sample_rate": 48000, "format": "aac"}),
]

# Bitrate used by audio conversion when only a quality level is given
QUALITY_BITRATES = {"low": 128, "medium": 192, "high": 256, "ultra": 320}


def get_format_option(media_type: MediaType, format_id: str) -> Optional[FormatOption]:
    fmt = format_id.lower()
    if fmt == "jpeg":
        fmt = "jpg"
    return next((o for o in CONVERSION_OPTIONS[media_type] if o.id == fmt), None)


def get_preset(media_type: MediaType, preset_id: str) -> CompressionPreset:
    presets = IMAGE_PRESETS if media_type == MediaType.IMAGE else AUDIO_PRESETS
    for preset in presets:
        if preset.id == preset_id:
            return preset
    available = ", ".join(p.id for p in presets)
    raise ValueError(f"Unknown {media_type.value} preset '{preset_id}'. Available: {available}")


def _quality_reduction(quality: int) -> float:
    thresholds = [
        (95, 0.05), (90, 0.15), (85, 0.25), (80, 0.35), (75, 0.45),
        (70, 0.55), (65, 0.65), (60, 0.72), (50, 0.78), (40, 0.83),
    ]
    for minimum, reduction in thresholds:
        if quality >= minimum:
            return reduction
    return 0.87


def _resolution_reduction(max_width: Optional[int]) -> float:
    if not max_width:
        return 0.0
    for limit, reduction in [(800, 0.6), (1024, 0.4), (1280, 0.25), (1600, 0.15), (1920, 0.05)]:
        if max_width <= limit:
            return reduction
    return 0.0


def estimate_compressed_size(original_size: int, quality: int, max_width: Optional[int] = None,
                             image_format: str = "jpeg") -> int:
    """Rough image size estimate; the combined reduction is kept between 5% and 95%."""
    format_reduction = {"webp": 0.1, "png": -0.05}.get(image_format, 0.0)
    combined = 1 - (
        (1 - _quality_reduction(quality))
        * (1 - _resolution_reduction(max_width))
        * (1 - format_reduction)
    )
    reduction = max(min(combined, 0.95), 0.05)
    return round(original_size * (1 - reduction))


def get_optimal_settings(original_size: int, target_size_kb: int) -> Dict[str, int]:
    """Picks quality and max width expected to bring an image down to the target size."""
    target_size = target_size_kb * 1024
    reduction_needed = (original_size - target_size) / original_size if original_size else 0.0

    if reduction_needed > 0.8:
        return {"quality": 40, "max_width": 800}
    if reduction_needed > 0.6:
        return {"quality": 55, "max_width": 1024}
    if reduction_needed > 0.4:
        return {"quality": 70, "max_width": 1280}
    if reduction_needed > 0.2:
        return {"quality": 80, "max_width": 1600}
    return {"quality": 80, "max_width": 1920}


def estimated_audio_reduction(bitrate: int) -> float:
    """Expected reduction in percent, assuming a 320 kbps source."""
    original_bitrate = 320
    return max(0.0, (original_bitrate - bitrate) / original_bitrate * 100)
