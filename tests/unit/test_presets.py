import pytest
from mbc.config.presets import (
    AUDIO_PRESETS,
    CONVERSION_OPTIONS,
    IMAGE_PRESETS,
    estimate_compressed_size,
    estimated_audio_reduction,
    get_format_option,
    get_optimal_settings,
    get_preset,
)
from mbc.domain.models import MediaType

def test_conversion_options_cover_every_media_type():
    assert set(CONVERSION_OPTIONS) == set(MediaType)
    assert [o.id for o in CONVERSION_OPTIONS[MediaType.DOCUMENT]] == ["txt", "html"]
    assert CONVERSION_OPTIONS[MediaType.VIDEO][0].quality == [480, 720, 1080]

def test_get_format_option():
    assert get_format_option(MediaType.IMAGE, "JPEG").id == "jpg"
    assert get_format_option(MediaType.AUDIO, "flac").extension == "flac"
    assert get_format_option(MediaType.DOCUMENT, "pdf") is None

def test_get_preset():
    assert get_preset(MediaType.IMAGE, "web_optimized").settings["format"] == "webp"
    assert get_preset(MediaType.AUDIO, "ultra").settings["bitrate"] == 256

def test_get_preset_unknown_lists_available():
    with pytest.raises(ValueError, match="high_quality, balanced, small_size, web_optimized"):
        get_preset(MediaType.IMAGE, "tiny")

def test_preset_ids():
    assert [p.id for p in IMAGE_PRESETS] == ["high_quality", "balanced", "small_size", "web_optimized"]
    assert [p.id for p in AUDIO_PRESETS] == ["low", "medium", "high", "ultra"]

def test_estimate_compressed_size():
    # quality 80 -> 35% reduction, no resize
    assert estimate_compressed_size(1000, 80) == 650
    # reduction is clamped at 95%
    assert estimate_compressed_size(1000, 10, max_width=640, image_format="webp") == 50
    # and at least 5%
    assert estimate_compressed_size(1000, 99, image_format="png") == 950

def test_get_optimal_settings():
    assert get_optimal_settings(1000 * 1024, 100) == {"quality": 40, "max_width": 800}
    assert get_optimal_settings(1000 * 1024, 300) == {"quality": 55, "max_width": 1024}
    assert get_optimal_settings(1000 * 1024, 900) == {"quality": 80, "max_width": 1920}
    assert get_optimal_settings(0, 100) == {"quality": 80, "max_width": 1920}

def test_estimated_audio_reduction():
    assert estimated_audio_reduction(160) == 50.0
    assert estimated_audio_reduction(320) == 0.0
    assert estimated_audio_reduction(500) == 0.0
