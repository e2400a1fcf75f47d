import pytest
from pathlib import Path
from unittest.mock import MagicMock
from mbc.domain.errors import ErrorType
from mbc.domain.models import BatchSettings, MediaType, Operation
from mbc.infrastructure.ffmpeg import FFmpegAdapter, FFmpegRunResult, FFmpegRuntime
from mbc.processors.base import ProcessingContext
from mbc.processors.media import (
    AudioCompressionProcessor,
    AudioConversionProcessor,
    VideoConversionProcessor,
    _FFmpegProcessor,
)
from mbc.processors.registry import ProcessorRegistry


def _adapter(result=None, payload=b"encoded"):
    """Real command builders; `run` writes the output file instead of spawning ffmpeg."""
    adapter = FFmpegAdapter(FFmpegRuntime(binary="ffmpeg", version="test"))
    calls = []

    def fake_run(cmd, output_path, duration=None, on_progress=None):
        calls.append((cmd, output_path, duration))
        if on_progress:
            on_progress(0.5)
            on_progress(1.0)
        run_result = result or FFmpegRunResult(returncode=0, success=True)
        if run_result.success:
            output_path.write_bytes(payload)
        return run_result

    adapter.run = fake_run
    adapter.calls = calls
    return adapter


@pytest.fixture
def song(tmp_path):
    f = tmp_path / "song.wav"
    f.write_bytes(b"RIFF" + b"\0" * 996)
    return f


def test_audio_conversion(tmp_path, song, as_item):
    adapter = _adapter()
    ffprobe = MagicMock()
    ffprobe.get_duration.return_value = 42.0
    fractions = []
    settings = BatchSettings(media_type=MediaType.AUDIO, output_format="mp3", quality=95)

    outcome = AudioConversionProcessor(adapter, ffprobe).process(
        as_item(song), settings, ProcessingContext(tmp_path / "out"), fractions.append
    )

    assert outcome.success, outcome.error_message
    assert outcome.result.output_name == "song_converted.mp3"
    cmd, output_path, duration = adapter.calls[0]
    assert cmd[cmd.index("-b:a") + 1] == "320k"
    assert output_path == tmp_path / "out" / "song_converted.mp3"
    assert duration == 42.0
    assert fractions == [0.5, 1.0]


def test_audio_conversion_failure_keeps_ffmpeg_message(tmp_path, song, as_item):
    failure = FFmpegRunResult(
        returncode=1, error_type=ErrorType.CONVERSION_FAILED,
        error_message="ffmpeg exited with code 1. Invalid data found when processing input",
    )
    settings = BatchSettings(media_type=MediaType.AUDIO, output_format="ogg")

    outcome = AudioConversionProcessor(_adapter(failure)).process(as_item(song), settings, ProcessingContext(tmp_path))

    assert not outcome.success
    assert outcome.error_type == "CONVERSION_FAILED"
    assert outcome.error_message == "ffmpeg exited with code 1. Invalid data found when processing input"


def test_audio_conversion_cancelled(tmp_path, song, as_item):
    cancelled = FFmpegRunResult(returncode=255, error_type=ErrorType.CONVERSION_CANCELLED,
                                error_message="Conversion was cancelled")
    settings = BatchSettings(media_type=MediaType.AUDIO, output_format="mp3")

    outcome = AudioConversionProcessor(_adapter(cancelled)).process(as_item(song), settings, ProcessingContext(tmp_path))

    assert outcome.error_type == "CONVERSION_CANCELLED"


def test_audio_conversion_unsupported_format(tmp_path, song, as_item):
    settings = BatchSettings(media_type=MediaType.AUDIO, output_format="m4a")
    adapter = _adapter()
    outcome = AudioConversionProcessor(adapter).process(as_item(song), settings, ProcessingContext(tmp_path))

    assert outcome.error_type == "UNSUPPORTED_FORMAT"
    assert adapter.calls == []


def test_audio_compression_reports_sizes(tmp_path, song, as_item):
    settings = BatchSettings(media_type=MediaType.AUDIO, operation=Operation.COMPRESS, output_format="mp3",
                             bitrate=64, sample_rate=22050)
    adapter = _adapter(payload=b"x" * 250)

    outcome = AudioCompressionProcessor(adapter).process(as_item(song), settings, ProcessingContext(tmp_path))

    assert outcome.success
    result = outcome.result
    assert result.output_name.startswith("song_compressed_")
    assert result.output_name.endswith(".mp3")
    assert result.original_size == 1000
    assert result.compressed_size == 250
    assert result.compression_ratio == pytest.approx(75.0)
    cmd = adapter.calls[0][0]
    assert cmd[cmd.index("-b:a") + 1] == "64k"


def test_video_conversion_without_ffprobe(tmp_path, as_item):
    clip = tmp_path / "clip.mov"
    clip.write_bytes(b"\0" * 100)
    adapter = _adapter()
    settings = BatchSettings(media_type=MediaType.VIDEO, output_format="mp4", resolution=480)

    outcome = VideoConversionProcessor(adapter).process(as_item(clip), settings, ProcessingContext(tmp_path))

    assert outcome.success
    assert outcome.result.output_name == "clip_converted.mp4"
    cmd, _, duration = adapter.calls[0]
    assert "scale=-2:480" in cmd
    assert duration is None


def test_missing_output_is_a_failure(tmp_path, song, as_item):
    adapter = _adapter()
    adapter.run = lambda cmd, output_path, duration=None, on_progress=None: FFmpegRunResult(returncode=0, success=True)
    settings = BatchSettings(media_type=MediaType.AUDIO, output_format="mp3")

    outcome = AudioConversionProcessor(adapter).process(as_item(song), settings, ProcessingContext(tmp_path))

    assert not outcome.success
    assert outcome.error_message == "Output file was not created: song_converted.mp3"


def test_registry_without_ffmpeg():
    registry = ProcessorRegistry.default()
    assert set(registry.keys()) == {
        (MediaType.IMAGE, Operation.CONVERT),
        (MediaType.IMAGE, Operation.COMPRESS),
        (MediaType.DOCUMENT, Operation.CONVERT),
    }
    with pytest.raises(LookupError, match="No processor for convert audio"):
        registry.get(MediaType.AUDIO, Operation.CONVERT)


def test_registry_with_ffmpeg():
    registry = ProcessorRegistry.default(ffmpeg=_adapter(), ffprobe=MagicMock())
    assert isinstance(registry.get(MediaType.AUDIO, Operation.COMPRESS), AudioCompressionProcessor)
    assert isinstance(registry.get(MediaType.VIDEO, Operation.CONVERT), VideoConversionProcessor)
    assert len(registry.keys()) == 6


def test_ffmpeg_processor_requires_command_builder():
    class NoCommand(_FFmpegProcessor):
        media_type = MediaType.AUDIO
        output_formats = ("mp3",)

    with pytest.raises(TypeError):
        NoCommand(_adapter())
