from abc import abstractmethod
from pathlib import Path
from typing import List, Optional

from mbc.domain.errors import ErrorType, MbcError, conversion_error
from mbc.domain.models import BatchSettings, ItemResult, MediaType, Operation, SourceItem
from mbc.infrastructure.ffmpeg import FFmpegAdapter
from mbc.infrastructure.ffprobe import FFprobeAdapter
from mbc.processors.base import (
    ItemProcessor,
    ProcessingContext,
    ProgressCallback,
    compressed_name,
    converted_name,
)


class _FFmpegProcessor(ItemProcessor):
    """Shared run-and-classify logic for processors backed by ffmpeg."""

    def __init__(self, ffmpeg: FFmpegAdapter, ffprobe: Optional[FFprobeAdapter] = None):
        super().__init__()
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe

    @abstractmethod
    def _build_command(self, source: Path, dest: Path, settings: BatchSettings) -> List[str]:
        """Full ffmpeg argument list writing to the `.tmp` sibling of dest."""

    def _output_name(self, source: Path, settings: BatchSettings) -> str:
        return converted_name(source.stem, settings.output_format.lower())

    def _run(self, item: SourceItem, source: Path, settings: BatchSettings,
             context: ProcessingContext, on_progress: Optional[ProgressCallback]) -> Path:
        dest = self.output_path(context, self._output_name(source, settings))
        cmd = self._build_command(source, dest, settings)
        duration = self.ffprobe.get_duration(source) if self.ffprobe else None
        result = self.ffmpeg.run(cmd, dest, duration=duration, on_progress=on_progress)
        if not result.success:
            error_type = result.error_type or ErrorType.CONVERSION_FAILED
            err = conversion_error(error_type, item.display_name, result.error_message)
            # Item message keeps ffmpeg's own text (exit code, last output line)
            raise MbcError(error_type, result.error_message or err.message, err.user_message, context=err.context)
        return dest


class AudioConversionProcessor(_FFmpegProcessor):
    media_type = MediaType.AUDIO
    operation = Operation.CONVERT
    output_formats = ("mp3", "aac", "wav", "flac", "ogg")

    def _build_command(self, source: Path, dest: Path, settings: BatchSettings) -> List[str]:
        return self.ffmpeg.build_audio_command(source, dest, settings)

    def _process(self, item: SourceItem, source: Path, settings: BatchSettings,
                 context: ProcessingContext, on_progress: Optional[ProgressCallback]) -> ItemResult:
        return self.build_result(self._run(item, source, settings, context, on_progress))


class AudioCompressionProcessor(_FFmpegProcessor):
    media_type = MediaType.AUDIO
    operation = Operation.COMPRESS
    output_formats = ("mp3", "aac")

    def _build_command(self, source: Path, dest: Path, settings: BatchSettings) -> List[str]:
        return self.ffmpeg.build_audio_compress_command(source, dest, settings)

    def _output_name(self, source: Path, settings: BatchSettings) -> str:
        return compressed_name(source.stem, settings.output_format.lower())

    def _process(self, item: SourceItem, source: Path, settings: BatchSettings,
                 context: ProcessingContext, on_progress: Optional[ProgressCallback]) -> ItemResult:
        original_size = self.original_size(item, source)
        dest = self._run(item, source, settings, context, on_progress)
        return self.build_result(dest, original_size=original_size)


class VideoConversionProcessor(_FFmpegProcessor):
    """Container change by stream copy, or re-encode when a target height is set."""

    media_type = MediaType.VIDEO
    operation = Operation.CONVERT
    output_formats = ("mp4", "avi", "mov", "mkv")

    def _build_command(self, source: Path, dest: Path, settings: BatchSettings) -> List[str]:
        return self.ffmpeg.build_video_command(source, dest, settings)

    def _process(self, item: SourceItem, source: Path, settings: BatchSettings,
                 context: ProcessingContext, on_progress: Optional[ProgressCallback]) -> ItemResult:
        return self.build_result(self._run(item, source, settings, context, on_progress))
