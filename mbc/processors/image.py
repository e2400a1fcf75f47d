from pathlib import Path
from typing import Optional

from mbc.domain.errors import ErrorType, conversion_error, file_error
from mbc.domain.models import BatchSettings, ItemResult, MediaType, Operation, SourceItem
from mbc.infrastructure.image_codec import save_image
from mbc.processors.base import (
    ItemProcessor,
    ProcessingContext,
    ProgressCallback,
    compressed_name,
    converted_name,
)

def _extension(output_format: str) -> str:
    fmt = output_format.lower()
    return "jpg" if fmt == "jpeg" else fmt


class _PillowProcessor(ItemProcessor):
    media_type = MediaType.IMAGE
    output_formats = ("jpg", "jpeg", "png", "webp")

    def _encode(self, item: SourceItem, source: Path, dest: Path, settings: BatchSettings):
        try:
            save_image(
                source,
                dest,
                settings.output_format,
                quality=settings.quality,
                max_width=settings.max_width,
                max_height=settings.max_height,
            )
        except OSError as exc:
            # Pillow raises UnidentifiedImageError (an OSError) for unreadable data
            raise file_error(ErrorType.FILE_CORRUPTED, item.display_name, cause=exc) from exc
        except ValueError as exc:
            raise conversion_error(ErrorType.INVALID_SETTINGS, item.display_name, str(exc), cause=exc) from exc


class ImageConversionProcessor(_PillowProcessor):
    """Re-encodes images into JPG, PNG or WebP."""

    operation = Operation.CONVERT

    def _process(self, item: SourceItem, source: Path, settings: BatchSettings,
                 context: ProcessingContext, on_progress: Optional[ProgressCallback]) -> ItemResult:
        dest = self.output_path(context, converted_name(source.stem, _extension(settings.output_format)))
        self._encode(item, source, dest, settings)
        return self.build_result(dest)


class ImageCompressionProcessor(_PillowProcessor):
    """Lowers quality and optionally downscales, reporting the size reduction."""

    operation = Operation.COMPRESS

    def _process(self, item: SourceItem, source: Path, settings: BatchSettings,
                 context: ProcessingContext, on_progress: Optional[ProgressCallback]) -> ItemResult:
        original_size = self.original_size(item, source)
        dest = self.output_path(context, compressed_name(source.stem, _extension(settings.output_format)))
        self._encode(item, source, dest, settings)
        result = self.build_result(dest, original_size=original_size)
        self.logger.info(
            f"IMAGE_COMPRESSED: {item.display_name} {original_size} -> {result.compressed_size} bytes "
            f"({result.compression_ratio:.1f}%)"
        )
        return result
