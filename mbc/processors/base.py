import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Tuple

from mbc.domain.errors import ErrorType, MbcError, file_error
from mbc.domain.models import BatchSettings, ItemOutcome, ItemResult, MediaType, Operation, SourceItem
from mbc.infrastructure.file_validation import resolve_source
from mbc.infrastructure.media_library import MediaLibrary, unique_path

ProgressCallback = Callable[[float], None]


class ProcessingContext:
    """Per-batch environment handed to every processor call."""

    def __init__(self, output_dir: Path, media_library: Optional[MediaLibrary] = None):
        self.output_dir = Path(output_dir)
        self.media_library = media_library

    @property
    def gallery_enabled(self) -> bool:
        return self.media_library is not None


def compressed_name(stem: str, extension: str, now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%dT%H-%M-%S-%f")[:-3]
    return f"{stem}_compressed_{stamp}.{extension}"


def converted_name(stem: str, extension: str) -> str:
    return f"{stem}_converted.{extension}"


class ItemProcessor(ABC):
    """Converts or compresses one item.

    `process` never raises for expected failures (missing source, unsupported
    format, codec error); those come back as `ItemOutcome.fail`. Anything else
    propagates to the batch runner.
    """

    media_type: MediaType
    operation: Operation = Operation.CONVERT
    output_formats: Tuple[str, ...] = ()
    input_extensions: Tuple[str, ...] = ()

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def supports(self, input_ext: str, output_format: str) -> bool:
        input_ok = not self.input_extensions or input_ext.lower().lstrip(".") in self.input_extensions
        return input_ok and output_format.lower() in self.output_formats

    def unsupported_message(self, input_ext: str, output_format: str) -> str:
        available = ", ".join(f.upper() for f in self.output_formats)
        return f"Cannot {self.operation.value} .{input_ext} to {output_format}. Available: {available}"

    def process(
        self,
        item: SourceItem,
        settings: BatchSettings,
        context: ProcessingContext,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ItemOutcome:
        try:
            source = self.source_path(item)
            if not self.supports(item.extension, settings.output_format):
                raise MbcError(
                    ErrorType.UNSUPPORTED_FORMAT,
                    self.unsupported_message(item.extension, settings.output_format),
                    "This file format is not supported. Please choose a different file.",
                )
            result = self._process(item, source, settings, context, on_progress)
        except MbcError as exc:
            self.logger.warning(f"ITEM_FAILED: {item.display_name} [{exc.error_type.value}] {exc.message}")
            return ItemOutcome.fail(exc.message, exc.error_type.value)

        if context.media_library is not None:
            result.gallery_path = context.media_library.save(result.output_path)
        return ItemOutcome.ok(result)

    @abstractmethod
    def _process(
        self,
        item: SourceItem,
        source: Path,
        settings: BatchSettings,
        context: ProcessingContext,
        on_progress: Optional[ProgressCallback],
    ) -> ItemResult:
        """Does the work; raises MbcError for declared failures."""

    def source_path(self, item: SourceItem) -> Path:
        path = resolve_source(item.source_uri)
        if not path.is_file():
            raise file_error(ErrorType.FILE_NOT_FOUND, item.display_name)
        return path

    def output_path(self, context: ProcessingContext, name: str) -> Path:
        context.output_dir.mkdir(parents=True, exist_ok=True)
        return unique_path(context.output_dir / name)

    def build_result(self, output: Path, original_size: Optional[int] = None) -> ItemResult:
        """Result for a finished output; with original_size it also carries the reduction."""
        if not output.is_file():
            raise MbcError(
                ErrorType.CONVERSION_FAILED,
                f"Output file was not created: {output.name}",
                "File conversion failed. Please try again or choose a different file.",
            )
        size = output.stat().st_size
        result = ItemResult(output_path=output, output_name=output.name, output_size=size)
        if original_size:
            result.original_size = original_size
            result.compressed_size = size
            result.compression_ratio = (original_size - size) / original_size * 100
        return result

    def original_size(self, item: SourceItem, source: Path) -> int:
        try:
            size = source.stat().st_size
        except OSError as exc:
            raise file_error(ErrorType.FILE_ACCESS_DENIED, item.display_name, cause=exc) from exc
        if size == 0:
            raise MbcError(
                ErrorType.FILE_CORRUPTED,
                "Could not read original file",
                "The selected file appears to be corrupted. Please try a different file.",
            )
        return size
