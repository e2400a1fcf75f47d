import logging
from typing import Dict, Iterable, List, Optional, Tuple

from mbc.domain.models import MediaType, Operation
from mbc.infrastructure.ffmpeg import FFmpegAdapter
from mbc.infrastructure.ffprobe import FFprobeAdapter
from mbc.processors.base import ItemProcessor
from mbc.processors.document import DocumentConversionProcessor
from mbc.processors.image import ImageCompressionProcessor, ImageConversionProcessor
from mbc.processors.media import AudioCompressionProcessor, AudioConversionProcessor, VideoConversionProcessor

Key = Tuple[MediaType, Operation]


class ProcessorRegistry:
    """Dispatch table from (media type, operation) to the processor that handles it."""

    def __init__(self, processors: Iterable[ItemProcessor] = ()):
        self._processors: Dict[Key, ItemProcessor] = {}
        self.logger = logging.getLogger(__name__)
        for processor in processors:
            self.register(processor)

    def register(self, processor: ItemProcessor):
        self._processors[(processor.media_type, processor.operation)] = processor

    def get(self, media_type: MediaType, operation: Operation) -> ItemProcessor:
        try:
            return self._processors[(media_type, operation)]
        except KeyError:
            raise LookupError(f"No processor for {operation.value} {media_type.value}") from None

    def keys(self) -> List[Key]:
        return list(self._processors)

    @classmethod
    def default(cls, ffmpeg: Optional[FFmpegAdapter] = None,
                ffprobe: Optional[FFprobeAdapter] = None) -> "ProcessorRegistry":
        """Pillow and document processors always; ffmpeg ones only with an initialized runtime."""
        registry = cls([
            ImageConversionProcessor(),
            ImageCompressionProcessor(),
            DocumentConversionProcessor(),
        ])
        if ffmpeg is not None:
            registry.register(AudioConversionProcessor(ffmpeg, ffprobe))
            registry.register(AudioCompressionProcessor(ffmpeg, ffprobe))
            registry.register(VideoConversionProcessor(ffmpeg, ffprobe))
        return registry
