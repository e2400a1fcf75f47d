import logging
from pathlib import Path
from typing import Optional

from mbc.domain.models import BatchSettings, HistoryEntry, ItemOutcome, SourceItem
from mbc.infrastructure.history_store import HistoryStore


class OutcomeRecorder:
    """Appends one history entry per processed item.

    Recording is best effort: a storage failure is logged and never reaches
    the batch.
    """

    def __init__(self, store: HistoryStore):
        self.store = store
        self.logger = logging.getLogger(__name__)

    def record(self, item: SourceItem, settings: BatchSettings, outcome: ItemOutcome) -> Optional[HistoryEntry]:
        result = outcome.result
        output_format = settings.output_format.lower()
        if result is not None:
            output_name = result.output_name
            output_path = str(result.gallery_path or result.output_path)
            file_size = result.compressed_size or result.output_size
        else:
            output_name = f"{Path(item.display_name).stem}.{output_format}"
            output_path = None
            file_size = None

        try:
            return self.store.add_conversion(
                input_file_name=item.display_name,
                output_file_name=output_name,
                input_format=item.extension,
                output_format=output_format,
                conversion_type=settings.media_type,
                success=outcome.success,
                output_path=output_path,
                file_size=file_size,
            )
        except Exception as exc:
            self.logger.error(f"HISTORY_WRITE_FAILED: {item.display_name} ({exc})")
            return None
