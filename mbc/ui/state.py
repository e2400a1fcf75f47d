import threading
from collections import deque
from datetime import datetime
from typing import List, Optional

from mbc.domain.models import BatchState, ItemProgress


class UIState:
    """Thread-safe state manager for the batch dashboard."""

    def __init__(self, recent_items_max: int = 8):
        self._lock = threading.RLock()

        # Counters
        self.total = 0
        self.completed_count = 0
        self.failed_count = 0

        # Bytes tracking (compression only)
        self.total_input_bytes = 0
        self.total_output_bytes = 0

        # Items
        self.current_item: Optional[ItemProgress] = None
        self.current_fraction = 0.0
        self.recent_items = deque(maxlen=recent_items_max)

        # Global status
        self.title = "MBC"
        self.settings_line = ""
        self.batch_state = BatchState.IDLE
        self.overall_fraction = 0.0
        self.gallery_permission = False
        self.cancel_requested = False
        self.no_files = False
        self.start_time: Optional[datetime] = None
        self.finish_time: Optional[datetime] = None

    @property
    def space_saved_bytes(self) -> int:
        with self._lock:
            return max(0, self.total_input_bytes - self.total_output_bytes)

    @property
    def processed_count(self) -> int:
        with self._lock:
            return self.completed_count + self.failed_count

    @property
    def finished(self) -> bool:
        with self._lock:
            return self.batch_state.is_terminal

    @property
    def elapsed_seconds(self) -> float:
        with self._lock:
            if self.start_time is None:
                return 0.0
            end = self.finish_time or datetime.now()
            return (end - self.start_time).total_seconds()

    def start_batch(self, total: int, gallery_permission: bool = False):
        with self._lock:
            self.total = total
            self.batch_state = BatchState.PROCESSING
            self.gallery_permission = gallery_permission
            self.start_time = datetime.now()

    def set_current(self, progress: ItemProgress):
        with self._lock:
            self.current_item = progress
            self.current_fraction = 0.0

    def add_completed(self, progress: ItemProgress):
        with self._lock:
            self.completed_count += 1
            result = progress.result
            if result is not None and result.original_size is not None:
                self.total_input_bytes += result.original_size
                self.total_output_bytes += result.compressed_size or 0
            self.recent_items.appendleft(progress)
            self.current_item = None

    def add_failed(self, progress: ItemProgress):
        with self._lock:
            self.failed_count += 1
            self.recent_items.appendleft(progress)
            self.current_item = None

    def finish(self, state: BatchState):
        with self._lock:
            self.batch_state = state
            self.overall_fraction = 1.0
            self.current_item = None
            self.finish_time = datetime.now()

    def summary_line(self) -> str:
        with self._lock:
            return f"{self.completed_count} succeeded, {self.failed_count} failed"

    def recent(self) -> List[ItemProgress]:
        with self._lock:
            return list(self.recent_items)
