import threading
from typing import List, Optional

from mbc.domain.models import ItemProgress, ItemResult, ItemStatus, SourceItem


class ProgressAggregator:
    """Per-item states plus the batch-wide fraction.

    The overall fraction is (finished + current item fraction) / total. It never
    moves backwards and is forced to 1.0 once the batch is finalized.
    """

    def __init__(self, items: List[SourceItem]):
        self._lock = threading.RLock()
        self.items: List[ItemProgress] = [ItemProgress(index=i, item=item) for i, item in enumerate(items)]
        self._overall = 0.0
        self._current: Optional[int] = None
        self.finalized = False

    @property
    def total(self) -> int:
        return len(self.items)

    def _count(self, status: ItemStatus) -> int:
        return sum(1 for p in self.items if p.status == status)

    @property
    def completed(self) -> int:
        with self._lock:
            return self._count(ItemStatus.COMPLETED)

    @property
    def failed(self) -> int:
        with self._lock:
            return self._count(ItemStatus.ERROR)

    @property
    def pending(self) -> int:
        with self._lock:
            return self._count(ItemStatus.PENDING)

    @property
    def done(self) -> int:
        with self._lock:
            return self._count(ItemStatus.COMPLETED) + self._count(ItemStatus.ERROR)

    @property
    def overall_fraction(self) -> float:
        with self._lock:
            return self._overall

    def _advance(self, candidate: float) -> float:
        self._overall = max(self._overall, min(1.0, candidate))
        return self._overall

    def _recompute(self) -> float:
        if self.total == 0:
            return self._overall
        current = 0.0
        if self._current is not None:
            current = self.items[self._current].progress
        return self._advance((self.done + current) / self.total)

    def start(self, index: int) -> ItemProgress:
        with self._lock:
            if self._current is not None:
                raise RuntimeError(f"Item {self._current} is still processing")
            progress = self.items[index]
            progress.status = ItemStatus.PROCESSING
            progress.progress = 0.0
            self._current = index
            return progress

    def update(self, index: int, fraction: float) -> float:
        """Records sub-item progress of the processing item; returns the overall fraction."""
        with self._lock:
            if index != self._current:
                return self._overall
            progress = self.items[index]
            progress.progress = max(progress.progress, min(1.0, max(0.0, fraction)))
            return self._recompute()

    def complete(self, index: int, result: ItemResult) -> ItemProgress:
        with self._lock:
            progress = self.items[index]
            progress.status = ItemStatus.COMPLETED
            progress.result = result
            progress.progress = 1.0
            self._current = None
            self._recompute()
            return progress

    def fail(self, index: int, error_message: str) -> ItemProgress:
        with self._lock:
            progress = self.items[index]
            progress.status = ItemStatus.ERROR
            progress.error_message = error_message
            progress.progress = 1.0
            self._current = None
            self._recompute()
            return progress

    def finalize(self) -> float:
        with self._lock:
            self.finalized = True
            self._overall = 1.0
            return self._overall

    def snapshot(self) -> List[ItemProgress]:
        with self._lock:
            return [p.model_copy() for p in self.items]
