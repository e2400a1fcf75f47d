import logging
import random
import string
import threading
import time
from typing import List, Optional

from pydantic import ValidationError

from mbc.domain.errors import HistoryStoreError
from mbc.domain.models import HistoryEntry, HistoryStats, MediaType
from mbc.infrastructure.storage import JsonKeyValueStorage

DEFAULT_KEY = "conversion_history"
DEFAULT_MAX_ITEMS = 50

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_entry_id(now_ms: Optional[int] = None) -> str:
    """Millisecond timestamp followed by nine random base36 characters."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(9))
    return f"{now_ms}{suffix}"


class HistoryStore:
    """Capped, newest-first list of conversion outcomes kept under one storage key.

    Reads never raise: unreadable or corrupt data yields an empty history.
    Writes raise HistoryStoreError so callers can decide whether to care.
    """

    def __init__(self, storage: JsonKeyValueStorage, key: str = DEFAULT_KEY,
                 max_items: int = DEFAULT_MAX_ITEMS):
        self.storage = storage
        self.key = key
        self.max_items = max_items
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def get_history(self) -> List[HistoryEntry]:
        try:
            raw = self.storage.get_item(self.key)
            if not raw:
                return []
            return [HistoryEntry(**item) for item in raw]
        except (OSError, ValueError, TypeError, ValidationError) as exc:
            self.logger.error(f"HISTORY_READ_FAILED: {exc}")
            return []

    def _save(self, entries: List[HistoryEntry]) -> None:
        try:
            self.storage.set_item(self.key, [e.model_dump(mode="json") for e in entries])
        except (OSError, TypeError, ValueError) as exc:
            raise HistoryStoreError(f"Failed to write history: {exc}", cause=exc) from exc

    def add_conversion(
        self,
        input_file_name: str,
        output_file_name: str,
        input_format: str,
        output_format: str,
        conversion_type: MediaType,
        success: bool,
        output_path: Optional[str] = None,
        file_size: Optional[int] = None,
    ) -> HistoryEntry:
        """Prepends a new entry and evicts the oldest ones beyond max_items."""
        now_ms = int(time.time() * 1000)
        entry = HistoryEntry(
            id=generate_entry_id(now_ms),
            timestamp=now_ms,
            input_file_name=input_file_name,
            output_file_name=output_file_name,
            input_format=input_format,
            output_format=output_format,
            conversion_type=conversion_type,
            success=success,
            output_path=output_path,
            file_size=file_size,
        )
        with self._lock:
            entries = [entry] + self.get_history()
            self._save(entries[: self.max_items])
        return entry

    def get_recent(self, limit: int = 5) -> List[HistoryEntry]:
        return self.get_history()[:limit]

    def get_by_type(self, conversion_type: MediaType) -> List[HistoryEntry]:
        return [e for e in self.get_history() if e.conversion_type == conversion_type]

    def get_successful(self) -> List[HistoryEntry]:
        return [e for e in self.get_history() if e.success]

    def remove(self, entry_id: str) -> bool:
        with self._lock:
            entries = self.get_history()
            kept = [e for e in entries if e.id != entry_id]
            if len(kept) == len(entries):
                return False
            self._save(kept)
        return True

    def clear(self) -> None:
        with self._lock:
            try:
                self.storage.remove_item(self.key)
            except (OSError, ValueError) as exc:
                raise HistoryStoreError(f"Failed to clear history: {exc}", cause=exc) from exc

    def get_stats(self) -> HistoryStats:
        entries = self.get_history()
        by_type = {t.value: 0 for t in MediaType}
        for e in entries:
            by_type[e.conversion_type.value] += 1
        successful = sum(1 for e in entries if e.success)
        return HistoryStats(
            total=len(entries),
            successful=successful,
            failed=len(entries) - successful,
            by_type=by_type,
        )
