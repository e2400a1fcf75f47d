import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional


class JsonKeyValueStorage:
    """Durable string-keyed storage backed by a single JSON file.

    Values are JSON-serializable objects. Writes go to a `.tmp` sibling first
    and are renamed over the real file, so a crash never leaves half a file.
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()
        self._lock = threading.RLock()
        self.logger = logging.getLogger(__name__)

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            text = f.read()
        if not text.strip():
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"Storage root must be an object: {self.path}")
        return data

    def _write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    def get_item(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._read_all().get(key)

    def set_item(self, key: str, value: Any) -> None:
        with self._lock:
            try:
                data = self._read_all()
            except (ValueError, OSError) as exc:
                self.logger.warning(f"STORAGE_RESET: {self.path} unreadable ({exc}), starting fresh")
                data = {}
            data[key] = value
            self._write_all(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)
