import os
from pathlib import Path

class HousekeepingService:
    """Service for cleaning up partial outputs left by interrupted runs."""

    def cleanup_temp_files(self, directory: Path) -> int:
        """Recursively removes all .tmp files in the directory. Returns how many went."""
        removed = 0
        if not directory.exists():
            return removed
        for root, _dirs, files in os.walk(directory):
            for file in files:
                if file.endswith(".tmp"):
                    try:
                        (Path(root) / file).unlink()
                        removed += 1
                    except OSError:
                        pass
        return removed
