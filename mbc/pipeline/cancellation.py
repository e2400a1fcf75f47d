import threading


class CancellationToken:
    """Shared stop flag, set from the UI thread and read by the runner between items."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
