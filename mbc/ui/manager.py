import logging

from mbc.infrastructure.event_bus import EventBus
from mbc.ui.state import UIState
from mbc.domain.events import (
    BatchStarted, BatchFinished, BatchProgressUpdated,
    ItemStarted, ItemProgressUpdated, ItemCompleted, ItemFailed,
    NoFilesSelected, CancelRequested,
)

class UIManager:
    """Subscribes to EventBus and updates UIState."""

    def __init__(self, bus: EventBus, state: UIState):
        self.bus = bus
        self.state = state
        self.logger = logging.getLogger(__name__)
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(BatchStarted, self.on_batch_started)
        self.bus.subscribe(ItemStarted, self.on_item_started)
        self.bus.subscribe(ItemProgressUpdated, self.on_item_progress)
        self.bus.subscribe(ItemCompleted, self.on_item_completed)
        self.bus.subscribe(ItemFailed, self.on_item_failed)
        self.bus.subscribe(BatchProgressUpdated, self.on_batch_progress)
        self.bus.subscribe(BatchFinished, self.on_batch_finished)
        self.bus.subscribe(NoFilesSelected, self.on_no_files)
        self.bus.subscribe(CancelRequested, self.on_cancel_requested)

    def on_batch_started(self, event: BatchStarted):
        self.state.start_batch(event.total, gallery_permission=event.gallery_permission)
        self.logger.debug(f"UI: batch started total={event.total} gallery={event.gallery_permission}")

    def on_item_started(self, event: ItemStarted):
        self.state.set_current(event.progress)

    def on_item_progress(self, event: ItemProgressUpdated):
        with self.state._lock:
            self.state.current_fraction = event.fraction

    def on_item_completed(self, event: ItemCompleted):
        self.state.add_completed(event.progress)

    def on_item_failed(self, event: ItemFailed):
        self.state.add_failed(event.progress)

    def on_batch_progress(self, event: BatchProgressUpdated):
        with self.state._lock:
            self.state.overall_fraction = max(self.state.overall_fraction, event.overall_fraction)

    def on_batch_finished(self, event: BatchFinished):
        self.state.finish(event.state)

    def on_no_files(self, event: NoFilesSelected):
        with self.state._lock:
            self.state.no_files = True

    def on_cancel_requested(self, event: CancelRequested):
        with self.state._lock:
            self.state.cancel_requested = True
