import logging
import threading
import time
from pathlib import Path
from typing import Optional

from mbc.domain.errors import BatchStateError, normalize_error
from mbc.domain.events import (
    BatchFinished,
    BatchProgressUpdated,
    BatchStarted,
    ItemCompleted,
    ItemFailed,
    ItemProgressUpdated,
    ItemStarted,
    NoFilesSelected,
)
from mbc.domain.models import BatchJob, BatchState, BatchSummary, ItemOutcome
from mbc.infrastructure.event_bus import EventBus
from mbc.infrastructure.media_library import MediaLibrary
from mbc.infrastructure.permissions import PermissionGate
from mbc.pipeline.cancellation import CancellationToken
from mbc.pipeline.progress import ProgressAggregator
from mbc.pipeline.recorder import OutcomeRecorder
from mbc.processors.base import ItemProcessor, ProcessingContext


def classify(completed: int, failed: int, cancelled: bool) -> BatchState:
    """Terminal state for a batch that has stopped iterating."""
    if cancelled:
        return BatchState.CANCELLED
    if failed == 0:
        return BatchState.COMPLETED
    if completed == 0:
        return BatchState.ALL_FAILED
    return BatchState.PARTIAL_FAILURE


class BatchRunner:
    """Drives one batch through its processor, one item at a time.

    idle -> preparing -> processing -> completed | partial-failure | all-failed | cancelled

    A runner is single-use: once it reaches a terminal state `run` raises
    BatchStateError.
    """

    def __init__(
        self,
        job: BatchJob,
        processor: ItemProcessor,
        event_bus: EventBus,
        recorder: OutcomeRecorder,
        output_dir: Path,
        permission_gate: Optional[PermissionGate] = None,
        media_library: Optional[MediaLibrary] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.job = job
        self.processor = processor
        self.event_bus = event_bus
        self.recorder = recorder
        self.output_dir = Path(output_dir)
        self.permission_gate = permission_gate
        self.media_library = media_library
        self.cancel_token = cancel_token or CancellationToken()
        self.progress = ProgressAggregator(list(job.items))
        self.state = BatchState.IDLE
        self.gallery_permission = False
        self._run_lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def cancel(self):
        """Requests a stop; the in-flight item still finishes and is recorded."""
        if not self.cancel_token.cancelled:
            self.logger.info("Cancel requested - stopping after the current item...")
        self.cancel_token.cancel()

    def summary(self) -> BatchSummary:
        items = self.progress.snapshot()
        bytes_saved = sum(
            max(0, (p.result.original_size or 0) - (p.result.compressed_size or 0))
            for p in items
            if p.result is not None and p.result.original_size is not None
        )
        return BatchSummary(
            state=self.state,
            total=self.progress.total,
            completed=self.progress.completed,
            failed=self.progress.failed,
            pending=self.progress.pending,
            overall_fraction=self.progress.overall_fraction,
            bytes_saved=bytes_saved,
            items=items,
        )

    def _set_state(self, state: BatchState):
        self.logger.debug(f"BATCH_STATE: {self.state.value} -> {state.value}")
        self.state = state

    def _prepare(self) -> ProcessingContext:
        self._set_state(BatchState.PREPARING)
        if self.permission_gate is not None:
            self.gallery_permission = self.permission_gate.request(self.job.settings.media_type)
        library = self.media_library if self.gallery_permission else None
        return ProcessingContext(self.output_dir, media_library=library)

    def _publish_progress(self):
        self.event_bus.publish(BatchProgressUpdated(
            overall_fraction=self.progress.overall_fraction,
            completed=self.progress.completed,
            failed=self.progress.failed,
            total=self.progress.total,
        ))

    def _process_item(self, index: int, context: ProcessingContext):
        item = self.job.items[index]
        settings = self.job.settings
        started = self.progress.start(index)
        self.event_bus.publish(ItemStarted(progress=started.model_copy()))
        self.logger.info(f"ITEM_START: [{index + 1}/{self.progress.total}] {item.display_name}")
        start_time = time.monotonic()

        def on_progress(fraction: float):
            self.progress.update(index, fraction)
            self.event_bus.publish(ItemProgressUpdated(
                progress=self.progress.items[index].model_copy(),
                fraction=fraction,
            ))
            self._publish_progress()

        try:
            outcome = self.processor.process(item, settings, context, on_progress)
        except Exception as e:
            err = normalize_error(e, context=f"processing {item.display_name}")
            outcome = ItemOutcome.fail(err.message, err.error_type.value)

        elapsed = time.monotonic() - start_time
        if outcome.success and outcome.result is not None:
            done = self.progress.complete(index, outcome.result)
            self.logger.info(
                f"ITEM_END: {item.display_name} status=completed output={outcome.result.output_name} "
                f"elapsed={elapsed:.2f}s"
            )
            self.event_bus.publish(ItemCompleted(progress=done.model_copy()))
        else:
            message = outcome.error_message or "Conversion failed"
            if outcome.success:
                outcome = ItemOutcome.fail(message, outcome.error_type)
            done = self.progress.fail(index, message)
            self.logger.info(f"ITEM_END: {item.display_name} status=error elapsed={elapsed:.2f}s ({message})")
            self.event_bus.publish(ItemFailed(progress=done.model_copy(), error_message=message))

        self.recorder.record(item, settings, outcome)
        self._publish_progress()

    def run(self) -> BatchSummary:
        """Processes every item in order and returns the final summary."""
        with self._run_lock:
            if self.state != BatchState.IDLE:
                raise BatchStateError(self.state.value)

            if self.job.is_empty:
                self.logger.info("No files selected - batch not started")
                self.event_bus.publish(NoFilesSelected())
                return self.summary()

            settings = self.job.settings
            self.logger.info(
                f"BATCH_START: {settings.operation.value} {len(self.job.items)} {settings.media_type.value} "
                f"file(s) -> {settings.output_format}"
            )
            context = self._prepare()

            self._set_state(BatchState.PROCESSING)
            self.event_bus.publish(BatchStarted(
                total=self.progress.total,
                settings=settings,
                gallery_permission=self.gallery_permission,
            ))

            cancelled = False
            for index in range(len(self.job.items)):
                if self.cancel_token.cancelled:
                    cancelled = True
                    break
                self._process_item(index, context)

            # A cancel that arrives during the last item changes nothing: the queue is exhausted
            final_state = classify(self.progress.completed, self.progress.failed, cancelled)
            self.progress.finalize()
            self._set_state(final_state)
            self._publish_progress()

            summary = self.summary()
            self.logger.info(
                f"BATCH_END: state={final_state.value} completed={summary.completed} "
                f"failed={summary.failed} pending={summary.pending}"
            )
            self.event_bus.publish(BatchFinished(
                state=final_state,
                completed=summary.completed,
                failed=summary.failed,
                pending=summary.pending,
            ))
            return summary
