"""Domain events for the batch conversion pipeline.

Events flow through the EventBus from the batch runner to the UI layer, so the
runner never talks to the dashboard directly.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from typing import List, Optional
from pydantic import BaseModel, Field
from .models import BatchSettings, BatchState, ItemProgress, SourceItem


class Event(BaseModel):
    """Base class for all domain events.

    Events are validated Pydantic models. They are not frozen by default.
    """

    pass


class ItemEvent(Event):
    """Base class for events related to a single queue item."""

    progress: ItemProgress


class BatchStarted(Event):
    """Emitted when the runner leaves `preparing` and begins processing."""

    total: int
    settings: BatchSettings
    gallery_permission: bool = False


class ItemStarted(ItemEvent):
    """Emitted when an item transitions to `processing`."""

    pass


class ItemProgressUpdated(ItemEvent):
    """Emitted as a processor reports sub-item progress (0.0-1.0)."""

    fraction: float


class ItemCompleted(ItemEvent):
    """Emitted when an item finishes successfully."""

    pass


class ItemFailed(ItemEvent):
    """Emitted when an item ends in `error`."""

    error_message: str


class BatchProgressUpdated(Event):
    """Emitted whenever the overall fraction changes."""

    overall_fraction: float
    completed: int = 0
    failed: int = 0
    total: int = 0


class BatchFinished(Event):
    """Emitted once when the runner reaches a terminal state."""

    state: BatchState
    completed: int = 0
    failed: int = 0
    pending: int = 0


class NoFilesSelected(Event):
    """Emitted instead of BatchStarted when the queue is empty."""

    pass


class CancelRequested(Event):
    """Emitted when the user asks to stop the batch (Ctrl+C)."""

    pass


class RejectedInput(BaseModel):
    item: SourceItem
    error_message: str


class InputRejected(Event):
    """Emitted after validation with the files that were filtered out."""

    rejected: List[RejectedInput] = Field(default_factory=list)
    accepted: int = 0
    total_size: Optional[int] = None
