from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field, model_validator

class MediaType(str, Enum):
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"

class Operation(str, Enum):
    CONVERT = "convert"
    COMPRESS = "compress"

class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

class BatchState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial-failure"
    ALL_FAILED = "all-failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

TERMINAL_STATES = frozenset({
    BatchState.COMPLETED,
    BatchState.PARTIAL_FAILURE,
    BatchState.ALL_FAILED,
    BatchState.CANCELLED,
})

class SourceItem(BaseModel):
    """One user-selected file: an opaque locator plus the name shown to the user."""
    model_config = ConfigDict(frozen=True)

    source_uri: str
    display_name: str

    @property
    def extension(self) -> str:
        """Lower-case extension without the dot, taken from the display name."""
        suffix = Path(self.display_name).suffix or Path(self.source_uri).suffix
        return suffix.lower().lstrip(".")

class BatchSettings(BaseModel):
    """Settings snapshot applied uniformly to every item of a batch."""
    model_config = ConfigDict(frozen=True)

    media_type: MediaType
    operation: Operation = Operation.CONVERT
    output_format: str
    quality: Optional[int] = Field(default=None, ge=1, le=100)
    bitrate: Optional[int] = Field(default=None, gt=0)  # kbps
    resolution: Optional[int] = Field(default=None, gt=0)  # output height in pixels
    sample_rate: Optional[int] = Field(default=None, gt=0)
    max_width: Optional[int] = Field(default=None, gt=0)
    max_height: Optional[int] = Field(default=None, gt=0)
    codec: Optional[str] = None
    font_family: str = "Arial"
    font_size: int = Field(default=12, gt=0)

class ItemResult(BaseModel):
    output_path: Path
    output_name: str
    gallery_path: Optional[Path] = None
    output_size: Optional[int] = None
    original_size: Optional[int] = None
    compressed_size: Optional[int] = None
    compression_ratio: Optional[float] = None  # percent reduction

class ItemOutcome(BaseModel):
    """What a processor reports for one item: a result or a failure message."""
    success: bool
    result: Optional[ItemResult] = None
    error_message: Optional[str] = None
    error_type: Optional[str] = None

    @model_validator(mode="after")
    def success_needs_result(self) -> "ItemOutcome":
        if self.success and self.result is None:
            raise ValueError("a successful outcome must carry a result")
        return self

    @classmethod
    def ok(cls, result: ItemResult) -> "ItemOutcome":
        return cls(success=True, result=result)

    @classmethod
    def fail(cls, message: str, error_type: Optional[str] = None) -> "ItemOutcome":
        return cls(success=False, error_message=message, error_type=error_type)

class ItemProgress(BaseModel):
    index: int
    item: SourceItem
    status: ItemStatus = ItemStatus.PENDING
    progress: float = 0.0
    result: Optional[ItemResult] = None
    error_message: Optional[str] = None

class BatchJob(BaseModel):
    """Ordered, read-only queue of items sharing one settings snapshot."""
    model_config = ConfigDict(frozen=True)

    items: Tuple[SourceItem, ...]
    settings: BatchSettings

    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0

class HistoryEntry(BaseModel):
    id: str
    timestamp: int  # epoch milliseconds
    input_file_name: str
    output_file_name: str
    input_format: str
    output_format: str
    conversion_type: MediaType
    success: bool
    output_path: Optional[str] = None
    file_size: Optional[int] = None

class HistoryStats(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)

class BatchSummary(BaseModel):
    state: BatchState
    total: int = 0
    completed: int = 0
    failed: int = 0
    pending: int = 0
    overall_fraction: float = 0.0
    bytes_saved: int = 0
    items: List[ItemProgress] = Field(default_factory=list)

class FormatOption(BaseModel):
    id: str
    name: str
    extension: str
    quality: Union[bool, List[int]] = False

class CompressionPreset(BaseModel):
    id: str
    name: str
    description: str
    settings: Dict[str, Union[int, str]]
