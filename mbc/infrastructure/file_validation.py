import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import unquote, urlparse

from pydantic import BaseModel

from mbc.config.models import ExtensionsConfig, LimitsConfig
from mbc.domain.errors import ErrorType, MbcError, file_error
from mbc.domain.models import MediaType, SourceItem
from mbc.utils.format_utils import format_file_size


def resolve_source(source_uri: str) -> Path:
    """Turns a `file://` URI or a plain path into a local Path."""
    if source_uri.startswith("file://"):
        return Path(unquote(urlparse(source_uri).path))
    return Path(source_uri).expanduser()


def item_from_path(path: str) -> SourceItem:
    resolved = resolve_source(path)
    return SourceItem(source_uri=str(path), display_name=resolved.name)


class ValidationResult(BaseModel):
    is_valid: bool
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None
    size: int = 0


class RejectedItem(BaseModel):
    item: SourceItem
    error: str
    error_type: Optional[ErrorType] = None


class FileValidator:
    """Checks extension, accessibility and size of candidate inputs before a batch."""

    def __init__(self, limits: Optional[LimitsConfig] = None, extensions: Optional[ExtensionsConfig] = None):
        self.limits = limits or LimitsConfig()
        self.extensions = extensions or ExtensionsConfig()
        self.logger = logging.getLogger(__name__)

    def is_supported(self, name: str, media_type: MediaType) -> bool:
        return Path(name).suffix.lower() in self.extensions.for_type(media_type.value)

    def validate_file(self, item: SourceItem, media_type: MediaType) -> ValidationResult:
        if not self.is_supported(item.display_name, media_type):
            supported = ", ".join(self.extensions.for_type(media_type.value))
            return ValidationResult(
                is_valid=False,
                error=f"Unsupported file format. Supported formats: {supported}",
                error_type=ErrorType.UNSUPPORTED_FORMAT,
            )

        path = resolve_source(item.source_uri)
        try:
            if not path.is_file():
                raise file_error(ErrorType.FILE_NOT_FOUND, item.display_name)
            if not os.access(path, os.R_OK):
                raise file_error(ErrorType.FILE_ACCESS_DENIED, item.display_name)
            size = path.stat().st_size
        except MbcError as exc:
            return ValidationResult(is_valid=False, error=exc.user_message, error_type=exc.error_type)
        except OSError as exc:
            err = file_error(ErrorType.FILE_ACCESS_DENIED, item.display_name, cause=exc)
            return ValidationResult(is_valid=False, error=err.user_message, error_type=err.error_type)

        limit = self.limits.for_type(media_type.value)
        if size > limit:
            return ValidationResult(
                is_valid=False,
                error=f"File size ({format_file_size(size)}) exceeds the maximum allowed size of {format_file_size(limit)}",
                error_type=ErrorType.FILE_TOO_LARGE,
                size=size,
            )

        return ValidationResult(is_valid=True, size=size)

    def validate_files(self, items: List[SourceItem], media_type: MediaType) -> Tuple[List[SourceItem], List[RejectedItem], int]:
        """Splits items into (valid, rejected, total size of valid) preserving order."""
        valid: List[SourceItem] = []
        rejected: List[RejectedItem] = []
        total_size = 0
        for item in items:
            result = self.validate_file(item, media_type)
            if result.is_valid:
                valid.append(item)
                total_size += result.size
            else:
                self.logger.info(f"INPUT_REJECTED: {item.display_name} ({result.error})")
                rejected.append(RejectedItem(item=item, error=result.error or "Invalid file", error_type=result.error_type))
        return valid, rejected, total_size

    def size_limit_text(self, media_type: MediaType) -> str:
        return format_file_size(self.limits.for_type(media_type.value))
