"""
Error taxonomy for MBC.

Every failure that reaches the user is an `MbcError` carrying an `ErrorType`,
a developer message (logged) and a user message (displayed). The factory
functions below produce the standard message pairs; `normalize_error` turns
anything else into an `UNKNOWN_ERROR`.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorType(str, Enum):
    # File errors
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    FILE_CORRUPTED = "FILE_CORRUPTED"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    FILE_ACCESS_DENIED = "FILE_ACCESS_DENIED"

    # Permission errors
    PERMISSION_DENIED = "PERMISSION_DENIED"
    MEDIA_LIBRARY_PERMISSION = "MEDIA_LIBRARY_PERMISSION"
    STORAGE_PERMISSION = "STORAGE_PERMISSION"

    # Conversion errors
    CONVERSION_FAILED = "CONVERSION_FAILED"
    CONVERSION_CANCELLED = "CONVERSION_CANCELLED"
    CONVERSION_TIMEOUT = "CONVERSION_TIMEOUT"
    INVALID_SETTINGS = "INVALID_SETTINGS"

    # Storage errors
    STORAGE_FULL = "STORAGE_FULL"
    CACHE_ERROR = "CACHE_ERROR"

    # Generic
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"


GENERIC_USER_MESSAGE = "An unexpected error occurred. Please try again."


class MbcError(Exception):
    """Base class for all MBC errors."""

    def __init__(
        self,
        error_type: ErrorType,
        message: str,
        user_message: str,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.user_message = user_message
        self.cause = cause
        self.context = context or {}

    def __str__(self) -> str:
        return self.message


class NoFilesSelectedError(MbcError):
    """Raised when a batch is requested with an empty item list."""

    def __init__(self):
        super().__init__(
            ErrorType.VALIDATION_ERROR,
            "No files selected",
            "Please select at least one file to convert.",
        )


class BatchStateError(MbcError):
    """Raised when a runner is asked to run again after reaching a terminal state."""

    def __init__(self, state: str):
        super().__init__(
            ErrorType.VALIDATION_ERROR,
            f"Batch runner already used (state={state})",
            "This batch has already finished. Start a new batch.",
            context={"state": state},
        )


class HistoryStoreError(MbcError):
    """Raised when the history storage cannot be read or written."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(
            ErrorType.CACHE_ERROR,
            message,
            "Conversion history could not be saved.",
            cause=cause,
        )


class ConfigError(MbcError):
    """Raised when the YAML configuration does not validate."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(
            ErrorType.INVALID_SETTINGS,
            message,
            "Invalid configuration file. Please check your settings and try again.",
            cause=cause,
        )


class FFmpegNotAvailableError(MbcError):
    """Raised when the ffmpeg binary cannot be located or started."""

    def __init__(self, binary: str):
        super().__init__(
            ErrorType.CONVERSION_FAILED,
            f"ffmpeg binary not available: {binary}",
            "Audio and video conversion requires FFmpeg. Please install it and try again.",
            context={"binary": binary},
        )


_FILE_MESSAGES = {
    ErrorType.FILE_NOT_FOUND: (
        "File not found: {name}",
        "The selected file could not be found. Please try selecting it again.",
    ),
    ErrorType.FILE_TOO_LARGE: (
        "File too large: {name}",
        "The selected file is too large. Please choose a smaller file.",
    ),
    ErrorType.FILE_CORRUPTED: (
        "File corrupted: {name}",
        "The selected file appears to be corrupted. Please try a different file.",
    ),
    ErrorType.UNSUPPORTED_FORMAT: (
        "Unsupported format: {name}",
        "This file format is not supported. Please choose a different file.",
    ),
    ErrorType.FILE_ACCESS_DENIED: (
        "Access denied: {name}",
        "Cannot access the selected file. Please check permissions.",
    ),
}

_PERMISSION_MESSAGES = {
    ErrorType.PERMISSION_DENIED: (
        "Permission denied: {permission}",
        "Permission is required to access this feature. Please grant the necessary permissions.",
    ),
    ErrorType.MEDIA_LIBRARY_PERMISSION: (
        "Media library permission denied",
        "Media library access is required to save files. Please enable it in settings.",
    ),
    ErrorType.STORAGE_PERMISSION: (
        "Storage permission denied",
        "Storage access is required to manage files. Please enable it in settings.",
    ),
}

_CONVERSION_MESSAGES = {
    ErrorType.CONVERSION_FAILED: (
        "Conversion failed: {name} - {details}",
        "File conversion failed. Please try again or choose a different file.",
    ),
    ErrorType.CONVERSION_CANCELLED: (
        "Conversion cancelled: {name}",
        "File conversion was cancelled.",
    ),
    ErrorType.CONVERSION_TIMEOUT: (
        "Conversion timeout: {name}",
        "File conversion took too long and was stopped. Please try with a smaller file.",
    ),
    ErrorType.INVALID_SETTINGS: (
        "Invalid settings for: {name}",
        "Invalid conversion settings. Please check your settings and try again.",
    ),
}


def file_error(error_type: ErrorType, file_name: str, cause: Optional[BaseException] = None) -> MbcError:
    dev, user = _FILE_MESSAGES.get(
        error_type, ("File error: {name}", "An error occurred with the selected file.")
    )
    return MbcError(error_type, dev.format(name=file_name), user, cause, {"file_name": file_name})


def permission_error(error_type: ErrorType, permission: str, cause: Optional[BaseException] = None) -> MbcError:
    dev, user = _PERMISSION_MESSAGES.get(
        error_type, ("Permission error: {permission}", "Permission is required for this operation.")
    )
    return MbcError(error_type, dev.format(permission=permission), user, cause, {"permission": permission})


def conversion_error(
    error_type: ErrorType,
    file_name: str,
    details: Optional[str] = None,
    cause: Optional[BaseException] = None,
) -> MbcError:
    dev, user = _CONVERSION_MESSAGES.get(
        error_type, ("Conversion error: {name}", "An error occurred during file conversion.")
    )
    return MbcError(
        error_type,
        dev.format(name=file_name, details=details),
        user,
        cause,
        {"file_name": file_name, "details": details},
    )


def normalize_error(error: BaseException, context: Optional[str] = None) -> MbcError:
    """Returns `error` as an MbcError, wrapping foreign exceptions as UNKNOWN_ERROR."""
    logger.error(f"Error in {context or 'unknown context'}: {error!r}")
    if isinstance(error, MbcError):
        return error
    return MbcError(
        ErrorType.UNKNOWN_ERROR,
        f"Unknown error in {context}: {error}",
        GENERIC_USER_MESSAGE,
        cause=error,
        context={"context": context},
    )


def user_message_for(error: BaseException) -> str:
    if isinstance(error, MbcError):
        return error.user_message
    text = str(error)
    return text or "An unexpected error occurred"
