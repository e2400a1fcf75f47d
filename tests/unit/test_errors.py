from mbc.domain.errors import (
    BatchStateError,
    ErrorType,
    FFmpegNotAvailableError,
    GENERIC_USER_MESSAGE,
    MbcError,
    NoFilesSelectedError,
    conversion_error,
    file_error,
    normalize_error,
    permission_error,
    user_message_for,
)

def test_file_error_messages():
    err = file_error(ErrorType.FILE_NOT_FOUND, "a.png")
    assert err.error_type == ErrorType.FILE_NOT_FOUND
    assert err.message == "File not found: a.png"
    assert "could not be found" in err.user_message
    assert err.context == {"file_name": "a.png"}

def test_file_error_unknown_type_uses_generic_pair():
    err = file_error(ErrorType.CACHE_ERROR, "a.png")
    assert err.message == "File error: a.png"

def test_permission_error_messages():
    err = permission_error(ErrorType.MEDIA_LIBRARY_PERMISSION, "gallery")
    assert err.message == "Media library permission denied"
    assert err.context["permission"] == "gallery"

def test_conversion_error_includes_details():
    cause = RuntimeError("codec")
    err = conversion_error(ErrorType.CONVERSION_FAILED, "song.wav", "exit 1", cause=cause)
    assert err.message == "Conversion failed: song.wav - exit 1"
    assert err.cause is cause
    assert str(err) == err.message

def test_normalize_error_keeps_mbc_errors():
    err = file_error(ErrorType.FILE_CORRUPTED, "x.png")
    assert normalize_error(err, "test") is err

def test_normalize_error_wraps_foreign_exceptions():
    original = KeyError("missing")
    err = normalize_error(original, "processing x.png")
    assert isinstance(err, MbcError)
    assert err.error_type == ErrorType.UNKNOWN_ERROR
    assert err.cause is original
    assert err.user_message == GENERIC_USER_MESSAGE
    assert "processing x.png" in err.message

def test_user_message_for():
    assert user_message_for(NoFilesSelectedError()) == "Please select at least one file to convert."
    assert user_message_for(ValueError("bad value")) == "bad value"
    assert user_message_for(ValueError()) == "An unexpected error occurred"

def test_specialised_errors():
    assert BatchStateError("completed").context == {"state": "completed"}
    err = FFmpegNotAvailableError("ffmpeg")
    assert "ffmpeg" in err.message
    assert "FFmpeg" in err.user_message
