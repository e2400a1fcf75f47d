import subprocess
import re
import logging
import shutil
import time
import threading
import queue
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import BaseModel

from mbc.config.models import FFmpegConfig
from mbc.domain.errors import ErrorType, FFmpegNotAvailableError
from mbc.config.presets import QUALITY_BITRATES
from mbc.domain.models import BatchSettings
from mbc.infrastructure.media_library import tmp_path_for

# Muxer names for outputs written to a `.tmp` path (ffmpeg cannot infer them)
MUXERS = {
    "mp3": "mp3",
    "aac": "adts",
    "m4a": "ipod",
    "wav": "wav",
    "flac": "flac",
    "ogg": "ogg",
    "mp4": "mp4",
    "avi": "avi",
    "mov": "mov",
    "mkv": "matroska",
}

AUDIO_CODECS = {
    "mp3": "libmp3lame",
    "aac": "aac",
    "wav": "pcm_s16le",
    "flac": "flac",
    "ogg": "libvorbis",
}

LOSSLESS_AUDIO = {"wav", "flac"}

# ffmpeg exits with 255 when it is stopped by a signal it handles (SIGINT/SIGTERM)
CANCELLED_RETURN_CODE = 255

TIME_REGEX = re.compile(r"time=(\d+):(\d+):(\d+(?:\.\d+)?)")


class FFmpegRuntime:
    """Located and verified ffmpeg installation, created once and passed to processors."""

    def __init__(self, binary: str, version: str, log_level: str = "warning", ffprobe_binary: str = "ffprobe"):
        self.binary = binary
        self.version = version
        self.log_level = log_level
        self.ffprobe_binary = ffprobe_binary

    @classmethod
    def initialize(cls, config: FFmpegConfig) -> "FFmpegRuntime":
        logger = logging.getLogger(__name__)
        binary = shutil.which(config.binary)
        if binary is None:
            raise FFmpegNotAvailableError(config.binary)
        try:
            result = subprocess.run([binary, "-hide_banner", "-version"], capture_output=True, text=True)
        except OSError as exc:
            raise FFmpegNotAvailableError(config.binary) from exc
        if result.returncode != 0:
            raise FFmpegNotAvailableError(config.binary)
        version = (result.stdout.splitlines() or ["unknown"])[0]
        ffprobe = shutil.which(config.ffprobe_binary) or config.ffprobe_binary
        logger.info(f"FFMPEG_READY: {binary} ({version})")
        return cls(binary=binary, version=version, log_level=config.log_level, ffprobe_binary=ffprobe)


class FFmpegRunResult(BaseModel):
    returncode: Optional[int] = None
    success: bool = False
    error_type: Optional[ErrorType] = None
    error_message: Optional[str] = None


def audio_bitrate_for(settings: BatchSettings) -> int:
    """Explicit bitrate wins; otherwise the quality percentage picks a preset level."""
    if settings.bitrate:
        return settings.bitrate
    if settings.quality is None:
        return QUALITY_BITRATES["medium"]
    if settings.quality >= 90:
        return QUALITY_BITRATES["ultra"]
    if settings.quality >= 70:
        return QUALITY_BITRATES["high"]
    if settings.quality >= 40:
        return QUALITY_BITRATES["medium"]
    return QUALITY_BITRATES["low"]


class FFmpegAdapter:
    """Wrapper around ffmpeg for audio and video conversion."""

    def __init__(self, runtime: FFmpegRuntime, timeout_s: Optional[float] = None):
        self.runtime = runtime
        self.timeout_s = timeout_s
        self.logger = logging.getLogger(__name__)

    def _base_command(self, input_path: Path) -> List[str]:
        return [
            self.runtime.binary,
            "-hide_banner",
            "-nostdin",
            "-y",  # Overwrite output files
            "-loglevel", self.runtime.log_level,
            "-stats",
            "-i", str(input_path),
        ]

    def _output_args(self, output_path: Path) -> List[str]:
        fmt = output_path.suffix.lower().lstrip(".")
        args: List[str] = []
        if fmt in MUXERS:
            args.extend(["-f", MUXERS[fmt]])
        args.append(str(tmp_path_for(output_path)))
        return args

    def build_audio_command(self, input_path: Path, output_path: Path, settings: BatchSettings) -> List[str]:
        fmt = settings.output_format.lower()
        cmd = self._base_command(input_path)
        cmd.extend(["-c:a", AUDIO_CODECS.get(fmt, "aac")])
        if fmt not in LOSSLESS_AUDIO:
            cmd.extend(["-b:a", f"{audio_bitrate_for(settings)}k"])
        if settings.sample_rate:
            cmd.extend(["-ar", str(settings.sample_rate)])
        cmd.append("-vn")
        cmd.extend(self._output_args(output_path))
        return cmd

    def build_audio_compress_command(self, input_path: Path, output_path: Path, settings: BatchSettings) -> List[str]:
        fmt = settings.output_format.lower()
        cmd = self._base_command(input_path)
        cmd.extend(["-c:a", "aac" if fmt == "aac" else "libmp3lame"])
        cmd.extend(["-b:a", f"{settings.bitrate or 128}k"])
        cmd.extend(["-ar", str(settings.sample_rate or 44100)])
        cmd.append("-vn")
        cmd.extend(self._output_args(output_path))
        return cmd

    def build_video_command(self, input_path: Path, output_path: Path, settings: BatchSettings) -> List[str]:
        cmd = self._base_command(input_path)
        if settings.resolution:
            cmd.extend([
                "-vf", f"scale=-2:{settings.resolution}",
                "-c:v", settings.codec or "libx264",
                "-preset", "medium",
                "-crf", "23",
                "-c:a", "aac",
            ])
        else:
            # Stream copy: fastest, no quality loss
            cmd.extend(["-c", "copy"])
        cmd.extend(self._output_args(output_path))
        return cmd

    def _stop(self, process: subprocess.Popen):
        process.terminate()
        try:
            process.wait(timeout=3)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def run(
        self,
        cmd: List[str],
        output_path: Path,
        duration: Optional[float] = None,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> FFmpegRunResult:
        """Runs ffmpeg, reporting progress, and renames the .tmp output on success."""
        filename = output_path.name
        tmp_path = tmp_path_for(output_path)
        start_time = time.monotonic()
        self.logger.info(f"FFMPEG_START: {filename}")
        self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        # Own session: a Ctrl+C in the terminal must not kill the in-flight item
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            universal_newlines=True,
            bufsize=1,
            start_new_session=True,
        )

        output_queue: "queue.Queue[Optional[str]]" = queue.Queue()
        tail: List[str] = []

        def _reader():
            if not process.stdout:
                output_queue.put(None)
                return
            for line in process.stdout:
                output_queue.put(line)
            output_queue.put(None)

        reader_thread = threading.Thread(target=_reader, daemon=True)
        reader_thread.start()

        timed_out = False
        while True:
            if self.timeout_s and time.monotonic() - start_time > self.timeout_s:
                self.logger.warning(f"FFMPEG_TIMEOUT: {filename} after {self.timeout_s:.0f}s")
                self._stop(process)
                timed_out = True
                break

            try:
                line = output_queue.get(timeout=0.1)
            except queue.Empty:
                if process.poll() is not None:
                    break
                continue

            if line is None:
                break

            stripped = line.strip()
            if stripped:
                tail.append(stripped)
                del tail[:-5]

            match = TIME_REGEX.search(line)
            if match and duration and on_progress:
                h, m, s = map(float, match.groups())
                current_seconds = h * 3600 + m * 60 + s
                on_progress(min(1.0, current_seconds / duration))

        process.wait()
        elapsed = time.monotonic() - start_time

        if timed_out:
            result = FFmpegRunResult(
                returncode=process.returncode,
                error_type=ErrorType.CONVERSION_TIMEOUT,
                error_message=f"Conversion timed out after {self.timeout_s:.0f}s",
            )
        elif process.returncode == CANCELLED_RETURN_CODE or (process.returncode or 0) < 0:
            result = FFmpegRunResult(
                returncode=process.returncode,
                error_type=ErrorType.CONVERSION_CANCELLED,
                error_message="Conversion was cancelled",
            )
        elif process.returncode != 0:
            details = tail[-1] if tail else "No output available"
            result = FFmpegRunResult(
                returncode=process.returncode,
                error_type=ErrorType.CONVERSION_FAILED,
                error_message=f"ffmpeg exited with code {process.returncode}. {details}",
            )
        else:
            if tmp_path.exists():
                tmp_path.replace(output_path)
            result = FFmpegRunResult(returncode=0, success=True)

        if not result.success and tmp_path.exists():
            tmp_path.unlink()

        status = "completed" if result.success else (result.error_type.value.lower() if result.error_type else "failed")
        self.logger.info(f"FFMPEG_END: {filename} status={status} code={process.returncode} elapsed={elapsed:.2f}s")
        return result
