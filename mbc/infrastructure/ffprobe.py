import subprocess
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

class FFprobeAdapter:
    """Wrapper around ffprobe used to learn a source's duration for progress reporting."""

    def __init__(self, binary: str = "ffprobe"):
        self.binary = binary
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _to_float(value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @classmethod
    def _parse_duration_tag(cls, value: Any) -> float:
        """Accepts plain seconds or `[HH:]MM:SS.fff` tag values."""
        if value is None:
            return 0.0
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            pass
        parts = text.split(":")
        if len(parts) not in (2, 3):
            return 0.0
        try:
            values = [float(p) for p in parts]
        except ValueError:
            return 0.0
        seconds = 0.0
        for v in values:
            seconds = seconds * 60 + v
        return seconds

    def get_media_info(self, file_path: Path) -> Dict[str, Any]:
        """Executes ffprobe and returns duration plus the first audio/video stream summary."""
        cmd = [
            self.binary,
            "-v", "quiet",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(file_path)
        ]

        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise RuntimeError(f"ffprobe failed for {file_path}: {result.stderr}")

        data = json.loads(result.stdout or "{}")
        streams = data.get("streams", []) or []
        video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
        audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)
        main_stream = video_stream or audio_stream or {}

        # Duration fallback order: format.duration, format tags, stream.duration, stream tags
        fmt = data.get("format", {}) or {}
        duration = self._to_float(fmt.get("duration"))
        if duration <= 0:
            tags = fmt.get("tags", {}) or {}
            duration = self._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))
        if duration <= 0:
            duration = self._to_float(main_stream.get("duration"))
        if duration <= 0:
            tags = main_stream.get("tags", {}) or {}
            duration = self._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))

        return {
            "duration": duration,
            "has_video": video_stream is not None,
            "has_audio": audio_stream is not None,
            "width": int(video_stream.get("width", 0)) if video_stream else 0,
            "height": int(video_stream.get("height", 0)) if video_stream else 0,
            "format": fmt.get("format_name"),
        }

    def get_duration(self, file_path: Path) -> Optional[float]:
        """Duration in seconds, or None when ffprobe cannot tell."""
        try:
            duration = self.get_media_info(file_path)["duration"]
        except (RuntimeError, OSError, ValueError) as exc:
            self.logger.warning(f"FFPROBE_FAILED: {file_path.name} ({exc})")
            return None
        return duration if duration > 0 else None
