"""FFmpeg command construction for the RTMP relay.

Everything here is pure: same inputs give the same argument list.
"""

import re
from collections.abc import Callable
from typing import Literal

RTMP_SCHEMES = ("rtmp://", "rtmps://")

# Inputs with one of these schemes are fetched by FFmpeg, anything else is a local path.
_URL_SOURCE_RE = re.compile(r"^(https?|rtmps?|rtsp|srt|udp|tcp|ftp)://", re.IGNORECASE)

VIDEO_ARGS = [
    "-c:v", "libx264",
    "-preset", "veryfast",
    "-maxrate", "3000k",
    "-bufsize", "6000k",
    "-pix_fmt", "yuv420p",
    "-g", "50",
]

AUDIO_ARGS = [
    "-c:a", "aac",
    "-b:a", "128k",
    "-ac", "2",
    "-ar", "44100",
]

OUTPUT_FORMAT_ARGS = ["-f", "flv"]

MASK = "****"


def detect_source_type(input_source: str) -> Literal["file", "url"]:
    return "url" if _URL_SOURCE_RE.match(input_source.strip()) else "file"


def normalize_input_source(input_source: str) -> str:
    """Convert Windows path separators to forward slashes for local files.

    URLs are returned untouched.
    """
    source = input_source.strip()
    if detect_source_type(source) == "url":
        return source
    return source.replace("\\", "/")


def is_rtmp_url(url: str | None) -> bool:
    if not url:
        return False
    return url.strip().lower().startswith(RTMP_SCHEMES)


def build_destination_url(stream_url: str, stream_key: str) -> str:
    """Join the ingest base URL and the stream key with exactly one slash."""
    base = stream_url.strip().rstrip("/")
    return f"{base}/{stream_key.strip()}"


def mask_destination_url(destination_url: str) -> str:
    """Hide the stream key (last path segment) of a destination URL."""
    base, sep, key = destination_url.rpartition("/")
    if not sep or not key or base.endswith(":/") or base.endswith("//"):
        return destination_url
    return f"{base}/{MASK}"


def stream_key_redactor(destination_url: str) -> Callable[[str], str]:
    """Build a function hiding the stream key of `destination_url` in free text.

    FFmpeg echoes the output URL in its diagnostics, so every line read from
    it goes through the redactor before it is logged or kept.
    """
    masked = mask_destination_url(destination_url)
    if masked == destination_url:
        return lambda text: text
    key = destination_url.rpartition("/")[2]

    def redact(text: str) -> str:
        return text.replace(destination_url, masked).replace(key, MASK)

    return redact


def mask_args(args: list[str]) -> list[str]:
    """Copy of an FFmpeg argument list safe for logging."""
    if not args:
        return []
    return [*args[:-1], mask_destination_url(args[-1])]


def build_ffmpeg_args(input_source: str, destination_url: str, loop: bool = False) -> list[str]:
    """Build the FFmpeg arguments relaying `input_source` to `destination_url`.

    Args:
        input_source: Local file path or remote URL
        destination_url: Full RTMP target (ingest base + stream key)
        loop: Restart the input indefinitely when it ends

    Returns:
        Argument list, without the program name
    """
    args = ["-re"]
    if loop:
        args += ["-stream_loop", "-1"]
    args += ["-i", normalize_input_source(input_source)]
    args += VIDEO_ARGS
    args += AUDIO_ARGS
    args += OUTPUT_FORMAT_ARGS
    args.append(destination_url)
    return args
