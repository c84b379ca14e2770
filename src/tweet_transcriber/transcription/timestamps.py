"""
Timestamp formatting and plain-text rendering of transcript segments.
"""

import logging
import math
from typing import Iterable, Literal

logger = logging.getLogger(__name__)

TimestampFormat = Literal["none", "seconds", "detailed"]
TIMESTAMP_FORMATS = ("none", "seconds", "detailed")


def format_timestamp(seconds: float, mode: str = "seconds") -> str:
    """
    Convert a start time in seconds to a display timestamp.

    Args:
        seconds: Time in seconds
        mode: ``none`` (empty string), ``seconds`` (m:ss, minutes unbounded)
            or ``detailed`` (hh:mm:ss.cc)

    Returns:
        Formatted timestamp string
    """
    if mode == "none":
        return ""

    total_seconds = int(math.floor(seconds))
    minutes = total_seconds // 60
    remaining_seconds = total_seconds % 60

    if mode == "seconds":
        return f"{minutes}:{remaining_seconds:02d}"
    if mode == "detailed":
        hours = minutes // 60
        remaining_minutes = minutes % 60
        centiseconds = int(math.floor((seconds - total_seconds) * 100))
        return f"{hours:02d}:{remaining_minutes:02d}:{remaining_seconds:02d}.{centiseconds:02d}"

    # Unreachable for validated requests
    logger.debug(f"Unknown timestamp format {mode!r}, falling back to raw seconds")
    return str(int(seconds)) if float(seconds).is_integer() else str(seconds)


def render_plain_text(segments: Iterable) -> str:
    """
    Render segments as downloadable text: the timestamp on its own line
    (omitted when empty), then the text, blocks separated by a blank line.
    """
    blocks = []
    for segment in segments:
        timestamp = segment.timestamp
        blocks.append(f"{timestamp}\n{segment.text}" if timestamp else segment.text)
    return "\n\n".join(blocks)
