"""
Transcription module using faster-whisper for audio-to-text conversion.
"""

__version__ = "1.0.0"

from .timestamps import TIMESTAMP_FORMATS, format_timestamp, render_plain_text
from .whisper_client import TranscriptionResult, TranscriptSegment, WhisperClient

__all__ = [
    "TIMESTAMP_FORMATS",
    "format_timestamp",
    "render_plain_text",
    "TranscriptionResult",
    "TranscriptSegment",
    "WhisperClient",
]
