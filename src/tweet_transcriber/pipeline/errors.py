"""
Error taxonomy for the transcription pipeline.

Every stage raises a ``TranscriberError`` subclass carrying its ``ErrorKind``.
The orchestrator classifies failures once, at the top, with ``classify_error``
and re-raises them as a single ``PipelineError``.
"""

import asyncio
from enum import Enum
from typing import Optional, Tuple


class ErrorKind(str, Enum):
    INVALID_INPUT = "InvalidInput"
    NO_CREDENTIALS = "NoCredentials"
    NOT_FOUND = "NotFound"
    NO_VIDEO_FOUND = "NoVideoFound"
    RATE_LIMITED = "RateLimited"
    DOWNLOAD_FAILED = "DownloadFailed"
    EXTRACTION_FAILED = "ExtractionFailed"
    TRANSCRIPTION_TIMEOUT = "TranscriptionTimeout"
    TIMEOUT = "Timeout"
    OUT_OF_MEMORY = "OutOfMemory"
    UNKNOWN = "Unknown"


USER_MESSAGES = {
    ErrorKind.INVALID_INPUT: "Must be a valid Twitter/X video URL",
    ErrorKind.NO_CREDENTIALS: (
        "Twitter API credentials are missing or invalid. Please check your environment variables."
    ),
    ErrorKind.NOT_FOUND: "Tweet not found. The tweet may be private or deleted.",
    ErrorKind.NO_VIDEO_FOUND: "No video found in the tweet. Please try a different tweet URL.",
    ErrorKind.RATE_LIMITED: "Twitter API rate limit exceeded. Please try again in a few minutes.",
    ErrorKind.DOWNLOAD_FAILED: "Failed to download the video from Twitter. Please try again later.",
    ErrorKind.EXTRACTION_FAILED: "Failed to extract audio from the video.",
    ErrorKind.TRANSCRIPTION_TIMEOUT: (
        "Transcription took longer than 60 seconds. Please try a shorter video."
    ),
    ErrorKind.TIMEOUT: "Processing took longer than 90 seconds. Please try a shorter video.",
    ErrorKind.OUT_OF_MEMORY: (
        "The server ran out of memory while processing the video. Please try a shorter video."
    ),
}


class TranscriberError(Exception):
    """Base class for failures raised by pipeline stages."""

    kind: ErrorKind = ErrorKind.UNKNOWN


class InvalidInputError(TranscriberError):
    kind = ErrorKind.INVALID_INPUT


class NoCredentialsError(TranscriberError):
    kind = ErrorKind.NO_CREDENTIALS


class NotFoundError(TranscriberError):
    kind = ErrorKind.NOT_FOUND


class NoVideoFoundError(TranscriberError):
    kind = ErrorKind.NO_VIDEO_FOUND


class RateLimitedError(TranscriberError):
    kind = ErrorKind.RATE_LIMITED


class DownloadFailedError(TranscriberError):
    kind = ErrorKind.DOWNLOAD_FAILED


class ExtractionFailedError(TranscriberError):
    kind = ErrorKind.EXTRACTION_FAILED


class TranscriptionTimeoutError(TranscriberError):
    kind = ErrorKind.TRANSCRIPTION_TIMEOUT


class TwitterApiError(TranscriberError):
    """Unexpected upstream response; surfaced verbatim."""


class PipelineError(Exception):
    """The single classified failure the orchestrator hands back to its caller."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


def _is_probable_oom_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return (
        "out of memory" in message
        or "cudnn_status_alloc_failed" in message
        or "cannot allocate memory" in message
        or "bad_alloc" in message
    )


def _is_rate_limit_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return "429" in message or "rate limit" in message


def user_message(kind: ErrorKind, detail: Optional[str] = None) -> str:
    """Human-readable message for a kind; ``Unknown`` passes ``detail`` through."""
    if kind in USER_MESSAGES:
        return USER_MESSAGES[kind]
    return detail or "An unknown error occurred"


def classify_error(exc: BaseException) -> Tuple[ErrorKind, str]:
    """Map any failure to an ``ErrorKind`` and its user-facing message."""
    if isinstance(exc, PipelineError):
        return exc.kind, exc.message
    if isinstance(exc, TranscriberError) and exc.kind is not ErrorKind.UNKNOWN:
        kind = exc.kind
    elif isinstance(exc, asyncio.TimeoutError):
        kind = ErrorKind.TIMEOUT
    elif isinstance(exc, MemoryError) or _is_probable_oom_error(exc):
        kind = ErrorKind.OUT_OF_MEMORY
    elif _is_rate_limit_error(exc):
        kind = ErrorKind.RATE_LIMITED
    else:
        kind = ErrorKind.UNKNOWN
    message = user_message(kind, str(exc) or type(exc).__name__)
    if kind is ErrorKind.EXTRACTION_FAILED and str(exc):
        # keep the transcoder's own complaint
        message = f"{message} ({exc})"
    return kind, message
