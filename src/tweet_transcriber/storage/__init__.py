"""
Transcript storage.
"""

from .memory import Transcript, TranscriptStore

__all__ = ["Transcript", "TranscriptStore"]
