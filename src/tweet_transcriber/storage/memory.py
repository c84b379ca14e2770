"""
In-memory transcript store.
"""

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..pipeline.main import TranscriptData
from ..transcription.whisper_client import TranscriptSegment

logger = logging.getLogger(__name__)


@dataclass
class Transcript:
    id: int
    source_url: str
    video_title: str
    username: str
    duration: str
    language: str
    timestamp_format: str
    segments: List[TranscriptSegment]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sourceUrl": self.source_url,
            "videoTitle": self.video_title,
            "username": self.username,
            "duration": self.duration,
            "language": self.language,
            "timestampFormat": self.timestamp_format,
            "segments": [segment.to_dict() for segment in self.segments],
            "createdAt": self.created_at.isoformat(),
        }


class TranscriptStore:
    """Keeps finished transcripts for the lifetime of the process."""

    def __init__(self):
        self._transcripts: Dict[int, Transcript] = {}
        self._ids = itertools.count(1)

    def create(self, data: TranscriptData) -> Transcript:
        transcript = Transcript(
            id=next(self._ids),
            source_url=data.source_url,
            video_title=data.video_title,
            username=data.username,
            duration=data.duration,
            language=data.language,
            timestamp_format=data.timestamp_format,
            segments=list(data.segments),
        )
        self._transcripts[transcript.id] = transcript
        logger.info(f"Stored transcript {transcript.id} for {transcript.source_url}")
        return transcript

    def get(self, transcript_id: int) -> Optional[Transcript]:
        return self._transcripts.get(transcript_id)

    def list_recent(self, limit: int = 5) -> List[Transcript]:
        """Newest first; ``id`` breaks ties between equal creation times."""
        if limit <= 0:
            return []
        ordered = sorted(self._transcripts.values(), key=lambda t: (t.created_at, t.id), reverse=True)
        return ordered[:limit]

    def delete(self, transcript_id: int) -> bool:
        """Returns False when there was nothing to delete."""
        return self._transcripts.pop(transcript_id, None) is not None
