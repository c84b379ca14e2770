"""
Progress events pushed to WebSocket observers while a pipeline run is active.
"""

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Union

TOTAL_STEPS = 4


def step_status(progress: int) -> str:
    if progress >= 100:
        return "completed"
    if progress > 0:
        return "active"
    return "pending"


def overall_progress(step: int, progress: int) -> int:
    """Each of the four steps contributes an equal 25% share."""
    share = 100 / TOTAL_STEPS
    # half-up rounding: 2.5 -> 3
    return min(100, int(math.floor((step - 1) * share + progress * share / 100 + 0.5)))


@dataclass(frozen=True)
class ProgressUpdate:
    step: int
    progress: int
    message: str
    run_id: Optional[str] = None

    @property
    def status(self) -> str:
        return step_status(self.progress)

    @property
    def overall_progress(self) -> int:
        return overall_progress(self.step, self.progress)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "progress",
            "step": self.step,
            "progress": self.progress,
            "status": self.status,
            "message": self.message,
            "overallProgress": self.overall_progress,
            "runId": self.run_id,
        }


@dataclass(frozen=True)
class ErrorUpdate:
    message: str
    overall_progress: int = 100  # closes out the progress meter
    run_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "error",
            "message": self.message,
            "overallProgress": self.overall_progress,
            "runId": self.run_id,
        }


ProgressEvent = Union[ProgressUpdate, ErrorUpdate]


def serialize_event(event: ProgressEvent) -> str:
    return json.dumps(event.to_dict())


class ProgressPublisher(Protocol):
    async def publish(self, event: ProgressEvent) -> None: ...
