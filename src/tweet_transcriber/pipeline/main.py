"""
Pipeline orchestrator: tweet URL -> video -> audio -> transcript.

Stages run strictly in sequence. Every transition is published on the
progress channel; any failure is classified once, published as a single
error event and re-raised as a ``PipelineError``. The extracted audio file
is removed on every exit path.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..social.twitter_client import TwitterClient, VideoReference
from ..transcription.whisper_client import TranscriptionResult, TranscriptSegment, WhisperClient
from ..video.ffmpeg_decoder import AudioArtifact, FFmpegDecoder
from .config import PipelineConfig
from .errors import PipelineError, classify_error
from .progress import ErrorUpdate, ProgressPublisher, ProgressUpdate, overall_progress

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    FETCHING_METADATA = "fetching_metadata"
    DOWNLOADING = "downloading"
    EXTRACTING_AUDIO = "extracting_audio"
    TRANSCRIBING = "transcribing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class TranscriptData:
    """A finished transcript, ready to be handed to the store."""
    source_url: str
    video_title: str
    username: str
    duration: str
    language: str
    timestamp_format: str
    segments: List[TranscriptSegment] = field(default_factory=list)


def transcript_duration(segments: List[TranscriptSegment]) -> str:
    """Duration is the last segment's timestamp, ``0:00`` when there is none."""
    if not segments:
        return "0:00"
    return segments[-1].timestamp or "0:00"


class PipelineRun:
    """Per-run state and progress reporting."""

    def __init__(self, publisher: ProgressPublisher, run_id: Optional[str] = None):
        self.publisher = publisher
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.state = PipelineState.IDLE
        self.last_overall = 0
        self.started_at = time.monotonic()

    def enter(self, state: PipelineState) -> None:
        logger.debug(f"[{self.run_id}] {self.state.value} -> {state.value}")
        self.state = state

    async def progress(self, step: int, progress: int, message: str) -> None:
        overall = overall_progress(step, progress)
        if overall < self.last_overall:
            logger.debug(f"[{self.run_id}] dropping regressing progress {overall} < {self.last_overall}")
            return
        self.last_overall = overall
        await self.publisher.publish(
            ProgressUpdate(step=step, progress=progress, message=message, run_id=self.run_id)
        )

    async def fail(self, message: str) -> None:
        self.last_overall = 100
        await self.publisher.publish(ErrorUpdate(message=message, overall_progress=100, run_id=self.run_id))

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


class TranscriptionPipeline:
    """Sequences the external client, extraction and transcription stages."""

    def __init__(self, config: PipelineConfig, twitter_client: TwitterClient,
                 decoder: FFmpegDecoder, whisper_client: WhisperClient,
                 publisher: ProgressPublisher):
        self.config = config
        self.twitter_client = twitter_client
        self.decoder = decoder
        self.whisper_client = whisper_client
        self.publisher = publisher

    async def process(self, url: str, language: str = "auto",
                      timestamp_format: str = "seconds") -> TranscriptData:
        """
        Run the whole pipeline for one post URL.

        Raises:
            PipelineError: classified failure; exactly one error event has
                already been published for it
        """
        run = PipelineRun(self.publisher)
        audio: Optional[AudioArtifact] = None
        logger.info(f"[{run.run_id}] Processing {url} (language={language}, format={timestamp_format})")

        async def process_media(reference: VideoReference) -> TranscriptionResult:
            nonlocal audio

            run.enter(PipelineState.DOWNLOADING)
            await run.progress(2, 10, "Starting video download...")
            video_data = await self.twitter_client.download_video(reference.video_url)
            await run.progress(2, 100, "Video downloaded successfully")

            run.enter(PipelineState.EXTRACTING_AUDIO)
            await run.progress(3, 10, "Extracting audio from video...")
            audio = await self.decoder.extract_audio(video_data)
            del video_data
            await run.progress(3, 100, "Audio extracted successfully")

            run.enter(PipelineState.TRANSCRIBING)
            await run.progress(4, 10, "Beginning transcription process...")
            return await self._transcribe(run, audio, language, timestamp_format)

        try:
            run.enter(PipelineState.FETCHING_METADATA)
            await run.progress(1, 10, "Connecting to Twitter API...")
            reference = await self.twitter_client.resolve_video(url)
            await run.progress(1, 100, "Successfully fetched video details from Twitter")

            # Outer deadline covers download, extraction and transcription together
            result = await asyncio.wait_for(
                process_media(reference), timeout=self.config.pipeline_timeout_seconds
            )
        except Exception as exc:
            failed_in = run.state
            run.enter(PipelineState.FAILED)
            kind, message = classify_error(exc)
            logger.error(
                f"[{run.run_id}] Pipeline failed during {failed_in.value} after "
                f"{run.elapsed():.1f}s ({kind.value}): {exc!r}"
            )
            await run.fail(message)
            raise PipelineError(kind, message) from exc
        finally:
            if audio is not None:
                audio.remove()

        await run.progress(4, 100, "Transcription completed successfully")
        run.enter(PipelineState.DONE)
        logger.info(
            f"[{run.run_id}] Transcribed {len(result.segments)} segments "
            f"({result.language}) in {run.elapsed():.1f}s"
        )

        return TranscriptData(
            source_url=url,
            video_title=f"Tweet by {reference.author_name}",
            username=reference.username,
            duration=transcript_duration(result.segments),
            language=result.language,
            timestamp_format=timestamp_format,
            segments=result.segments,
        )

    async def _transcribe(self, run: PipelineRun, audio: AudioArtifact,
                          language: str, timestamp_format: str) -> TranscriptionResult:
        ticker = asyncio.create_task(self._tick(run))
        try:
            return await self.whisper_client.transcribe(audio, language, timestamp_format)
        finally:
            # Stop synthetic progress the moment transcription settles
            ticker.cancel()
            await asyncio.gather(ticker, return_exceptions=True)

    async def _tick(self, run: PipelineRun) -> None:
        """Liveness signal while the model runs; not a real completion fraction."""
        progress = 10
        # Nothing left to report once the ceiling is reached
        while progress < self.config.progress_ceiling:
            await asyncio.sleep(self.config.progress_interval_seconds)
            progress = min(self.config.progress_ceiling, progress + self.config.progress_increment)
            await run.progress(4, progress, "Transcription in progress...")
