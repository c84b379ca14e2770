import asyncio
from pathlib import Path
from typing import Any, List, Optional

import pytest

from tweet_transcriber.pipeline.config import PipelineConfig
from tweet_transcriber.pipeline.errors import (
    DownloadFailedError,
    ErrorKind,
    ExtractionFailedError,
    NotFoundError,
    PipelineError,
    TranscriptionTimeoutError,
    USER_MESSAGES,
)
from tweet_transcriber.pipeline.main import TranscriptionPipeline, transcript_duration
from tweet_transcriber.pipeline.progress import ErrorUpdate, ProgressUpdate
from tweet_transcriber.social.twitter_client import VideoReference
from tweet_transcriber.transcription.whisper_client import TranscriptionResult, TranscriptSegment
from tweet_transcriber.video.ffmpeg_decoder import AudioArtifact

URL = "https://x.com/jane/status/1234"


class _RecordingPublisher:
    def __init__(self) -> None:
        self.events: List[Any] = []

    async def publish(self, event: Any) -> None:
        self.events.append(event)

    @property
    def errors(self) -> List[ErrorUpdate]:
        return [e for e in self.events if isinstance(e, ErrorUpdate)]

    @property
    def updates(self) -> List[ProgressUpdate]:
        return [e for e in self.events if isinstance(e, ProgressUpdate)]


class _FakeTwitter:
    def __init__(self, resolve_error: Optional[Exception] = None,
                 download_error: Optional[Exception] = None, download_delay: float = 0.0) -> None:
        self.resolve_error = resolve_error
        self.download_error = download_error
        self.download_delay = download_delay
        self.downloaded: List[str] = []

    async def resolve_video(self, url: str) -> VideoReference:
        if self.resolve_error:
            raise self.resolve_error
        return VideoReference(
            post_id="1234",
            video_url="https://video.twimg.com/v.mp4",
            author_name="Jane Doe",
            username="jane",
        )

    async def download_video(self, video_url: str) -> bytes:
        self.downloaded.append(video_url)
        if self.download_delay:
            await asyncio.sleep(self.download_delay)
        if self.download_error:
            raise self.download_error
        return b"mp4-bytes"


class _FakeDecoder:
    def __init__(self, tmp_path: Path, error: Optional[Exception] = None, delay: float = 0.0) -> None:
        self.tmp_path = tmp_path
        self.error = error
        self.delay = delay
        self.artifacts: List[AudioArtifact] = []

    async def extract_audio(self, video_data: bytes) -> AudioArtifact:
        if self.error:
            raise self.error
        path = self.tmp_path / f"audio_{len(self.artifacts)}.wav"
        path.write_bytes(b"RIFF")
        artifact = AudioArtifact(str(path))
        self.artifacts.append(artifact)
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                # a cancelled extraction owns its partial output
                artifact.remove()
                raise
        return artifact


class _FakeWhisper:
    def __init__(self, segments: Optional[List[TranscriptSegment]] = None, language: str = "en",
                 delay: float = 0.0, error: Optional[Exception] = None) -> None:
        self.segments = segments if segments is not None else [
            TranscriptSegment("0:00", "Hello there."),
            TranscriptSegment("0:04", "General Kenobi."),
        ]
        self.language = language
        self.delay = delay
        self.error = error
        self.calls: List[tuple] = []

    async def transcribe(self, audio: AudioArtifact, language: str = "auto",
                         timestamp_format: str = "seconds") -> TranscriptionResult:
        self.calls.append((audio.path, language, timestamp_format))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return TranscriptionResult(segments=list(self.segments), language=self.language)


def _pipeline(tmp_path: Path, config: Optional[PipelineConfig] = None, twitter: Any = None,
              decoder: Any = None, whisper: Any = None) -> tuple:
    publisher = _RecordingPublisher()
    decoder = decoder or _FakeDecoder(tmp_path)
    pipeline = TranscriptionPipeline(
        config=config or PipelineConfig(),
        twitter_client=twitter or _FakeTwitter(),
        decoder=decoder,
        whisper_client=whisper or _FakeWhisper(),
        publisher=publisher,
    )
    return pipeline, publisher, decoder


def test_process_success_reports_every_step(tmp_path: Path) -> None:
    whisper = _FakeWhisper(language="fr")
    pipeline, publisher, decoder = _pipeline(tmp_path, whisper=whisper)

    data = asyncio.run(pipeline.process(URL, "fr", "seconds"))

    assert data.source_url == URL
    assert data.video_title == "Tweet by Jane Doe"
    assert data.username == "jane"
    assert data.language == "fr"
    assert data.timestamp_format == "seconds"
    assert data.duration == "0:04"
    assert [s.text for s in data.segments] == ["Hello there.", "General Kenobi."]
    assert whisper.calls[0][1:] == ("fr", "seconds")

    assert publisher.errors == []
    assert [(e.step, e.progress) for e in publisher.updates] == [
        (1, 10), (1, 100), (2, 10), (2, 100), (3, 10), (3, 100), (4, 10), (4, 100),
    ]
    overall = [e.overall_progress for e in publisher.updates]
    assert overall == sorted(overall)
    assert overall[-1] == 100
    assert publisher.updates[-1].message == "Transcription completed successfully"
    assert len({e.run_id for e in publisher.updates}) == 1
    assert not decoder.artifacts[0].exists()


def test_process_without_segments_has_zero_duration(tmp_path: Path) -> None:
    pipeline, _, _ = _pipeline(tmp_path, whisper=_FakeWhisper(segments=[]))
    data = asyncio.run(pipeline.process(URL))
    assert data.segments == []
    assert data.duration == "0:00"


@pytest.mark.parametrize(
    "kwargs,kind,failed_step",
    [
        ({"twitter": _FakeTwitter(resolve_error=NotFoundError("gone"))}, ErrorKind.NOT_FOUND, 1),
        ({"twitter": _FakeTwitter(download_error=DownloadFailedError("HTTP 403"))}, ErrorKind.DOWNLOAD_FAILED, 2),
        ({"whisper": _FakeWhisper(error=TranscriptionTimeoutError("slow"))}, ErrorKind.TRANSCRIPTION_TIMEOUT, 4),
        ({"whisper": _FakeWhisper(error=RuntimeError("CUDA out of memory"))}, ErrorKind.OUT_OF_MEMORY, 4),
    ],
)
def test_process_failure_publishes_one_error(tmp_path: Path, kwargs: dict, kind: ErrorKind,
                                              failed_step: int) -> None:
    pipeline, publisher, decoder = _pipeline(tmp_path, **kwargs)

    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(pipeline.process(URL))

    assert excinfo.value.kind is kind
    assert excinfo.value.message == USER_MESSAGES[kind]
    assert len(publisher.errors) == 1
    assert publisher.events[-1] is publisher.errors[0]
    assert publisher.errors[0].overall_progress == 100
    assert publisher.errors[0].message == USER_MESSAGES[kind]
    assert max(e.step for e in publisher.updates) == failed_step
    assert all(not artifact.exists() for artifact in decoder.artifacts)


def test_extraction_failure_never_reaches_transcription(tmp_path: Path) -> None:
    whisper = _FakeWhisper()
    decoder = _FakeDecoder(tmp_path, error=ExtractionFailedError("FFmpeg error: bad input"))
    pipeline, publisher, _ = _pipeline(tmp_path, decoder=decoder, whisper=whisper)

    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(pipeline.process(URL))

    assert excinfo.value.kind is ErrorKind.EXTRACTION_FAILED
    assert excinfo.value.message.endswith("(FFmpeg error: bad input)")
    assert publisher.errors[0].message == excinfo.value.message
    assert whisper.calls == []
    assert len(publisher.errors) == 1


def test_unknown_failure_keeps_original_message(tmp_path: Path) -> None:
    pipeline, publisher, _ = _pipeline(tmp_path, whisper=_FakeWhisper(error=ValueError("model exploded")))

    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(pipeline.process(URL))

    assert excinfo.value.kind is ErrorKind.UNKNOWN
    assert excinfo.value.message == "model exploded"
    assert publisher.errors[0].message == "model exploded"


@pytest.mark.parametrize("slow_stage,last_step", [("download", 2), ("extract", 3), ("transcribe", 4)])
def test_outer_deadline_applies_to_every_media_step(tmp_path: Path, slow_stage: str, last_step: int) -> None:
    config = PipelineConfig(pipeline_timeout_seconds=0.05, progress_interval_seconds=10)
    pipeline, publisher, decoder = _pipeline(
        tmp_path,
        config=config,
        twitter=_FakeTwitter(download_delay=5 if slow_stage == "download" else 0),
        decoder=_FakeDecoder(tmp_path, delay=5 if slow_stage == "extract" else 0),
        whisper=_FakeWhisper(delay=5 if slow_stage == "transcribe" else 0),
    )

    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(pipeline.process(URL))

    assert excinfo.value.kind is ErrorKind.TIMEOUT
    assert excinfo.value.message == USER_MESSAGES[ErrorKind.TIMEOUT]
    assert len(publisher.errors) == 1
    assert publisher.errors[0].overall_progress == 100
    assert publisher.events[-1] is publisher.errors[0]
    assert max(e.step for e in publisher.updates) == last_step
    assert all(not artifact.exists() for artifact in decoder.artifacts)


def test_ticker_reports_liveness_and_stops_when_done(tmp_path: Path) -> None:
    config = PipelineConfig(progress_interval_seconds=0.01, progress_increment=5, progress_ceiling=30)
    pipeline, publisher, _ = _pipeline(tmp_path, config=config, whisper=_FakeWhisper(delay=0.3))

    asyncio.run(pipeline.process(URL))

    ticks = [e for e in publisher.updates if e.message == "Transcription in progress..."]
    # one event per distinct value; none repeated at the ceiling
    assert [e.progress for e in ticks] == [15, 20, 25, 30]
    assert all(e.step == 4 for e in ticks)
    assert publisher.updates[-1].progress == 100
    last_tick = publisher.events.index(ticks[-1])
    assert last_tick < len(publisher.events) - 1


def test_transcript_duration_uses_last_timestamp() -> None:
    assert transcript_duration([]) == "0:00"
    assert transcript_duration([TranscriptSegment("0:01", "a"), TranscriptSegment("1:05", "b")]) == "1:05"
    assert transcript_duration([TranscriptSegment("", "no timestamps")]) == "0:00"
