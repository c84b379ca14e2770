"""
Faster-whisper client for audio transcription.
"""

import asyncio
import logging
import math
import wave
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..pipeline.errors import TranscriptionTimeoutError
from ..video.ffmpeg_decoder import AudioArtifact
from .timestamps import format_timestamp

logger = logging.getLogger(__name__)


@dataclass
class TranscriptSegment:
    """One line of transcript: formatted start time and its text."""
    timestamp: str
    text: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class TranscriptionResult:
    segments: List[TranscriptSegment] = field(default_factory=list)
    language: str = "en"


@dataclass(frozen=True)
class AudioWindow:
    """A slice of the waveform plus the span of absolute start times it owns."""
    start_sample: int
    end_sample: int
    offset_seconds: float
    keep_from: float
    keep_until: float


def read_wav_samples(path: str) -> Tuple[np.ndarray, int]:
    """Decode a 16-bit PCM WAV file into mono float32 samples in [-1, 1]."""
    with wave.open(path, "rb") as wf:
        sample_rate = wf.getframerate()
        channels = wf.getnchannels()
        sample_width = wf.getsampwidth()
        frames = wf.readframes(wf.getnframes())

    if sample_width != 2:
        raise ValueError(f"Unsupported WAV sample width: {sample_width * 8} bits")

    samples = np.frombuffer(frames, dtype=np.int16).astype(np.float32) / 32768.0
    if channels > 1:
        samples = samples.reshape(-1, channels).mean(axis=1)
    return samples, sample_rate


def plan_windows(total_samples: int, sample_rate: int,
                 chunk_seconds: float, stride_seconds: float) -> List[AudioWindow]:
    """
    Split audio into ``chunk_seconds`` windows where neighbours overlap by
    ``stride_seconds``. Each overlap is split at its midpoint: words that
    start before it belong to the earlier window, the rest to the later one.
    """
    if total_samples <= 0:
        return []
    step_seconds = max(1.0, chunk_seconds - stride_seconds)
    chunk_samples = int(chunk_seconds * sample_rate)
    step_samples = int(step_seconds * sample_rate)

    windows: List[AudioWindow] = []
    index = 0
    while True:
        start = index * step_samples
        end = min(start + chunk_samples, total_samples)
        is_last = end >= total_samples
        offset = start / float(sample_rate)
        keep_from = 0.0 if index == 0 else offset + stride_seconds / 2
        keep_until = math.inf if is_last else (index + 1) * step_seconds + stride_seconds / 2
        windows.append(AudioWindow(start, end, offset, keep_from, keep_until))
        if is_last:
            return windows
        index += 1


def _keep_owned_span(segment: Any, window: AudioWindow) -> Optional[Tuple[float, str]]:
    """
    Trim a window-relative segment to the words the window owns.

    A segment can straddle an overlap midpoint, so ownership is decided per
    word and the segment's text and start are rebuilt from the kept words.
    Segments without word timings are kept or dropped whole by their start.
    """
    words = getattr(segment, "words", None)
    if not words:
        start = window.offset_seconds + float(segment.start)
        if window.keep_from <= start < window.keep_until:
            return start, str(segment.text)
        return None

    kept = [
        (window.offset_seconds + float(word.start), str(word.word))
        for word in words
        if window.keep_from <= window.offset_seconds + float(word.start) < window.keep_until
    ]
    if not kept:
        return None
    return kept[0][0], "".join(text for _, text in kept)


class WhisperClient:
    """Client for faster-whisper transcription."""

    def __init__(self, model_size: str = "small", device: str = "cpu", compute_type: str = "int8",
                 download_root: str = "/models", chunk_length: int = 15, stride_length: int = 3,
                 timeout_seconds: float = 60.0, max_concurrent: int = 1):
        """
        Initialize the whisper client.

        Args:
            model_size: Whisper model size (tiny, base, small, medium, large)
            device: Device to run on (cpu, cuda)
            compute_type: CTranslate2 compute type
            download_root: Directory model weights are cached in
            chunk_length: Window length in seconds fed to the model
            stride_length: Overlap in seconds between consecutive windows
            timeout_seconds: Wall-clock budget for one transcription
            max_concurrent: Concurrent inference calls allowed on the shared model
        """
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.download_root = Path(download_root)
        self.chunk_length = chunk_length
        self.stride_length = stride_length
        self.timeout_seconds = timeout_seconds
        self.model = None
        self._lock = asyncio.Lock()
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent))

    def _load_model(self):
        from faster_whisper import WhisperModel  # Imported lazily for startup speed.

        self.download_root.mkdir(parents=True, exist_ok=True)
        return WhisperModel(
            self.model_size,
            device=self.device,
            compute_type=self.compute_type,
            download_root=str(self.download_root),
        )

    async def initialize(self):
        """Load the whisper model once; later calls are no-ops."""
        async with self._lock:
            if self.model is None:
                logger.info(f"Loading whisper model: {self.model_size} on {self.device}")

                # Run model loading in thread pool to avoid blocking
                loop = asyncio.get_running_loop()
                self.model = await loop.run_in_executor(None, self._load_model)
                logger.info("Whisper model loaded successfully")

    def _transcribe_windows(self, samples: np.ndarray, sample_rate: int,
                            language: Optional[str]) -> Tuple[List[Tuple[float, str]], Optional[str]]:
        """Blocking: run the model over each window and stitch the segments."""
        collected: List[Tuple[float, str]] = []
        detected_language: Optional[str] = None

        for window in plan_windows(len(samples), sample_rate, self.chunk_length, self.stride_length):
            segments, info = self.model.transcribe(  # type: ignore[union-attr]
                samples[window.start_sample:window.end_sample],
                language=language,
                word_timestamps=True,
                chunk_length=self.chunk_length,
                vad_filter=False,
            )
            # faster-whisper returns a lazy generator; consume it here in the worker thread
            for segment in segments:
                kept = _keep_owned_span(segment, window)
                if kept is not None:
                    collected.append(kept)
            if detected_language is None:
                detected_language = getattr(info, "language", None)

        collected.sort(key=lambda item: item[0])
        return collected, detected_language

    async def transcribe(self, audio: AudioArtifact, language: str = "auto",
                         timestamp_format: str = "seconds") -> TranscriptionResult:
        """
        Transcribe an extracted audio file into timestamped segments.

        The audio file is deleted before returning, whether or not
        transcription succeeded.

        Raises:
            TranscriptionTimeoutError: the model did not finish within ``timeout_seconds``
        """
        try:
            if self.model is None:
                await self.initialize()

            samples, sample_rate = read_wav_samples(audio.path)
            language_hint = None if language == "auto" else language
            logger.info(
                f"Transcribing {len(samples) / float(sample_rate):.1f}s of audio "
                f"(language={language_hint or 'auto'})"
            )

            async with self._semaphore:
                loop = asyncio.get_running_loop()
                future = loop.run_in_executor(
                    None, self._transcribe_windows, samples, sample_rate, language_hint
                )
                try:
                    raw_segments, detected = await asyncio.wait_for(future, timeout=self.timeout_seconds)
                except asyncio.TimeoutError as e:
                    raise TranscriptionTimeoutError(
                        f"Transcription timed out after {self.timeout_seconds:g} seconds"
                    ) from e

            segments = [
                TranscriptSegment(timestamp=format_timestamp(start, timestamp_format), text=text.strip())
                for start, text in raw_segments
            ]
            logger.debug(f"Transcribed {len(segments)} segments (language: {detected})")
            return TranscriptionResult(segments=segments, language=detected or language_hint or "en")
        finally:
            audio.remove()

    def get_model_info(self) -> Dict[str, Any]:
        """Get information about the loaded model."""
        return {
            "model": self.model_size,
            "device": self.device,
            "compute_type": self.compute_type,
            "loaded": self.model is not None,
            "chunk_length": self.chunk_length,
            "stride_length": self.stride_length,
        }
