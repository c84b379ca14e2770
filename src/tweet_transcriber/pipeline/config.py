"""
Configuration management for the tweet transcription service.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ExternalClientConfig:
    """Credentials and limits for the Twitter API client."""

    # App-level credential (preferred)
    bearer_token: Optional[str] = None
    # User-level consumer credentials (fallback)
    api_key: Optional[str] = None
    api_secret: Optional[str] = None

    api_base_url: str = "https://api.twitter.com"
    http_timeout_seconds: float = 30.0
    max_download_mb: int = 512

    # Post metadata cache; 0 disables it
    cache_ttl_seconds: float = 300.0
    cache_size: int = 128

    @property
    def max_download_bytes(self) -> int:
        return self.max_download_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "ExternalClientConfig":
        """Create configuration from environment variables."""
        return cls(
            bearer_token=os.getenv("TWITTER_BEARER_TOKEN") or None,
            api_key=os.getenv("TWITTER_API_KEY") or None,
            api_secret=os.getenv("TWITTER_API_SECRET") or None,
            api_base_url=os.getenv("TWITTER_API_BASE_URL", cls.api_base_url),
            http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", cls.http_timeout_seconds)),
            max_download_mb=int(os.getenv("MAX_DOWNLOAD_MB", cls.max_download_mb)),
            cache_ttl_seconds=float(os.getenv("POST_CACHE_TTL_SECONDS", cls.cache_ttl_seconds)),
            cache_size=int(os.getenv("POST_CACHE_SIZE", cls.cache_size)),
        )


@dataclass
class PipelineConfig:
    """Configuration for the video-to-transcript pipeline."""

    # Transcription settings
    whisper_model: str = "small"  # tiny, base, small, medium, large
    whisper_device: str = "cpu"  # cpu, cuda
    compute_type: str = "int8"  # float16, float32, int8, etc. (depends on device)
    model_dir: str = "/models"

    # Media tooling
    ffmpeg_bin: str = "ffmpeg"
    temp_dir: str = "tmp"

    # Audio processing
    audio_sample_rate: int = 16000  # Hz, required for whisper
    chunk_length_seconds: int = 15
    stride_length_seconds: int = 3

    # Deadlines
    transcription_timeout_seconds: float = 60.0
    pipeline_timeout_seconds: float = 90.0

    # Synthetic progress ticker while the model runs
    progress_interval_seconds: float = 3.0
    progress_increment: int = 5
    progress_ceiling: int = 80

    max_concurrent_transcriptions: int = 1

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Create configuration from environment variables."""
        return cls(
            whisper_model=os.getenv("WHISPER_MODEL", cls.whisper_model),
            whisper_device=os.getenv("WHISPER_DEVICE", cls.whisper_device),
            compute_type=os.getenv("COMPUTE_TYPE", cls.compute_type),
            model_dir=os.getenv("MODEL_DIR", cls.model_dir),
            ffmpeg_bin=os.getenv("FFMPEG_BIN", cls.ffmpeg_bin),
            temp_dir=os.getenv("TEMP_DIR", cls.temp_dir),
            audio_sample_rate=int(os.getenv("AUDIO_SAMPLE_RATE", cls.audio_sample_rate)),
            chunk_length_seconds=int(os.getenv("CHUNK_LENGTH_SECONDS", cls.chunk_length_seconds)),
            stride_length_seconds=int(os.getenv("STRIDE_LENGTH_SECONDS", cls.stride_length_seconds)),
            transcription_timeout_seconds=float(
                os.getenv("TRANSCRIPTION_TIMEOUT_SECONDS", cls.transcription_timeout_seconds)
            ),
            pipeline_timeout_seconds=float(os.getenv("PIPELINE_TIMEOUT_SECONDS", cls.pipeline_timeout_seconds)),
            progress_interval_seconds=float(
                os.getenv("PROGRESS_INTERVAL_SECONDS", cls.progress_interval_seconds)
            ),
            progress_increment=int(os.getenv("PROGRESS_INCREMENT", cls.progress_increment)),
            progress_ceiling=int(os.getenv("PROGRESS_CEILING", cls.progress_ceiling)),
            max_concurrent_transcriptions=int(
                os.getenv("MAX_CONCURRENT_TRANSCRIPTIONS", cls.max_concurrent_transcriptions)
            ),
        )


@dataclass
class ServiceConfig:
    """Everything the server host needs to build a pipeline."""

    client: ExternalClientConfig = field(default_factory=ExternalClientConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        return cls(
            client=ExternalClientConfig.from_env(),
            pipeline=PipelineConfig.from_env(),
        )
