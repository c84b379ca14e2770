"""
FFmpeg-based audio extraction for downloaded videos.
"""

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import List

from ..pipeline.errors import ExtractionFailedError

logger = logging.getLogger(__name__)


@dataclass
class AudioArtifact:
    """Transient mono PCM WAV file owned by one pipeline run."""
    path: str
    sample_rate: int = 16000
    channels: int = 1

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def remove(self) -> None:
        """Delete the file; a file that is already gone is not an error."""
        remove_quietly(self.path)


def remove_quietly(file_path: str) -> None:
    try:
        os.remove(file_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to cleanup file {file_path}: {e}")


class FFmpegDecoder:
    """Decoder that turns arbitrary video bytes into 16 kHz mono WAV."""

    def __init__(self, ffmpeg_bin: str = "ffmpeg", temp_dir: str = "tmp",
                 audio_sample_rate: int = 16000, audio_channels: int = 1):
        self.ffmpeg_bin = ffmpeg_bin
        self.temp_dir = temp_dir
        self.audio_sample_rate = audio_sample_rate
        self.audio_channels = audio_channels

    def build_command(self, input_file: str, output_file: str) -> List[str]:
        return [
            self.ffmpeg_bin, '-y',
            '-i', input_file,
            '-vn',  # No video
            '-acodec', 'pcm_s16le',
            '-ac', str(self.audio_channels),
            '-ar', str(self.audio_sample_rate),
            '-f', 'wav',
            output_file,
        ]

    def _temp_file(self, prefix: str, suffix: str) -> str:
        os.makedirs(self.temp_dir, exist_ok=True)
        fd, path = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=self.temp_dir)
        os.close(fd)
        return path

    async def extract_audio(self, video_data: bytes) -> AudioArtifact:
        """
        Persist video bytes, run ffmpeg and return the extracted audio.

        Args:
            video_data: Raw video bytes (any container ffmpeg understands)

        Returns:
            AudioArtifact pointing at a 16-bit PCM WAV file

        Raises:
            ExtractionFailedError: ffmpeg failed or produced no audio
        """
        video_file = self._temp_file("video_", ".mp4")
        audio_file = self._temp_file("audio_", ".wav")
        extracted = False
        try:
            with open(video_file, 'wb') as f:
                f.write(video_data)

            await self._run_ffmpeg(video_file, audio_file)

            if not os.path.exists(audio_file) or os.path.getsize(audio_file) == 0:
                raise ExtractionFailedError("FFmpeg error: no audio stream was produced")
            extracted = True
        except OSError as e:
            raise ExtractionFailedError(f"FFmpeg error: {e}") from e
        finally:
            # ffmpeg has exited by now, so the input can go
            remove_quietly(video_file)
            if not extracted:
                remove_quietly(audio_file)

        logger.info(f"Extracted audio to {audio_file}")
        return AudioArtifact(
            path=audio_file,
            sample_rate=self.audio_sample_rate,
            channels=self.audio_channels,
        )

    async def _run_ffmpeg(self, input_file: str, output_file: str) -> None:
        cmd = self.build_command(input_file, output_file)
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError as e:
            raise ExtractionFailedError(f"FFmpeg error: binary not found ({self.ffmpeg_bin})") from e

        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if process.returncode != 0:
            tail = stderr.decode(errors="replace").strip().splitlines()[-5:]
            logger.debug(f"Audio extraction failed: {stderr.decode(errors='replace')}")
            raise ExtractionFailedError(f"FFmpeg error: {' '.join(tail) or process.returncode}")
