import asyncio
from pathlib import Path
from typing import Any

import pytest

from tweet_transcriber.pipeline.errors import ExtractionFailedError
from tweet_transcriber.video.ffmpeg_decoder import AudioArtifact, FFmpegDecoder


def test_build_command_requests_mono_16k_pcm_wav() -> None:
    decoder = FFmpegDecoder(ffmpeg_bin="/usr/bin/ffmpeg")
    command = decoder.build_command("in.mp4", "out.wav")
    assert command[0] == "/usr/bin/ffmpeg"
    assert "-vn" in command
    assert command[command.index("-acodec") + 1] == "pcm_s16le"
    assert command[command.index("-ac") + 1] == "1"
    assert command[command.index("-ar") + 1] == "16000"
    assert command[command.index("-f") + 1] == "wav"
    assert command[-1] == "out.wav"


def test_extract_audio_returns_artifact_and_removes_video(tmp_path: Path, monkeypatch: Any) -> None:
    decoder = FFmpegDecoder(temp_dir=str(tmp_path))
    seen: dict[str, Any] = {}

    async def fake_run_ffmpeg(input_file: str, output_file: str) -> None:
        seen["video_bytes"] = Path(input_file).read_bytes()
        Path(output_file).write_bytes(b"RIFF....WAVE")

    monkeypatch.setattr(decoder, "_run_ffmpeg", fake_run_ffmpeg)

    artifact = asyncio.run(decoder.extract_audio(b"fake-mp4"))

    assert seen["video_bytes"] == b"fake-mp4"
    assert artifact.sample_rate == 16000 and artifact.channels == 1
    assert artifact.exists()
    assert [p.name for p in tmp_path.iterdir()] == [Path(artifact.path).name]


def test_extract_audio_failure_leaves_no_temp_files(tmp_path: Path, monkeypatch: Any) -> None:
    decoder = FFmpegDecoder(temp_dir=str(tmp_path))

    async def failing_run_ffmpeg(input_file: str, output_file: str) -> None:
        raise ExtractionFailedError("FFmpeg error: Invalid data found when processing input")

    monkeypatch.setattr(decoder, "_run_ffmpeg", failing_run_ffmpeg)

    with pytest.raises(ExtractionFailedError, match="Invalid data"):
        asyncio.run(decoder.extract_audio(b"garbage"))
    assert list(tmp_path.iterdir()) == []


def test_extract_audio_rejects_empty_output(tmp_path: Path, monkeypatch: Any) -> None:
    decoder = FFmpegDecoder(temp_dir=str(tmp_path))

    async def silent_run_ffmpeg(input_file: str, output_file: str) -> None:
        return None

    monkeypatch.setattr(decoder, "_run_ffmpeg", silent_run_ffmpeg)

    with pytest.raises(ExtractionFailedError, match="no audio"):
        asyncio.run(decoder.extract_audio(b"video"))
    assert list(tmp_path.iterdir()) == []


def test_missing_ffmpeg_binary_is_an_extraction_failure(tmp_path: Path) -> None:
    decoder = FFmpegDecoder(ffmpeg_bin=str(tmp_path / "no-such-ffmpeg"), temp_dir=str(tmp_path / "work"))
    with pytest.raises(ExtractionFailedError, match="binary not found"):
        asyncio.run(decoder.extract_audio(b"video"))
    assert list((tmp_path / "work").iterdir()) == []


def test_audio_artifact_remove_is_idempotent(tmp_path: Path) -> None:
    path = tmp_path / "audio.wav"
    path.write_bytes(b"data")
    artifact = AudioArtifact(path=str(path))
    artifact.remove()
    artifact.remove()
    assert not path.exists()


def test_cancelled_extraction_leaves_no_temp_files(tmp_path: Path, monkeypatch: Any) -> None:
    decoder = FFmpegDecoder(temp_dir=str(tmp_path))

    async def slow_run_ffmpeg(input_file: str, output_file: str) -> None:
        Path(output_file).write_bytes(b"RIFF partial")
        await asyncio.sleep(5)

    monkeypatch.setattr(decoder, "_run_ffmpeg", slow_run_ffmpeg)

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(asyncio.wait_for(decoder.extract_audio(b"video"), timeout=0.05))
    assert list(tmp_path.iterdir()) == []
