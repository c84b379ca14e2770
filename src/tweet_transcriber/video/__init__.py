"""
Audio extraction from downloaded video using ffmpeg.
"""

from .ffmpeg_decoder import AudioArtifact, FFmpegDecoder

__all__ = ["AudioArtifact", "FFmpegDecoder"]
