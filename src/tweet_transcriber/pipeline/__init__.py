"""
Tweet Transcription Pipeline Module

This module orchestrates the tweet transcription pipeline that:
1. Resolves the tweet URL to its best-quality video variant
2. Downloads the video
3. Extracts 16 kHz mono audio with ffmpeg
4. Transcribes the audio using faster-whisper
and reports progress for every step on the broadcast channel.
"""

__version__ = "1.0.0"
