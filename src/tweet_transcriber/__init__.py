"""
Transcribe Twitter/X videos and stream progress to WebSocket clients.
"""

__version__ = "1.0.0"
