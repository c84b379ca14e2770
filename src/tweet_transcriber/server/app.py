"""FastAPI server exposing the tweet transcription pipeline.

Run with:
uvicorn tweet_transcriber.server.app:app --host 0.0.0.0 --port 8000
(or the ``tweet-transcriber`` console script)

POST /api/transcribe
Content-Type: application/json
{
    "url": "https://x.com/someone/status/1234567890",
    # optional
    "language": "auto",            # ISO 639-1 code or "auto"
    "timestampFormat": "seconds"   # "none" | "seconds" | "detailed"
}

The request blocks until the transcript is ready and responds with the stored
transcript. Progress for every step is pushed to all clients connected to the
/ws WebSocket as {"type": "progress", ...} or {"type": "error", ...} messages.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Literal, Optional

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field, field_validator

from ..pipeline.config import ServiceConfig
from ..pipeline.errors import ErrorKind, PipelineError, USER_MESSAGES
from ..pipeline.main import TranscriptionPipeline
from ..social.cache import PostCache
from ..social.twitter_client import TwitterClient, is_post_url
from ..storage.memory import TranscriptStore
from ..transcription.timestamps import render_plain_text
from ..transcription.whisper_client import WhisperClient
from ..video.ffmpeg_decoder import FFmpegDecoder
from .broadcast import BroadcastChannel

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# HTTP status returned for each classified pipeline failure
STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NO_VIDEO_FOUND: 422,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.TRANSCRIPTION_TIMEOUT: 504,
    ErrorKind.TIMEOUT: 504,
}


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------
class TranscribeRequest(BaseModel):
    url: str = Field(..., description="Twitter/X status URL")
    language: str = Field("auto", description="Language code or 'auto' to detect")
    timestampFormat: Literal["none", "seconds", "detailed"] = Field(
        "seconds", description="How segment start times are rendered"
    )

    @field_validator("url")
    @classmethod
    def _check_url(cls, v: str) -> str:
        v = v.strip()
        if not v.lower().startswith(("http://", "https://")) or not is_post_url(v):
            raise ValueError(USER_MESSAGES[ErrorKind.INVALID_INPUT])
        return v

    @field_validator("language")
    @classmethod
    def _normalize_language(cls, v: str) -> str:
        v = v.strip().lower()
        return v or "auto"


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        message = str(error.get("msg", "Invalid request"))
        messages.append(message.removeprefix("Value error, "))
    return "; ".join(messages) or "Invalid request"


# ---------------------------------------------------------------------------
# Application wiring
# ---------------------------------------------------------------------------
def build_pipeline(config: ServiceConfig, channel: BroadcastChannel) -> TranscriptionPipeline:
    """Create the process-wide pipeline; the whisper model inside loads lazily."""
    cfg = config.pipeline
    cache = PostCache(ttl_seconds=config.client.cache_ttl_seconds, max_entries=config.client.cache_size)
    whisper_client = WhisperClient(
        model_size=cfg.whisper_model,
        device=cfg.whisper_device,
        compute_type=cfg.compute_type,
        download_root=cfg.model_dir,
        chunk_length=cfg.chunk_length_seconds,
        stride_length=cfg.stride_length_seconds,
        timeout_seconds=cfg.transcription_timeout_seconds,
        max_concurrent=cfg.max_concurrent_transcriptions,
    )
    return TranscriptionPipeline(
        config=cfg,
        twitter_client=TwitterClient(config.client, cache=cache),
        decoder=FFmpegDecoder(
            ffmpeg_bin=cfg.ffmpeg_bin,
            temp_dir=cfg.temp_dir,
            audio_sample_rate=cfg.audio_sample_rate,
        ),
        whisper_client=whisper_client,
        publisher=channel,
    )


def create_app(config: Optional[ServiceConfig] = None,
               pipeline: Optional[TranscriptionPipeline] = None,
               store: Optional[TranscriptStore] = None,
               channel: Optional[BroadcastChannel] = None) -> FastAPI:
    config = config or ServiceConfig.from_env()
    channel = channel or BroadcastChannel()

    app = FastAPI(title="Tweet Transcription API")
    app.state.config = config
    app.state.channel = channel
    app.state.store = store or TranscriptStore()
    app.state.pipeline = pipeline or build_pipeline(config, channel)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"message": _validation_message(exc)})

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    @app.post("/api/transcribe")
    async def transcribe(body: TranscribeRequest, request: Request):
        state = request.app.state
        try:
            data = await state.pipeline.process(body.url, body.language, body.timestampFormat)
        except PipelineError as e:
            return JSONResponse(
                status_code=STATUS_BY_KIND.get(e.kind, 500),
                content={"message": e.message, "kind": e.kind.value},
            )
        transcript = state.store.create(data)
        return transcript.to_dict()

    @app.get("/api/transcripts/recent")
    async def recent_transcripts(request: Request, limit: int = Query(5, le=100)):
        return [t.to_dict() for t in request.app.state.store.list_recent(limit)]

    @app.get("/api/transcripts/{transcript_id}")
    async def get_transcript(transcript_id: int, request: Request):
        transcript = request.app.state.store.get(transcript_id)
        if transcript is None:
            return JSONResponse(status_code=404, content={"message": "Transcript not found"})
        return transcript.to_dict()

    @app.get("/api/transcripts/{transcript_id}/text")
    async def download_transcript(transcript_id: int, request: Request):
        transcript = request.app.state.store.get(transcript_id)
        if transcript is None:
            return JSONResponse(status_code=404, content={"message": "Transcript not found"})
        return PlainTextResponse(
            render_plain_text(transcript.segments),
            headers={"Content-Disposition": f'attachment; filename="twitter-transcript-{transcript.id}.txt"'},
        )

    @app.delete("/api/transcripts/{transcript_id}")
    async def delete_transcript(transcript_id: int, request: Request):
        if not request.app.state.store.delete(transcript_id):
            return JSONResponse(status_code=404, content={"message": "Transcript not found"})
        return {"message": "Transcript deleted successfully"}

    @app.get("/api/health")
    async def health(request: Request):
        state = request.app.state
        whisper_client = getattr(state.pipeline, "whisper_client", None)
        return {
            "status": "ok",
            "model": whisper_client.get_model_info() if whisper_client is not None else None,
            "observers": len(state.channel),
        }

    @app.websocket("/ws")
    async def progress_socket(websocket: WebSocket):
        await websocket.accept()
        channel: BroadcastChannel = websocket.app.state.channel
        observer_id = channel.register(websocket)
        try:
            await websocket.send_text(json.dumps({
                "type": "connection",
                "message": "Connected to transcription service",
                "clientId": observer_id,
            }))
            while True:
                message = await websocket.receive_text()
                try:
                    logger.info(f"Received message from client {observer_id}: {json.loads(message)}")
                except json.JSONDecodeError as e:
                    logger.error(f"Error parsing client message: {e}")
        except WebSocketDisconnect:
            pass
        finally:
            channel.unregister(observer_id)

    return app


app = create_app()


def main() -> None:
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    logger.info("Starting transcription server on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
