"""
Fan-out of pipeline progress events to connected WebSocket observers.
"""

import asyncio
import logging
import secrets
from typing import Any, Dict

from starlette.websockets import WebSocketState

from ..pipeline.progress import ProgressEvent, serialize_event

logger = logging.getLogger(__name__)


def _is_open(observer: Any) -> bool:
    return (
        getattr(observer, "client_state", None) == WebSocketState.CONNECTED
        and getattr(observer, "application_state", None) == WebSocketState.CONNECTED
    )


class BroadcastChannel:
    """
    Pushes every published event to every currently-open observer.

    There is no replay for late joiners, no queueing and no acknowledgement:
    an observer that is not open at publish time simply misses the event.
    """

    def __init__(self):
        self._observers: Dict[str, Any] = {}

    def register(self, observer: Any) -> str:
        observer_id = secrets.token_hex(6)
        self._observers[observer_id] = observer
        logger.info(f"WebSocket client connected: {observer_id}")
        return observer_id

    def unregister(self, observer_id: str) -> None:
        if self._observers.pop(observer_id, None) is not None:
            logger.info(f"WebSocket client disconnected: {observer_id}")

    def __len__(self):
        return len(self._observers)

    async def _send(self, observer_id: str, observer: Any, payload: str) -> None:
        try:
            await observer.send_text(payload)
        except Exception as e:
            logger.warning(f"Failed to send progress to {observer_id}: {e}")

    async def publish(self, event: ProgressEvent) -> None:
        payload = serialize_event(event)
        targets = [(oid, obs) for oid, obs in list(self._observers.items()) if _is_open(obs)]
        if not targets:
            return
        logger.debug(f"Broadcasting to {len(targets)} observers: {payload}")
        await asyncio.gather(*(self._send(oid, obs, payload) for oid, obs in targets))
