"""WebSocket surface for background orchestration results."""

import logging
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from adapters.rest.dependencies import get_notifications

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws/notifications")
async def websocket_notifications(ws: WebSocket):
    """
    Push-only notification channel.

    Protocol:
      - Server sends: one JSON object per orchestration-complete event
        {"type", "response", "handledBy", "method", "timestamp"}
      - Client messages are read and ignored (keeps the socket alive)
      - The surface is unregistered on disconnect or on a failed send
    """
    hub = get_notifications()
    surface_id = uuid4().hex

    await ws.accept()

    async def deliver(event: dict) -> None:
        await ws.send_json(event)

    hub.register(surface_id, deliver)
    logger.info("Notification surface %s connected", surface_id)
    try:
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.unregister(surface_id)
        logger.info("Notification surface %s disconnected", surface_id)
