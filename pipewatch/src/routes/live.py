"""
Live execution updates over WebSocket.
"""

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from pipewatch.src.routes.deps import get_websocket_engine
from pipewatch.src.services.broadcaster import WebSocketSink
from pipewatch.src.services.engine import ReconciliationEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])

@router.websocket("/ws/executions")
async def execution_updates(
    websocket: WebSocket,
    engine: ReconciliationEngine = Depends(get_websocket_engine),
):
    """
    Push execution change notices to the client until it disconnects.
    Missed notices are not replayed; clients re-fetch state after reconnecting.
    """
    await websocket.accept()
    token = engine.broadcaster.register(WebSocketSink(websocket))
    logger.info(f"Live listener {token} connected")
    try:
        while True:
            # Inbound messages are ignored; receiving detects disconnects
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        engine.broadcaster.unregister(token)
        logger.info(f"Live listener {token} disconnected")
