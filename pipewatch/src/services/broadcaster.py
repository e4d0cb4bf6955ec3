"""
Best-effort fan-out of execution change notices to live listeners.
"""

import asyncio
import itertools
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import redis.asyncio as redis
from fastapi import WebSocket

from pipewatch.src.models.run import ChangeNotice

logger = logging.getLogger(__name__)

Sink = Callable[[Dict[str, Any]], Awaitable[None]]

class RealtimeBroadcaster:
    """
    Registry of sinks. Every publish gives each registered sink one chance to
    receive the notice; there is no replay, backlog or acknowledgment.
    """

    def __init__(self):
        self._sinks: Dict[int, Sink] = {}
        self._ids = itertools.count(1)

    def register(self, sink: Sink) -> int:
        token = next(self._ids)
        self._sinks[token] = sink
        return token

    def unregister(self, token: int):
        self._sinks.pop(token, None)

    @property
    def listener_count(self) -> int:
        return len(self._sinks)

    async def publish(self, notice: ChangeNotice) -> int:
        """Deliver to every sink; returns how many accepted the notice."""
        message = notice.to_message()
        sinks = list(self._sinks.items())
        if not sinks:
            return 0

        results = await asyncio.gather(
            *[self._safe_send(token, sink, message) for token, sink in sinks]
        )
        return sum(1 for ok in results if ok)

    async def _safe_send(self, token: int, sink: Sink, message: Dict[str, Any]) -> bool:
        try:
            await sink(message)
            return True
        except Exception as e:
            logger.warning(f"Realtime sink {token} failed: {e}")
            return False

class WebSocketSink:
    """Forwards notices to one connected WebSocket client."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def __call__(self, message: Dict[str, Any]):
        await self.websocket.send_json(message)

class RedisSink:
    """Publishes notices on a Redis channel for listeners in other processes."""

    def __init__(self, redis_url: str, channel: str, client: Optional[redis.Redis] = None):
        self.channel = channel
        self.client = client or redis.from_url(redis_url, decode_responses=True)

    async def __call__(self, message: Dict[str, Any]):
        await self.client.publish(self.channel, json.dumps(message))

    async def close(self):
        await self.client.close()
