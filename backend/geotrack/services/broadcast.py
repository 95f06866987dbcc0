from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket


logger = logging.getLogger(__name__)


class TrackingBroadcaster:
    """Fan fixes out to the currently connected WebSocket subscribers.

    Delivery is best-effort: a subscriber whose send fails is dropped.
    """

    def __init__(self) -> None:
        self._subscribers: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._subscribers.add(websocket)
        logger.info("Client connected (subscribers=%s)", self.subscriber_count)

    async def unsubscribe(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._subscribers.discard(websocket)
        logger.info("Client disconnected (subscribers=%s)", self.subscriber_count)

    async def broadcast(self, message: dict[str, Any]) -> None:
        async with self._lock:
            targets = list(self._subscribers)

        dead: list[WebSocket] = []
        for ws in targets:
            try:
                await ws.send_json(message)
            except Exception:
                logger.warning("Dropping subscriber after failed send", exc_info=True)
                dead.append(ws)

        if dead:
            async with self._lock:
                for ws in dead:
                    self._subscribers.discard(ws)
