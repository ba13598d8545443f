"""In-process publish/subscribe feeding subscription fields.

Any object with a ``subscribe(topic)`` method returning an async iterator
can be put in the execution context instead, e.g. an adapter over a
message broker.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

logger = logging.getLogger(__name__)


class PubSub:
    def __init__(self) -> None:
        self._queues: dict[str, set[asyncio.Queue[Any]]] = {}

    def publish(self, topic: str, payload: Any) -> int:
        """Deliver *payload* to the current subscribers of *topic* and return their count."""
        queues = self._queues.get(topic, set())
        logger.debug("Publishing on %s to %d subscribers", topic, len(queues))
        for queue in queues:
            queue.put_nowait(payload)
        return len(queues)

    def subscribe(self, topic: str) -> AsyncIterator[Any]:
        # Registered right away so nothing published after this call is missed
        queue: asyncio.Queue[Any] = asyncio.Queue()
        self._queues.setdefault(topic, set()).add(queue)
        return self._listen(topic, queue)

    async def _listen(self, topic: str, queue: asyncio.Queue[Any]) -> AsyncIterator[Any]:
        try:
            while True:
                yield await queue.get()
        finally:
            subscribers = self._queues.get(topic, set())
            subscribers.discard(queue)
            if not subscribers:
                self._queues.pop(topic, None)
