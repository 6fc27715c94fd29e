# Yo, this is the realtime change feed for vote counters. In-process only: one
# asyncio.Queue per subscriber, grouped by setlist. A slow subscriber whose queue
# is full just misses updates (the next event carries the absolute count anyway,
# so the client catches up on the next push).
#
# Multi-process deployments would need a shared feed (Postgres LISTEN/NOTIFY or
# similar). Single-process is all we run today.
"""In-process publish/subscribe feed for vote counter changes."""

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoteEvent:
    """Absolute counter value of one setlist song after a vote."""

    setlist_id: str
    setlist_song_id: str
    votes: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class VoteEventBroker:
    """Fan out VoteEvents to subscribers of a setlist."""

    def __init__(self, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._subscribers: dict[str, set[asyncio.Queue[VoteEvent]]] = defaultdict(set)

    def subscriber_count(self, setlist_id: str | None = None) -> int:
        if setlist_id is not None:
            return len(self._subscribers.get(setlist_id, ()))
        return sum(len(queues) for queues in self._subscribers.values())

    def publish(self, event: VoteEvent) -> int:
        """Deliver to every subscriber of the event's setlist. Returns deliveries."""
        delivered = 0
        for queue in list(self._subscribers.get(event.setlist_id, ())):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug(
                    "Dropping vote event for slow subscriber on setlist %s",
                    event.setlist_id,
                )
                continue
            delivered += 1
        return delivered

    @asynccontextmanager
    async def subscribe(self, setlist_id: str) -> AsyncIterator[asyncio.Queue[VoteEvent]]:
        queue: asyncio.Queue[VoteEvent] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers[setlist_id].add(queue)
        logger.debug("Subscriber joined setlist %s", setlist_id)
        try:
            yield queue
        finally:
            queues = self._subscribers.get(setlist_id)
            if queues is not None:
                queues.discard(queue)
                if not queues:
                    del self._subscribers[setlist_id]
            logger.debug("Subscriber left setlist %s", setlist_id)

    async def stream(self, setlist_id: str) -> AsyncIterator[VoteEvent]:
        """Yield events for a setlist until the consumer stops iterating."""
        async with self.subscribe(setlist_id) as queue:
            while True:
                yield await queue.get()
