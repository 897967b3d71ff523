"""In-process change feed for project and chat updates.

Views subscribe to one table, optionally narrowed by field values, and
receive insert/update events as they are published. A subscription only
exists inside ``ChangeFeed.subscribe``; leaving the context removes it, so
no subscription can outlive the socket that opened it.

Publishers may run on a different thread or event loop than the
subscriber. Events are handed over with ``call_soon_threadsafe`` on the
subscriber's own loop.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event: str  # "insert" | "update"
    record: dict[str, Any]

    def to_json(self) -> dict[str, Any]:
        record = {
            k: v.isoformat() if isinstance(v, datetime) else v
            for k, v in self.record.items()
        }
        return {"table": self.table, "event": self.event, "record": record}


class Subscription:
    def __init__(self, table: str, where: Mapping[str, Any] | None, maxsize: int):
        self.table = table
        self.where = dict(where or {})
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=maxsize)
        self._loop = asyncio.get_running_loop()

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        return all(event.record.get(k) == v for k, v in self.where.items())

    def _offer(self, event: ChangeEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Dropping {event.table} event for a slow subscriber")

    def deliver(self, event: ChangeEvent) -> None:
        self._loop.call_soon_threadsafe(self._offer, event)

    async def get(self) -> ChangeEvent:
        return await self._queue.get()


class ChangeFeed:
    def __init__(self, max_queue: int = 100):
        self._max_queue = max_queue
        self._subscriptions: set[Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    @asynccontextmanager
    async def subscribe(
        self, table: str, where: Mapping[str, Any] | None = None
    ) -> AsyncIterator[Subscription]:
        subscription = Subscription(table, where, self._max_queue)
        self._subscriptions.add(subscription)
        logger.debug(f"Subscribed to {table} {subscription.where}")
        try:
            yield subscription
        finally:
            self._subscriptions.discard(subscription)
            logger.debug(f"Unsubscribed from {table} {subscription.where}")

    def publish(self, table: str, event: str, record: Mapping[str, Any]) -> int:
        """Deliver an event to every matching subscriber; returns how many."""
        change = ChangeEvent(table, event, dict(record))
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.matches(change):
                try:
                    subscription.deliver(change)
                except RuntimeError:
                    # The subscriber's loop has closed; its context will clean up.
                    continue
                delivered += 1
        return delivered


feed = ChangeFeed()
