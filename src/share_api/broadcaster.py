"""Fan-out of registry change events to every connected session."""

import asyncio
import itertools
import logging
from typing import AsyncIterator, Dict, Optional

from share_api.schemas import FileEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """
    One session's view of the event stream.

    Events are buffered in a bounded queue that the session drains at its
    own pace. There is no replay: only events published after `subscribe()`
    are delivered.
    """

    def __init__(self, session_id: int, maxsize: int):
        self.session_id = session_id
        self.overflowed = False
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, event: FileEvent) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        while True:
            try:
                self._queue.put_nowait(_CLOSED)
                return
            except asyncio.QueueFull:
                # Pending events are discarded to make room for the close marker
                self._queue.get_nowait()

    async def get(self) -> Optional[FileEvent]:
        """Wait for the next event. Returns None once the subscription is closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            # keep the marker for any other waiter
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def __aiter__(self) -> AsyncIterator[FileEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[FileEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class EventBroadcaster:
    """
    Delivers every published event to all current subscriptions, in publish order.

    `publish` never waits on a session: a session whose buffer is full is
    dropped so that it cannot hold up the others. The transport closes the
    dropped session and the client reconnects and re-lists.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._sessions: Dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def subscribe(self) -> Subscription:
        subscription = Subscription(next(self._ids), self.queue_size)
        self._sessions[subscription.session_id] = subscription
        logger.info(
            "Session %d joined. Total sessions: %d", subscription.session_id, len(self._sessions)
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a session. Safe to call more than once."""
        removed = self._sessions.pop(subscription.session_id, None)
        subscription._close()
        if removed is not None:
            logger.info(
                "Session %d left. Total sessions: %d", subscription.session_id, len(self._sessions)
            )

    def publish(self, event: FileEvent) -> int:
        """Queue `event` for every session. Returns the number of sessions it was queued for."""
        delivered = 0
        # Snapshot so subscribe/unsubscribe during fan-out cannot disturb iteration
        for subscription in tuple(self._sessions.values()):
            if subscription._offer(event):
                delivered += 1
                continue
            if not subscription.closed:
                logger.warning(
                    "Session %d is not keeping up, dropping it", subscription.session_id
                )
                subscription.overflowed = True
                self.unsubscribe(subscription)
        logger.debug("Published %s for %s to %d session(s)", event.event.value, event.storage_key, delivered)
        return delivered

    def close_all(self) -> None:
        for subscription in tuple(self._sessions.values()):
            self.unsubscribe(subscription)
