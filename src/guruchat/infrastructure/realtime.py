"""Row-change notifications.

The table store publishes one ``ChangeEvent`` per inserted or updated row.
Subscribers register a (table, event, filter) interest and receive matching
events through a ``Channel``: a thread-safe queue the consumer drains at its
own pace. Several subscriptions may feed the same channel so a single
consumer sees all of its events in arrival order.

When ``REDIS_URL`` is set, every event is mirrored on the Redis channel
``guruchat.realtime.<table>`` for other processes.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import queue
from dataclasses import dataclass, field
from threading import Lock, RLock
from typing import Any, Dict, List, Optional, Tuple

import redis

logger = logging.getLogger(__name__)

EventFilter = Tuple[str, Any]


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    type: str
    new: Dict[str, Any]
    old: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        return {"table": self.table, "eventType": self.type, "new": self.new, "old": self.old}


class Channel:
    def __init__(self) -> None:
        self._queue: "queue.Queue[ChangeEvent]" = queue.Queue()
        self._waiters: List[Tuple[asyncio.AbstractEventLoop, asyncio.Event]] = []
        self._waiters_lock = Lock()
        self.closed = False

    def put(self, event: ChangeEvent) -> None:
        if self.closed:
            return
        self._queue.put_nowait(event)
        self._wake()

    def get(self, timeout: float = 0.0) -> Optional[ChangeEvent]:
        try:
            if timeout <= 0:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[ChangeEvent]:
        events: List[ChangeEvent] = []
        while True:
            event = self.get()
            if event is None:
                return events
            events.append(event)

    def _wake(self) -> None:
        # Producers may run on another thread than the waiting loop.
        with self._waiters_lock:
            waiters, self._waiters = self._waiters, []
        for loop, ready in waiters:
            if not loop.is_closed():
                loop.call_soon_threadsafe(ready.set)

    def _forget(self, waiter: Tuple[asyncio.AbstractEventLoop, asyncio.Event]) -> None:
        with self._waiters_lock:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    async def next_event(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Wait for the next event without blocking the event loop.

        Returns ``None`` once the channel is closed or ``timeout`` elapses.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while not self.closed:
            waiter = (loop, asyncio.Event())
            with self._waiters_lock:
                self._waiters.append(waiter)
            # Checked after registering so a put in between still wakes us.
            event = self.get()
            if event is not None:
                self._forget(waiter)
                return event
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                self._forget(waiter)
                return None
            try:
                await asyncio.wait_for(waiter[1].wait(), remaining)
            except asyncio.TimeoutError:
                self._forget(waiter)
                return self.get()
        return None

    def close(self) -> None:
        self.closed = True
        self._wake()


@dataclass(eq=False)
class Subscription:
    notifier: "RealtimeNotifier"
    table: str
    event: Optional[str]
    filter: Optional[EventFilter]
    channel: Channel = field(default_factory=Channel)
    active: bool = True

    def matches(self, change: ChangeEvent) -> bool:
        if not self.active or change.table != self.table:
            return False
        if self.event and change.type != self.event:
            return False
        if self.filter is not None:
            column, value = self.filter
            if change.new.get(column) != value:
                return False
        return True

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        self.notifier.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class _RedisPublisher:
    def __init__(self, url: str) -> None:
        self._url = url
        self._client: Optional[redis.Redis] = None
        self._connect()

    def _connect(self) -> None:
        try:
            self._client = redis.Redis.from_url(self._url, socket_timeout=0.5)
            self._client.ping()
        except Exception:
            logger.warning("realtime_redis_unavailable", extra={"url": self._url})
            self._client = None

    def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        if not self._client:
            self._connect()
        if not self._client:
            return
        try:
            self._client.publish(channel, json.dumps(payload, default=str))
        except Exception:
            logger.warning("realtime_redis_publish_failed", extra={"channel": channel})
            self._client = None


class RealtimeNotifier:
    def __init__(self, redis_url: Optional[str] = None) -> None:
        self._subscriptions: List[Subscription] = []
        self._lock = RLock()
        self._publisher = _RedisPublisher(redis_url) if redis_url else None

    def subscribe(
        self,
        table: str,
        event: Optional[str] = None,
        filter: Optional[EventFilter] = None,
        channel: Optional[Channel] = None,
    ) -> Subscription:
        sub = Subscription(notifier=self, table=table, event=event, filter=filter, channel=channel or Channel())
        with self._lock:
            self._subscriptions.append(sub)
        logger.debug("realtime_subscribed", extra={"table": table, "event": event, "filter": filter})
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, change: ChangeEvent) -> int:
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(change)]
        for sub in targets:
            sub.channel.put(change)
        if self._publisher is not None:
            self._publisher.publish(f"guruchat.realtime.{change.table}", change.to_payload())
        return len(targets)


_notifier: Optional[RealtimeNotifier] = None


def get_notifier() -> RealtimeNotifier:
    global _notifier
    if _notifier is None:
        _notifier = RealtimeNotifier(os.getenv("REDIS_URL") or None)
    return _notifier
