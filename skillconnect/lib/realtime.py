"""
In-process real-time event broker for WebSocket subscribers.

Channels:
- user:<id>              private channel, every connection joins its own
- service-request:<id>   updates for one request (parties and admins only)
- bookings               booking-list refresh; each event carries an audience
                         so only the booking's parties and admins receive it

Delivery is fire-and-forget. A failed send drops that connection and is
counted; it never propagates back to the request that produced the event.
"""
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Optional, Set
from uuid import uuid4

from skillconnect.lib.logging import get_logger
from skillconnect.lib.metrics import get_metrics_collector


logger = get_logger(__name__)

BOOKINGS_CHANNEL = "bookings"

Sender = Callable[[Dict[str, Any]], Awaitable[None]]
Closer = Callable[[int], Awaitable[None]]

POLICY_VIOLATION = 1008


def user_channel(user_id: Any) -> str:
    return f"user:{user_id}"


def request_channel(request_id: Any) -> str:
    return f"service-request:{request_id}"


@dataclass(frozen=True)
class RealtimeEvent:
    """An event staged by a service and dispatched after commit."""
    channel: str
    event: str
    payload: Dict[str, Any]
    audience: Optional[FrozenSet[str]] = None

    def message(self) -> Dict[str, Any]:
        return {"event": self.event, "channel": self.channel, "data": self.payload}


@dataclass
class Subscriber:
    """One live WebSocket connection."""
    user_id: str
    is_admin: bool
    send: Sender
    close: Optional[Closer] = None
    id: str = field(default_factory=lambda: str(uuid4()))
    channels: Set[str] = field(default_factory=set)

    def accepts(self, event: RealtimeEvent) -> bool:
        if event.channel not in self.channels:
            return False
        if event.audience is None or self.is_admin:
            return True
        return self.user_id in event.audience


class RealtimeBroker:
    """Registry of subscribers and their channel memberships."""

    def __init__(self):
        self._subscribers: Dict[str, Subscriber] = {}
        self._lock = Lock()

    def register(
        self,
        user_id: Any,
        is_admin: bool,
        send: Sender,
        close: Optional[Closer] = None,
    ) -> Subscriber:
        subscriber = Subscriber(user_id=str(user_id), is_admin=is_admin, send=send, close=close)
        subscriber.channels.add(user_channel(user_id))
        with self._lock:
            self._subscribers[subscriber.id] = subscriber
        logger.info(
            "Realtime subscriber registered",
            extra={"subscriber_id": subscriber.id, "user_id": subscriber.user_id},
        )
        return subscriber

    def unregister(self, subscriber_id: str) -> None:
        with self._lock:
            self._subscribers.pop(subscriber_id, None)

    async def disconnect_user(self, user_id: Any, code: int = POLICY_VIOLATION) -> int:
        """Drop and close every connection of one user; returns how many."""
        with self._lock:
            dropped = [s for s in self._subscribers.values() if s.user_id == str(user_id)]
            for subscriber in dropped:
                del self._subscribers[subscriber.id]

        for subscriber in dropped:
            if subscriber.close is None:
                continue
            try:
                await subscriber.close(code)
            except Exception as exc:
                logger.warning(
                    f"Realtime close failed: {exc}",
                    extra={"subscriber_id": subscriber.id, "user_id": subscriber.user_id},
                )
        if dropped:
            logger.info(
                "Realtime connections closed",
                extra={"user_id": str(user_id), "connections": len(dropped)},
            )
        return len(dropped)

    def subscribe(self, subscriber_id: str, channel: str) -> None:
        with self._lock:
            subscriber = self._subscribers.get(subscriber_id)
            if subscriber is not None:
                subscriber.channels.add(channel)

    def unsubscribe(self, subscriber_id: str, channel: str) -> None:
        with self._lock:
            subscriber = self._subscribers.get(subscriber_id)
            if subscriber is not None and channel != user_channel(subscriber.user_id):
                subscriber.channels.discard(channel)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    async def publish(self, event: RealtimeEvent) -> int:
        """Send one event to every accepting subscriber; returns deliveries."""
        metrics = get_metrics_collector()
        with self._lock:
            targets = [s for s in self._subscribers.values() if s.accepts(event)]

        delivered = 0
        for subscriber in targets:
            try:
                await subscriber.send(event.message())
            except Exception as exc:
                logger.warning(
                    f"Realtime delivery failed, dropping subscriber: {exc}",
                    extra={
                        "subscriber_id": subscriber.id,
                        "channel": event.channel,
                        "event": event.event,
                    },
                )
                self.unregister(subscriber.id)
                metrics.increment_realtime(event.event, status="failed")
                continue
            delivered += 1
            metrics.increment_realtime(event.event, status="delivered")

        if not targets:
            metrics.increment_realtime(event.event, status="dropped")
        return delivered

    async def dispatch(self, events: Iterable[RealtimeEvent]) -> None:
        """Publish staged events in order, best effort."""
        for event in events:
            await self.publish(event)


# Global singleton instance
_broker: Optional[RealtimeBroker] = None
_broker_lock = Lock()


def get_broker() -> RealtimeBroker:
    """Get the process-wide broker."""
    global _broker
    if _broker is None:
        with _broker_lock:
            if _broker is None:
                _broker = RealtimeBroker()
    return _broker


def reset_broker() -> None:
    """Drop every subscriber (for testing)."""
    global _broker
    with _broker_lock:
        _broker = None
