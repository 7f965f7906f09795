"""Page lifecycle events and the broadcast bus that carries them.

Every listener sees every event emitted after it subscribed; a listener that
subscribes late misses earlier events unless the bus keeps a history ring
and the listener asks for a replay. Events from concurrent workers
interleave in arbitrary order; only the events of a single URL are ordered.
"""

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, ClassVar, Deque, Dict, List, Optional, Set, Union

from .models.redirect import RedirectInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    """Base event; carries the subject URL and the emission time."""
    url: str
    timestamp: datetime = field(default_factory=datetime.utcnow)

    type: ClassVar[str] = "AuditEvent"

    def payload(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type,
            "url": self.url,
            "timestamp": self.timestamp.isoformat(),
        }
        data.update(self.payload())
        return data

    def __str__(self) -> str:
        return f"[{self.type}] {self.url}"


@dataclass(frozen=True)
class PageQueued(AuditEvent):
    type: ClassVar[str] = "PageQueued"


@dataclass(frozen=True)
class PageStarted(AuditEvent):
    type: ClassVar[str] = "PageStarted"


@dataclass(frozen=True)
class PageFinished(AuditEvent):
    type: ClassVar[str] = "PageFinished"


@dataclass(frozen=True)
class PageError(AuditEvent):
    message: str = ""

    type: ClassVar[str] = "PageError"

    def payload(self) -> Dict[str, Any]:
        return {"message": self.message}


@dataclass(frozen=True)
class PageSkipped(AuditEvent):
    reason: str = ""

    type: ClassVar[str] = "PageSkipped"

    def payload(self) -> Dict[str, Any]:
        return {"reason": self.reason}


@dataclass(frozen=True)
class PageRetry(AuditEvent):
    attempt: int = 0
    delay_ms: int = 0

    type: ClassVar[str] = "PageRetry"

    def payload(self) -> Dict[str, Any]:
        return {"attempt": self.attempt, "delayMs": self.delay_ms}


@dataclass(frozen=True)
class PageRedirected(AuditEvent):
    final_url: str = ""
    info: Optional[RedirectInfo] = None

    type: ClassVar[str] = "PageRedirected"

    def payload(self) -> Dict[str, Any]:
        return {
            "finalUrl": self.final_url,
            "info": self.info.to_dict() if self.info else None,
        }


@dataclass(frozen=True)
class AuditAttached(AuditEvent):
    audit_name: str = ""

    type: ClassVar[str] = "AuditAttached"

    def payload(self) -> Dict[str, Any]:
        return {"auditName": self.audit_name}


@dataclass(frozen=True)
class AuditFinished(AuditEvent):
    audit_name: str = ""

    type: ClassVar[str] = "AuditFinished"

    def payload(self) -> Dict[str, Any]:
        return {"auditName": self.audit_name}


Listener = Callable[[AuditEvent], Union[None, Awaitable[None]]]

_CLOSED = object()


class Subscription:
    """Handle returned by :meth:`EventBus.subscribe`."""

    def __init__(self, bus: "EventBus", listener: Listener):
        self.bus = bus
        self.listener = listener

    def cancel(self) -> None:
        self.bus.unsubscribe(self)


# Per-stream buffer; a consumer that falls further behind loses the oldest events.
DEFAULT_STREAM_SIZE = 1000


class EventStream:
    """Async iterator over events emitted after its creation.

    The buffer holds at most ``maxsize`` events (0 means unbounded). When
    it is full the oldest event is dropped and counted in ``dropped``.
    """

    def __init__(self, bus: "EventBus", maxsize: int = DEFAULT_STREAM_SIZE):
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._done = False
        self.dropped = 0
        bus._streams.append(self)
        if bus.closed:
            self._push(_CLOSED)

    def _push(self, item: Any) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            if self.dropped == 1:
                logger.warning("Event stream consumer is falling behind; dropping oldest events")
        self._queue.put_nowait(item)

    def __aiter__(self):
        return self

    async def __anext__(self) -> AuditEvent:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self.close()
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        if not self._done:
            self._done = True
            if self in self._bus._streams:
                self._bus._streams.remove(self)


class EventBus:
    """Multi-producer, multi-consumer broadcast of audit events.

    Listeners may be plain callables or coroutine functions. Coroutine
    listeners are scheduled as tasks; :meth:`drain` waits for them. A
    failing listener is logged and never affects other listeners or the
    emitter.
    """

    def __init__(self, history_size: int = 0):
        self._subscriptions: List[Subscription] = []
        self._streams: List[EventStream] = []
        self._history: Optional[Deque[AuditEvent]] = deque(maxlen=history_size) if history_size > 0 else None
        self._pending: Set[asyncio.Task] = set()
        self._closed = False
        self.emitted_count = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions) + len(self._streams)

    def subscribe(self, listener: Listener, replay: bool = False) -> Subscription:
        """Register a listener for future events.

        With ``replay`` the listener first receives the retained history.
        """
        subscription = Subscription(self, listener)
        self._subscriptions.append(subscription)
        if replay:
            for event in self.replay():
                self._deliver(subscription, event)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def stream(self, maxsize: int = DEFAULT_STREAM_SIZE) -> EventStream:
        return EventStream(self, maxsize)

    def replay(self) -> List[AuditEvent]:
        """Events retained in the history ring, oldest first."""
        return list(self._history) if self._history is not None else []

    def emit(self, event: AuditEvent) -> None:
        if self._closed:
            logger.debug(f"Dropping event on closed bus: {event}")
            return

        self.emitted_count += 1
        if self._history is not None:
            self._history.append(event)

        for subscription in list(self._subscriptions):
            self._deliver(subscription, event)

        for stream in list(self._streams):
            stream._push(event)

    def _deliver(self, subscription: Subscription, event: AuditEvent) -> None:
        try:
            result = subscription.listener(event)
        except Exception as e:
            logger.warning(f"Event listener failed on {event.type}: {e}")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._on_listener_done)

    def _on_listener_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Async event listener failed: {task.exception()}")

    async def drain(self) -> None:
        """Wait for scheduled async listeners to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def close(self) -> None:
        """Stop accepting events and end all streams. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for stream in list(self._streams):
            stream._push(_CLOSED)
        self._subscriptions.clear()
        logger.debug("Event bus closed")


def log_listener(event: AuditEvent) -> None:
    """Default listener: one log line per event."""
    logger.info(str(event))
