"""
In-process event bus and background notifier

EventBus fans an event out to subscribers synchronously. BackgroundNotifier
moves that fan-out onto a worker thread so callers never wait on (or fail
because of) view invalidation, audit writes or outbound notifications.

Fun fact: This is the "fire-and-forget" pattern, except we don't actually
forget - every failure is caught on the worker and logged with context!
"""

from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor, wait
from threading import Lock
from typing import Callable, Protocol

from quote_dispatch.kernel.events import DomainEvent, EventType
from quote_dispatch.kernel.logging import get_correlation_id, get_logger, set_correlation_id
from quote_dispatch.kernel.metrics import notification_failures_total, notifications_pending

logger = get_logger(__name__)


EventHandler = Callable[[DomainEvent], None]
ViewInvalidator = Callable[[str], None]


class NotificationSender(Protocol):
    """Best-effort sink for domain events; must never raise to the caller"""

    def emit(self, event: DomainEvent) -> None:
        ...


class EventBus:
    """
    Simple synchronous in-process pub/sub

    Handlers run in registration order. A failing handler is logged and
    the remaining handlers still run.
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[EventType, list[EventHandler]] = defaultdict(list)
        self._catch_all: list[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Register a handler for one event type

        Args:
            event_type: Event to react to (e.g., EventType.AWARDED)
            handler: Callable receiving the event
        """
        self._handlers[event_type].append(handler)
        logger.debug(
            "Event handler registered",
            event_type=event_type.value,
            total_handlers=len(self._handlers[event_type]),
        )

    def subscribe_all(self, handler: EventHandler) -> None:
        """Register a handler that receives every event"""
        self._catch_all.append(handler)

    def emit(self, event: DomainEvent) -> None:
        handlers = [*self._handlers.get(event.event_type, []), *self._catch_all]
        if not handlers:
            logger.debug("No handlers for event", event_type=event.event_type.value)
            return

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                notification_failures_total.labels(event_type=event.event_type.value).inc()
                logger.error(
                    "Event handler failed",
                    event_type=event.event_type.value,
                    event_id=event.event_id,
                    stream_id=event.stream_id,
                    error=str(e),
                    exc_info=True,
                )


class BackgroundNotifier:
    """
    Delivers events to a NotificationSender on a worker thread

    `emit` returns immediately. The correlation id of the emitting request
    travels with the task so worker-side logs stay joinable.
    """

    def __init__(self, sender: NotificationSender, max_workers: int = 1) -> None:
        """
        Args:
            sender: Downstream sender (usually an EventBus)
            max_workers: Worker threads; 1 keeps per-process event order
        """
        self.sender = sender
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="quote-dispatch-notify"
        )
        self._pending: set[Future[None]] = set()
        self._lock = Lock()

    def emit(self, event: DomainEvent) -> None:
        correlation_id = get_correlation_id()
        future = self._executor.submit(self._deliver, event, correlation_id)
        with self._lock:
            self._pending.add(future)
        notifications_pending.inc()
        future.add_done_callback(lambda f: self._on_done(f, event))

    def _deliver(self, event: DomainEvent, correlation_id: str) -> None:
        set_correlation_id(correlation_id)
        self.sender.emit(event)

    def _on_done(self, future: Future[None], event: DomainEvent) -> None:
        with self._lock:
            self._pending.discard(future)
        notifications_pending.dec()
        exc = future.exception()
        if exc is not None:
            notification_failures_total.labels(event_type=event.event_type.value).inc()
            logger.error(
                "Background notification failed",
                event_type=event.event_type.value,
                event_id=event.event_id,
                error=str(exc),
                exc_info=exc,
            )

    def drain(self, timeout: float | None = 5.0) -> None:
        """Block until every queued notification has finished"""
        with self._lock:
            pending = list(self._pending)
        wait(pending, timeout=timeout)

    def close(self) -> None:
        self._executor.shutdown(wait=True)


def publish_after_commit(
    notifier: NotificationSender,
    events: list[DomainEvent],
    quote_id: str | None = None,
    invalidate_views: ViewInvalidator | None = None,
) -> None:
    """
    Run the post-commit side effects of a state change

    The primary write has already committed, so nothing here may raise:
    view invalidation and notification failures are logged and dropped.

    Args:
        notifier: Where the events go
        events: Events describing the committed change
        quote_id: Quote whose detail and list views are now stale
        invalidate_views: Callback receiving `quote_id`
    """
    if quote_id is not None and invalidate_views is not None:
        try:
            invalidate_views(quote_id)
        except Exception as e:
            logger.error(
                "View invalidation failed",
                quote_id=quote_id,
                error=str(e),
                exc_info=True,
            )

    for event in events:
        try:
            notifier.emit(event)
        except Exception as e:
            notification_failures_total.labels(event_type=event.event_type.value).inc()
            logger.error(
                "Event emission failed",
                event_type=event.event_type.value,
                event_id=event.event_id,
                error=str(e),
                exc_info=True,
            )
