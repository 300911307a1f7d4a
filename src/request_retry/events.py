"""Outcome notifications for captured and replayed requests.

The notifier publishes events to subscribers so that other parts of an
application can react to retry outcomes (alerting, audit trails, ...).
Delivery is fire-and-forget: a failing subscriber is logged and does not
affect the capture or replay that emitted the event.

Events are emitted after the store update they describe has been committed.
A subscriber re-reading the record concurrently may observe a newer state
than the one carried by the event.

Examples:
    Subscribing to failures::

        from request_retry.events import OutcomeNotifier, RetryFailed

        notifier = OutcomeNotifier()

        async def alert(event):
            if isinstance(event, RetryFailed):
                await pager.send(f"retry {event.record.id} failed: {event.reason}")

        notifier.subscribe(alert)
"""

import inspect
from collections.abc import Awaitable, Callable
from typing import Union

from pydantic import BaseModel

from request_retry.models import RetryRecord
from request_retry.observability.logging import get_logger

logger = get_logger(__name__)


class RequestCaptured(BaseModel):
    """A failed request was stored for replay."""

    record: RetryRecord


class RetrySucceeded(BaseModel):
    """A replay returned a successful response; the record is completed."""

    record: RetryRecord


class RetryFailed(BaseModel):
    """A record reached a terminal failure status.

    Attributes:
        record: The record, with its terminal status.
        reason: Last status code or fault message.
    """

    record: RetryRecord
    reason: str


RetryEvent = Union[RequestCaptured, RetrySucceeded, RetryFailed]
Subscriber = Callable[[RetryEvent], Union[Awaitable[None], None]]


class OutcomeNotifier:
    """Publishes retry events to a list of subscribers.

    Subscribers may be plain functions or coroutine functions. They are
    called in subscription order.
    """

    def __init__(self, subscribers: list[Subscriber] | None = None) -> None:
        self._subscribers: list[Subscriber] = list(subscribers or [])

    def subscribe(self, subscriber: Subscriber) -> Subscriber:
        """Register a subscriber. Usable as a decorator."""
        self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.remove(subscriber)

    async def emit(self, event: RetryEvent) -> None:
        """Deliver an event to every subscriber.

        Exceptions raised by subscribers are logged and swallowed.
        """
        for subscriber in list(self._subscribers):
            try:
                result = subscriber(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "notifier.subscriber_failed",
                    event_type=type(event).__name__,
                    retry_id=event.record.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
