"""Subscription bookkeeping and the exactly-once completion countdown.

Each [Subscription][nostrwiki.relay.registry.Subscription] tracks the set of
relay URLs that were sent its ``REQ`` and have not yet reported completion.
Every completion signal (``EOSE``, ``CLOSED``, relay gone, timeout) removes
URLs from that set under one lock; the call that empties it is the only one
that fires ``on_complete`` and unregisters the subscription.

User callbacks always run outside the lock.
"""

from __future__ import annotations

import secrets
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from nostrwiki.core.logger import Logger
from nostrwiki.models.event import Event
from nostrwiki.models.filter import Filter


EventCallback = Callable[[Event], None]
CompleteCallback = Callable[[], None]


class CompletionReason(StrEnum):
    """Why a relay, or a whole subscription, stopped being outstanding."""

    EOSE = "eose"
    CLOSED = "closed"
    RELAY_GONE = "relay_gone"
    TIMEOUT = "timeout"
    NO_RELAYS = "no_relays"
    SHUTDOWN = "shutdown"


@dataclass(eq=False)
class Subscription:
    """A live, filtered request for events.

    Attributes:
        id: Client-chosen subscription id sent in ``REQ``/``CLOSE`` frames.
        filters: Filters carried by the ``REQ`` frame.
        on_event: Called with every event this subscription inserted into the store.
        on_complete: Called exactly once when every relay has caught up or
            the timeout elapsed.
        outstanding: Relay URLs still expected to report completion.
        created_at: Monotonic clock reading at registration.
        armed: Set once the REQ fan-out has finished. Completion never fires
            before that, so ``on_complete`` cannot run inside ``subscribe``.
    """

    id: str
    filters: tuple[Filter, ...]
    on_event: EventCallback
    on_complete: CompleteCallback | None = None
    outstanding: set[str] = field(default_factory=set)
    created_at: float = field(default_factory=time.monotonic)
    armed: bool = False
    completed: bool = False


def generate_subscription_id() -> str:
    """Return a random 16-byte hex id (collisions are negligible)."""
    return secrets.token_hex(16)


def invoke_callback(
    callback: Callable[..., object],
    *args: object,
    logger: Logger,
    subscription_id: str,
) -> None:
    """Run a user callback; log and swallow its exceptions.

    A buggy callback must not kill the relay reader task that delivered the
    frame, nor block completion of other subscriptions.
    """
    try:
        callback(*args)
    except Exception as e:  # Intentionally broad: error boundary around user code
        logger.exception(
            "subscription_callback_failed",
            subscription=subscription_id,
            callback=getattr(callback, "__name__", repr(callback)),
            error=str(e),
        )


class SubscriptionRegistry:
    """Thread-safe map from subscription id to its state."""

    def __init__(
        self,
        *,
        id_factory: Callable[[], str] = generate_subscription_id,
        logger: Logger | None = None,
    ) -> None:
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = threading.Lock()
        self._id_factory = id_factory
        self._logger = logger or Logger(__name__)

    def register(
        self,
        filters: Iterable[Filter],
        on_event: EventCallback,
        on_complete: CompleteCallback | None = None,
        *,
        armed: bool = True,
    ) -> str:
        """Create a subscription and return its unique id.

        Pass ``armed=False`` to hold completion back until
        [arm()][nostrwiki.relay.registry.SubscriptionRegistry.arm] is called.
        """
        filters = tuple(filters)
        with self._lock:
            subscription_id = self._id_factory()
            while subscription_id in self._subscriptions:
                subscription_id = self._id_factory()
            self._subscriptions[subscription_id] = Subscription(
                id=subscription_id,
                filters=filters,
                on_event=on_event,
                on_complete=on_complete,
                armed=armed,
            )
        return subscription_id

    def get(self, subscription_id: str) -> Subscription | None:
        with self._lock:
            return self._subscriptions.get(subscription_id)

    def __contains__(self, subscription_id: object) -> bool:
        with self._lock:
            return subscription_id in self._subscriptions

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._subscriptions)

    def add_outstanding(self, subscription_id: str, relay_url: str) -> bool:
        """Expect a completion signal from *relay_url*.

        Returns:
            ``False`` if the subscription is no longer registered.
        """
        with self._lock:
            sub = self._subscriptions.get(subscription_id)
            if sub is None or sub.completed:
                return False
            sub.outstanding.add(relay_url)
            return True

    def record_completion(
        self,
        subscription_id: str,
        relay_url: str,
        reason: CompletionReason = CompletionReason.EOSE,
    ) -> bool:
        """Mark one relay as done for a subscription.

        Returns:
            ``True`` if this call completed the subscription (and fired
            ``on_complete``). Unknown ids and relays that were not
            outstanding are no-ops.
        """
        with self._lock:
            sub = self._subscriptions.get(subscription_id)
            if sub is None or relay_url not in sub.outstanding:
                return False
            sub.outstanding.discard(relay_url)
            finished = self._finish_locked(sub)
        if finished is None:
            return False
        self._fire(finished, reason)
        return True

    def complete_all(
        self,
        subscription_id: str,
        reason: CompletionReason = CompletionReason.TIMEOUT,
    ) -> bool:
        """Treat every outstanding relay as done (timeout path).

        Goes through the same single-fire path as natural completion, so it
        never fires ``on_complete`` twice. On a subscription that is not armed
        yet it only clears the outstanding set and returns ``False``;
        [arm()][nostrwiki.relay.registry.SubscriptionRegistry.arm] then reports
        the completion as due.
        """
        with self._lock:
            sub = self._subscriptions.get(subscription_id)
            if sub is None:
                return False
            pending = len(sub.outstanding)
            sub.outstanding.clear()
            finished = self._finish_locked(sub)
        if finished is None:
            return False
        self._logger.debug(
            "subscription_forced_complete",
            subscription=subscription_id,
            reason=reason.value,
            pending_relays=pending,
        )
        self._fire(finished, reason)
        return True

    def arm(self, subscription_id: str) -> bool:
        """Allow completion to fire from now on.

        Returns:
            ``True`` if every relay already reported (or none was sent the
            ``REQ``), meaning completion is due immediately. The caller
            decides when to deliver it through
            [complete_all()][nostrwiki.relay.registry.SubscriptionRegistry.complete_all].
        """
        with self._lock:
            sub = self._subscriptions.get(subscription_id)
            if sub is None or sub.completed:
                return False
            sub.armed = True
            return not sub.outstanding

    def unregister(self, subscription_id: str) -> Subscription | None:
        """Remove a subscription. Idempotent; returns what was removed."""
        with self._lock:
            sub = self._subscriptions.pop(subscription_id, None)
            if sub is not None:
                sub.completed = True
            return sub

    def subscriptions_waiting_on(self, relay_url: str) -> list[str]:
        """Ids of subscriptions still expecting completion from *relay_url*."""
        with self._lock:
            return [
                sub_id
                for sub_id, sub in self._subscriptions.items()
                if relay_url in sub.outstanding
            ]

    def _finish_locked(self, sub: Subscription) -> Subscription | None:
        if sub.outstanding or sub.completed or not sub.armed:
            return None
        sub.completed = True
        self._subscriptions.pop(sub.id, None)
        return sub

    def _fire(self, sub: Subscription, reason: CompletionReason) -> None:
        elapsed = time.monotonic() - sub.created_at
        self._logger.debug(
            "subscription_completed",
            subscription=sub.id,
            reason=reason.value,
            elapsed_s=round(elapsed, 3),
        )
        if sub.on_complete is not None:
            invoke_callback(sub.on_complete, logger=self._logger, subscription_id=sub.id)
