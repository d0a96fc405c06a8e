"""Inbound routing, outbound fan-out, and the subscription timeout policy.

The [Dispatcher][nostrwiki.relay.dispatcher.Dispatcher] sits between the
open [Connection][nostrwiki.relay.connection.Connection] objects and the
[SubscriptionRegistry][nostrwiki.relay.registry.SubscriptionRegistry]:

- every inbound text frame from any relay enters through
  [handle_frame()][nostrwiki.relay.dispatcher.Dispatcher.handle_frame];
- ``REQ``, ``CLOSE`` and ``EVENT`` frames leave through
  [subscribe()][nostrwiki.relay.dispatcher.Dispatcher.subscribe],
  [unsubscribe()][nostrwiki.relay.dispatcher.Dispatcher.unsubscribe] and
  [publish()][nostrwiki.relay.dispatcher.Dispatcher.publish].

Inbound event pipeline::

    decode -> parse (malformed: drop) -> already stored? duplicate: drop
           -> verify (invalid: drop) -> put_if_absent (not inserted: drop)
           -> on_event

Every outbound write is bounded by a timeout; a relay that does not accept
a frame in time counts as failed for that write.

Every path that can end a subscription (``EOSE``, ``CLOSED``, relay gone,
timer, no relay reached, shutdown) goes through the registry's single-fire
countdown. The one call that actually fires it is followed by
[_finalize()][nostrwiki.relay.dispatcher.Dispatcher._finalize], which
cancels the timer and sends ``CLOSE`` to relays still holding the id.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import Any, Final, NamedTuple

from nostrwiki.core.exceptions import (
    MalformedEventError,
    ProtocolError,
    SignatureInvalidError,
)
from nostrwiki.core.logger import Logger
from nostrwiki.core.metrics import ClientMetrics
from nostrwiki.models.event import Event, UnsignedEvent
from nostrwiki.models.filter import Filter
from nostrwiki.utils.signer import Signer

from .connection import Connection
from .protocol import (
    ClosedFrame,
    EoseFrame,
    EventFrame,
    NoticeFrame,
    OkFrame,
    decode_frame,
    encode_close,
    encode_event,
    encode_req,
    parse_event,
)
from .registry import (
    CompleteCallback,
    CompletionReason,
    EventCallback,
    SubscriptionRegistry,
    invoke_callback,
)
from .store import EventStore


DEFAULT_SUBSCRIPTION_TIMEOUT: Final[float] = 5.0

ConnectionsProvider = Callable[[], Iterable[Connection]]


class PublishResult(NamedTuple):
    """Outcome of [Dispatcher.publish()][nostrwiki.relay.dispatcher.Dispatcher.publish].

    Attributes:
        event: The signed event that was broadcast.
        relays: URLs the ``EVENT`` frame was written to. Writing is not
            acceptance: relays answer with ``OK`` frames, which are only logged.
    """

    event: Event
    relays: tuple[str, ...]


class Dispatcher:
    """Routes frames between relay connections and subscriptions.

    Args:
        store: Shared event cache.
        registry: Subscription state.
        signer: Signs published events and verifies received ones.
        connections: Returns the current connections; only open ones are used.
        subscription_timeout: Default completion bound in seconds.
        logger: Structured logger.
        metrics: Metrics recorder (no-op when disabled).
    """

    def __init__(
        self,
        store: EventStore,
        registry: SubscriptionRegistry,
        signer: Signer,
        connections: ConnectionsProvider,
        *,
        subscription_timeout: float = DEFAULT_SUBSCRIPTION_TIMEOUT,
        logger: Logger | None = None,
        metrics: ClientMetrics | None = None,
    ) -> None:
        if subscription_timeout <= 0:
            raise ValueError(f"subscription_timeout must be positive, got {subscription_timeout}")
        self._store = store
        self._registry = registry
        self._signer = signer
        self._connections = connections
        self._subscription_timeout = subscription_timeout
        self._logger = logger or Logger(__name__)
        self._metrics = metrics or ClientMetrics()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._deferred: dict[str, CompletionReason] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def subscription_timeout(self) -> float:
        return self._subscription_timeout

    def _open_connections(self) -> list[Connection]:
        return [c for c in self._connections() if c.is_open]

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    def handle_frame(self, connection: Connection, text: str) -> None:
        """Process one inbound text frame from *connection*.

        Never raises: undecodable and unknown frames are logged and ignored,
        and user callbacks run inside an error boundary.
        """
        try:
            frame = decode_frame(text)
        except ProtocolError as e:
            self._metrics.frame("invalid")
            self._logger.debug("frame_invalid", relay=connection.url, error=str(e))
            return

        if frame is None:
            self._metrics.frame("unknown")
            self._logger.debug("frame_unhandled", relay=connection.url)
            return

        if isinstance(frame, EventFrame):
            self._metrics.frame("EVENT")
            self._handle_event(connection, frame)
        elif isinstance(frame, EoseFrame):
            self._metrics.frame("EOSE")
            self._complete_relay(frame.subscription_id, connection.url, CompletionReason.EOSE)
        elif isinstance(frame, ClosedFrame):
            self._metrics.frame("CLOSED")
            self._handle_closed(connection, frame)
        elif isinstance(frame, NoticeFrame):
            self._metrics.frame("NOTICE")
            self._logger.info("relay_notice", relay=connection.url, message=frame.message)
        elif isinstance(frame, OkFrame):
            self._metrics.frame("OK")
            self._logger.debug(
                "publish_acknowledged",
                relay=connection.url,
                event_id=frame.event_id,
                accepted=frame.accepted,
                message=frame.message,
            )

    def _handle_event(self, connection: Connection, frame: EventFrame) -> None:
        subscription_id = frame.subscription_id
        if subscription_id not in self._registry:
            # Late frame for a finished or unsubscribed id
            self._metrics.event("unrouted")
            return

        try:
            event = self._accept(frame.payload)
        except MalformedEventError as e:
            self._metrics.event("malformed")
            self._logger.warning(
                "event_dropped",
                relay=connection.url,
                subscription=subscription_id,
                reason="malformed",
                error=str(e),
            )
            return
        except SignatureInvalidError as e:
            self._metrics.event("invalid_signature")
            self._logger.warning(
                "event_dropped",
                relay=connection.url,
                subscription=subscription_id,
                reason="invalid_signature",
                error=str(e),
            )
            return

        if event is None:
            self._metrics.event("duplicate")
            return

        subscription = self._registry.get(subscription_id)
        if subscription is None or subscription.completed:
            self._metrics.event("unrouted")
            return

        self._metrics.event("delivered")
        invoke_callback(
            subscription.on_event,
            event,
            logger=self._logger,
            subscription_id=subscription_id,
        )

    def _accept(self, payload: Any) -> Event | None:
        """Parse, verify and store an event payload.

        Returns:
            The event if this call inserted it into the store, ``None`` if
            the id was already stored. A stored id was verified on first
            arrival, so it is not verified again.

        Raises:
            MalformedEventError: The payload is not a structurally valid event.
            SignatureInvalidError: The id or signature does not verify.
        """
        event = parse_event(payload)
        if event.id in self._store:
            return None
        if not self._signer.verify(event):
            raise SignatureInvalidError(f"event {event.id} failed id/signature verification")
        result = self._store.put_if_absent(event)
        return result.event if result.inserted else None

    def _handle_closed(self, connection: Connection, frame: ClosedFrame) -> None:
        connection.discard_subscription(frame.subscription_id)
        self._logger.info(
            "subscription_closed_by_relay",
            relay=connection.url,
            subscription=frame.subscription_id,
            message=frame.message,
        )
        self._complete_relay(frame.subscription_id, connection.url, CompletionReason.CLOSED)

    def relay_closed(self, connection: Connection) -> None:
        """Stop waiting on a relay whose connection ended."""
        for subscription_id in self._registry.subscriptions_waiting_on(connection.url):
            self._complete_relay(subscription_id, connection.url, CompletionReason.RELAY_GONE)

    def _complete_relay(
        self, subscription_id: str, relay_url: str, reason: CompletionReason
    ) -> None:
        if self._registry.record_completion(subscription_id, relay_url, reason):
            self._on_finished(subscription_id, reason)

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    async def subscribe(
        self,
        filters: Iterable[Filter],
        on_event: EventCallback,
        on_complete: CompleteCallback | None = None,
        *,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> str:
        """Send a ``REQ`` to every open relay and return the subscription id.

        ``on_complete`` fires exactly once, after this coroutine returns, when
        every relay that received the ``REQ`` has sent ``EOSE``/``CLOSED`` or
        gone away, or when *timeout* elapses, whichever comes first.

        Each ``REQ`` write is bounded by *timeout*; a relay that does not
        accept it in time counts as gone. The call itself therefore returns
        within *timeout* too.

        Raises:
            ValueError: If *filters* is empty or *timeout* is not positive.
        """
        filters = tuple(filters)
        if not filters:
            raise ValueError("at least one filter is required")
        if timeout is None:
            timeout = self._subscription_timeout
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        loop = asyncio.get_running_loop()
        self._loop = loop

        subscription_id = self._registry.register(filters, on_event, on_complete, armed=False)
        # The bound runs from the call, not from the end of the fan-out
        self._timers[subscription_id] = loop.call_later(
            timeout, self._on_timeout, subscription_id
        )
        targets = self._open_connections()
        for connection in targets:
            self._registry.add_outstanding(subscription_id, connection.url)
            connection.add_subscription(subscription_id)

        frame = encode_req(subscription_id, filters)
        results = await asyncio.gather(*(self._send(c, frame, timeout) for c in targets))

        sent: list[str] = []
        for connection, ok in zip(targets, results, strict=True):
            if ok:
                sent.append(connection.url)
                continue
            connection.discard_subscription(subscription_id)
            self._registry.record_completion(
                subscription_id, connection.url, CompletionReason.RELAY_GONE
            )

        self._logger.debug(
            "subscription_sent",
            subscription=subscription_id,
            filters=len(filters),
            relays=len(sent),
            failed=len(targets) - len(sent),
        )

        if self._registry.arm(subscription_id):
            # Everything already answered, nothing was reached, or the
            # timer fired during the fan-out
            default = CompletionReason.EOSE if sent else CompletionReason.NO_RELAYS
            reason = self._deferred.pop(subscription_id, default)
            loop.call_soon(self._complete_now, subscription_id, reason)
        return subscription_id

    async def unsubscribe(self, subscription_id: str) -> bool:
        """Cancel a subscription and send ``CLOSE`` to relays that still hold it.

        The id is unregistered before any ``CLOSE`` is written, so late
        frames are ignored from the moment this is called; ``on_complete``
        does not fire for an unsubscribed id.

        Returns:
            ``True`` if the subscription was still registered.
        """
        targets = [c for c in self._connections() if c.discard_subscription(subscription_id)]
        removed = self._registry.unregister(subscription_id)
        self._cancel_timer(subscription_id)
        self._deferred.pop(subscription_id, None)
        if removed is not None:
            self._metrics.subscription("unsubscribed")
            self._logger.debug("subscription_cancelled", subscription=subscription_id)
        await self._broadcast(encode_close(subscription_id), targets)
        return removed is not None

    async def publish(self, unsigned: UnsignedEvent) -> PublishResult:
        """Sign *unsigned* and write it to every open relay.

        Fire-and-forget: ``OK`` replies are logged, not awaited. Each write
        is bounded by the subscription timeout. The event is not added to
        the store, so a later subscription still receives it from relays.

        Raises:
            SigningError: If signing fails. Nothing is sent in that case.
        """
        event = self._signer.sign(unsigned)
        relays = await self._broadcast(encode_event(event), self._open_connections())
        self._logger.info(
            "event_published",
            event_id=event.id,
            kind=event.kind,
            relays=len(relays),
        )
        return PublishResult(event=event, relays=relays)

    async def _send(
        self,
        connection: Connection,
        frame: str,
        timeout: float,  # noqa: ASYNC109
    ) -> bool:
        try:
            return await asyncio.wait_for(connection.send(frame), timeout)
        except TimeoutError:
            self._logger.warning("relay_send_timeout", relay=connection.url, timeout_s=timeout)
            return False

    async def _broadcast(self, frame: str, targets: list[Connection]) -> tuple[str, ...]:
        targets = [c for c in targets if c.is_open]
        results = await asyncio.gather(
            *(self._send(c, frame, self._subscription_timeout) for c in targets)
        )
        return tuple(c.url for c, ok in zip(targets, results, strict=True) if ok)

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    def _on_timeout(self, subscription_id: str) -> None:
        self._timers.pop(subscription_id, None)
        self._complete_now(subscription_id, CompletionReason.TIMEOUT)

    def _complete_now(self, subscription_id: str, reason: CompletionReason) -> None:
        if self._registry.complete_all(subscription_id, reason):
            self._on_finished(subscription_id, reason)
        elif subscription_id in self._registry:
            # Still inside subscribe(): it delivers completion once armed
            self._deferred.setdefault(subscription_id, reason)

    def _on_finished(self, subscription_id: str, reason: CompletionReason) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._finalize(subscription_id, reason)
        else:
            loop.call_soon_threadsafe(self._finalize, subscription_id, reason)

    def _finalize(self, subscription_id: str, reason: CompletionReason) -> None:
        self._cancel_timer(subscription_id)
        self._deferred.pop(subscription_id, None)
        self._metrics.subscription(reason.value)
        targets = [c for c in self._connections() if c.discard_subscription(subscription_id)]
        if not targets:
            return
        task = asyncio.get_running_loop().create_task(
            self._close_on(subscription_id, targets), name=f"close:{subscription_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _close_on(self, subscription_id: str, targets: list[Connection]) -> None:
        await self._broadcast(encode_close(subscription_id), targets)

    def _cancel_timer(self, subscription_id: str) -> None:
        timer = self._timers.pop(subscription_id, None)
        if timer is not None:
            timer.cancel()

    async def shutdown(self) -> None:
        """Complete every pending subscription and flush queued ``CLOSE`` frames."""
        for subscription_id in self._registry.ids():
            self._complete_now(subscription_id, CompletionReason.SHUTDOWN)
        for subscription_id in list(self._timers):
            self._cancel_timer(subscription_id)
        if self._tasks:
            await asyncio.gather(*self._tasks)
