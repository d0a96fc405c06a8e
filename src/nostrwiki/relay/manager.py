"""Public façade of the relay engine.

[RelayManager][nostrwiki.relay.manager.RelayManager] owns the relay
connections, the [EventStore][nostrwiki.relay.store.EventStore], the
[SubscriptionRegistry][nostrwiki.relay.registry.SubscriptionRegistry] and
the [Dispatcher][nostrwiki.relay.dispatcher.Dispatcher] that ties them
together. Callers only ever talk to the manager.

Relay lifecycle::

    disconnected --connect()--> connecting --handshake ok--> connected
         ^                          |                            |
         +------ ConnectError ------+                            |
         +------------- disconnect() / remote close -------------+

There is no automatic reconnection: a relay that drops stays disconnected
until ``connect()`` is called again.

Examples:
    ```python
    async with RelayManager.from_yaml("config/nostrwiki.yaml") as manager:
        events = await manager.fetch_events([Filter(kinds={30818}, limit=20)])
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path
from typing import Any, Self

from nostrwiki.core.exceptions import ConnectError, ConnectErrorReason
from nostrwiki.core.logger import Logger
from nostrwiki.core.metrics import ClientMetrics, MetricsServer
from nostrwiki.core.yaml import load_yaml
from nostrwiki.models.event import Event, UnsignedEvent
from nostrwiki.models.filter import Filter
from nostrwiki.models.relay import RelayUrl
from nostrwiki.utils.signer import Signer, build_signer

from .config import ClientConfig
from .connection import Connection
from .dispatcher import Dispatcher, PublishResult
from .registry import CompleteCallback, EventCallback, SubscriptionRegistry
from .store import EventStore


ConnectionFactory = Callable[..., Awaitable[Connection]]


class RelayManager:
    """Multiplexes subscriptions and publishes over many relays.

    Args:
        config: Client configuration (defaults apply when omitted).
        signer: Signing collaborator. Built from ``config.keys`` when omitted,
            which yields a verify-only signer if no private key is set.
        connection_factory: Coroutine opening one relay connection; must
            accept the keyword arguments of
            [Connection.open()][nostrwiki.relay.connection.Connection.open].
        logger: Structured logger.

    Raises:
        ConfigurationError: If ``config.keys.required`` is set and no valid
            private key is available.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        signer: Signer | None = None,
        connection_factory: ConnectionFactory = Connection.open,
        logger: Logger | None = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._logger = logger or Logger("nostrwiki.relay")
        self._metrics = ClientMetrics(self._config.metrics)
        self._metrics_server = MetricsServer(self._config.metrics)
        self._signer = signer if signer is not None else build_signer(self._config.keys)
        self._connection_factory = connection_factory

        self._connections: dict[str, Connection] = {}
        self._pending: dict[str, asyncio.Task[Connection]] = {}
        self._store = EventStore(self._config.event_cache_size)
        self._registry = SubscriptionRegistry(logger=self._logger)
        self._dispatcher = Dispatcher(
            self._store,
            self._registry,
            self._signer,
            lambda: list(self._connections.values()),
            subscription_timeout=self._config.subscription_timeout,
            logger=self._logger,
            metrics=self._metrics,
        )

    @classmethod
    def from_yaml(cls, config_path: str | Path, **kwargs: Any) -> Self:
        """Create a manager from a YAML configuration file.

        Raises:
            FileNotFoundError: If the file does not exist.
            ConfigurationError: If the YAML cannot be parsed.
            pydantic.ValidationError: If a value is out of range.
        """
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> Self:
        return cls(ClientConfig(**data), **kwargs)

    def __repr__(self) -> str:
        return (
            f"RelayManager(connected={len(self.list_connected())}, "
            f"subscriptions={len(self._registry)})"
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def signer(self) -> Signer:
        return self._signer

    @property
    def store(self) -> EventStore:
        return self._store

    @property
    def subscription_timeout(self) -> float:
        return self._config.subscription_timeout

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.shutdown()

    async def start(self) -> dict[str, Connection | ConnectError]:
        """Start the metrics endpoint (if configured) and connect ``config.relays``."""
        await self._metrics_server.start()
        return await self.connect_all()

    async def shutdown(self) -> None:
        """Complete every subscription, close every connection. Idempotent."""
        pending = list(self._pending.values())
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError, ConnectError):
                await task

        await self._dispatcher.shutdown()

        connections = list(self._connections.values())
        await asyncio.gather(*(c.close() for c in connections))
        self._connections.clear()
        self._metrics.connected_relays(0)
        await self._metrics_server.stop()
        if connections:
            self._logger.info("relay_manager_shutdown", closed=len(connections))

    # -------------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------------

    @staticmethod
    def _key(url: str | RelayUrl) -> str:
        if isinstance(url, RelayUrl):
            return url.url
        try:
            return RelayUrl(url).url
        except (TypeError, ValueError) as e:
            raise ConnectError(str(url), ConnectErrorReason.REFUSED, f"invalid url: {e}") from e

    async def connect(self, url: str | RelayUrl) -> Connection:
        """Open (or reuse) the connection to *url*.

        Idempotent: an open connection is returned as is, and concurrent
        callers for the same relay share one handshake.

        Raises:
            ConnectError: If the URL is invalid or the handshake fails.
        """
        key = self._key(url)
        existing = self._connections.get(key)
        if existing is not None and existing.is_open:
            return existing

        task = self._pending.get(key)
        if task is None:
            task = asyncio.create_task(self._open(key), name=f"relay-connect:{key}")
            self._pending[key] = task
            task.add_done_callback(lambda t, key=key: self._forget_pending(key, t))
        # One caller being cancelled must not abort the shared handshake
        return await asyncio.shield(task)

    def _forget_pending(self, key: str, task: asyncio.Task[Connection]) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        if not task.cancelled():
            # Mark retrieved so an unawaited failure is not reported at GC
            task.exception()

    async def _open(self, key: str) -> Connection:
        try:
            connection = await self._connection_factory(
                key,
                on_frame=self._dispatcher.handle_frame,
                on_closed=self._on_connection_closed,
                timeout=self._config.connect_timeout,
                proxy_url=self._config.proxy_url,
                logger=self._logger,
            )
        except ConnectError as e:
            self._metrics.connect_attempt(e.reason.value)
            self._logger.warning(
                "relay_connect_failed", relay=key, reason=e.reason.value, error=e.detail
            )
            raise

        self._metrics.connect_attempt("success")
        if connection.is_open:
            self._connections[key] = connection
            self._metrics.connected_relays(len(self._connections))
            self._logger.info("relay_connected", relay=key)
        return connection

    def _on_connection_closed(self, connection: Connection) -> None:
        if self._connections.get(connection.url) is connection:
            del self._connections[connection.url]
            self._metrics.connected_relays(len(self._connections))
            self._logger.info("relay_disconnected", relay=connection.url)
        self._dispatcher.relay_closed(connection)

    async def connect_all(
        self, urls: Iterable[str] | None = None
    ) -> dict[str, Connection | ConnectError]:
        """Connect to several relays concurrently.

        Individual failures never fail the whole call.

        Args:
            urls: Relays to connect; ``config.relays`` when omitted.

        Returns:
            Per-URL outcome: the open connection or the ``ConnectError``.
        """
        targets = list(dict.fromkeys(self._config.relays if urls is None else urls))

        async def attempt(url: str) -> Connection | ConnectError:
            try:
                return await self.connect(url)
            except ConnectError as e:
                return e

        results = await asyncio.gather(*(attempt(url) for url in targets))
        outcome = dict(zip(targets, results, strict=True))
        failed = sum(1 for r in results if isinstance(r, ConnectError))
        self._logger.info(
            "relays_connected", connected=len(targets) - failed, failed=failed
        )
        return outcome

    async def disconnect(self, url: str | RelayUrl) -> bool:
        """Close the connection to *url*.

        Returns:
            ``True`` if a connection was open.
        """
        try:
            key = self._key(url)
        except ConnectError:
            return False
        connection = self._connections.pop(key, None)
        if connection is None:
            return False
        self._metrics.connected_relays(len(self._connections))
        await connection.close()
        self._logger.info("relay_disconnected", relay=key)
        return True

    def is_connected(self, url: str | RelayUrl) -> bool:
        try:
            key = self._key(url)
        except ConnectError:
            return False
        connection = self._connections.get(key)
        return connection is not None and connection.is_open

    def list_connected(self) -> list[str]:
        """Sorted URLs of currently open connections."""
        return sorted(url for url, c in self._connections.items() if c.is_open)

    # -------------------------------------------------------------------------
    # Subscriptions and publishing
    # -------------------------------------------------------------------------

    async def subscribe(
        self,
        filters: Filter | Iterable[Filter],
        on_event: EventCallback,
        on_complete: CompleteCallback | None = None,
        *,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> str:
        """Subscribe on every connected relay. See
        [Dispatcher.subscribe()][nostrwiki.relay.dispatcher.Dispatcher.subscribe].
        """
        if isinstance(filters, Filter):
            filters = (filters,)
        return await self._dispatcher.subscribe(
            filters, on_event, on_complete, timeout=timeout
        )

    async def unsubscribe(self, subscription_id: str) -> bool:
        return await self._dispatcher.unsubscribe(subscription_id)

    async def publish(self, unsigned: UnsignedEvent) -> PublishResult:
        """Sign and broadcast an event to every connected relay.

        Raises:
            SigningError: If the event cannot be signed; nothing is sent.
        """
        return await self._dispatcher.publish(unsigned)

    async def fetch_events(
        self,
        filters: Filter | Iterable[Filter],
        *,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> list[Event]:
        """Collect every event matching *filters* until the subscription completes.

        Returns:
            Distinct events in arrival order.
        """
        events: list[Event] = []
        done = asyncio.Event()
        subscription_id = await self.subscribe(filters, events.append, done.set, timeout=timeout)
        try:
            await done.wait()
        finally:
            await self.unsubscribe(subscription_id)
        return events
