"""One WebSocket link to one relay.

A [Connection][nostrwiki.relay.connection.Connection] owns an aiohttp
``ClientSession``/``ClientWebSocketResponse`` pair and a reader task that
hands every inbound text frame to an ``on_frame`` callback in arrival
order. When the link ends, for whatever reason, ``on_closed`` fires exactly
once and the connection is ``CLOSED`` for good.

Overlay relays (Tor, I2P, Lokinet) are reached through a SOCKS5 proxy via
``aiohttp_socks.ProxyConnector``; clearnet and local relays connect
directly.

Note:
    The set of active subscription ids is read and written from the
    dispatcher (on behalf of callers) and from the reader task, so it is
    guarded by a ``threading.Lock``. The critical sections never ``await``.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
import time
from collections.abc import Callable
from typing import Final

import aiohttp
from aiohttp_socks import ProxyConnector

from nostrwiki.core.exceptions import ConnectError, ConnectErrorReason
from nostrwiki.core.logger import Logger
from nostrwiki.models.constants import ConnectionState
from nostrwiki.models.relay import RelayUrl


DEFAULT_CONNECT_TIMEOUT: Final[float] = 5.0
_WS_CLOSE_TIMEOUT: Final[float] = 5.0

FrameHandler = Callable[["Connection", str], None]
ClosedHandler = Callable[["Connection"], None]


def _noop_frame(_connection: Connection, _text: str) -> None:
    return None


def _noop_closed(_connection: Connection) -> None:
    return None


class Connection:
    """Duplex link to a single relay.

    Create with [open()][nostrwiki.relay.connection.Connection.open]; the
    constructor only wires an already-established WebSocket.

    Attributes:
        relay_url: The validated [RelayUrl][nostrwiki.models.relay.RelayUrl].
        opened_at: Unix time the handshake completed.
    """

    def __init__(
        self,
        relay_url: RelayUrl,
        ws: aiohttp.ClientWebSocketResponse,
        session: aiohttp.ClientSession,
        *,
        on_frame: FrameHandler = _noop_frame,
        on_closed: ClosedHandler = _noop_closed,
        logger: Logger | None = None,
    ) -> None:
        self.relay_url = relay_url
        self.opened_at = time.time()
        self._ws = ws
        self._session = session
        self._on_frame = on_frame
        self._on_closed = on_closed
        self._logger = (logger or Logger(__name__)).bind(relay=relay_url.url)
        self._state = ConnectionState.OPEN
        self._closed_notified = False
        self._send_lock = asyncio.Lock()
        self._subs_lock = threading.Lock()
        self._active: set[str] = set()
        self._reader: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"Connection(url={self.url!r}, state={self._state.value})"

    # -------------------------------------------------------------------------
    # Opening
    # -------------------------------------------------------------------------

    @classmethod
    async def open(
        cls,
        url: str | RelayUrl,
        *,
        on_frame: FrameHandler = _noop_frame,
        on_closed: ClosedHandler = _noop_closed,
        timeout: float = DEFAULT_CONNECT_TIMEOUT,  # noqa: ASYNC109
        proxy_url: str | None = None,
        logger: Logger | None = None,
    ) -> Connection:
        """Perform the WebSocket handshake and start the reader task.

        Args:
            url: Relay URL.
            on_frame: Called with every inbound text frame, in order.
            on_closed: Called once when the connection ends.
            timeout: Handshake bound in seconds.
            proxy_url: SOCKS5 proxy for overlay relays
                (e.g. ``socks5://127.0.0.1:9050``).
            logger: Logger to bind the relay URL onto.

        Raises:
            ConnectError: ``TIMEOUT`` if the handshake does not complete in
                time, ``PROTOCOL_VIOLATION`` if the server answers but
                refuses the WebSocket upgrade, ``REFUSED`` for every other
                network failure (including an invalid URL or an overlay
                relay without a proxy).
        """
        raw = url.url if isinstance(url, RelayUrl) else url
        try:
            relay_url = url if isinstance(url, RelayUrl) else RelayUrl(url)
        except (TypeError, ValueError) as e:
            raise ConnectError(str(raw), ConnectErrorReason.REFUSED, f"invalid url: {e}") from e

        log = (logger or Logger(__name__)).bind(relay=relay_url.url)

        connector: aiohttp.BaseConnector
        if relay_url.is_overlay:
            if proxy_url is None:
                raise ConnectError(
                    relay_url.url,
                    ConnectErrorReason.REFUSED,
                    f"{relay_url.network.value} relay requires a proxy",
                )
            connector = ProxyConnector.from_url(proxy_url)
        else:
            connector = aiohttp.TCPConnector()

        session = aiohttp.ClientSession(connector=connector)
        log.debug("relay_connecting", timeout_s=timeout)
        try:
            async with asyncio.timeout(timeout):
                ws = await session.ws_connect(relay_url.url, autoping=True)
        except TimeoutError:
            await session.close()
            log.debug("relay_connect_timeout")
            raise ConnectError(
                relay_url.url, ConnectErrorReason.TIMEOUT, f"no handshake within {timeout}s"
            ) from None
        except aiohttp.WSServerHandshakeError as e:
            await session.close()
            log.debug("relay_handshake_rejected", status=e.status)
            raise ConnectError(
                relay_url.url, ConnectErrorReason.PROTOCOL_VIOLATION, str(e)
            ) from e
        except asyncio.CancelledError:
            await session.close()
            raise
        except (aiohttp.ClientError, OSError) as e:
            await session.close()
            log.debug("relay_connect_failed", error=str(e))
            raise ConnectError(relay_url.url, ConnectErrorReason.REFUSED, str(e)) from e

        connection = cls(
            relay_url,
            ws,
            session,
            on_frame=on_frame,
            on_closed=on_closed,
            logger=logger,
        )
        connection._reader = asyncio.create_task(
            connection._read_loop(), name=f"relay-reader:{relay_url.url}"
        )
        log.debug("relay_open")
        return connection

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def url(self) -> str:
        return self.relay_url.url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def active_subscriptions(self) -> frozenset[str]:
        """Snapshot of subscription ids this relay was sent a REQ for."""
        with self._subs_lock:
            return frozenset(self._active)

    def add_subscription(self, subscription_id: str) -> None:
        with self._subs_lock:
            self._active.add(subscription_id)

    def discard_subscription(self, subscription_id: str) -> bool:
        """Forget a subscription id. Returns whether it was active."""
        with self._subs_lock:
            if subscription_id in self._active:
                self._active.remove(subscription_id)
                return True
            return False

    def has_subscription(self, subscription_id: str) -> bool:
        with self._subs_lock:
            return subscription_id in self._active

    # -------------------------------------------------------------------------
    # I/O
    # -------------------------------------------------------------------------

    async def send(self, frame: str) -> bool:
        """Write one text frame.

        Returns:
            ``True`` if the frame was handed to the socket, ``False`` if the
            connection is closed or the write failed. Never raises for a
            closed or failing connection.
        """
        if not self.is_open:
            return False
        async with self._send_lock:
            if not self.is_open:
                return False
            try:
                await self._ws.send_str(frame)
            except (ConnectionError, aiohttp.ClientError, RuntimeError) as e:
                self._logger.debug("relay_send_failed", error=str(e))
                return False
        return True

    async def _read_loop(self) -> None:
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._on_frame(self, msg.data)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    try:
                        text = msg.data.decode("utf-8")
                    except UnicodeDecodeError:
                        self._logger.debug("relay_binary_frame_dropped", size=len(msg.data))
                        continue
                    self._on_frame(self, text)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self._logger.debug("relay_socket_error", error=str(self._ws.exception()))
                    break
        except (ConnectionError, aiohttp.ClientError) as e:
            self._logger.debug("relay_read_failed", error=str(e))
        finally:
            await self._shutdown()

    async def close(self) -> None:
        """Close the link. Idempotent; safe to call from any task."""
        reader = self._reader
        await self._shutdown()
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

    async def _shutdown(self) -> None:
        """Mark closed, release the socket, and notify exactly once."""
        first = self._state is not ConnectionState.CLOSED
        self._state = ConnectionState.CLOSED
        if first:
            # aiohttp can raise ClientError, ServerDisconnectedError, etc.
            # during close; teardown must finish regardless.
            with contextlib.suppress(Exception):
                await asyncio.wait_for(self._ws.close(), timeout=_WS_CLOSE_TIMEOUT)
            with contextlib.suppress(Exception):
                await asyncio.wait_for(self._session.close(), timeout=_WS_CLOSE_TIMEOUT)
            self._logger.debug("relay_closed")
        if not self._closed_notified:
            self._closed_notified = True
            self._on_closed(self)
