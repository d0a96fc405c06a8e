"""Nostr fixtures and helpers shared across all test packages.

Usage: Registered via ``pytest_plugins`` in the root ``conftest.py``.

Provides:
- Signers: a real nostr-sdk ``KeysSigner`` and a deterministic ``StubSigner``
- Event factories producing wire-shape event dicts
- ``mock_connection`` factory: a real ``Connection`` over a mocked WebSocket
- ``FakeRelay``: an in-process aiohttp WebSocket relay speaking NIP-01
"""

import asyncio
import hashlib
import json
import socket
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer
from nostr_sdk import Keys

from nostrwiki.core.exceptions import SigningError
from nostrwiki.models.event import Event, UnsignedEvent
from nostrwiki.models.relay import RelayUrl
from nostrwiki.relay.connection import Connection
from nostrwiki.utils.signer import KeysSigner


# ============================================================================
# Signers
# ============================================================================

STUB_PUBKEY = "b" * 64
GOOD_SIG = "a" * 128
BAD_SIG = "f" * 128


class StubSigner:
    """Deterministic signer: ids are content hashes, ``BAD_SIG`` never verifies."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.verified: list[str] = []

    def sign(self, unsigned: UnsignedEvent) -> Event:
        if self.fail:
            raise SigningError("stub signer refuses to sign")
        return Event.from_dict(
            make_raw_event(
                content=unsigned.content,
                kind=unsigned.kind,
                tags=[list(t) for t in unsigned.tags],
                created_at=unsigned.created_at,
            )
        )

    def verify(self, event: Event) -> bool:
        self.verified.append(event.id)
        return event.sig != BAD_SIG


def make_raw_event(
    content: str = "Test content",
    *,
    kind: int = 1,
    tags: list[list[str]] | None = None,
    created_at: int = 1700000000,
    pubkey: str = STUB_PUBKEY,
    sig: str = GOOD_SIG,
    event_id: str | None = None,
) -> dict[str, Any]:
    """Wire-shape event dict; the id is derived from the content unless given."""
    tags = tags if tags is not None else []
    if event_id is None:
        payload = json.dumps([pubkey, created_at, kind, tags, content])
        event_id = hashlib.sha256(payload.encode()).hexdigest()
    return {
        "id": event_id,
        "pubkey": pubkey,
        "created_at": created_at,
        "kind": kind,
        "tags": tags,
        "content": content,
        "sig": sig,
    }


def make_wiki_event(
    title: str,
    content: str = "Article body",
    *,
    display_title: str | None = None,
    summary: str | None = None,
    topics: tuple[str, ...] = (),
    created_at: int = 1700000000,
    pubkey: str = STUB_PUBKEY,
) -> dict[str, Any]:
    """Wire-shape kind-30818 event dict with NIP-54 tags."""
    tags = [["d", title]]
    if display_title:
        tags.append(["title", display_title])
    if summary:
        tags.append(["summary", summary])
    tags.extend(["t", topic] for topic in topics)
    return make_raw_event(
        content, kind=30818, tags=tags, created_at=created_at, pubkey=pubkey
    )


@pytest.fixture
def stub_signer() -> StubSigner:
    return StubSigner()


@pytest.fixture
def keys() -> Keys:
    return Keys.generate()


@pytest.fixture
def keys_signer(keys: Keys) -> KeysSigner:
    return KeysSigner(keys)


@pytest.fixture
def signed_event(keys_signer: KeysSigner) -> Callable[..., dict[str, Any]]:
    """Factory producing really signed wire-shape events."""

    def factory(
        content: str = "hello", *, kind: int = 1, tags: tuple[tuple[str, ...], ...] = ()
    ) -> dict[str, Any]:
        return keys_signer.sign(UnsignedEvent(kind=kind, content=content, tags=tags)).to_dict()

    return factory


# ============================================================================
# Mocked connections
# ============================================================================


def sent_frames(connection: Connection) -> list[list[Any]]:
    """Decode every frame written through a ``mock_connection``."""
    ws: Any = connection._ws
    return [json.loads(call.args[0]) for call in ws.send_str.await_args_list]


@pytest.fixture
def mock_connection() -> Callable[..., Connection]:
    """Factory for real ``Connection`` objects over a mocked WebSocket.

    ``send_ok=False`` makes every write fail; ``stall`` makes every write
    hang for that many seconds.
    """

    def factory(
        url: str = "wss://relay.example.com",
        *,
        send_ok: bool = True,
        stall: float = 0.0,
    ) -> Connection:
        ws = MagicMock()
        ws.send_str = AsyncMock()
        if not send_ok:
            ws.send_str.side_effect = ConnectionResetError("broken pipe")
        elif stall:

            async def stalled_send(_data: str) -> None:
                await asyncio.sleep(stall)

            ws.send_str.side_effect = stalled_send
        ws.close = AsyncMock()
        session = MagicMock()
        session.close = AsyncMock()
        return Connection(RelayUrl(url), ws, session)

    return factory


# ============================================================================
# In-process relay
# ============================================================================


class FakeRelay:
    """Minimal NIP-01 relay served by ``aiohttp.test_utils.TestServer``.

    Answers every ``REQ`` with all of ``events`` followed by ``EOSE`` (unless
    ``send_eose`` is false), stores published events and acknowledges them
    with ``OK``, and records every frame it receives.
    """

    def __init__(self, events: list[dict[str, Any]] | None = None, *, send_eose: bool = True):
        self.events = list(events or [])
        self.send_eose = send_eose
        self.received: list[list[Any]] = []
        self.sockets: list[web.WebSocketResponse] = []
        app = web.Application()
        app.router.add_get("/", self._handle)
        self.server = TestServer(app)

    @property
    def url(self) -> str:
        return f"ws://127.0.0.1:{self.server.port}"

    def frames(self, frame_type: str) -> list[list[Any]]:
        return [f for f in self.received if f and f[0] == frame_type]

    async def start(self) -> None:
        await self.server.start_server()

    async def close(self) -> None:
        for ws in list(self.sockets):
            await ws.close()
        await self.server.close()

    async def drop_clients(self) -> None:
        """Close every client socket from the relay side."""
        for ws in list(self.sockets):
            await ws.close()

    async def send_raw(self, text: str) -> None:
        for ws in self.sockets:
            await ws.send_str(text)

    async def _handle(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.sockets.append(ws)
        async for msg in ws:
            if msg.type != WSMsgType.TEXT:
                continue
            frame = json.loads(msg.data)
            self.received.append(frame)
            if frame[0] == "REQ":
                for event in self.events:
                    await ws.send_str(json.dumps(["EVENT", frame[1], event]))
                if self.send_eose:
                    await ws.send_str(json.dumps(["EOSE", frame[1]]))
            elif frame[0] == "EVENT":
                self.events.append(frame[1])
                await ws.send_str(json.dumps(["OK", frame[1]["id"], True, ""]))
        return ws


@pytest.fixture
async def relay_factory() -> AsyncIterator[Callable[..., Awaitable[FakeRelay]]]:
    """Start ``FakeRelay`` instances; all are closed at teardown."""
    relays: list[FakeRelay] = []

    async def factory(
        events: list[dict[str, Any]] | None = None, *, send_eose: bool = True
    ) -> FakeRelay:
        relay = FakeRelay(events, send_eose=send_eose)
        await relay.start()
        relays.append(relay)
        return relay

    yield factory

    for relay in relays:
        await relay.close()


@pytest.fixture
def unused_url() -> str:
    """A ``ws://`` URL on a local port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"ws://127.0.0.1:{port}"
