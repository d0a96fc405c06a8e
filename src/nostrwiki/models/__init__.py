"""Pure frozen dataclasses with zero I/O for Nostr events, filters, and relays.

The models layer is the foundation of the diamond DAG. It has no
dependencies on any other nostrwiki package; the only third-party import is
``rfc3986`` for URL validation. Every model uses
``@dataclass(frozen=True, slots=True)`` and validates in ``__post_init__``,
so invalid instances never escape the constructor.

Attributes:
    Event: Structurally validated NIP-01 event. Identity is its ``id``.
    UnsignedEvent: Event template handed to a signer.
    Filter: NIP-01 subscription filter, serialized into ``REQ`` frames.
    RelayUrl: Normalized ``ws``/``wss`` URL with
        [NetworkType][nostrwiki.models.constants.NetworkType] detection.
    WikiArticle: NIP-54 projection of a kind-30818 event.
    ConnectionState: Lifecycle of one relay connection.

Note:
    Models raise plain ``TypeError``/``ValueError``. Translating them into
    the client's exception hierarchy is the relay layer's job.

See Also:
    [nostrwiki.relay][]: The multiplexing engine consuming these models.
"""

from .constants import (
    EVENT_KIND_MAX,
    OVERLAY_NETWORKS,
    ConnectionState,
    EventKind,
    NetworkType,
)
from .event import Event, UnsignedEvent
from .filter import Filter
from .relay import RelayUrl
from .wiki import WikiArticle


__all__ = [
    "EVENT_KIND_MAX",
    "OVERLAY_NETWORKS",
    "ConnectionState",
    "Event",
    "EventKind",
    "Filter",
    "NetworkType",
    "RelayUrl",
    "UnsignedEvent",
    "WikiArticle",
]
