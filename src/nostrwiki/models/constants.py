"""Shared constants for the models layer.

Defines enumerations used across multiple model modules and by the relay
engine. Placing them here avoids circular dependencies between the models
and relay layers.

See Also:
    [nostrwiki.models.relay][]: Uses [NetworkType][nostrwiki.models.constants.NetworkType]
        to classify relay URLs during construction.
    [nostrwiki.relay.connection][]: Tracks its lifecycle with
        [ConnectionState][nostrwiki.models.constants.ConnectionState].
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class NetworkType(StrEnum):
    """Network type enum for relay classification.

    Each relay URL is classified into exactly one network type during
    [RelayUrl][nostrwiki.models.relay.RelayUrl] construction. Overlay
    networks cannot be reached without a SOCKS5 proxy.

    Attributes:
        CLEARNET: Public internet relay.
        TOR: Tor hidden service identified by a ``.onion`` hostname.
        I2P: I2P eepsite identified by a ``.i2p`` hostname.
        LOKI: Lokinet service identified by a ``.loki`` hostname.
        LOCAL: Loopback or private address (a relay on the same machine or LAN).
        UNKNOWN: Hostname that could not be classified (rejected during validation).
    """

    CLEARNET = "clearnet"
    TOR = "tor"
    I2P = "i2p"
    LOKI = "loki"
    LOCAL = "local"
    UNKNOWN = "unknown"


OVERLAY_NETWORKS: frozenset[NetworkType] = frozenset(
    {NetworkType.TOR, NetworkType.I2P, NetworkType.LOKI}
)


class ConnectionState(StrEnum):
    """Lifecycle of a single relay connection.

    ``CLOSED`` is terminal: a closed connection is never reopened. The
    [RelayManager][nostrwiki.relay.manager.RelayManager] creates a fresh
    connection on the next ``connect()`` call instead.
    """

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class EventKind(IntEnum):
    """Well-known Nostr event kinds used by this client.

    Attributes:
        SET_METADATA: Kind 0 -- user profile metadata (NIP-01).
        TEXT_NOTE: Kind 1 -- short text note (NIP-01).
        WIKI_ARTICLE: Kind 30818 -- NIP-54 wiki article (addressable by ``d`` tag).
    """

    SET_METADATA = 0
    TEXT_NOTE = 1
    WIKI_ARTICLE = 30_818


EVENT_KIND_MAX = 65_535
