"""
Validated Nostr relay URL with network type detection.

Parses and normalizes WebSocket relay URLs (``ws://`` or ``wss://``) and
detects the network type (clearnet, Tor, I2P, Lokinet, local). The scheme
the caller chose is kept: a client may legitimately talk plain ``ws://`` to
a relay on its own machine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from ipaddress import IPv4Network, IPv6Network, ip_address, ip_network
from typing import Any, ClassVar

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator

from .constants import OVERLAY_NETWORKS, NetworkType


@dataclass(frozen=True, slots=True)
class RelayUrl:
    """Immutable, normalized relay URL.

    Normalization lowercases scheme and host, collapses duplicate slashes,
    strips a trailing slash, and drops the port when it is the scheme
    default, so the same relay always maps to the same ``url`` key.

    Attributes:
        url: Fully normalized URL including scheme.
        network: Detected ``NetworkType``.
        scheme: ``ws`` or ``wss``.
        host: Hostname or IP address (brackets stripped for IPv6).
        port: Explicit port number, or ``None`` when using the default.
        path: URL path component, or ``None``.

    Raises:
        ValueError: If the URL is malformed, uses a non-WebSocket scheme,
            carries a query string or fragment, or has an invalid host.

    Examples:
        ```python
        RelayUrl("wss://Relay.Damus.io/").url     # 'wss://relay.damus.io'
        RelayUrl("ws://abc.onion").network        # NetworkType.TOR
        RelayUrl("ws://127.0.0.1:7447").network   # NetworkType.LOCAL
        ```
    """

    raw_url: str = field(repr=False)

    url: str = field(init=False)
    network: NetworkType = field(init=False)
    scheme: str = field(init=False)
    host: str = field(init=False)
    port: int | None = field(init=False)
    path: str | None = field(init=False)

    _PORT_WS: ClassVar[int] = 80
    _PORT_WSS: ClassVar[int] = 443

    _NETWORK_TLDS: ClassVar[dict[str, NetworkType]] = {
        ".onion": NetworkType.TOR,
        ".i2p": NetworkType.I2P,
        ".loki": NetworkType.LOKI,
    }

    _LOCAL_NETWORKS: ClassVar[list[IPv4Network | IPv6Network]] = [
        ip_network("0.0.0.0/8"),
        ip_network("10.0.0.0/8"),
        ip_network("100.64.0.0/10"),
        ip_network("127.0.0.0/8"),
        ip_network("169.254.0.0/16"),
        ip_network("172.16.0.0/12"),
        ip_network("192.168.0.0/16"),
        ip_network("::1/128"),
        ip_network("fc00::/7"),
        ip_network("fe80::/10"),
    ]

    def __post_init__(self) -> None:
        if not isinstance(self.raw_url, str):
            raise TypeError(f"relay url must be a str, got {type(self.raw_url).__name__}")
        if "\x00" in self.raw_url:
            raise ValueError("Relay URL contains null bytes")

        parsed = self._parse(self.raw_url)
        if parsed["network"] == NetworkType.UNKNOWN:
            raise ValueError(f"Invalid host: '{parsed['host']}'")

        object.__setattr__(self, "url", parsed["url"])
        object.__setattr__(self, "network", parsed["network"])
        object.__setattr__(self, "scheme", parsed["scheme"])
        object.__setattr__(self, "host", parsed["host"])
        object.__setattr__(self, "port", parsed["port"])
        object.__setattr__(self, "path", parsed["path"])

    def __str__(self) -> str:
        return self.url

    @property
    def is_overlay(self) -> bool:
        """Whether the relay is only reachable through a SOCKS5 proxy."""
        return self.network in OVERLAY_NETWORKS

    @staticmethod
    def _detect_network(host: str) -> NetworkType:
        """Classify a hostname into a network type."""
        if not host:
            return NetworkType.UNKNOWN

        host_bare = host.lower().strip("[]")

        for tld, network in RelayUrl._NETWORK_TLDS.items():
            if host_bare.endswith(tld):
                return network

        if host_bare in ("localhost", "localhost.localdomain"):
            return NetworkType.LOCAL

        try:
            ip = ip_address(host_bare)
        except ValueError:
            pass
        else:
            is_local = any(ip in net for net in RelayUrl._LOCAL_NETWORKS)
            return NetworkType.LOCAL if is_local else NetworkType.CLEARNET

        if "." not in host_bare:
            return NetworkType.UNKNOWN

        labels = host_bare.split(".")
        valid = all(
            label and not label.startswith("-") and not label.endswith("-") for label in labels
        )
        return NetworkType.CLEARNET if valid else NetworkType.UNKNOWN

    @staticmethod
    def _parse(raw: str) -> dict[str, Any]:
        """Parse and normalize a raw relay URL string.

        Raises:
            ValueError: If the scheme is not ``ws``/``wss`` or the URI is invalid.
        """
        uri = uri_reference(raw.strip()).normalize()

        validator = (
            Validator()
            .require_presence_of("scheme", "host")
            .allow_schemes("ws", "wss")
            .check_validity_of("scheme", "host", "port", "path")
        )

        try:
            validator.validate(uri)
        except UnpermittedComponentError:
            raise ValueError("Invalid scheme: must be ws or wss") from None
        except ValidationError as e:
            raise ValueError(f"Invalid URL: {e}") from None

        if uri.query:
            raise ValueError(f"Relay URL must not contain a query string: ?{uri.query}")
        if uri.fragment:
            raise ValueError(f"Relay URL must not contain a fragment: #{uri.fragment}")

        scheme = uri.scheme
        port = int(uri.port) if uri.port else None
        host = uri.host.strip("[]")

        path = uri.path or ""
        while "//" in path:
            path = path.replace("//", "/")
        path = path.rstrip("/") or None

        formatted_host = f"[{host}]" if ":" in host else host
        default_port = RelayUrl._PORT_WSS if scheme == "wss" else RelayUrl._PORT_WS
        if port and port != default_port:
            authority = f"{formatted_host}:{port}"
        else:
            authority = formatted_host
            port = None

        return {
            "url": f"{scheme}://{authority}{path or ''}",
            "scheme": scheme,
            "host": host,
            "port": port,
            "path": path,
            "network": RelayUrl._detect_network(host),
        }
