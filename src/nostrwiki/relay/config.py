"""Relay client configuration models.

See Also:
    [RelayManager][nostrwiki.relay.manager.RelayManager]: The class that
        consumes [ClientConfig][nostrwiki.relay.config.ClientConfig].
    [load_yaml()][nostrwiki.core.yaml.load_yaml]: Reads the YAML file
        these models are validated from.

Examples:
    ```yaml
    relays:
      - wss://relay.damus.io
      - wss://nos.lol
    connect_timeout: 5.0
    subscription_timeout: 5.0
    proxy_url: socks5://127.0.0.1:9050
    keys:
      keys_env: PRIVATE_KEY
    metrics:
      enabled: true
    ```
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from nostrwiki.core.metrics import MetricsConfig
from nostrwiki.models.relay import RelayUrl
from nostrwiki.utils.keys import KeysConfig


DEFAULT_RELAYS: tuple[str, ...] = (
    "wss://relay.damus.io",
    "wss://relay.nostr.band",
    "wss://nos.lol",
    "wss://relay.snort.social",
)


class ClientConfig(BaseModel):
    """Everything a [RelayManager][nostrwiki.relay.manager.RelayManager] needs.

    Relay URLs are validated and normalized on load; duplicates (after
    normalization) are dropped, keeping the first occurrence.
    """

    relays: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RELAYS),
        description="Relays connected on startup",
    )
    connect_timeout: float = Field(
        default=5.0, gt=0.0, le=120.0, description="WebSocket handshake timeout (seconds)"
    )
    subscription_timeout: float = Field(
        default=5.0,
        gt=0.0,
        le=600.0,
        description="Upper bound before a subscription completes without EOSE (seconds)",
    )
    event_cache_size: int | None = Field(
        default=None,
        ge=1,
        description="Maximum cached events (unbounded when unset)",
    )
    proxy_url: str | None = Field(
        default=None,
        description="SOCKS5 proxy for overlay relays (e.g. socks5://127.0.0.1:9050)",
    )
    keys: KeysConfig = Field(default_factory=KeysConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @field_validator("relays")
    @classmethod
    def _normalize_relays(cls, v: list[str]) -> list[str]:
        normalized: list[str] = []
        for raw in v:
            url = RelayUrl(raw).url
            if url not in normalized:
                normalized.append(url)
        return normalized
