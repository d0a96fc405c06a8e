"""
Prometheus metrics for the relay engine, with optional HTTP exposition.

Metric objects are module-level singletons (thread-safe in
``prometheus_client``). The engine never touches them directly: it goes
through a [ClientMetrics][nostrwiki.core.metrics.ClientMetrics] recorder,
which is a no-op when ``MetricsConfig.enabled`` is false.

Architecture:
    RELAY_FRAMES_TOTAL:       Inbound frames by frame type.
    EVENTS_TOTAL:             Inbound events by outcome (delivered, duplicate, ...).
    SUBSCRIPTIONS_TOTAL:      Finished subscriptions by completion reason.
    CONNECT_ATTEMPTS_TOTAL:   Relay connection attempts by outcome.
    CONNECTED_RELAYS:         Number of currently open relay connections.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    generate_latest,
)
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MetricsConfig(BaseModel):
    """Configuration for metrics recording and the ``/metrics`` endpoint.

    Recording and the endpoint are both off unless ``enabled`` is true.
    """

    enabled: bool = Field(default=False, description="Enable metrics collection")
    serve: bool = Field(default=False, description="Expose an HTTP /metrics endpoint")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


# ---------------------------------------------------------------------------
# Metric objects
# ---------------------------------------------------------------------------

RELAY_FRAMES_TOTAL = Counter(
    "nostrwiki_relay_frames_total",
    "Inbound relay frames by frame type",
    ["frame"],
)

EVENTS_TOTAL = Counter(
    "nostrwiki_events_total",
    "Inbound events by processing outcome",
    ["outcome"],
)

SUBSCRIPTIONS_TOTAL = Counter(
    "nostrwiki_subscriptions_total",
    "Finished subscriptions by completion reason",
    ["reason"],
)

CONNECT_ATTEMPTS_TOTAL = Counter(
    "nostrwiki_connect_attempts_total",
    "Relay connection attempts by outcome",
    ["outcome"],
)

CONNECTED_RELAYS = Gauge(
    "nostrwiki_connected_relays",
    "Currently open relay connections",
)


class ClientMetrics:
    """Records engine metrics when enabled, silently ignores them otherwise."""

    __slots__ = ("_enabled",)

    def __init__(self, config: MetricsConfig | None = None) -> None:
        self._enabled = (config or MetricsConfig()).enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def frame(self, frame_type: str) -> None:
        if self._enabled:
            RELAY_FRAMES_TOTAL.labels(frame=frame_type).inc()

    def event(self, outcome: str) -> None:
        if self._enabled:
            EVENTS_TOTAL.labels(outcome=outcome).inc()

    def subscription(self, reason: str) -> None:
        if self._enabled:
            SUBSCRIPTIONS_TOTAL.labels(reason=reason).inc()

    def connect_attempt(self, outcome: str) -> None:
        if self._enabled:
            CONNECT_ATTEMPTS_TOTAL.labels(outcome=outcome).inc()

    def connected_relays(self, count: int) -> None:
        if self._enabled:
            CONNECTED_RELAYS.set(count)


# ---------------------------------------------------------------------------
# HTTP Server
# ---------------------------------------------------------------------------


class MetricsServer:
    """Async HTTP server exposing a Prometheus-compatible endpoint.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, serve=True, port=8001))
        await server.start()
        # ... client runs ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Bind the endpoint. No-op unless both ``enabled`` and ``serve`` are set.

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        if not (self._config.enabled and self._config.serve):
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

    async def stop(self) -> None:
        """Release the bound port. Idempotent."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )
