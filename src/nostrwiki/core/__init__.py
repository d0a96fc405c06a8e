"""Core layer: logging, exceptions, metrics, and YAML loading.

Sits in the middle of the diamond DAG -- depends on nothing else in
nostrwiki and is used by ``nostrwiki.utils``, ``nostrwiki.relay``, and the
consumers above them.

Attributes:
    Logger: Structured logger with key=value and JSON output and bound
        context fields. See [Logger][nostrwiki.core.logger.Logger].
    ClientMetrics: Prometheus recorder that is a no-op when disabled.
    MetricsServer: Optional ``/metrics`` HTTP endpoint.
    load_yaml: Safe YAML loading. See [load_yaml()][nostrwiki.core.yaml.load_yaml].
"""

from .exceptions import (
    ConfigurationError,
    ConnectError,
    ConnectErrorReason,
    ConnectivityError,
    MalformedEventError,
    NostrWikiError,
    ProtocolError,
    SignatureInvalidError,
    SigningError,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs, setup_logging
from .metrics import ClientMetrics, MetricsConfig, MetricsServer
from .yaml import load_yaml


__all__ = [
    "ClientMetrics",
    "ConfigurationError",
    "ConnectError",
    "ConnectErrorReason",
    "ConnectivityError",
    "Logger",
    "MalformedEventError",
    "MetricsConfig",
    "MetricsServer",
    "NostrWikiError",
    "ProtocolError",
    "SignatureInvalidError",
    "SigningError",
    "StructuredFormatter",
    "format_kv_pairs",
    "load_yaml",
    "setup_logging",
]
