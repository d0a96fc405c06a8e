"""NIP-54 wiki layer: article queries and publishing over the relay engine.

Attributes:
    WikiClient: Search, fetch, list versions and recent changes, pick a
        random article, publish.
    format_pubkey: ``first8...last8`` display form of a public key.
    format_timestamp: Local date/time display form of a unix timestamp.
"""

from .client import (
    DEFAULT_QUERY_LIMIT,
    RANDOM_POOL_SIZE,
    WIKI_KIND,
    WikiClient,
    format_pubkey,
    format_timestamp,
)


__all__ = [
    "DEFAULT_QUERY_LIMIT",
    "RANDOM_POOL_SIZE",
    "WIKI_KIND",
    "WikiClient",
    "format_pubkey",
    "format_timestamp",
]
