r"""nostrwiki -- Nostr relay multiplexing engine and NIP-54 wiki client.

The client broadcasts filtered subscriptions to many independent relays,
deduplicates the signed events they return, and resolves each
subscription's "caught up" point from independently timed ``EOSE``
signals.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
             wiki, __main__       NIP-54 queries and CLI
                   |
                 relay            Connections, dispatcher, subscriptions
               /       \
            core      utils       Logging, errors, metrics, keys, signer
               \       /
                models            Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Pure frozen dataclasses. Zero I/O.
    core: Exceptions, logging, metrics, YAML loading.
    utils: Key loading and the nostr-sdk signer.
    relay: The multiplexing engine; [RelayManager][nostrwiki.relay.RelayManager]
        is its entry point.
    wiki: [WikiClient][nostrwiki.wiki.WikiClient] over a relay manager.

Note:
    Top-level imports (``from nostrwiki import RelayManager``) use lazy
    loading and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nostrwiki")

__all__ = [
    "ClientConfig",
    "Event",
    "Filter",
    "Logger",
    "PublishResult",
    "RelayManager",
    "RelayUrl",
    "UnsignedEvent",
    "WikiArticle",
    "WikiClient",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "Logger": ("nostrwiki.core", "Logger"),
    "Event": ("nostrwiki.models", "Event"),
    "Filter": ("nostrwiki.models", "Filter"),
    "RelayUrl": ("nostrwiki.models", "RelayUrl"),
    "UnsignedEvent": ("nostrwiki.models", "UnsignedEvent"),
    "WikiArticle": ("nostrwiki.models", "WikiArticle"),
    "ClientConfig": ("nostrwiki.relay", "ClientConfig"),
    "PublishResult": ("nostrwiki.relay", "PublishResult"),
    "RelayManager": ("nostrwiki.relay", "RelayManager"),
    "WikiClient": ("nostrwiki.wiki", "WikiClient"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostrwiki' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
