"""Relay multiplexing and subscription engine.

Components, leaf to root:

```text
          RelayManager           public façade, connection lifecycle
               |
           Dispatcher            inbound routing, fan-out, timeouts
          /    |     \
  Connection  EventStore  SubscriptionRegistry
       |
    protocol                     NIP-01 frame codec
```

Attributes:
    RelayManager: Entry point. Connects relays, subscribes, publishes.
    ClientConfig: Pydantic configuration consumed by the manager.
    Connection: One WebSocket link to one relay.
    Dispatcher: Routes frames between connections and subscriptions.
    EventStore: Deduplicating event cache.
    SubscriptionRegistry: Subscription state and completion countdown.
    PublishResult: Signed event plus the relays it was written to.
"""

from .config import DEFAULT_RELAYS, ClientConfig
from .connection import Connection
from .dispatcher import Dispatcher, PublishResult
from .manager import RelayManager
from .registry import CompletionReason, Subscription, SubscriptionRegistry
from .store import EventStore, PutResult


__all__ = [
    "DEFAULT_RELAYS",
    "ClientConfig",
    "CompletionReason",
    "Connection",
    "Dispatcher",
    "EventStore",
    "PublishResult",
    "PutResult",
    "RelayManager",
    "Subscription",
    "SubscriptionRegistry",
]
