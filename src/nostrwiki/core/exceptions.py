"""nostrwiki exception hierarchy.

Typed exceptions for every failure category the client distinguishes, so
callers can catch per-relay connectivity problems separately from signing
failures and let ``CancelledError`` propagate untouched.

Exception hierarchy:

```text
NostrWikiError (base -- never raised directly)
├── ConfigurationError        -- config validation, missing keys, bad YAML
├── ConnectivityError         -- relay unreachable or gone
│   └── ConnectError          -- open() failed: TIMEOUT, REFUSED, PROTOCOL_VIOLATION
├── ProtocolError             -- relay sent something we cannot use
│   ├── MalformedEventError   -- event missing fields or badly typed
│   └── SignatureInvalidError -- id/signature do not verify
└── SigningError              -- could not sign an outgoing event
```

Note:
    ``MalformedEventError`` and ``SignatureInvalidError`` are raised inside
    the dispatcher and always caught there: bad events are logged and
    dropped, never surfaced to subscription callbacks. ``SigningError`` is
    surfaced by ``publish`` because an event must never be sent unsigned.
"""

from __future__ import annotations

from enum import StrEnum


class NostrWikiError(Exception):
    """Base exception for all nostrwiki errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(NostrWikiError):
    """Invalid or missing configuration (YAML, env vars, CLI flags)."""


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(NostrWikiError):
    """Base for all relay connectivity errors."""


class ConnectErrorReason(StrEnum):
    """Why a relay connection could not be opened."""

    TIMEOUT = "timeout"
    REFUSED = "refused"
    PROTOCOL_VIOLATION = "protocol_violation"


class ConnectError(ConnectivityError):
    """Opening a relay connection failed.

    Not retried by the client: no automatic reconnection.

    Attributes:
        url: Relay URL that could not be reached.
        reason: [ConnectErrorReason][nostrwiki.core.exceptions.ConnectErrorReason].
    """

    def __init__(self, url: str, reason: ConnectErrorReason, detail: str = "") -> None:
        self.url = url
        self.reason = reason
        self.detail = detail
        message = f"{reason.value}: {url}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(NostrWikiError):
    """A relay sent a frame or event the client cannot use."""


class MalformedEventError(ProtocolError):
    """Event is structurally invalid (missing required fields, wrong types)."""


class SignatureInvalidError(ProtocolError):
    """Event id is not the protocol digest, or its signature does not verify."""


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


class SigningError(NostrWikiError):
    """An outgoing event could not be signed.

    ``publish`` raises this before any frame is written.
    """
