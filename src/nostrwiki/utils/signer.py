"""Event signing and verification on top of nostr-sdk.

The relay engine depends only on the [Signer][nostrwiki.utils.signer.Signer]
protocol. [KeysSigner][nostrwiki.utils.signer.KeysSigner] is the real
implementation: it computes the NIP-01 event id (SHA-256 of the canonical
serialization) and a BIP-340 Schnorr signature through ``nostr_sdk``, and
verifies received events the same way.

Note:
    Conversions between [Event][nostrwiki.models.event.Event] and
    ``nostr_sdk.Event`` go through the NIP-01 JSON shape, so the models
    layer stays free of FFI types.
"""

from __future__ import annotations

import json
import logging
from typing import Protocol, runtime_checkable

from nostr_sdk import Event as NostrEvent
from nostr_sdk import EventBuilder, Keys, Kind, Tag, Timestamp

from nostrwiki.core.exceptions import ConfigurationError, SigningError
from nostrwiki.models.event import Event, UnsignedEvent

from .keys import KeysConfig, load_keys_from_env


logger = logging.getLogger(__name__)


@runtime_checkable
class Signer(Protocol):
    """Signing collaborator consumed by the relay engine."""

    def sign(self, unsigned: UnsignedEvent) -> Event:
        """Return the signed event.

        Raises:
            SigningError: If the event cannot be signed.
        """
        ...

    def verify(self, event: Event) -> bool:
        """Return ``True`` only if ``id`` is the digest and ``sig`` verifies."""
        ...


def verify_event(event: Event) -> bool:
    """Check an event's id digest and Schnorr signature with nostr-sdk.

    Never raises: anything nostr-sdk refuses to parse counts as invalid.
    """
    try:
        nostr_event = NostrEvent.from_json(json.dumps(event.to_dict()))
        return bool(nostr_event.verify())
    except Exception:  # nostr-sdk Rust FFI can raise arbitrary exception types
        return False


class KeysSigner:
    """Signs with a local private key, verifies with nostr-sdk.

    Examples:
        ```python
        signer = KeysSigner(Keys.generate())
        event = signer.sign(UnsignedEvent(kind=1, content="hello"))
        signer.verify(event)   # True
        ```
    """

    __slots__ = ("_keys",)

    def __init__(self, keys: Keys) -> None:
        self._keys = keys

    @property
    def public_key(self) -> str:
        """Author public key (hex) of events this signer produces."""
        return self._keys.public_key().to_hex()

    def sign(self, unsigned: UnsignedEvent) -> Event:
        try:
            builder = (
                EventBuilder(Kind(int(unsigned.kind)), unsigned.content)
                .tags([Tag.parse(list(tag)) for tag in unsigned.tags])
                .custom_created_at(Timestamp.from_secs(unsigned.created_at))
            )
            signed = builder.sign_with_keys(self._keys)
            return Event.from_dict(json.loads(signed.as_json()))
        except Exception as e:  # nostr-sdk Rust FFI can raise arbitrary exception types
            raise SigningError(f"failed to sign kind {unsigned.kind} event: {e}") from e

    def verify(self, event: Event) -> bool:
        return verify_event(event)


class VerifyOnlySigner:
    """Signer for read-only clients: verifies events, refuses to sign."""

    __slots__ = ()

    def sign(self, unsigned: UnsignedEvent) -> Event:
        raise SigningError(f"no private key configured; cannot sign kind {unsigned.kind} event")

    def verify(self, event: Event) -> bool:
        return verify_event(event)


def build_signer(config: KeysConfig) -> KeysSigner | VerifyOnlySigner:
    """Create the signer described by *config*.

    Raises:
        ConfigurationError: If a key is required but missing or invalid.
    """
    if config.has_key():
        keys = load_keys_from_env(config.keys_env)
        signer = KeysSigner(keys)
        logger.debug("signer_loaded pubkey=%s", signer.public_key)
        return signer
    if config.required:
        raise ConfigurationError(f"{config.keys_env} environment variable is required")
    logger.debug("signer_verify_only keys_env=%s", config.keys_env)
    return VerifyOnlySigner()
