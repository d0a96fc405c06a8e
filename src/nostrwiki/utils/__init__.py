"""Key management and event signing.

Attributes:
    Signer: Protocol the relay engine signs and verifies through.
    KeysSigner: nostr-sdk implementation backed by a local private key.
    VerifyOnlySigner: Verifies but refuses to sign (no key configured).
    build_signer: Factory choosing between the two from a
        [KeysConfig][nostrwiki.utils.keys.KeysConfig].
    load_keys_from_env: Parse an nsec/hex private key from an env var.
"""

from .keys import ENV_PRIVATE_KEY, KeysConfig, load_keys_from_env
from .signer import KeysSigner, Signer, VerifyOnlySigner, build_signer, verify_event


__all__ = [
    "ENV_PRIVATE_KEY",
    "KeysConfig",
    "KeysSigner",
    "Signer",
    "VerifyOnlySigner",
    "build_signer",
    "load_keys_from_env",
    "verify_event",
]
