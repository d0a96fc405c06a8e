"""Nostr key loading from environment variables.

Supports both ``nsec1`` (bech32) and 64-char hex private keys.

Warning:
    Private keys must **never** be stored in configuration files, source
    code, or logs. The configuration only names the environment variable
    that holds the key.

See Also:
    [nostrwiki.utils.signer.build_signer][]: Turns a
        [KeysConfig][nostrwiki.utils.keys.KeysConfig] into a signer.

Examples:
    ```python
    import os

    os.environ["PRIVATE_KEY"] = "nsec1..."  # pragma: allowlist secret
    keys = load_keys_from_env("PRIVATE_KEY")
    print(keys.public_key().to_hex())
    ```
"""

from __future__ import annotations

import os

from nostr_sdk import Keys
from pydantic import BaseModel, Field

from nostrwiki.core.exceptions import ConfigurationError


ENV_PRIVATE_KEY = "PRIVATE_KEY"  # pragma: allowlist secret  # Default env var name


def load_keys_from_env(env_var: str) -> Keys:
    """Load Nostr keys from an environment variable.

    Args:
        env_var: Name of the environment variable holding the private key.

    Returns:
        A ``nostr_sdk.Keys`` instance ready for signing.

    Raises:
        ConfigurationError: If the variable is unset, empty, or not a valid key.
    """
    value = os.getenv(env_var)

    if not value:
        raise ConfigurationError(
            f"{env_var} environment variable is required. Generate one with: openssl rand -hex 32"
        )

    try:
        return Keys.parse(value)
    except Exception as e:  # nostr-sdk Rust FFI raises its own exception type
        raise ConfigurationError(f"{env_var} does not hold a valid private key") from e


class KeysConfig(BaseModel):
    """Where to find the signing key.

    Attributes:
        keys_env: Environment variable name for the private key.
        required: Fail at startup when the variable is missing. When false,
            a missing key yields a verify-only client that cannot publish.
    """

    keys_env: str = Field(
        default=ENV_PRIVATE_KEY,
        min_length=1,
        description="Environment variable name for private key",
    )
    required: bool = Field(
        default=False,
        description="Fail when the private key is not set",
    )

    def has_key(self) -> bool:
        return bool(os.getenv(self.keys_env))
