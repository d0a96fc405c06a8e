"""
Immutable Nostr event value and its unsigned counterpart.

[Event][nostrwiki.models.event.Event] is the parsed, structurally validated
form of the NIP-01 event JSON object that relays send and receive. It does
no cryptography: whether ``id`` is the correct digest and ``sig`` a valid
signature is the business of the
[Signer][nostrwiki.utils.signer.Signer] collaborator.

See Also:
    [nostrwiki.relay.protocol][]: Decodes inbound frames into Events.
    [nostrwiki.utils.signer.KeysSigner][]: Turns an
        [UnsignedEvent][nostrwiki.models.event.UnsignedEvent] into a signed
        Event and verifies received ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from time import time
from typing import Any

from ._validation import (
    freeze_tags,
    validate_hex,
    validate_int,
    validate_mapping,
    validate_str,
)
from .constants import EVENT_KIND_MAX


_REQUIRED_FIELDS = ("id", "pubkey", "created_at", "kind", "tags", "content", "sig")


@dataclass(frozen=True, slots=True, eq=False)
class Event:
    """Immutable, structurally valid Nostr event.

    Two events are equal when their ``id`` is equal, regardless of which
    relay delivered them.

    Attributes:
        id: 32-byte event digest, lowercase hex.
        pubkey: 32-byte x-only author public key, lowercase hex.
        created_at: Unix timestamp in seconds.
        kind: Integer event kind in ``[0, 65535]``.
        tags: Tuple of tags; each tag is a non-empty tuple of strings whose
            first element is the tag name.
        content: Arbitrary content string.
        sig: 64-byte Schnorr signature, lowercase hex.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If a field is out of range or badly encoded.

    Examples:
        ```python
        event = Event.from_dict(json.loads(raw))
        event.first_tag("d")      # 'Bitcoin'
        event.to_dict()["kind"]   # 30818
        ```
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...]
    content: str
    sig: str

    def __post_init__(self) -> None:
        validate_hex(self.id, "id", 64)
        validate_hex(self.pubkey, "pubkey", 64)
        validate_int(self.created_at, "created_at")
        validate_int(self.kind, "kind", maximum=EVENT_KIND_MAX)
        object.__setattr__(self, "tags", freeze_tags(self.tags))
        validate_str(self.content, "content")
        validate_hex(self.sig, "sig", 128)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Event):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @classmethod
    def from_dict(cls, data: Any) -> Event:
        """Parse the NIP-01 JSON object shape into an Event.

        Unknown keys are ignored.

        Raises:
            TypeError: If *data* is not a mapping or a field has the wrong type.
            ValueError: If a required field is missing or invalid.
        """
        validate_mapping(data, "event")
        missing = [name for name in _REQUIRED_FIELDS if name not in data]
        if missing:
            raise ValueError(f"event is missing required fields: {', '.join(missing)}")
        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            created_at=data["created_at"],
            kind=data["kind"],
            tags=data["tags"],
            content=data["content"],
            sig=data["sig"],
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 JSON object shape (tags as lists)."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag called *name*, in order."""
        return [tag[1] for tag in self.tags if tag[0] == name and len(tag) > 1]

    def first_tag(self, name: str) -> str | None:
        """Return the first value of the first tag called *name*, if any."""
        values = self.tag_values(name)
        return values[0] if values else None


@dataclass(frozen=True, slots=True)
class UnsignedEvent:
    """Event template awaiting an id and signature.

    The author public key is supplied by whichever signer signs it.

    Attributes:
        kind: Integer event kind.
        content: Content string.
        tags: Tags as a tuple of string tuples.
        created_at: Unix timestamp; defaults to now.
    """

    kind: int
    content: str = ""
    tags: tuple[tuple[str, ...], ...] = ()
    created_at: int = field(default_factory=lambda: int(time()))

    def __post_init__(self) -> None:
        validate_int(self.kind, "kind", maximum=EVENT_KIND_MAX)
        validate_str(self.content, "content")
        validate_int(self.created_at, "created_at")
        object.__setattr__(self, "tags", freeze_tags(self.tags))
