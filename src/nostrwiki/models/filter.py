"""
Declarative subscription filter (NIP-01).

A [Filter][nostrwiki.models.filter.Filter] is sent verbatim to relays inside
a ``REQ`` frame. Matching happens relay-side; the client never re-applies
kind or tag constraints to what relays return.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ._validation import validate_hex, validate_int, validate_mapping, validate_str
from .constants import EVENT_KIND_MAX


@dataclass(frozen=True, slots=True)
class Filter:
    """Immutable NIP-01 subscription filter.

    All fields are optional; an empty filter matches everything the relay
    is willing to send.

    Attributes:
        kinds: Accepted event kinds.
        authors: Accepted author public keys (hex).
        tag_filters: Single-letter tag name to accepted values, serialized
            as ``"#<letter>"`` keys.
        since: Lower bound on ``created_at`` (inclusive).
        until: Upper bound on ``created_at`` (inclusive).
        limit: Maximum number of stored events the relay should return.

    Examples:
        ```python
        Filter(kinds={30818}, tag_filters={"d": {"bitcoin"}}).to_dict()
        # {'kinds': [30818], '#d': ['bitcoin']}
        ```
    """

    kinds: frozenset[int] | None = None
    authors: frozenset[str] | None = None
    tag_filters: MappingProxyType[str, frozenset[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    since: int | None = None
    until: int | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        if self.kinds is not None:
            kinds = frozenset(self.kinds)
            for kind in kinds:
                validate_int(kind, "kinds", maximum=EVENT_KIND_MAX)
            object.__setattr__(self, "kinds", kinds)

        if self.authors is not None:
            authors = frozenset(self.authors)
            for author in authors:
                validate_hex(author, "authors", 64)
            object.__setattr__(self, "authors", authors)

        validate_mapping(self.tag_filters, "tag_filters")
        frozen_tags: dict[str, frozenset[str]] = {}
        for name, values in self.tag_filters.items():
            validate_str(name, "tag_filters key")
            if len(name) != 1 or not name.isalpha():
                raise ValueError(f"tag filter name must be a single letter, got {name!r}")
            if isinstance(values, str):
                raise TypeError(f"tag filter #{name} must be a collection of str, not a str")
            frozen_values = frozenset(values)
            for value in frozen_values:
                validate_str(value, f"tag_filters[{name!r}]")
            frozen_tags[name] = frozen_values
        object.__setattr__(self, "tag_filters", MappingProxyType(frozen_tags))

        for name in ("since", "until", "limit"):
            value = getattr(self, name)
            if value is not None:
                validate_int(value, name)

    def to_dict(self) -> dict[str, Any]:
        """Return the wire shape, emitting only the constraints that are set.

        Collections are sorted so the same filter always serializes to the
        same JSON.
        """
        data: dict[str, Any] = {}
        if self.kinds is not None:
            data["kinds"] = sorted(self.kinds)
        if self.authors is not None:
            data["authors"] = sorted(self.authors)
        for name in sorted(self.tag_filters):
            data[f"#{name}"] = sorted(self.tag_filters[name])
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Filter:
        """Build a Filter from its wire shape.

        Raises:
            TypeError: If *data* is not a mapping or a value has the wrong type.
            ValueError: On unknown keys or invalid values.
        """
        validate_mapping(data, "filter")
        kwargs: dict[str, Any] = {}
        tag_filters: dict[str, Any] = {}
        for key, value in data.items():
            if key.startswith("#"):
                tag_filters[key[1:]] = value
            elif key in ("kinds", "authors", "since", "until", "limit"):
                kwargs[key] = value
            else:
                raise ValueError(f"unsupported filter key: {key!r}")
        return cls(tag_filters=tag_filters, **kwargs)
