"""Shared validation helpers for frozen dataclass models.

Private module -- not part of the public API. Used by ``__post_init__``
and ``from_dict`` methods in sibling model modules to enforce runtime type
constraints on data that arrives from untrusted relays.
"""

from __future__ import annotations

import string
from collections.abc import Mapping
from typing import Any


_HEX_DIGITS = frozenset(string.hexdigits.lower())


def validate_instance(value: Any, expected: type, name: str) -> None:
    """Raise ``TypeError`` if *value* is not an instance of *expected*."""
    if not isinstance(value, expected):
        article = "an" if expected.__name__[0] in "AEIOUaeiou" else "a"
        raise TypeError(f"{name} must be {article} {expected.__name__}, got {type(value).__name__}")


def validate_int(value: Any, name: str, *, minimum: int = 0, maximum: int | None = None) -> None:
    """Raise if *value* is not an ``int`` (``bool`` excluded) within bounds."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    if maximum is not None and value > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got {value}")


def validate_hex(value: Any, name: str, length: int) -> None:
    """Raise if *value* is not a lowercase hex string of exactly *length* chars."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if len(value) != length:
        raise ValueError(f"{name} must be {length} hex chars, got {len(value)}")
    if not set(value) <= _HEX_DIGITS:
        raise ValueError(f"{name} must be lowercase hex")


def validate_str(value: Any, name: str) -> None:
    """Raise ``TypeError`` if *value* is not a ``str``."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")


def validate_mapping(value: Any, name: str) -> None:
    """Raise ``TypeError`` if *value* is not a ``Mapping``."""
    if not isinstance(value, Mapping):
        raise TypeError(f"{name} must be a Mapping, got {type(value).__name__}")


def freeze_tags(value: Any, name: str = "tags") -> tuple[tuple[str, ...], ...]:
    """Validate a tag list and return it as a tuple of string tuples.

    Each tag must be a non-empty sequence of strings; the first element is
    the tag name.

    Raises:
        TypeError: If *value* or any tag is not a list/tuple, or a tag
            element is not a string.
        ValueError: If a tag is empty.
    """
    if not isinstance(value, list | tuple):
        raise TypeError(f"{name} must be a list, got {type(value).__name__}")
    frozen: list[tuple[str, ...]] = []
    for index, tag in enumerate(value):
        if not isinstance(tag, list | tuple):
            raise TypeError(f"{name}[{index}] must be a list, got {type(tag).__name__}")
        if not tag:
            raise ValueError(f"{name}[{index}] must not be empty")
        for item in tag:
            if not isinstance(item, str):
                raise TypeError(f"{name}[{index}] elements must be str, got {type(item).__name__}")
        frozen.append(tuple(tag))
    return tuple(frozen)
