"""NIP-01 wire framing.

Every message is a JSON array whose first element names the frame type.

Outbound::

    ["REQ", <subscription_id>, <filter>, ...]
    ["CLOSE", <subscription_id>]
    ["EVENT", <event>]

Inbound::

    ["EVENT", <subscription_id>, <event>]
    ["EOSE", <subscription_id>]
    ["NOTICE", <message>]
    ["CLOSED", <subscription_id>, <message>]
    ["OK", <event_id>, <accepted>, <message>]

[decode_frame()][nostrwiki.relay.protocol.decode_frame] returns ``None``
for frame types the client does not handle, so relays speaking newer NIPs
never break the connection.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any, NamedTuple

from nostrwiki.core.exceptions import MalformedEventError, ProtocolError
from nostrwiki.models.event import Event
from nostrwiki.models.filter import Filter


# ---------------------------------------------------------------------------
# Inbound frame types
# ---------------------------------------------------------------------------


class EventFrame(NamedTuple):
    """``["EVENT", sub_id, event]``. ``payload`` is still unparsed JSON."""

    subscription_id: str
    payload: Any


class EoseFrame(NamedTuple):
    """``["EOSE", sub_id]``: stored events for the subscription are exhausted."""

    subscription_id: str


class NoticeFrame(NamedTuple):
    """``["NOTICE", message]``: human-readable relay message."""

    message: str


class ClosedFrame(NamedTuple):
    """``["CLOSED", sub_id, message]``: relay ended or refused the subscription."""

    subscription_id: str
    message: str


class OkFrame(NamedTuple):
    """``["OK", event_id, accepted, message]``: relay verdict on a published event."""

    event_id: str
    accepted: bool
    message: str


InboundFrame = EventFrame | EoseFrame | NoticeFrame | ClosedFrame | OkFrame


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def _dumps(message: list[Any]) -> str:
    return json.dumps(message, ensure_ascii=False, separators=(",", ":"))


def encode_req(subscription_id: str, filters: Iterable[Filter]) -> str:
    """Encode a ``REQ`` frame carrying every filter of the subscription."""
    return _dumps(["REQ", subscription_id, *(f.to_dict() for f in filters)])


def encode_close(subscription_id: str) -> str:
    return _dumps(["CLOSE", subscription_id])


def encode_event(event: Event) -> str:
    return _dumps(["EVENT", event.to_dict()])


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _require_str(value: Any, frame: str, field: str) -> str:
    if not isinstance(value, str):
        raise ProtocolError(f"{frame} frame: {field} must be a string")
    return value


def decode_frame(text: str) -> InboundFrame | None:
    """Decode one inbound text message.

    Returns:
        The typed frame, or ``None`` for a well-formed array whose type the
        client does not handle.

    Raises:
        ProtocolError: If the text is not JSON, not a non-empty array, or a
            known frame type has the wrong arity or field types.
    """
    try:
        message = json.loads(text)
    except ValueError as e:
        raise ProtocolError(f"frame is not valid JSON: {e}") from None

    if not isinstance(message, list) or not message:
        raise ProtocolError("frame must be a non-empty JSON array")

    frame_type = message[0]
    args = message[1:]

    if frame_type == "EVENT":
        if len(args) < 2:
            raise ProtocolError("EVENT frame requires a subscription id and an event")
        return EventFrame(_require_str(args[0], "EVENT", "subscription id"), args[1])

    if frame_type == "EOSE":
        if not args:
            raise ProtocolError("EOSE frame requires a subscription id")
        return EoseFrame(_require_str(args[0], "EOSE", "subscription id"))

    if frame_type == "NOTICE":
        return NoticeFrame(str(args[0]) if args else "")

    if frame_type == "CLOSED":
        if not args:
            raise ProtocolError("CLOSED frame requires a subscription id")
        message_text = str(args[1]) if len(args) > 1 else ""
        return ClosedFrame(_require_str(args[0], "CLOSED", "subscription id"), message_text)

    if frame_type == "OK":
        if len(args) < 2:
            raise ProtocolError("OK frame requires an event id and a status")
        message_text = str(args[2]) if len(args) > 2 else ""
        return OkFrame(_require_str(args[0], "OK", "event id"), bool(args[1]), message_text)

    return None


def parse_event(payload: Any) -> Event:
    """Turn an EVENT frame payload into an [Event][nostrwiki.models.event.Event].

    Raises:
        MalformedEventError: If required fields are missing or mistyped.
    """
    try:
        return Event.from_dict(payload)
    except (TypeError, ValueError) as e:
        raise MalformedEventError(str(e)) from e
