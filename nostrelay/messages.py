"""Client protocol messages: parsing what clients send and building replies."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Any, Mapping

from nostrelay.filters import Event
from nostrelay.subscription import Subscription, SubscriptionError

_DM_KINDS = frozenset({4, 44, 1059})


class ProtocolError(ValueError):
    """A client message could not be parsed as a nostr command."""


class EventTooLargeError(ProtocolError):
    """An EVENT message was longer than the configured maximum."""

    def __init__(self, size: int) -> None:
        super().__init__(f"event too large: {size} bytes")
        self.size = size


class MessageKind(enum.Enum):
    """The shapes of message a client may send."""

    EVENT = "EVENT"
    REQ = "REQ"
    CLOSE = "CLOSE"


@dataclass(frozen=True)
class NostrMessage:
    """A parsed client message.

    ``EVENT`` and ``AUTH`` commands both arrive as :attr:`MessageKind.EVENT`;
    the command string tells them apart.
    """

    kind: MessageKind
    command: str
    event: Event | None = None
    subscription: Subscription | None = None
    sub_id: str | None = None


def _is_u64(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 2**64


def _event_from_json(value: Any) -> Event | None:
    if not isinstance(value, dict):
        return None
    strings = ("id", "pubkey", "content", "sig")
    if not all(isinstance(value.get(key), str) for key in strings):
        return None
    if not _is_u64(value.get("created_at")) or not _is_u64(value.get("kind")):
        return None
    tags = value.get("tags")
    if not isinstance(tags, list) or not all(
        isinstance(tag, list) and all(isinstance(v, str) for v in tag) for tag in tags
    ):
        return None
    return Event(
        id=value["id"],
        pubkey=value["pubkey"],
        created_at=value["created_at"],
        kind=value["kind"],
        tags=[list(tag) for tag in tags],
        content=value["content"],
        sig=value["sig"],
    )


def _parse(value: Any) -> NostrMessage | None:
    if not isinstance(value, list):
        return None
    if len(value) == 2 and isinstance(value[0], str):
        event = _event_from_json(value[1])
        if event is not None:
            return NostrMessage(MessageKind.EVENT, value[0], event=event)
    try:
        sub = Subscription.from_json(value)
    except SubscriptionError:
        pass
    else:
        return NostrMessage(MessageKind.REQ, "REQ", subscription=sub)
    if len(value) == 2 and all(isinstance(v, str) for v in value):
        return NostrMessage(MessageKind.CLOSE, value[0], sub_id=value[1])
    return None


def convert_to_msg(text: str, max_bytes: int | None = None) -> NostrMessage:
    """Parse a client's text frame into a :class:`NostrMessage`.

    Raises EventTooLargeError for an event message longer than ``max_bytes``
    (when that is set and positive) and ProtocolError for anything unparseable.
    """
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        raise ProtocolError("could not parse command") from None
    msg = _parse(value)
    if msg is None:
        raise ProtocolError("could not parse command")
    if msg.kind is MessageKind.EVENT and max_bytes:
        size = len(text.encode("utf-8"))
        if size > max_bytes > 0:
            raise EventTooLargeError(size)
    return msg


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def notice_message(text: str) -> str:
    """A NOTICE message carrying human-readable text."""
    return _dumps(["NOTICE", text])


def ok_message(event_id: str, accepted: bool, text: str) -> str:
    """An OK message reporting the result of an event submission."""
    return _dumps(["OK", event_id, bool(accepted), text])


def auth_challenge_message(challenge: str) -> str:
    """An AUTH message carrying a challenge for the client to sign."""
    return _dumps(["AUTH", challenge])


def eose_message(sub_id: str) -> str:
    """An end-of-stored-events message; double quotes are dropped from the id."""
    subesc = sub_id.replace('"', "")
    return f'["EOSE","{subesc}"]'


def event_message(sub_id: str, event_json: str) -> str:
    """An EVENT message wrapping already-serialized event JSON."""
    subesc = sub_id.replace('"', "")
    return f'["EVENT","{subesc}",{event_json}]'


def allowed_to_send(event_json: str, auth_pubkey: str | None, nip42_dms: bool) -> bool:
    """Decide whether an event may go to a client.

    With NIP-42 DM protection on, direct-message kinds are only sent to an
    authenticated client that is the first ``p`` recipient or the author.
    """
    if not nip42_dms:
        return True
    try:
        event = _event_from_json(json.loads(event_json))
    except (json.JSONDecodeError, TypeError):
        return False
    if event is None:
        return False
    if event.kind not in _DM_KINDS:
        return True
    recipients = event.tag_values("p")
    if auth_pubkey is None or not recipients:
        return False
    return recipients[0] == auth_pubkey or event.pubkey == auth_pubkey


def get_pubkey(query: str | None) -> str | None:
    """The value of the last ``pubkey`` parameter in a query string."""
    result: str | None = None
    for pair in (query or "").split("&"):
        key, sep, value = pair.partition("=")
        if key == "pubkey":
            result = value if sep else None
    return result


def _header_text(value: Any) -> str | None:
    if isinstance(value, bytes):
        try:
            value = value.decode("ascii")
        except UnicodeDecodeError:
            return None
    if not isinstance(value, str):
        return None
    if all(c == "\t" or 32 <= ord(c) <= 126 for c in value):
        return value
    return None


def get_header_string(name: str, headers: Mapping[str, Any]) -> str | None:
    """A header's value as text, looked up case-insensitively.

    Values holding anything other than visible ASCII are treated as absent.
    """
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        value = next(
            (v for k, v in headers.items() if k.lower() == lowered),
            None,
        )
    if value is None:
        return None
    return _header_text(value)