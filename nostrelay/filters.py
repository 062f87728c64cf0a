"""Request filters and the event matching they perform."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable


class FilterError(ValueError):
    """A request filter could not be parsed."""


def prefix_match(prefixes: Iterable[str], target: str) -> bool:
    """True if the target starts with any of the prefixes."""
    return any(target.startswith(prefix) for prefix in prefixes)


@dataclass(frozen=True)
class TagOperand:
    """A set of tag values combined with AND (all required) or OR (any)."""

    values: frozenset[str]
    all_required: bool = False

    def matches(self, values: Iterable[str]) -> bool:
        """Check the operand against the tag values carried by an event."""
        present = set(values)
        if self.all_required:
            return self.values <= present
        return not self.values.isdisjoint(present)


@dataclass
class Event:
    """The fields of a nostr event that filters look at."""

    id: str
    pubkey: str
    created_at: int = 0
    kind: int = 0
    tags: list[list[str]] = field(default_factory=list)
    content: str = ""
    sig: str = ""
    delegated_by: str | None = None

    def tag_values(self, name: str) -> list[str]:
        """Values of every tag with the given name."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    def tag_values_intersect(self, name: str, values: TagOperand) -> bool:
        """Check whether this event's tags named ``name`` satisfy the operand."""
        return values.matches(self.tag_values(name))


def _u64(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 2**64:
        return value
    return None


def _u64_list(value: Any) -> list[int] | None:
    if not isinstance(value, list):
        return None
    items = [_u64(v) for v in value]
    if any(v is None for v in items):
        return None
    return items


def _str_list(value: Any) -> list[str] | None:
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    return None


def _prefix_list(value: Any) -> list[str] | None:
    items = _str_list(value)
    if items is not None and "" in items:
        raise FilterError("prefix matches must not be empty strings")
    return items


@dataclass
class ReqFilter:
    """A client-provided filter; absent fields are not used for matching."""

    ids: list[str] | None = None
    kinds: list[int] | None = None
    since: int | None = None
    until: int | None = None
    authors: list[str] | None = None
    limit: int | None = None
    tags: dict[str, TagOperand] | None = None
    force_no_match: bool = False

    @classmethod
    def from_json(cls, value: Any) -> "ReqFilter":
        """Build a filter from a decoded JSON object."""
        if not isinstance(value, dict):
            raise FilterError("reqfilter is not an object")
        rf = cls()
        tags: dict[str, TagOperand] | None = None
        for key, val in value.items():
            if key == "ids":
                rf.ids = _prefix_list(val)
            elif key == "kinds":
                rf.kinds = _u64_list(val)
            elif key == "since":
                rf.since = _u64(val)
            elif key == "until":
                rf.until = _u64(val)
            elif key == "limit":
                rf.limit = _u64(val)
            elif key == "authors":
                rf.authors = _prefix_list(val)
            elif (
                key.startswith("#")
                and 1 < len(key.encode("utf-8")) < 4
                and isinstance(val, list)
            ):
                if tags is None:
                    tags = {}
                tag_vals = _str_list(val)
                if tag_vals is None:
                    continue
                if len(key) == 2:
                    operand = TagOperand(frozenset(tag_vals))
                elif len(key) == 3 and key[2] == "&":
                    operand = TagOperand(frozenset(tag_vals), all_required=True)
                else:
                    continue
                tags[key[1]] = operand
        rf.tags = tags
        return rf

    def to_json(self) -> dict[str, Any]:
        """Encode the filter as a JSON-ready object."""
        out: dict[str, Any] = {}
        if self.ids is not None:
            out["ids"] = list(self.ids)
        if self.kinds is not None:
            out["kinds"] = list(self.kinds)
        if self.until is not None:
            out["until"] = self.until
        if self.since is not None:
            out["since"] = self.since
        if self.limit is not None:
            out["limit"] = self.limit
        if self.authors is not None:
            out["authors"] = list(self.authors)
        for name, operand in (self.tags or {}).items():
            key = f"#{name}&" if operand.all_required else f"#{name}"
            out[key] = sorted(operand.values)
        return out

    def _ids_match(self, event: Event) -> bool:
        return self.ids is None or prefix_match(self.ids, event.id)

    def _authors_match(self, event: Event) -> bool:
        return self.authors is None or prefix_match(self.authors, event.pubkey)

    def _delegated_authors_match(self, event: Event) -> bool:
        if event.delegated_by is None:
            return False
        return self.authors is None or prefix_match(self.authors, event.delegated_by)

    def _tag_match(self, event: Event) -> bool:
        return all(
            event.tag_values_intersect(name, operand)
            for name, operand in (self.tags or {}).items()
        )

    def _kind_match(self, kind: int) -> bool:
        return self.kinds is None or kind in self.kinds

    def interested_in_event(self, event: Event) -> bool:
        """True if every populated field of the filter matches the event."""
        return (
            self._ids_match(event)
            and (self.since is None or event.created_at >= self.since)
            and (self.until is None or event.created_at <= self.until)
            and self._kind_match(event.kind)
            and (self._authors_match(event) or self._delegated_authors_match(event))
            and self._tag_match(event)
            and not self.force_no_match
        )