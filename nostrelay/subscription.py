"""Subscription requests: an identifier plus a set of request filters."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from itertools import groupby
from typing import Any

from nostrelay.filters import Event, FilterError, ReqFilter


class SubscriptionError(ValueError):
    """A REQ message could not be parsed into a subscription."""


@dataclass
class Subscription:
    """Subscription identifier and the filters it requested."""

    id: str
    filters: list[ReqFilter] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> "Subscription":
        """Parse a REQ message from its JSON text."""
        try:
            value = json.loads(text)
        except (json.JSONDecodeError, TypeError) as exc:
            raise SubscriptionError(f"invalid json: {exc}") from None
        return cls.from_json(value)

    @classmethod
    def from_json(cls, value: Any) -> "Subscription":
        """Build a subscription from a decoded ``["REQ", id, filter...]`` array."""
        if not isinstance(value, list):
            raise SubscriptionError("not array")
        if len(value) < 3:
            raise SubscriptionError("not enough fields")
        command, sub_id, *raw_filters = value
        if not isinstance(command, str):
            raise SubscriptionError("first element of request was not a string")
        if command != "REQ":
            raise SubscriptionError("missing REQ command")
        if not isinstance(sub_id, str):
            raise SubscriptionError("missing subscription id")
        try:
            filters = [ReqFilter.from_json(raw) for raw in raw_filters]
        except FilterError:
            raise SubscriptionError("could not parse filter") from None
        # Only consecutive duplicates are collapsed.
        deduped = [f for f, _ in groupby(filters)]
        return cls(id=sub_id, filters=deduped)

    def needs_historical_events(self) -> bool:
        """False only if every filter asks for ``limit: 0``."""
        return any(f.limit != 0 for f in self.filters)

    def interested_in_event(self, event: Event) -> bool:
        """True if any filter matches the event."""
        return any(f.interested_in_event(event) for f in self.filters)

    def is_scraper(self) -> bool:
        """True if any filter is too broad to be a targeted query."""
        for f in self.filters:
            precision = 0
            if f.ids is not None:
                precision += 2
            if f.authors is not None:
                precision += 1
            if f.kinds is not None:
                precision += 1
            if f.tags is not None:
                precision += 1
            if precision < 2:
                return True
        return False