"""Relay metrics collected in memory and rendered in the Prometheus text format."""

from __future__ import annotations

import math
import re
import threading
from dataclasses import dataclass
from typing import Iterator, Sequence

_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

DEFAULT_BUCKETS: tuple[float, ...] = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
)

# (name suffix, label pairs, value)
_Sample = tuple[str, tuple[tuple[str, str], ...], "int | float"]


def _check_name(name: str) -> str:
    if not _NAME_RE.match(name):
        raise ValueError(f"invalid metric name: {name!r}")
    return name


def _format_value(value: int | float) -> str:
    if isinstance(value, int):
        return str(value)
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if math.isnan(value):
        return "NaN"
    if value.is_integer():
        return str(int(value))
    return repr(value)


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _escape_label(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _format_labels(labels: tuple[tuple[str, str], ...]) -> str:
    if not labels:
        return ""
    inner = ",".join(f'{key}="{_escape_label(value)}"' for key, value in labels)
    return "{" + inner + "}"


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, help: str) -> None:
        self.name = _check_name(name)
        self.help = help
        self._lock = threading.Lock()

    def samples(self) -> Iterator[_Sample]:
        """The samples this metric contributes to an exposition."""
        raise NotImplementedError


class Counter(_Metric):
    """An integer counter that only goes up."""

    kind = "counter"

    def __init__(self, name: str, help: str) -> None:
        super().__init__(name, help)
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def inc(self, amount: int = 1) -> None:
        """Increase the counter; negative amounts are rejected."""
        if amount < 0:
            raise ValueError("counters can only be increased")
        with self._lock:
            self._value += amount

    def samples(self) -> Iterator[_Sample]:
        yield "", (), self._value


class Gauge(_Metric):
    """An integer value that can go up and down."""

    kind = "gauge"

    def __init__(self, name: str, help: str) -> None:
        super().__init__(name, help)
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def set(self, value: int) -> None:
        """Set the gauge to a value."""
        with self._lock:
            self._value = value

    def inc(self, amount: int = 1) -> None:
        """Raise the gauge."""
        with self._lock:
            self._value += amount

    def dec(self, amount: int = 1) -> None:
        """Lower the gauge."""
        with self._lock:
            self._value -= amount

    def samples(self) -> Iterator[_Sample]:
        yield "", (), self._value


class Histogram(_Metric):
    """Observations counted into cumulative buckets, with their sum and count."""

    kind = "histogram"

    def __init__(
        self, name: str, help: str, buckets: Sequence[float] = DEFAULT_BUCKETS
    ) -> None:
        super().__init__(name, help)
        bounds = [float(b) for b in buckets]
        if bounds and math.isinf(bounds[-1]) and bounds[-1] > 0:
            bounds.pop()
        if not bounds:
            raise ValueError("a histogram needs at least one bucket")
        if any(lower >= upper for lower, upper in zip(bounds, bounds[1:])):
            raise ValueError("histogram buckets must be strictly increasing")
        self.buckets: tuple[float, ...] = tuple(bounds)
        self._counts = [0] * (len(bounds) + 1)
        self._sum = 0.0
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    @property
    def sum(self) -> float:
        return self._sum

    def observe(self, value: float) -> None:
        """Record one observation."""
        index = next(
            (i for i, bound in enumerate(self.buckets) if value <= bound),
            len(self.buckets),
        )
        with self._lock:
            self._counts[index] += 1
            self._sum += value
            self._count += 1

    def bucket_counts(self) -> list[tuple[float, int]]:
        """Cumulative (upper bound, count) pairs, ending with +Inf."""
        out: list[tuple[float, int]] = []
        running = 0
        for bound, count in zip((*self.buckets, math.inf), self._counts):
            running += count
            out.append((bound, running))
        return out

    def samples(self) -> Iterator[_Sample]:
        for bound, count in self.bucket_counts():
            yield "_bucket", (("le", _format_value(bound)),), count
        yield "_sum", (), self._sum
        yield "_count", (), self._count


class CounterVec(_Metric):
    """A family of counters told apart by label values."""

    kind = "counter"

    def __init__(self, name: str, help: str, label_names: Sequence[str]) -> None:
        super().__init__(name, help)
        for label in label_names:
            if not _LABEL_RE.match(label) or label.startswith("__"):
                raise ValueError(f"invalid label name: {label!r}")
        if len(set(label_names)) != len(label_names):
            raise ValueError("duplicate label names")
        self.label_names: tuple[str, ...] = tuple(label_names)
        self._children: dict[tuple[str, ...], Counter] = {}

    def labels(self, *args: str) -> Counter:
        """The counter for these label values, created on first use."""
        if len(args) != len(self.label_names):
            raise ValueError(
                f"expected {len(self.label_names)} label values, got {len(args)}"
            )
        key = tuple(args)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = Counter(self.name, self.help)
                self._children[key] = child
        return child

    def samples(self) -> Iterator[_Sample]:
        for key in sorted(self._children):
            yield "", tuple(zip(self.label_names, key)), self._children[key].value


class Registry:
    """A set of uniquely named metrics that can be rendered together."""

    def __init__(self) -> None:
        self._metrics: dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def register(self, metric: _Metric) -> None:
        """Add a metric; a second metric with the same name is rejected."""
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"metric already registered: {metric.name}")
            self._metrics[metric.name] = metric

    def render(self) -> str:
        """All registered metrics in the Prometheus text exposition format."""
        lines: list[str] = []
        for name in sorted(self._metrics):
            metric = self._metrics[name]
            samples = list(metric.samples())
            if not samples:
                continue
            lines.append(f"# HELP {name} {_escape_help(metric.help)}")
            lines.append(f"# TYPE {name} {metric.kind}")
            for suffix, labels, value in samples:
                lines.append(
                    f"{name}{suffix}{_format_labels(labels)} {_format_value(value)}"
                )
        return "\n".join(lines) + "\n" if lines else ""


@dataclass
class NostrMetrics:
    """The metrics a relay records while it runs."""

    query_sub: Histogram
    query_db: Histogram
    db_connections: Gauge
    write_events: Histogram
    sent_events: CounterVec
    connections: Counter
    disconnects: CounterVec
    query_aborts: CounterVec
    cmd_req: Counter
    cmd_event: Counter
    cmd_close: Counter
    cmd_auth: Counter


def create_metrics() -> tuple[Registry, NostrMetrics]:
    """Create the relay metrics and a registry that holds all of them."""
    metrics = NostrMetrics(
        query_sub=Histogram("nostr_query_seconds", "Subscription response times"),
        query_db=Histogram("nostr_filter_seconds", "Filter SQL query times"),
        write_events=Histogram(
            "nostr_events_write_seconds", "Event writing response times"
        ),
        sent_events=CounterVec(
            "nostr_events_sent_total", "Events sent to clients", ["source"]
        ),
        connections=Counter("nostr_connections_total", "New connections"),
        db_connections=Gauge("nostr_db_connections", "Active database connections"),
        query_aborts=CounterVec(
            "nostr_query_abort_total", "Aborted queries", ["reason"]
        ),
        cmd_req=Counter("nostr_cmd_req_total", "REQ commands"),
        cmd_event=Counter("nostr_cmd_event_total", "EVENT commands"),
        cmd_close=Counter("nostr_cmd_close_total", "CLOSE commands"),
        cmd_auth=Counter("nostr_cmd_auth_total", "AUTH commands"),
        disconnects=CounterVec(
            "nostr_disconnects_total", "Client disconnects", ["reason"]
        ),
    )
    registry = Registry()
    for metric in (
        metrics.query_sub,
        metrics.query_db,
        metrics.write_events,
        metrics.sent_events,
        metrics.connections,
        metrics.db_connections,
        metrics.query_aborts,
        metrics.cmd_req,
        metrics.cmd_event,
        metrics.cmd_close,
        metrics.cmd_auth,
        metrics.disconnects,
    ):
        registry.register(metric)
    return registry, metrics