"""Loki stream encoding for log entries.

Entries are grouped into streams by their effective label set. The label
set is serialized with sorted keys, so two entries with the same labels
always share a stream no matter how their dictionaries were built.
"""

import json
import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from telemetryhub.core.models import LogEntry

SUPPORTED_DYNAMIC_LABELS = frozenset({"level", "component"})


def format_labels(labels: Mapping[str, str]) -> str:
    """Serialize a label set into its canonical stream key.

    Returns:
        Compact JSON object with keys sorted, e.g. ``{"level":"INFO"}``.
        ``{}`` for an empty label set.
    """
    return json.dumps(dict(labels), sort_keys=True, separators=(",", ":"))


def format_log_line(entry: LogEntry) -> str:
    """Render the log line pushed for an entry.

    The message is followed by the structured fields as compact JSON when
    the entry has any.
    """
    if not entry.fields:
        return entry.message
    fields = json.dumps(
        entry.fields, sort_keys=True, separators=(",", ":"), default=str
    )
    return f"{entry.message} {fields}"


def to_unix_nanos(timestamp: float) -> str:
    """Convert a Unix timestamp in seconds to Loki's nanosecond string."""
    seconds = int(timestamp)
    nanos = round((timestamp - seconds) * 1_000_000_000)
    return str(seconds * 1_000_000_000 + nanos)


@dataclass
class LogStream:
    """Entries sharing one label set, ready to push.

    Attributes:
        key: Canonical label string identifying the stream.
        labels: The label set itself.
        values: ``[timestamp_ns, line]`` pairs in insertion order.
    """

    key: str
    labels: dict[str, str]
    values: list[list[str]] = field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return {"stream": dict(self.labels), "values": [list(v) for v in self.values]}


def encode_push_request(streams: Iterable[LogStream]) -> dict[str, Any]:
    """Build the body of ``POST /loki/api/v1/push``."""
    return {"streams": [stream.to_wire() for stream in streams]}


class StreamBuilder:
    """Applies label policy to entries and groups them into streams.

    Effective labels are layered: static labels first, then the entry's own
    labels, then entry-derived dynamic labels (``level`` and ``component``,
    only when enabled). Later layers win on conflicting keys.

    Args:
        static_labels: Labels applied to every stream.
        dynamic_labels: Names of the entry-derived labels to apply.
    """

    def __init__(
        self,
        static_labels: Mapping[str, str] | None = None,
        dynamic_labels: Sequence[str] = (),
    ) -> None:
        self._static_labels = dict(static_labels or {})
        self._dynamic_labels = tuple(
            name for name in dynamic_labels if name in SUPPORTED_DYNAMIC_LABELS
        )
        self._lock = threading.Lock()

    @property
    def static_labels(self) -> dict[str, str]:
        with self._lock:
            return dict(self._static_labels)

    @property
    def dynamic_labels(self) -> tuple[str, ...]:
        return self._dynamic_labels

    def add_static_labels(self, labels: Mapping[str, str]) -> None:
        """Merge labels into the static set used by future streams."""
        with self._lock:
            self._static_labels.update(labels)

    def effective_labels(
        self, entry: LogEntry, static_labels: Mapping[str, str] | None = None
    ) -> dict[str, str]:
        labels = dict(self.static_labels if static_labels is None else static_labels)
        labels.update(entry.labels)
        for name in self._dynamic_labels:
            if name == "level":
                labels["level"] = entry.level.name
            elif name == "component" and entry.component:
                labels["component"] = entry.component
        return labels

    def build(self, entries: Iterable[LogEntry]) -> list[LogStream]:
        """Group entries into streams keyed by their effective labels."""
        static_labels = self.static_labels
        streams: dict[str, LogStream] = {}
        for entry in entries:
            labels = self.effective_labels(entry, static_labels)
            key = format_labels(labels)
            stream = streams.get(key)
            if stream is None:
                stream = streams[key] = LogStream(key=key, labels=labels)
            stream.values.append([to_unix_nanos(entry.timestamp), format_log_line(entry)])
        return list(streams.values())
