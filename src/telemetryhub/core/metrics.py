"""Dynamic metric registry shared by metrics-capable integrations.

Each integration instance owns one ``MetricRegistry``: a name-keyed table of
metric families backed by a private ``prometheus_client.CollectorRegistry``.
Families are looked up by name and dispatched on their concrete kind at
runtime, so callers only ever deal in names, values and label mappings.
"""

import re
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Summary,
    generate_latest,
)

from telemetryhub.core.errors import (
    AlreadyRegisteredError,
    ConfigurationError,
    LabelMismatchError,
    MetricValueTypeError,
    NotFoundError,
    UnsupportedOperationError,
    WrongKindError,
)
from telemetryhub.core.models import MetricType

DEFAULT_HISTOGRAM_BUCKETS = [0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10]

# Values accepted by MetricRegistry.push before normalization.
MetricValue = float | int | str

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")

METRIC_NAME_PATTERN = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")


def normalize_metric_value(value: object) -> float:
    """Normalize a pushed value to float.

    Args:
        value: A float, an int, or a string holding a number.

    Returns:
        The value as float.

    Raises:
        MetricValueTypeError: For booleans, non-numeric strings and any
            other type.
    """
    if isinstance(value, bool):
        raise MetricValueTypeError(
            f"unsupported metric value type: {type(value).__name__}"
        )
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise MetricValueTypeError(
                f"cannot convert string value to float: {value!r}"
            ) from None
    raise MetricValueTypeError(
        f"unsupported metric value type: {type(value).__name__}"
    )


def sanitize_metric_name(name: str) -> str:
    """Turn an arbitrary key into a valid Prometheus metric name."""
    sanitized = _INVALID_NAME_CHARS.sub("_", name)
    if not sanitized or sanitized[0].isdigit():
        sanitized = "_" + sanitized
    return sanitized


@dataclass(frozen=True)
class MetricDescriptor:
    """Immutable definition of a registered metric family.

    Attributes:
        name: Unique metric name within the registry.
        help: Help text exposed with the metric.
        kind: Concrete metric kind.
        label_names: Ordered label names; empty for a scalar family.
    """

    name: str
    help: str
    kind: MetricType
    label_names: tuple[str, ...] = ()


class _Family:
    """Stored state for one metric name, including label-vector children."""

    kind: MetricType

    def __init__(self, descriptor: MetricDescriptor, collector: object) -> None:
        self.descriptor = descriptor
        self._collector = collector

    @property
    def _sample_name(self) -> str:
        return self.descriptor.name

    def _label_values(self, labels: Mapping[str, str] | None) -> dict[str, str]:
        names = self.descriptor.label_names
        if not names:
            return {}
        supplied = labels or {}
        if set(supplied) != set(names):
            raise LabelMismatchError(
                f"metric {self.descriptor.name} expects labels {sorted(names)}, "
                f"got {sorted(supplied)}"
            )
        return {name: str(supplied[name]) for name in names}

    def _child(self, labels: Mapping[str, str] | None) -> Any:
        values = self._label_values(labels)
        if not values:
            return self._collector
        return self._collector.labels(**values)  # type: ignore[attr-defined]

    def set(self, value: float, labels: Mapping[str, str] | None) -> None:
        raise UnsupportedOperationError(
            f"cannot set a scalar value on {self.kind.value} metric {self.descriptor.name}"
        )

    def add(self, amount: float, labels: Mapping[str, str] | None) -> None:
        raise UnsupportedOperationError(
            f"cannot add to {self.kind.value} metric {self.descriptor.name}"
        )

    def increment(self, labels: Mapping[str, str] | None, amount: float) -> None:
        raise WrongKindError(
            f"metric {self.descriptor.name} is a {self.kind.value}, not a counter"
        )

    def observe(self, value: float, labels: Mapping[str, str] | None) -> None:
        raise UnsupportedOperationError(
            f"cannot observe values on {self.kind.value} metric {self.descriptor.name}"
        )

    def value(
        self, registry: CollectorRegistry, labels: Mapping[str, str] | None
    ) -> float:
        sample = registry.get_sample_value(self._sample_name, self._label_values(labels))
        return 0.0 if sample is None else sample


class _CounterFamily(_Family):
    kind = MetricType.COUNTER

    @property
    def _sample_name(self) -> str:
        name = self.descriptor.name
        base = name[: -len("_total")] if name.endswith("_total") else name
        return base + "_total"

    def set(self, value: float, labels: Mapping[str, str] | None) -> None:
        # "set" on a counter adds the value; counters never go back.
        self.add(value, labels)

    def add(self, amount: float, labels: Mapping[str, str] | None) -> None:
        if amount < 0:
            raise UnsupportedOperationError(
                f"counter {self.descriptor.name} cannot decrease (got {amount})"
            )
        self._child(labels).inc(amount)

    def increment(self, labels: Mapping[str, str] | None, amount: float) -> None:
        self.add(amount, labels)


class _GaugeFamily(_Family):
    kind = MetricType.GAUGE

    def set(self, value: float, labels: Mapping[str, str] | None) -> None:
        self._child(labels).set(value)

    def add(self, amount: float, labels: Mapping[str, str] | None) -> None:
        self._child(labels).inc(amount)


class _HistogramFamily(_Family):
    kind = MetricType.HISTOGRAM

    @property
    def _sample_name(self) -> str:
        return self.descriptor.name + "_sum"

    def observe(self, value: float, labels: Mapping[str, str] | None) -> None:
        self._child(labels).observe(value)


class _SummaryFamily(_HistogramFamily):
    kind = MetricType.SUMMARY


class MetricRegistry:
    """Thread-safe table of named metric families.

    Example:
        ```python
        registry = MetricRegistry()
        registry.register("queries_total", "Queries seen", MetricType.COUNTER)
        registry.set("queries_total", 5)
        registry.set("queries_total", 3)
        registry.get_value("queries_total")  # 8.0
        ```
    """

    def __init__(self) -> None:
        self._collectors = CollectorRegistry(auto_describe=True)
        self._families: dict[str, _Family] = {}
        self._lock = threading.Lock()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._families

    def __len__(self) -> int:
        with self._lock:
            return len(self._families)

    @property
    def collector_registry(self) -> CollectorRegistry:
        """The underlying prometheus_client registry."""
        return self._collectors

    def register(
        self,
        name: str,
        help: str,
        kind: MetricType | str,
        label_names: Sequence[str] = (),
        buckets: Sequence[float] | None = None,
    ) -> MetricDescriptor:
        """Register a new metric family.

        Args:
            name: Unique metric name.
            help: Help text.
            kind: Metric kind (or its string value).
            label_names: Label names; empty for a scalar metric.
            buckets: Histogram bucket boundaries (default: Prometheus standard
                buckets). Ignored for other kinds.

        Returns:
            The descriptor of the new family.

        Raises:
            AlreadyRegisteredError: If the name is taken.
            ConfigurationError: If the name, kind or label names are invalid.
        """
        if not METRIC_NAME_PATTERN.fullmatch(name):
            raise ConfigurationError(f"invalid metric name: {name!r}")
        try:
            kind = MetricType(kind)
        except ValueError:
            raise ConfigurationError(f"unsupported metric type: {kind}") from None
        descriptor = MetricDescriptor(name, help, kind, tuple(label_names))
        with self._lock:
            if name in self._families:
                raise AlreadyRegisteredError(f"metric {name} already registered")
            family = self._create_family(descriptor, buckets)
            self._families[name] = family
        return descriptor

    def _create_family(
        self, descriptor: MetricDescriptor, buckets: Sequence[float] | None
    ) -> _Family:
        common = {
            "name": descriptor.name,
            "documentation": descriptor.help or descriptor.name,
            "labelnames": descriptor.label_names,
            "registry": self._collectors,
        }
        try:
            if descriptor.kind is MetricType.COUNTER:
                return _CounterFamily(descriptor, Counter(**common))
            if descriptor.kind is MetricType.GAUGE:
                return _GaugeFamily(descriptor, Gauge(**common))
            if descriptor.kind is MetricType.HISTOGRAM:
                bounds = buckets if buckets is not None else DEFAULT_HISTOGRAM_BUCKETS
                return _HistogramFamily(
                    descriptor, Histogram(buckets=tuple(bounds), **common)
                )
            return _SummaryFamily(descriptor, Summary(**common))
        except ValueError as exc:
            if "Duplicated timeseries" in str(exc):
                raise AlreadyRegisteredError(
                    f"metric {descriptor.name} collides with an existing series"
                ) from exc
            raise ConfigurationError(f"invalid metric {descriptor.name}: {exc}") from exc

    def _family(self, name: str) -> _Family:
        with self._lock:
            family = self._families.get(name)
        if family is None:
            raise NotFoundError(f"metric {name} not found")
        return family

    def describe(self, name: str) -> MetricDescriptor:
        """Return the descriptor of a registered metric."""
        return self._family(name).descriptor

    def descriptors(self) -> list[MetricDescriptor]:
        """Return descriptors of all registered metrics, sorted by name."""
        with self._lock:
            return [self._families[name].descriptor for name in sorted(self._families)]

    def set(
        self, name: str, value: float, labels: Mapping[str, str] | None = None
    ) -> None:
        """Set a gauge to ``value``, or add ``value`` to a counter.

        Raises:
            NotFoundError: If the metric is not registered.
            UnsupportedOperationError: For histograms and summaries, and for
                negative values on counters.
            LabelMismatchError: If labels do not match the declared names.
        """
        self._family(name).set(value, labels)

    def add(
        self, name: str, amount: float, labels: Mapping[str, str] | None = None
    ) -> None:
        """Add ``amount`` to a gauge or counter."""
        self._family(name).add(amount, labels)

    def increment(
        self,
        name: str,
        labels: Mapping[str, str] | None = None,
        amount: float = 1.0,
    ) -> None:
        """Increment a counter by ``amount`` (one by default).

        Raises:
            NotFoundError: If the metric is not registered.
            WrongKindError: If the metric is not a counter.
        """
        self._family(name).increment(labels, amount)

    def observe(
        self, name: str, value: float, labels: Mapping[str, str] | None = None
    ) -> None:
        """Record an observation on a histogram or summary."""
        self._family(name).observe(value, labels)

    def get_value(self, name: str, labels: Mapping[str, str] | None = None) -> float:
        """Read the current value for one label combination.

        Combinations that were never written read as 0.0. Histograms and
        summaries report the sum of their observations.
        """
        return self._family(name).value(self._collectors, labels)

    def push(self, values: Mapping[str, object], prefix: str = "") -> dict[str, float]:
        """Record ad hoc values, auto-registering gauges as needed.

        Every value is normalized before anything is mutated, so a single
        bad value leaves the registry untouched.

        Args:
            values: Mapping of raw keys to float, int or numeric string values.
            prefix: Prefix prepended to each sanitized metric name.

        Returns:
            Mapping of the metric names written to their float values.

        Raises:
            MetricValueTypeError: If any value is not numeric.
            UnsupportedOperationError: If a name belongs to a histogram or
                summary.
            LabelMismatchError: If a name belongs to a labeled metric.
        """
        normalized: dict[str, tuple[str, float]] = {}
        for key, raw in values.items():
            try:
                number = normalize_metric_value(raw)
            except MetricValueTypeError as exc:
                raise MetricValueTypeError(f"metric {key}: {exc}") from exc
            metric_name = prefix + sanitize_metric_name(key)
            self._check_pushable(metric_name)
            normalized[key] = (metric_name, number)

        written: dict[str, float] = {}
        for key, (metric_name, number) in normalized.items():
            self._ensure_gauge(metric_name, f"Custom metric: {key}")
            self.set(metric_name, number)
            written[metric_name] = number
        return written

    def _check_pushable(self, name: str) -> None:
        with self._lock:
            family = self._families.get(name)
        if family is None:
            return
        descriptor = family.descriptor
        if descriptor.kind in (MetricType.HISTOGRAM, MetricType.SUMMARY):
            raise UnsupportedOperationError(
                f"cannot push a value to {descriptor.kind.value} {name}"
            )
        if descriptor.label_names:
            raise LabelMismatchError(
                f"metric {name} requires labels {list(descriptor.label_names)}"
            )

    def _ensure_gauge(self, name: str, help: str) -> None:
        with self._lock:
            if name in self._families:
                return
            descriptor = MetricDescriptor(name, help, MetricType.GAUGE)
            self._families[name] = self._create_family(descriptor, None)

    def expose(self) -> bytes:
        """Render all families in the Prometheus text exposition format."""
        return generate_latest(self._collectors)
