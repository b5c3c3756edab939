"""Tests for Loki stream encoding."""

from collections.abc import Callable

import pytest

from telemetryhub.core.encoding.loki import (
    StreamBuilder,
    encode_push_request,
    format_labels,
    format_log_line,
    to_unix_nanos,
)
from telemetryhub.core.models import LogEntry, LogLevel


class TestFormatting:
    """Tests for label and line formatting."""

    @pytest.mark.core
    def test_format_labels_sorts_keys_compactly(self) -> None:
        assert (
            format_labels({"service": "pihole-analyzer", "level": "info"})
            == '{"level":"info","service":"pihole-analyzer"}'
        )

    @pytest.mark.core
    def test_format_labels_empty(self) -> None:
        assert format_labels({}) == "{}"

    @pytest.mark.core
    def test_format_log_line_without_fields(
        self, make_entry: Callable[..., LogEntry]
    ) -> None:
        assert format_log_line(make_entry("plain")) == "plain"

    @pytest.mark.core
    def test_format_log_line_appends_sorted_fields(
        self, make_entry: Callable[..., LogEntry]
    ) -> None:
        entry = make_entry("done", fields={"b": 2, "a": "x"})
        assert format_log_line(entry) == 'done {"a":"x","b":2}'

    @pytest.mark.core
    def test_to_unix_nanos(self) -> None:
        assert to_unix_nanos(1702300000.0) == "1702300000000000000"
        assert to_unix_nanos(1.5) == "1500000000"


class TestStreamBuilder:
    """Tests for label policy and grouping."""

    @pytest.mark.core
    def test_effective_labels_layering(self, make_entry: Callable[..., LogEntry]) -> None:
        builder = StreamBuilder(
            {"service": "dns", "level": "static"}, ["level", "component"]
        )
        entry = make_entry(
            level=LogLevel.WARN,
            component="analyzer",
            labels={"service": "override", "host": "pi"},
        )
        assert builder.effective_labels(entry) == {
            "service": "override",
            "host": "pi",
            "level": "WARN",
            "component": "analyzer",
        }

    @pytest.mark.core
    def test_disabled_dynamic_labels_are_skipped(
        self, make_entry: Callable[..., LogEntry]
    ) -> None:
        builder = StreamBuilder({"service": "dns"}, ["component", "unknown"])
        entry = make_entry(component="")
        assert builder.effective_labels(entry) == {"service": "dns"}
        assert builder.dynamic_labels == ("component",)

    @pytest.mark.core
    @pytest.mark.tra("Batcher.StreamGrouping")
    def test_identical_label_sets_share_a_stream(
        self, make_entry: Callable[..., LogEntry]
    ) -> None:
        builder = StreamBuilder()
        first = make_entry("one", labels={"a": "1", "b": "2"})
        second = make_entry("two", labels={"b": "2", "a": "1"})
        streams = builder.build([first, second])
        assert len(streams) == 1
        assert [line for _, line in streams[0].values] == ["one", "two"]

    @pytest.mark.core
    def test_different_levels_split_streams(
        self, make_entry: Callable[..., LogEntry]
    ) -> None:
        builder = StreamBuilder({}, ["level"])
        streams = builder.build(
            [make_entry(level=LogLevel.INFO), make_entry(level=LogLevel.ERROR)]
        )
        assert sorted(s.labels["level"] for s in streams) == ["ERROR", "INFO"]

    @pytest.mark.core
    def test_add_static_labels_affects_future_streams(
        self, make_entry: Callable[..., LogEntry]
    ) -> None:
        builder = StreamBuilder({"service": "dns"})
        builder.add_static_labels({"env": "prod"})
        (stream,) = builder.build([make_entry()])
        assert stream.labels == {"service": "dns", "env": "prod"}

    @pytest.mark.core
    def test_encode_push_request(self, make_entry: Callable[..., LogEntry]) -> None:
        builder = StreamBuilder({"service": "dns"})
        body = encode_push_request(builder.build([make_entry("hello")]))
        assert body == {
            "streams": [
                {
                    "stream": {"service": "dns"},
                    "values": [["1702300000000000000", "hello"]],
                }
            ]
        }
