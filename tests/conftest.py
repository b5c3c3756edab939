"""Shared test fixtures for all test modules."""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from telemetryhub.core.models import AnalysisResult, ClientStats, LogEntry, LogLevel


@dataclass
class RecordingBackend:
    """Routes requests to canned responses and records every request.

    Routes are keyed by ``(method, path)``. A route value is either a status
    code, an ``httpx.Response``, or a callable taking the request.
    Unrouted requests answer 404.
    """

    routes: dict[tuple[str, str], Any] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)

    def route(self, method: str, path: str, response: Any) -> None:
        self.routes[(method, path)] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path), 404)
        if callable(response):
            response = response(request)
        if isinstance(response, int):
            return httpx.Response(response)
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def sent(self, method: str, path: str) -> list[httpx.Request]:
        """Requests matching a method and path, in order."""
        return [
            r for r in self.requests if r.method == method and r.url.path == path
        ]

    def json_bodies(self, method: str, path: str) -> list[Any]:
        return [json.loads(r.content) for r in self.sent(method, path)]


@pytest.fixture
def backend() -> RecordingBackend:
    """Fresh request recorder for wire-level tests."""
    return RecordingBackend()


@pytest.fixture
def analysis_result() -> AnalysisResult:
    """A small analysis snapshot with two clients."""
    return AnalysisResult(
        total_queries=150,
        unique_clients=2,
        client_stats={
            "192.168.1.10": ClientStats(
                ip="192.168.1.10",
                hostname="laptop",
                query_count=100,
                domains={"example.com": 60, "github.com": 40},
                is_online=True,
            ),
            "192.168.1.11": ClientStats(
                ip="192.168.1.11",
                hostname="phone",
                query_count=50,
                domains={"example.com": 50},
            ),
        },
        analysis_duration=0.42,
        analysis_mode="api",
        timestamp=1702300000.0,
    )


@pytest.fixture
def make_entry() -> Callable[..., LogEntry]:
    """Factory fixture for log entries with a fixed timestamp."""

    def _entry(
        message: str = "test message",
        level: LogLevel = LogLevel.INFO,
        component: str = "",
        timestamp: float = 1702300000.0,
        **kwargs: Any,
    ) -> LogEntry:
        return LogEntry(
            timestamp=timestamp,
            level=level,
            message=message,
            component=component,
            **kwargs,
        )

    return _entry
