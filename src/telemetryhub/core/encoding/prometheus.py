"""Prometheus push gateway encoding helpers."""

import base64
from collections.abc import Mapping
from urllib.parse import quote

from prometheus_client import CONTENT_TYPE_LATEST

__all__ = ["CONTENT_TYPE_LATEST", "grouping_path", "push_url"]


def _encode_segment(label: str, value: str) -> str:
    # Values containing "/" (or empty values) use the base64 form.
    if not value or "/" in value:
        encoded = base64.urlsafe_b64encode(value.encode()).decode()
        return f"{label}@base64/{encoded or '='}"
    return f"{label}/{quote(value, safe='')}"


def grouping_path(job: str, grouping: Mapping[str, str] | None = None) -> str:
    """Build the ``/metrics/job/<job>[/<label>/<value>...]`` path.

    Args:
        job: Push gateway job name.
        grouping: Additional grouping labels, such as ``instance``.

    Returns:
        URL path identifying the metric group.
    """
    path = "/metrics/" + _encode_segment("job", job)
    for label, value in (grouping or {}).items():
        path += "/" + _encode_segment(label, value)
    return path


def push_url(base_url: str, job: str, grouping: Mapping[str, str] | None = None) -> str:
    """Join the gateway base URL with the grouping path."""
    return base_url.rstrip("/") + grouping_path(job, grouping)
