"""Translation of declarative dashboards into Grafana documents.

Pure functions: no I/O and no state, so they can be tested in isolation.
"""

from collections.abc import Sequence
from typing import Any

from telemetryhub.core.models import Dashboard, Panel

PANEL_WIDTH = 12
PANEL_HEIGHT = 8
PANELS_PER_ROW = 2


def grid_position(index: int) -> dict[str, int]:
    """Two-column grid slot for the panel at ``index``."""
    return {
        "h": PANEL_HEIGHT,
        "w": PANEL_WIDTH,
        "x": (index % PANELS_PER_ROW) * PANEL_WIDTH,
        "y": (index // PANELS_PER_ROW) * PANEL_HEIGHT,
    }


def panels_to_grafana(panels: Sequence[Panel]) -> list[dict[str, Any]]:
    """Convert panels to Grafana panel objects with one query target each."""
    return [
        {
            "id": panel.id,
            "title": panel.title,
            "type": panel.type,
            "targets": [{"expr": panel.query}],
            "gridPos": grid_position(index),
            **({"options": dict(panel.settings)} if panel.settings else {}),
        }
        for index, panel in enumerate(panels)
    ]


def dashboard_to_grafana(dashboard: Dashboard) -> dict[str, Any]:
    """Convert a dashboard to Grafana's dashboard JSON model."""
    document: dict[str, Any] = {
        "title": dashboard.title,
        "description": dashboard.description,
        "tags": list(dashboard.tags),
        "panels": panels_to_grafana(dashboard.panels),
        "time": {"from": "now-1h", "to": "now"},
        "refresh": "30s",
    }
    if dashboard.id:
        document["uid"] = dashboard.id
    return document


def build_dashboard_payload(dashboard: Dashboard, overwrite: bool) -> dict[str, Any]:
    """Body for ``POST /api/dashboards/db``."""
    payload: dict[str, Any] = {
        "dashboard": dashboard_to_grafana(dashboard),
        "overwrite": overwrite,
    }
    if dashboard.folder_id:
        payload["folderId"] = dashboard.folder_id
    return payload


def dashboard_from_grafana(document: dict[str, Any]) -> Dashboard:
    """Build a Dashboard from a Grafana dashboard or search result.

    Only identity fields are recovered; the raw document is kept in
    ``definition``.
    """
    tags = document.get("tags")
    folder = document.get("folderId", document.get("folderUid", ""))
    return Dashboard(
        id=str(document.get("uid", "")),
        title=str(document.get("title", "")),
        description=str(document.get("description", "")),
        folder_id="" if folder in (None, "") else str(folder),
        tags=[str(tag) for tag in tags] if isinstance(tags, list) else [],
        definition=document,
    )


def main_dashboard(namespace: str, tags: Sequence[str] = ()) -> Dashboard:
    """The analyzer overview dashboard, querying the default metrics.

    Args:
        namespace: Metric namespace used by the Prometheus integration.
        tags: Dashboard tags.
    """
    ns = namespace
    return Dashboard(
        title="DNS Network Analyzer",
        description="Network analysis and DNS monitoring overview",
        tags=list(tags),
        panels=[
            Panel(1, "Total DNS Queries", "stat", f"sum({ns}_total_queries_total)"),
            Panel(2, "Active Clients", "stat", f"{ns}_unique_clients"),
            Panel(
                3,
                "Queries by Client",
                "piechart",
                f"sum by (client) ({ns}_client_queries)",
            ),
            Panel(
                4,
                "Analysis Duration",
                "timeseries",
                f"histogram_quantile(0.95, rate({ns}_analysis_duration_seconds_bucket[5m]))",
            ),
            Panel(
                5,
                "Top Domains",
                "table",
                f"topk(10, sum by (domain) ({ns}_domain_queries_total))",
            ),
            Panel(6, "Query Rate", "timeseries", f"rate({ns}_total_queries_total[5m])"),
        ],
    )
