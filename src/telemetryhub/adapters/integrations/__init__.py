"""Monitoring backend adapters implementing core ports."""

from telemetryhub.adapters.integrations.base import BaseIntegration
from telemetryhub.adapters.integrations.grafana import GrafanaIntegration
from telemetryhub.adapters.integrations.in_memory import InMemoryIntegration
from telemetryhub.adapters.integrations.loki import LokiIntegration
from telemetryhub.adapters.integrations.prometheus import PrometheusIntegration

__all__ = [
    "BaseIntegration",
    "GrafanaIntegration",
    "InMemoryIntegration",
    "LokiIntegration",
    "PrometheusIntegration",
]
