"""Process-level settings for metric analysis.

Values come from the environment (``CANARY_METRICS_*``) so the controller
that embeds this package can be configured without code changes.
"""

from __future__ import annotations

import logging

from pydantic import Field
from pydantic_settings import BaseSettings

from canary_metrics.intervals import DEFAULT_INTERVAL

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class MetricsSettings(BaseSettings):
    """Defaults used when building observers and providers."""

    model_config = {"env_prefix": "CANARY_METRICS_"}

    metrics_server: str = Field(
        default="http://prometheus:9090",
        description="Prometheus-compatible server holding the mesh metrics",
    )
    mesh_provider: str = Field(
        default="istio",
        description="Service mesh or ingress whose built-in queries are used",
    )
    metric_interval: str = Field(
        default=DEFAULT_INTERVAL,
        description="Analysis interval used when a metric does not set one",
    )
    log_level: str = Field(default="INFO", description="Root log level")
    kubeconfig: str | None = Field(
        default=None,
        description="Kubeconfig path for Kubernetes-backed providers; in-cluster config when unset",
    )


def configure_logging(level: str | int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
