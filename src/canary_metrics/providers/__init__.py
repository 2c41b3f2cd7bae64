"""Metric providers: one adapter per observability backend."""

from canary_metrics.providers.factory import ProviderFactory, resolve_provider_type
from canary_metrics.providers.provider import MetricsProvider

__all__ = ["MetricsProvider", "ProviderFactory", "resolve_provider_type"]
