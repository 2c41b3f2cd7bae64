"""Metric analysis for progressive canary delivery.

Layers, bottom up:
- Renderer: expands ``{{ namespace }}``-style placeholders into a runnable query.
- Providers: one adapter per observability backend, each reducing a backend
  response to exactly one float (or raising a structural error).
- Observers: the built-in success-rate and duration queries of each mesh.
- Evaluation: threshold/range comparison that keeps "failed the bound"
  apart from "could not get a value".
"""

from .analysis import CanaryTarget, MetricAnalyzer, to_metric_model
from .config import MetricsSettings, configure_logging
from .errors import (
    ConfigurationError,
    MetricsError,
    MissingCredentialError,
    MultipleValuesReturnedError,
    NoValuesFoundError,
    QueryError,
    QueryTimeoutError,
    TemplateError,
)
from .evaluation import CheckOutcome, MetricCheckResult, evaluate, run_check, within_threshold
from .intervals import parse_interval
from .models import (
    CanaryMetric,
    Credentials,
    MeshProvider,
    MetricTemplate,
    MetricTemplateModel,
    MetricTemplateProvider,
    MetricTemplateRef,
    ProviderType,
    ThresholdRange,
)
from .observers import Observer, ObserverFactory
from .providers import MetricsProvider, ProviderFactory
from .render import render_query

__all__ = [
    "CanaryMetric",
    "CanaryTarget",
    "CheckOutcome",
    "ConfigurationError",
    "Credentials",
    "MeshProvider",
    "MetricAnalyzer",
    "MetricCheckResult",
    "MetricTemplate",
    "MetricTemplateModel",
    "MetricTemplateProvider",
    "MetricTemplateRef",
    "MetricsError",
    "MetricsProvider",
    "MetricsSettings",
    "MissingCredentialError",
    "MultipleValuesReturnedError",
    "NoValuesFoundError",
    "Observer",
    "ObserverFactory",
    "ProviderFactory",
    "ProviderType",
    "QueryError",
    "QueryTimeoutError",
    "TemplateError",
    "ThresholdRange",
    "configure_logging",
    "evaluate",
    "parse_interval",
    "render_query",
    "run_check",
    "to_metric_model",
    "within_threshold",
]
