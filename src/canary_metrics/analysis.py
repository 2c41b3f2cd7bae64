"""Per-metric dispatch for one canary analysis tick.

``MetricAnalyzer`` decides where each ``CanaryMetric`` gets its value:

- ``request-success-rate`` / ``request-duration`` without a query or
  template: the built-in queries of the configured mesh observer.
- ``template_ref``: the referenced ``MetricTemplate``, rendered with the
  canary's model and run on a provider built from the template's spec.
- ``query``: an inline query run as-is on the mesh metrics server.

Every check returns a ``MetricCheckResult``; nothing here changes canary
state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any

import httpx
from pydantic import BaseModel

from canary_metrics.config import MetricsSettings
from canary_metrics.errors import ConfigurationError
from canary_metrics.evaluation import MetricCheckResult, run_check
from canary_metrics.models import (
    CanaryMetric,
    Credentials,
    MetricTemplate,
    MetricTemplateModel,
    MetricTemplateRef,
)
from canary_metrics.observers import ObserverFactory
from canary_metrics.observers.observer import MeshObserver
from canary_metrics.providers import MetricsProvider, ProviderFactory
from canary_metrics.render import render_query

logger = logging.getLogger("canary_metrics.analysis")

REQUEST_SUCCESS_RATE = "request-success-rate"
REQUEST_DURATION = "request-duration"


class CanaryTarget(BaseModel):
    """Identity of the canary under analysis."""

    name: str
    namespace: str
    target: str | None = None
    service: str | None = None
    ingress: str | None = None


def to_metric_model(
    canary: CanaryTarget,
    interval: str,
    variables: Mapping[str, str] | None = None,
) -> MetricTemplateModel:
    target = canary.target or canary.name
    return MetricTemplateModel(
        name=canary.name,
        namespace=canary.namespace,
        target=target,
        service=canary.service or target,
        ingress=canary.ingress or target,
        interval=interval,
        variables=dict(variables or {}),
    )


class MetricAnalyzer:
    """Runs the metric checks of a canary.

    ``templates`` is keyed by ``(namespace, name)``; a reference without a
    namespace is looked up in the canary's namespace. ``credentials`` is
    keyed by the secret name a template's provider spec references.
    Providers built from templates are reused across ticks, one per
    template and analysis interval since the look-back window is fixed at
    build time.
    """

    def __init__(
        self,
        observer_factory: ObserverFactory,
        provider_factory: ProviderFactory,
        *,
        mesh_provider: str = "istio",
        templates: Mapping[tuple[str, str], MetricTemplate] | None = None,
        credentials: Mapping[str, Credentials] | None = None,
        default_interval: str | None = None,
    ) -> None:
        self.observer_factory = observer_factory
        self.provider_factory = provider_factory
        self.mesh_provider = mesh_provider
        self.templates = dict(templates or {})
        self.credentials = dict(credentials or {})
        self.default_interval = default_interval
        self._providers: dict[tuple[str, str, str], MetricsProvider] = {}

    @classmethod
    def from_settings(
        cls,
        settings: MetricsSettings | None = None,
        *,
        templates: Mapping[tuple[str, str], MetricTemplate] | None = None,
        credentials: Mapping[str, Credentials] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        kube_api: Any | None = None,
    ) -> MetricAnalyzer:
        settings = settings or MetricsSettings()
        return cls(
            ObserverFactory.from_settings(settings, transport=transport),
            ProviderFactory(transport=transport, kube_api=kube_api, kubeconfig=settings.kubeconfig),
            mesh_provider=settings.mesh_provider,
            templates=templates,
            credentials=credentials,
            default_interval=settings.metric_interval,
        )

    def observer(self, mesh_provider: str | None = None) -> MeshObserver:
        return self.observer_factory.observer(mesh_provider or self.mesh_provider)

    def _interval(self, metric: CanaryMetric) -> str:
        return metric.interval or self.default_interval or metric.effective_interval

    # ------------------------------------------------------------------
    # Template-backed metrics
    # ------------------------------------------------------------------

    def _template(self, ref: MetricTemplateRef, canary: CanaryTarget) -> MetricTemplate:
        key = (ref.namespace or canary.namespace, ref.name)
        template = self.templates.get(key)
        if template is None:
            raise ConfigurationError(f"metric template {key[0]}/{key[1]} not found")
        return template

    def _provider(self, template: MetricTemplate, interval: str) -> MetricsProvider:
        key = (template.namespace, template.name, interval)
        provider = self._providers.get(key)
        if provider is None:
            secret = template.provider.secret_ref
            credentials = None
            if secret is not None:
                credentials = self.credentials.get(secret)
                if credentials is None:
                    raise ConfigurationError(
                        f"secret {secret} referenced by metric template {template.name} not found"
                    )
            provider = self.provider_factory.provider(
                template.provider, credentials, metric_interval=interval
            )
            self._providers[key] = provider
            logger.info(
                "Built %s provider for metric template %s/%s (interval %s)",
                template.provider.type or "default",
                template.namespace,
                template.name,
                interval,
            )
        return provider

    async def _run_template(
        self, metric: CanaryMetric, ref: MetricTemplateRef, canary: CanaryTarget
    ) -> float:
        interval = self._interval(metric)
        template = self._template(ref, canary)
        provider = self._provider(template, interval)
        model = to_metric_model(canary, interval, metric.template_variables)
        query = render_query(template.query, model)
        logger.debug("Metric %s query: %s", metric.name, query)
        return await provider.run_query(query)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def check(
        self,
        metric: CanaryMetric,
        canary: CanaryTarget,
        *,
        mesh_provider: str | None = None,
    ) -> MetricCheckResult:
        ref = metric.template_ref
        if ref is not None:
            return await run_check(metric, lambda: self._run_template(metric, ref, canary))

        query = metric.query
        if query:
            client = self.observer_factory.client
            return await run_check(metric, lambda: client.run_query(query))

        observer = self.observer(mesh_provider)
        model = to_metric_model(canary, self._interval(metric))

        if metric.name == REQUEST_SUCCESS_RATE:
            return await run_check(
                metric, lambda: observer.get_request_success_rate(model), lower_bound=True
            )

        if metric.name == REQUEST_DURATION:
            return await run_check(metric, lambda: observer.get_request_duration(model))

        async def unsupported() -> float:
            raise ConfigurationError(
                f"metric {metric.name} has no query or template reference and is not a built-in check"
            )

        return await run_check(metric, unsupported)

    async def check_all(
        self,
        metrics: Iterable[CanaryMetric],
        canary: CanaryTarget,
        *,
        mesh_provider: str | None = None,
    ) -> list[MetricCheckResult]:
        """Run every metric concurrently, results in input order."""
        return list(
            await asyncio.gather(
                *(self.check(metric, canary, mesh_provider=mesh_provider) for metric in metrics)
            )
        )
