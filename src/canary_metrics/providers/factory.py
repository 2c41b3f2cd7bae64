"""Provider selection by type tag.

Each ``ProviderType`` maps to one builder in ``_BUILDERS``. The table is
checked against the enum at import, so a new backend is a new enum member
plus a new table row. Unknown or empty tags resolve to Prometheus, which
keeps metric templates written before the ``type`` field existed working.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from canary_metrics.intervals import DEFAULT_INTERVAL
from canary_metrics.models import Credentials, MetricTemplateProvider, ProviderType
from canary_metrics.providers.appdynamics import AppDynamicsCloudProvider
from canary_metrics.providers.cloudwatch import CloudWatchProvider
from canary_metrics.providers.datadog import DatadogProvider
from canary_metrics.providers.dynatrace import DynatraceProvider
from canary_metrics.providers.external_metrics import ExternalMetricsProvider
from canary_metrics.providers.graphite import GraphiteProvider
from canary_metrics.providers.influxdb import InfluxDBProvider
from canary_metrics.providers.keptn import KeptnProvider
from canary_metrics.providers.newrelic import NerdGraphProvider, NewRelicProvider
from canary_metrics.providers.prometheus import PrometheusProvider
from canary_metrics.providers.provider import MetricsProvider
from canary_metrics.providers.signoz import SignozProvider
from canary_metrics.providers.skywalking import SkyWalkingProvider
from canary_metrics.providers.splunk import SplunkProvider
from canary_metrics.providers.stackdriver import StackdriverProvider

logger = logging.getLogger("canary_metrics.providers.factory")

DEFAULT_PROVIDER = ProviderType.PROMETHEUS


@dataclass(frozen=True)
class BuildContext:
    """Everything a builder may need besides the provider spec and credentials."""

    metric_interval: str
    transport: httpx.AsyncBaseTransport | None
    kube_api: Any | None
    kubeconfig: str | None


Builder = Callable[[MetricTemplateProvider, Credentials | None, BuildContext], MetricsProvider]

_BUILDERS: dict[ProviderType, Builder] = {
    ProviderType.PROMETHEUS: lambda s, c, ctx: PrometheusProvider(s, c, transport=ctx.transport),
    ProviderType.DATADOG: lambda s, c, ctx: DatadogProvider(
        s, c, metric_interval=ctx.metric_interval, transport=ctx.transport
    ),
    ProviderType.CLOUDWATCH: lambda s, c, ctx: CloudWatchProvider(
        s, metric_interval=ctx.metric_interval
    ),
    ProviderType.STACKDRIVER: lambda s, c, ctx: StackdriverProvider(s, c),
    ProviderType.NEWRELIC: lambda s, c, ctx: NewRelicProvider(
        s, c, metric_interval=ctx.metric_interval, transport=ctx.transport
    ),
    ProviderType.NEWRELIC_NERDGRAPH: lambda s, c, ctx: NerdGraphProvider(
        s, c, metric_interval=ctx.metric_interval, transport=ctx.transport
    ),
    ProviderType.DYNATRACE: lambda s, c, ctx: DynatraceProvider(
        s, c, metric_interval=ctx.metric_interval, transport=ctx.transport
    ),
    ProviderType.GRAPHITE: lambda s, c, ctx: GraphiteProvider(s, c, transport=ctx.transport),
    ProviderType.INFLUXDB: lambda s, c, ctx: InfluxDBProvider(s, c, transport=ctx.transport),
    ProviderType.SPLUNK: lambda s, c, ctx: SplunkProvider(
        s, c, metric_interval=ctx.metric_interval, transport=ctx.transport
    ),
    ProviderType.SKYWALKING: lambda s, c, ctx: SkyWalkingProvider(
        s, metric_interval=ctx.metric_interval, transport=ctx.transport
    ),
    ProviderType.KEPTN: lambda s, c, ctx: KeptnProvider(api=ctx.kube_api, kubeconfig=ctx.kubeconfig),
    ProviderType.EXTERNAL_METRICS: lambda s, c, ctx: ExternalMetricsProvider(
        s, c, transport=ctx.transport
    ),
    ProviderType.APPDYNAMICS_CLOUD: lambda s, c, ctx: AppDynamicsCloudProvider(
        s, c, transport=ctx.transport
    ),
    ProviderType.SIGNOZ: lambda s, c, ctx: SignozProvider(s, c, transport=ctx.transport),
}


def _check_builders() -> None:
    missing = set(ProviderType) - set(_BUILDERS)
    if missing:
        raise RuntimeError(f"no provider builder for: {', '.join(sorted(missing))}")
    if DEFAULT_PROVIDER not in _BUILDERS:
        raise RuntimeError(f"default provider {DEFAULT_PROVIDER} has no builder")


_check_builders()


def resolve_provider_type(tag: str) -> ProviderType:
    """Exact match against ``ProviderType``; anything else is the default."""
    try:
        return ProviderType(tag)
    except ValueError:
        logger.warning("Unknown provider type %r, falling back to %s", tag, DEFAULT_PROVIDER)
        return DEFAULT_PROVIDER


class ProviderFactory:
    """Builds a provider for a metric template's provider spec.

    ``transport`` is handed to every HTTP-based provider, ``kube_api`` and
    ``kubeconfig`` to the Keptn provider.
    """

    def __init__(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        kube_api: Any | None = None,
        kubeconfig: str | None = None,
    ) -> None:
        self._transport = transport
        self._kube_api = kube_api
        self._kubeconfig = kubeconfig

    def provider(
        self,
        spec: MetricTemplateProvider,
        credentials: Credentials | None = None,
        *,
        metric_interval: str = DEFAULT_INTERVAL,
    ) -> MetricsProvider:
        """Build the provider for ``spec.type``.

        Raises:
            ConfigurationError: the provider spec or credential bundle is incomplete.
        """
        provider_type = resolve_provider_type(spec.type)
        context = BuildContext(
            metric_interval=metric_interval,
            transport=self._transport,
            kube_api=self._kube_api,
            kubeconfig=self._kubeconfig,
        )
        return _BUILDERS[provider_type](spec, credentials, context)
