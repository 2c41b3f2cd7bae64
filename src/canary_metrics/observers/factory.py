"""Observer selection by mesh provider name.

Names are matched exactly, except the parameterised ``appmesh``, ``gloo``
and ``crossover`` families which match by prefix (``appmesh:v1beta2``,
``gloo:edge``). ``crossover:service`` is tried exactly before the
``crossover`` prefix. Anything else gets the Istio observer.
"""

from __future__ import annotations

import logging

import httpx

from canary_metrics.config import MetricsSettings
from canary_metrics.models import MeshProvider, MetricTemplateProvider, ProviderType
from canary_metrics.observers.envoy import (
    AppMeshObserver,
    ConsulObserver,
    ContourObserver,
    CrossoverObserver,
    CrossoverServiceObserver,
    GlooObserver,
    KumaObserver,
)
from canary_metrics.observers.ingress import (
    ApisixObserver,
    NginxObserver,
    SkipperObserver,
    TraefikObserver,
)
from canary_metrics.observers.kubernetes import HttpObserver
from canary_metrics.observers.observer import MeshObserver
from canary_metrics.observers.sidecar import IstioObserver, LinkerdObserver
from canary_metrics.providers.prometheus import PrometheusProvider
from canary_metrics.providers.provider import MetricsProvider

logger = logging.getLogger("canary_metrics.observers.factory")

DEFAULT_MESH = MeshProvider.ISTIO

_OBSERVERS: dict[MeshProvider, type[MeshObserver]] = {
    cls.mesh: cls
    for cls in (
        IstioObserver,
        LinkerdObserver,
        AppMeshObserver,
        ContourObserver,
        GlooObserver,
        NginxObserver,
        HttpObserver,
        SkipperObserver,
        TraefikObserver,
        KumaObserver,
        ApisixObserver,
        ConsulObserver,
        CrossoverObserver,
        CrossoverServiceObserver,
    )
}

_PREFIX_MATCHED = (MeshProvider.APPMESH, MeshProvider.GLOO, MeshProvider.CROSSOVER)


def _check_observers() -> None:
    missing = set(MeshProvider) - set(_OBSERVERS)
    if missing:
        raise RuntimeError(f"no observer for: {', '.join(sorted(missing))}")


_check_observers()


def resolve_mesh(name: str) -> MeshProvider:
    """Map a mesh provider name to the observer key it selects."""
    try:
        return MeshProvider(name)
    except ValueError:
        pass
    for mesh in _PREFIX_MATCHED:
        if name.startswith(mesh):
            return mesh
    logger.warning("Unknown mesh provider %r, falling back to %s", name, DEFAULT_MESH)
    return DEFAULT_MESH


class ObserverFactory:
    """Hands out observers that share one metrics provider."""

    def __init__(self, client: MetricsProvider) -> None:
        self.client = client

    @classmethod
    def from_metrics_server(
        cls,
        address: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ObserverFactory:
        spec = MetricTemplateProvider(type=ProviderType.PROMETHEUS, address=address)
        return cls(PrometheusProvider(spec, transport=transport))

    @classmethod
    def from_settings(
        cls,
        settings: MetricsSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ObserverFactory:
        settings = settings or MetricsSettings()
        return cls.from_metrics_server(settings.metrics_server, transport=transport)

    def observer(self, name: str) -> MeshObserver:
        return _OBSERVERS[resolve_mesh(name)](self.client)
