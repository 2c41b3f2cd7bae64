"""Meshes and gateways built on Envoy.

They all export ``envoy_cluster_upstream_rq`` and
``envoy_cluster_upstream_rq_time_bucket`` (milliseconds) and differ only in
how the canary's cluster is labelled.
"""

from __future__ import annotations

from canary_metrics.models import MeshProvider
from canary_metrics.observers.observer import (
    MeshObserver,
    ObserverQueries,
    p99_query,
    success_rate_query,
)

_REQUESTS = "envoy_cluster_upstream_rq"
_LATENCY_BUCKETS = "envoy_cluster_upstream_rq_time_bucket"
_NOT_5XX = 'envoy_response_code!~"5.*"'


def envoy_queries(selector: str) -> ObserverQueries:
    return ObserverQueries(
        request_success_rate=success_rate_query(_REQUESTS, selector, _NOT_5XX),
        request_duration=p99_query(_LATENCY_BUCKETS, selector),
    )


class AppMeshObserver(MeshObserver):
    mesh = MeshProvider.APPMESH
    default_queries = envoy_queries(
        'kubernetes_namespace="{{ namespace }}", '
        'kubernetes_pod_name=~"{{ target }}-[0-9a-zA-Z]+(-[0-9a-zA-Z]+)"'
    )


class ContourObserver(MeshObserver):
    mesh = MeshProvider.CONTOUR
    default_queries = envoy_queries(
        'envoy_cluster_name=~"{{ namespace }}_{{ target }}-canary_[0-9a-zA-Z-]+"'
    )


class GlooObserver(MeshObserver):
    mesh = MeshProvider.GLOO
    default_queries = envoy_queries(
        'envoy_cluster_name=~"{{ namespace }}-{{ target }}-canaryupstream-[0-9a-zA-Z-]+_[0-9a-zA-Z-]+"'
    )


class KumaObserver(MeshObserver):
    mesh = MeshProvider.KUMA
    default_queries = envoy_queries('service=~"{{ target }}-canary_{{ namespace }}_svc_[0-9a-zA-Z-]+"')


class CrossoverObserver(MeshObserver):
    """Crossover (SMI on Envoy), canary cluster matched by regex."""

    mesh = MeshProvider.CROSSOVER
    default_queries = envoy_queries(
        'kubernetes_namespace="{{ namespace }}", envoy_cluster_name=~"{{ target }}-canary"'
    )


class CrossoverServiceObserver(MeshObserver):
    """Crossover with per-service clusters, canary cluster matched exactly."""

    mesh = MeshProvider.CROSSOVER_SERVICE
    default_queries = envoy_queries(
        'kubernetes_namespace="{{ namespace }}", envoy_cluster_name="{{ target }}-canary"'
    )


class ConsulObserver(MeshObserver):
    """Consul Connect; the canary is the ``secondary`` service subset."""

    mesh = MeshProvider.CONSUL
    default_queries = envoy_queries('consul_service="{{ target }}", consul_service_subset="secondary"')
