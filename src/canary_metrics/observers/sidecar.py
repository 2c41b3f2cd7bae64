"""Istio and Linkerd sidecar metrics."""

from __future__ import annotations

from canary_metrics.models import MeshProvider
from canary_metrics.observers.observer import (
    MeshObserver,
    ObserverQueries,
    p99_query,
    success_rate_query,
)

_ISTIO_SELECTOR = (
    'reporter="destination", '
    'destination_workload_namespace="{{ namespace }}", '
    'destination_workload=~"{{ target }}"'
)

_LINKERD_SELECTOR = (
    'namespace="{{ namespace }}", deployment=~"{{ target }}", direction="inbound"'
)


class IstioObserver(MeshObserver):
    mesh = MeshProvider.ISTIO
    default_queries = ObserverQueries(
        request_success_rate=success_rate_query(
            "istio_requests_total", _ISTIO_SELECTOR, 'response_code!~"5.*"'
        ),
        request_duration=p99_query("istio_request_duration_milliseconds_bucket", _ISTIO_SELECTOR),
    )


class LinkerdObserver(MeshObserver):
    mesh = MeshProvider.LINKERD
    default_queries = ObserverQueries(
        request_success_rate=success_rate_query(
            "response_total", _LINKERD_SELECTOR, 'classification!="failure"'
        ),
        request_duration=p99_query("response_latency_ms_bucket", _LINKERD_SELECTOR),
    )
