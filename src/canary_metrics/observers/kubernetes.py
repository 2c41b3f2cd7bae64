"""Plain Kubernetes workloads instrumented with the Prometheus HTTP client.

``http_request_duration_seconds`` is in seconds, unlike the mesh metrics.
"""

from __future__ import annotations

from canary_metrics.models import MeshProvider
from canary_metrics.observers.observer import (
    DurationUnit,
    MeshObserver,
    ObserverQueries,
    p99_query,
    success_rate_query,
)

_SELECTOR = (
    'kubernetes_namespace="{{ namespace }}", '
    'kubernetes_pod_name=~"{{ target }}-[0-9a-zA-Z]+(-[0-9a-zA-Z]+)"'
)


class HttpObserver(MeshObserver):
    mesh = MeshProvider.KUBERNETES
    duration_unit = DurationUnit.SECONDS
    default_queries = ObserverQueries(
        request_success_rate=success_rate_query(
            "http_request_duration_seconds_count", _SELECTOR, 'status!~"5.*"'
        ),
        request_duration=p99_query("http_request_duration_seconds_bucket", _SELECTOR),
    )
