"""Ingress controllers and API gateways that report their own metrics."""

from __future__ import annotations

import re

from canary_metrics.models import MeshProvider, MetricTemplateModel
from canary_metrics.observers.observer import (
    MeshObserver,
    ObserverQueries,
    p99_query,
    success_rate_query,
)

_NGINX_SELECTOR = 'namespace="{{ namespace }}", ingress="{{ ingress }}"'

_TRAEFIK_SELECTOR = 'service=~"{{ namespace }}-{{ target }}-canary-[0-9a-zA-Z-]+@kubernetescrd"'

_APISIX_SELECTOR = 'route=~"{{ namespace }}_{{ target }}-canary_.+"'

_SKIPPER_ROUTE = (
    'route=~"kube(ew)?_{{ namespace }}__{{ ingress }}_canary__.*__{{ service }}_canary(_[0-9]+)?"'
)


class NginxObserver(MeshObserver):
    mesh = MeshProvider.NGINX
    default_queries = ObserverQueries(
        request_success_rate=success_rate_query(
            "nginx_ingress_controller_requests", _NGINX_SELECTOR, 'status!~"5.*"'
        ),
        request_duration=(
            "sum(rate(nginx_ingress_controller_ingress_upstream_latency_seconds_sum{%(sel)s}[{{ interval }}]))\n"
            "/\n"
            "sum(rate(nginx_ingress_controller_ingress_upstream_latency_seconds_count{%(sel)s}[{{ interval }}]))\n"
            "* 1000" % {"sel": _NGINX_SELECTOR}
        ),
    )


class TraefikObserver(MeshObserver):
    mesh = MeshProvider.TRAEFIK
    default_queries = ObserverQueries(
        request_success_rate=success_rate_query(
            "traefik_service_request_duration_seconds_bucket",
            _TRAEFIK_SELECTOR + ', le="+Inf"',
            'code!~"5.."',
        ),
        request_duration=p99_query("traefik_service_request_duration_seconds_bucket", _TRAEFIK_SELECTOR)
        + " * 1000",
    )


class ApisixObserver(MeshObserver):
    mesh = MeshProvider.APISIX
    default_queries = ObserverQueries(
        request_success_rate=success_rate_query("apisix_http_status", _APISIX_SELECTOR, 'code!~"5.."'),
        request_duration=p99_query("apisix_http_latency_bucket", 'type=~"request", ' + _APISIX_SELECTOR),
    )


_NON_WORD = re.compile(r"\W")


def encode_skipper_model(model: MetricTemplateModel) -> MetricTemplateModel:
    """Skipper route ids replace every non-word character with ``_``."""
    return model.model_copy(
        update={
            field: _NON_WORD.sub("_", getattr(model, field))
            for field in ("name", "namespace", "target", "service", "ingress")
        }
    )


class SkipperObserver(MeshObserver):
    """Skipper ingress; route ids are derived from the ingress and backend names."""

    mesh = MeshProvider.SKIPPER
    default_queries = ObserverQueries(
        request_success_rate=success_rate_query(
            "skipper_response_duration_seconds_bucket",
            _SKIPPER_ROUTE + ', le="+Inf"',
            'code!~"5.."',
        ),
        request_duration=(
            "sum(rate(skipper_serve_route_duration_seconds_sum{%(route)s}[{{ interval }}]))\n"
            "/\n"
            "sum(rate(skipper_serve_route_duration_seconds_count{%(route)s}[{{ interval }}]))\n"
            "* 1000" % {"route": _SKIPPER_ROUTE}
        ),
    )

    def _prepare(self, model: MetricTemplateModel) -> MetricTemplateModel:
        return encode_skipper_model(model)
