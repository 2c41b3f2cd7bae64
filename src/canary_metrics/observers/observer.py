"""Observer contract and the shared render-then-query flow.

An observer knows the two built-in queries of one service mesh or ingress
controller ("request success rate" and "request duration"), renders them
for a canary and runs them through a provider. Success rate comes back as a
0-100 percentage straight from the query; duration is converted to a
``TimeDelta`` from the unit the mesh's query returns.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import ClassVar, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict
from whenever import TimeDelta

from canary_metrics.models import MeshProvider, MetricTemplateModel
from canary_metrics.providers.provider import MetricsProvider
from canary_metrics.render import render_query

logger = logging.getLogger("canary_metrics.observers")


class ObserverQueries(BaseModel):
    """The two query templates an observer owns."""

    model_config = ConfigDict(frozen=True)

    request_success_rate: str
    request_duration: str


class DurationUnit(StrEnum):
    MILLISECONDS = "ms"
    SECONDS = "s"


_MS_PER_UNIT = {DurationUnit.MILLISECONDS: 1.0, DurationUnit.SECONDS: 1000.0}


def to_duration(value: float, unit: DurationUnit) -> TimeDelta:
    """Convert a raw query result to whole milliseconds (truncated)."""
    return TimeDelta(milliseconds=int(value * _MS_PER_UNIT[unit]))


# ----------------------------------------------------------------------------
# PromQL builders shared by most meshes
# ----------------------------------------------------------------------------

_RANGE = "[{{ interval }}]"


def success_rate_query(metric: str, selector: str, success: str) -> str:
    """Percentage of requests matching ``success`` among all requests matching ``selector``."""
    return (
        "sum(rate(%s{%s, %s}%s))\n"
        "/\n"
        "sum(rate(%s{%s}%s))\n"
        "* 100" % (metric, selector, success, _RANGE, metric, selector, _RANGE)
    )


def p99_query(bucket_metric: str, selector: str) -> str:
    """99th percentile of a histogram, in the unit of its buckets."""
    return "histogram_quantile(0.99, sum(rate(%s{%s}%s)) by (le))" % (bucket_metric, selector, _RANGE)


@runtime_checkable
class Observer(Protocol):
    async def get_request_success_rate(self, model: MetricTemplateModel) -> float: ...

    async def get_request_duration(self, model: MetricTemplateModel) -> TimeDelta: ...


class MeshObserver:
    """Base for every mesh observer.

    Subclasses set ``mesh``, ``default_queries`` and, when their duration
    query does not return milliseconds, ``duration_unit``. Provider errors,
    including ``NoValuesFoundError`` and ``MultipleValuesReturnedError``,
    propagate unchanged.
    """

    mesh: ClassVar[MeshProvider]
    default_queries: ClassVar[ObserverQueries]
    duration_unit: ClassVar[DurationUnit] = DurationUnit.MILLISECONDS

    def __init__(self, client: MetricsProvider, queries: ObserverQueries | None = None) -> None:
        self.client = client
        self.queries = queries or self.default_queries

    def _prepare(self, model: MetricTemplateModel) -> MetricTemplateModel:
        """Hook for meshes whose metric labels need a transformed model."""
        return model

    def render_success_rate(self, model: MetricTemplateModel) -> str:
        return render_query(self.queries.request_success_rate, self._prepare(model))

    def render_duration(self, model: MetricTemplateModel) -> str:
        return render_query(self.queries.request_duration, self._prepare(model))

    async def get_request_success_rate(self, model: MetricTemplateModel) -> float:
        query = self.render_success_rate(model)
        logger.debug("%s success rate query: %s", self.mesh, query)
        return await self.client.run_query(query)

    async def get_request_duration(self, model: MetricTemplateModel) -> TimeDelta:
        query = self.render_duration(model)
        logger.debug("%s duration query: %s", self.mesh, query)
        value = await self.client.run_query(query)
        return to_duration(value, self.duration_unit)
