"""Apache SkyWalking GraphQL provider.

The query is a GraphQL document taking a ``$duration: Duration!`` variable,
for example::

    query queryData($duration: Duration!) {
      service_apdex: readMetricsValues(
        condition: { name: "service_apdex", entity: { scope: Service, serviceName: "{{ service }}", normal: true } },
        duration: $duration) { label values { values { value } } }
    }

The duration covers one analysis interval at minute precision (UTC).
"""

from __future__ import annotations

from datetime import UTC
from typing import Any

import httpx
from pydantic import BaseModel, Field
from whenever import Instant

from canary_metrics.errors import QueryError
from canary_metrics.intervals import window
from canary_metrics.models import MetricTemplateProvider, ProviderType
from canary_metrics.providers.provider import HTTPProvider, validate_address
from canary_metrics.providers.values import single_value

HEALTH_PATH = "/internal/l7check"
GRAPHQL_PATH = "/graphql"

WINDOW_MULTIPLIER = 1
_MINUTE_FORMAT = "%Y-%m-%d %H%M"


class _Point(BaseModel):
    value: float | None = None


class _Values(BaseModel):
    values: list[_Point] = Field(default_factory=list)


class _Metric(BaseModel):
    label: str | None = None
    values: _Values = Field(default_factory=_Values)


class _GraphQLError(BaseModel):
    message: str = ""


class _Response(BaseModel):
    data: dict[str, _Metric | None] | None = None
    errors: list[_GraphQLError] = Field(default_factory=list)


def _minute(instant: Instant) -> str:
    return instant.to_stdlib().astimezone(UTC).strftime(_MINUTE_FORMAT)


class SkyWalkingProvider(HTTPProvider):
    provider_type = ProviderType.SKYWALKING
    timeout = 5.0

    def __init__(
        self,
        spec: MetricTemplateProvider,
        *,
        metric_interval: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(spec, transport=transport)
        self._address = validate_address(spec.address, self.provider_type)
        self._interval = window(metric_interval, WINDOW_MULTIPLIER)

    def _duration(self) -> dict[str, Any]:
        end = Instant.now()
        return {"start": _minute(end - self._interval), "end": _minute(end), "step": "MINUTE"}

    async def run_query(self, query: str) -> float:
        response = await self._request(
            "POST",
            self._address + GRAPHQL_PATH,
            query=query,
            json={"query": query, "variables": {"duration": self._duration()}},
        )
        result = self._decode(response, _Response, query)
        if result.errors:
            raise QueryError(
                f"skywalking query failed: {result.errors[0].message}",
                endpoint=self._address + GRAPHQL_PATH,
                status_code=response.status_code,
                body=response.text,
                query=query,
            )
        # first non-null value of any returned metric
        for metric in (result.data or {}).values():
            if metric is None:
                continue
            for point in metric.values.values:
                if point.value is not None:
                    return single_value(point.value)
        return single_value(None)

    async def is_online(self) -> bool:
        await self._request("GET", self._address + HEALTH_PATH, ok_statuses=(405,))
        return True
