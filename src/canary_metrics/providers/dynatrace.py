"""Dynatrace metrics API v2 provider."""

from __future__ import annotations

import httpx
from pydantic import BaseModel, Field
from whenever import Instant

from canary_metrics.errors import ConfigurationError
from canary_metrics.intervals import window
from canary_metrics.models import Credentials, MetricTemplateProvider, ProviderType
from canary_metrics.providers.provider import HTTPProvider, require_credential, validate_address
from canary_metrics.providers.values import reduce_series

QUERY_PATH = "/api/v2/metrics/query"
VALIDATE_PATH = "/api/v2/metrics"

WINDOW_MULTIPLIER = 10


class _Data(BaseModel):
    timestamps: list[int] = Field(default_factory=list)
    values: list[float | None] = Field(default_factory=list)


class _Result(BaseModel):
    data: list[_Data] = Field(default_factory=list)


class _Response(BaseModel):
    result: list[_Result] = Field(default_factory=list)


class DynatraceProvider(HTTPProvider):
    """Runs metric selectors with ``resolution=Inf`` over ten analysis intervals.

    With an infinite resolution each series holds one aggregated value; the
    last series of the first result answers.
    """

    provider_type = ProviderType.DYNATRACE
    timeout = 5.0

    def __init__(
        self,
        spec: MetricTemplateProvider,
        credentials: Credentials | None = None,
        *,
        metric_interval: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(spec, transport=transport)
        if not spec.address:
            raise ConfigurationError("dynatrace endpoint is not set")
        address = validate_address(spec.address, self.provider_type)
        self._query_url = address + QUERY_PATH
        self._validate_url = address + VALIDATE_PATH
        token = require_credential(credentials, "dynatrace_token", self.provider_type)
        self._headers = {"Authorization": f"Api-Token {token}"}
        lookback = window(metric_interval, WINDOW_MULTIPLIER)
        self._from_delta_ms = lookback.total("nanoseconds") // 1_000_000

    async def run_query(self, query: str) -> float:
        now_ms = Instant.now().timestamp() * 1000
        response = await self._request(
            "GET",
            self._query_url,
            query=query,
            headers=self._headers,
            params={
                "metricSelector": query,
                "resolution": "Inf",
                "from": str(now_ms - self._from_delta_ms),
                "to": str(now_ms),
            },
        )
        result = self._decode(response, _Response, query)
        if not result.result:
            return reduce_series([])
        series = [d.values[:1] for d in result.result[0].data]
        return reduce_series(series, pick_series="last", pick_point="first")

    async def is_online(self) -> bool:
        await self._request("GET", self._validate_url, headers=self._headers, params={"pageSize": "1"})
        return True
