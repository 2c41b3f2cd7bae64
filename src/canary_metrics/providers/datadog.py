"""Datadog metrics query provider."""

from __future__ import annotations

import httpx
from pydantic import BaseModel, Field
from whenever import Instant

from canary_metrics.intervals import window
from canary_metrics.models import Credentials, MetricTemplateProvider, ProviderType
from canary_metrics.providers.provider import HTTPProvider, require_credential, validate_address
from canary_metrics.providers.values import reduce_series

DEFAULT_HOST = "https://api.datadoghq.com"
QUERY_PATH = "/api/v1/query"
VALIDATE_PATH = "/api/v1/validate"

API_KEY_SECRET = "datadog_api_key"
APPLICATION_KEY_SECRET = "datadog_application_key"

# look back ten analysis intervals
WINDOW_MULTIPLIER = 10


class _Series(BaseModel):
    pointlist: list[list[float | None]] = Field(default_factory=list)


class _Response(BaseModel):
    series: list[_Series] = Field(default_factory=list)


class DatadogProvider(HTTPProvider):
    provider_type = ProviderType.DATADOG
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
        address = validate_address(spec.address, self.provider_type, default=DEFAULT_HOST)
        self._query_url = address + QUERY_PATH
        self._validate_url = address + VALIDATE_PATH
        self._headers = {
            "DD-API-KEY": require_credential(credentials, API_KEY_SECRET, self.provider_type),
            "DD-APPLICATION-KEY": require_credential(
                credentials, APPLICATION_KEY_SECRET, self.provider_type
            ),
        }
        self._from_delta = int(window(metric_interval, WINDOW_MULTIPLIER).total("seconds"))

    async def run_query(self, query: str) -> float:
        now = Instant.now().timestamp()
        response = await self._request(
            "GET",
            self._query_url,
            query=query,
            headers=self._headers,
            params={"query": query, "from": str(now - self._from_delta), "to": str(now)},
        )
        result = self._decode(response, _Response, query)
        if not result.series:
            return reduce_series([])
        # pointlist entries are [timestamp, value]
        points = [p[1] if len(p) > 1 else None for p in result.series[0].pointlist]
        return reduce_series([points])

    async def is_online(self) -> bool:
        await self._request("GET", self._validate_url, headers=self._headers)
        return True
