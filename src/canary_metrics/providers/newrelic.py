"""New Relic providers: the Insights query API and NerdGraph (GraphQL).

Both append ``SINCE <interval> seconds ago`` to the NRQL, a window of one
analysis interval.
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, Field

from canary_metrics.errors import ConfigurationError, QueryError
from canary_metrics.intervals import window
from canary_metrics.models import Credentials, MetricTemplateProvider, ProviderType
from canary_metrics.providers.provider import HTTPProvider, require_credential, validate_address
from canary_metrics.providers.values import find_result_value, single_value

WINDOW_MULTIPLIER = 1

# ---------------------------------------------------------------------------
# Insights API
# ---------------------------------------------------------------------------

INSIGHTS_DEFAULT_HOST = "https://insights-api.newrelic.com"
INSIGHTS_ONLINE_QUERY = "SELECT * FROM Metric"


class _InsightsResult(BaseModel):
    result: float | None = None


class _InsightsResponse(BaseModel):
    results: list[_InsightsResult] = Field(default_factory=list)


class NewRelicProvider(HTTPProvider):
    provider_type = ProviderType.NEWRELIC
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
        address = validate_address(spec.address, self.provider_type, default=INSIGHTS_DEFAULT_HOST)
        account_id = require_credential(credentials, "newrelic_account_id", self.provider_type)
        self._query_url = f"{address}/v1/accounts/{account_id}/query"
        self._headers = {
            "X-Query-Key": require_credential(credentials, "newrelic_query_key", self.provider_type)
        }
        self._since = int(window(metric_interval, WINDOW_MULTIPLIER).total("seconds"))

    async def _query(self, query: str) -> httpx.Response:
        nrql = f"{query} SINCE {self._since} seconds ago"
        return await self._request(
            "GET", self._query_url, query=nrql, headers=self._headers, params={"nrql": nrql}
        )

    async def run_query(self, query: str) -> float:
        response = await self._query(query)
        result = self._decode(response, _InsightsResponse, query)
        # anything but exactly one result row is treated as no data
        if len(result.results) != 1:
            return single_value(None)
        return single_value(result.results[0].result)

    async def is_online(self) -> bool:
        await self._query(INSIGHTS_ONLINE_QUERY)
        return True


# ---------------------------------------------------------------------------
# NerdGraph
# ---------------------------------------------------------------------------

NERDGRAPH_DEFAULT_HOST = "https://api.newrelic.com/graphql"
NERDGRAPH_ONLINE_QUERY = "{ actor { user { name } } }"

_NRQL_DOCUMENT = """
query ($query: Nrql!) {
  actor {
    account(id: %s) {
      nrql(query: $query) {
        results
      }
    }
  }
}"""


class _GraphQLError(BaseModel):
    message: str = ""


class _GraphQLResponse(BaseModel):
    data: dict[str, Any] | None = None
    errors: list[_GraphQLError] = Field(default_factory=list)


class NerdGraphProvider(HTTPProvider):
    """NRQL through the NerdGraph GraphQL API.

    The result row's keys depend on the NRQL (``average.duration``,
    ``percentile.duration`` and so on), so the value is the first number
    found under ``results``.
    """

    provider_type = ProviderType.NEWRELIC_NERDGRAPH
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
        self._endpoint = validate_address(spec.address, self.provider_type, default=NERDGRAPH_DEFAULT_HOST)
        self._headers = {
            "Api-Key": require_credential(credentials, "newrelic_api_key", self.provider_type),
            "Content-Type": "application/json",
        }
        account_id = require_credential(credentials, "newrelic_account_id", self.provider_type)
        if not account_id.strip().isdigit():
            raise ConfigurationError(f"newrelic account ID '{account_id}' is not a valid integer")
        self._document = _NRQL_DOCUMENT % int(account_id)
        self._since = int(window(metric_interval, WINDOW_MULTIPLIER).total("seconds"))

    async def _post(self, payload: dict[str, Any], query: str) -> _GraphQLResponse:
        response = await self._request(
            "POST", self._endpoint, query=query, headers=self._headers, json=payload
        )
        result = self._decode(response, _GraphQLResponse, query)
        if result.errors:
            raise QueryError(
                f"nerdgraph query failed: {result.errors[0].message}",
                endpoint=self._endpoint,
                status_code=response.status_code,
                body=response.text,
                query=query,
            )
        return result

    async def run_query(self, query: str) -> float:
        nrql = f"{query} SINCE {self._since} SECONDS ago"
        result = await self._post({"query": self._document, "variables": {"query": nrql}}, nrql)
        if result.data is None:
            raise QueryError("nerdgraph response has no data", endpoint=self._endpoint, query=nrql)
        return find_result_value(result.data)

    async def is_online(self) -> bool:
        await self._post({"query": NERDGRAPH_ONLINE_QUERY}, NERDGRAPH_ONLINE_QUERY)
        return True
