"""SigNoz query-range (v5) provider.

The query is the JSON request body for ``/api/v5/query_range`` and must
resolve to exactly one result holding exactly one series; its last value
answers.
"""

from __future__ import annotations

import json

import httpx
from pydantic import BaseModel, Field
from whenever import Instant

from canary_metrics.errors import MultipleValuesReturnedError, NoValuesFoundError, QueryError
from canary_metrics.models import Credentials, MetricTemplateProvider, ProviderType
from canary_metrics.providers.provider import HTTPProvider, require_credential, validate_address
from canary_metrics.providers.values import reduce_series

QUERY_PATH = "/api/v5/query_range"


class _Value(BaseModel):
    timestamp: int | None = None
    value: str | float | None = None


class _Series(BaseModel):
    labels: dict[str, str] = Field(default_factory=dict)
    values: list[_Value] = Field(default_factory=list)


class _Result(BaseModel):
    queryName: str = ""
    series: list[_Series] = Field(default_factory=list)


class _Data(BaseModel):
    result: list[_Result] = Field(default_factory=list)


class _Response(BaseModel):
    data: _Data = Field(default_factory=_Data)


def online_query(now: Instant) -> str:
    """A formula query evaluating to the constant 1 over the last minute."""
    end = now.timestamp() * 1000
    return json.dumps(
        {
            "start": end - 60_000,
            "end": end,
            "requestType": "time_series",
            "compositeQuery": {
                "queries": [
                    {
                        "type": "builder_formula",
                        "spec": {"name": "F1", "expression": "1", "disabled": False},
                    }
                ]
            },
        }
    )


class SignozProvider(HTTPProvider):
    provider_type = ProviderType.SIGNOZ
    timeout = 5.0

    def __init__(
        self,
        spec: MetricTemplateProvider,
        credentials: Credentials | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(spec, transport=transport)
        self._query_url = validate_address(spec.address, self.provider_type) + QUERY_PATH
        self._headers = {"Content-Type": "application/json"}
        if spec.secret_ref is not None:
            self._headers["SIGNOZ-API-KEY"] = require_credential(credentials, "apiKey", self.provider_type)

    async def run_query(self, query: str) -> float:
        response = await self._request(
            "POST", self._query_url, query=query, headers=self._headers, content=query
        )
        result = self._decode(response, _Response, query)
        results = result.data.result
        if not results:
            raise NoValuesFoundError()
        if len(results) > 1:
            raise MultipleValuesReturnedError(f"expected one result, got {len(results)}")
        series = [[v.value for v in s.values] for s in results[0].series]
        return reduce_series(series, allow_multiple=False)

    async def is_online(self) -> bool:
        query = online_query(Instant.now())
        value = await self.run_query(query)
        if value != 1.0:
            raise QueryError("value is not 1 for query: builder_formula 1", endpoint=self._query_url)
        return True
