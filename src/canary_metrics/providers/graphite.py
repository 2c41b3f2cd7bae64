"""Graphite render API provider.

The query is the render API's own query string, e.g.
``target=summarize(app.requests.5xx,'1min','sum')&from=-5min``. The value
is the last non-null datapoint across every returned target.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import parse_qsl

import httpx
from pydantic import BaseModel, Field, RootModel

from canary_metrics.errors import NoValuesFoundError
from canary_metrics.models import Credentials, MetricTemplateProvider, ProviderType
from canary_metrics.providers.provider import HTTPProvider, require_credential, validate_address
from canary_metrics.providers.values import last_usable

ONLINE_QUERY = "target=test"

_WHITESPACE = re.compile(r"\s+")


class _Target(BaseModel):
    target: str = ""
    datapoints: list[list[Any]] = Field(default_factory=list)


class _Response(RootModel[list[_Target]]):
    pass


class GraphiteProvider(HTTPProvider):
    provider_type = ProviderType.GRAPHITE
    timeout = 5.0

    def __init__(
        self,
        spec: MetricTemplateProvider,
        credentials: Credentials | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(spec, transport=transport)
        self._address = validate_address(spec.address, self.provider_type)
        self._basic_auth: tuple[str, str] | None = None
        if spec.secret_ref is not None:
            self._basic_auth = (
                require_credential(credentials, "username", self.provider_type),
                require_credential(credentials, "password", self.provider_type),
            )

    async def run_query(self, query: str) -> float:
        query = _WHITESPACE.sub(" ", query).strip()
        params = [(k, v) for k, v in parse_qsl(query, keep_blank_values=True) if k != "format"]
        params.append(("format", "json"))

        response = await self._request(
            "GET",
            f"{self._address}/render",
            query=query,
            params=params,
            auth=self._basic_auth,
        )
        targets = self._decode(response, _Response, query).root
        # datapoints are [value, timestamp]
        return last_usable(p[0] for t in targets for p in t.datapoints if p)

    async def is_online(self) -> bool:
        try:
            await self.run_query(ONLINE_QUERY)
        except NoValuesFoundError:
            pass
        return True
