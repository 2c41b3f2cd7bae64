"""Prometheus instant-query provider.

Also the default backend: unknown or empty provider types resolve here, and
the mesh observers run their built-in queries through it.
"""

from __future__ import annotations

import logging
import re

import httpx
from pydantic import BaseModel, Field

from canary_metrics.errors import QueryError
from canary_metrics.models import Credentials, MetricTemplateProvider, ProviderType
from canary_metrics.providers.provider import (
    HTTPProvider,
    optional_credential,
    require_credential,
    validate_address,
)
from canary_metrics.providers.values import reduce_series

logger = logging.getLogger("canary_metrics.providers.prometheus")

ONLINE_QUERY = "vector(1)"

_WHITESPACE = re.compile(r"\s+")


class _Sample(BaseModel):
    value: list[float | str | None] = Field(default_factory=list)


class _Data(BaseModel):
    result: list[_Sample] = Field(default_factory=list)


class _Response(BaseModel):
    status: str = "success"
    data: _Data = Field(default_factory=_Data)


class PrometheusProvider(HTTPProvider):
    """Runs PromQL through ``/api/v1/query``.

    Auth is taken from the credential bundle only when the provider spec
    references a secret: a ``token`` key selects bearer auth, otherwise
    ``username`` and ``password`` are both required.
    """

    provider_type = ProviderType.PROMETHEUS
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
        self._token: str | None = None
        self._basic_auth: tuple[str, str] | None = None

        if spec.secret_ref is not None:
            self._token = optional_credential(credentials, "token")
            if self._token is None:
                self._basic_auth = (
                    require_credential(credentials, "username", self.provider_type),
                    require_credential(credentials, "password", self.provider_type),
                )

    @property
    def address(self) -> str:
        return self._address

    async def run_query(self, query: str) -> float:
        query = _WHITESPACE.sub(" ", query).strip()
        headers: dict[str, str] = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        response = await self._request(
            "GET",
            f"{self._address}/api/v1/query",
            query=query,
            params={"query": query},
            headers=headers,
            auth=self._basic_auth,
        )
        result = self._decode(response, _Response, query)
        if result.status != "success":
            raise QueryError(
                f"prometheus query status {result.status}",
                endpoint=f"{self._address}/api/v1/query",
                status_code=response.status_code,
                body=response.text,
                query=query,
            )

        # value is [timestamp, "<number>"]; the last series wins
        series = [[s.value[1]] if len(s.value) > 1 else [] for s in result.data.result]
        return reduce_series(series, pick_series="last")

    async def is_online(self) -> bool:
        value = await self.run_query(ONLINE_QUERY)
        if value != 1.0:
            raise QueryError(f"value is not 1 for query: {ONLINE_QUERY}", endpoint=self._address)
        return True
