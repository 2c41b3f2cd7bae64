"""InfluxDB 2.x Flux provider.

Flux queries go to ``/api/v2/query`` and come back as annotated CSV. The
value is ``_value`` of the first record of the first table.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterator

import httpx

from canary_metrics.errors import QueryError
from canary_metrics.models import Credentials, MetricTemplateProvider, ProviderType
from canary_metrics.providers.provider import HTTPProvider, require_credential, validate_address
from canary_metrics.providers.values import single_value

ONLINE_QUERY = 'from(bucket: "default") |> range(start: -2h)'

_DIALECT = {
    "header": True,
    "delimiter": ",",
    "annotations": ["datatype", "group", "default"],
}


def parse_annotated_csv(
    text: str, *, endpoint: str | None = None, query: str | None = None
) -> Iterator[dict[str, str]]:
    """Yield each record of an annotated CSV response as a column -> cell dict.

    Annotation rows start with ``#``; a blank line ends a table, and the
    next non-annotation row is the new table's header. An error table
    (``error,reference`` columns) raises ``QueryError``.
    """
    header: list[str] | None = None
    for row in csv.reader(io.StringIO(text)):
        if not row or all(not cell for cell in row):
            header = None
            continue
        if row[0].startswith("#"):
            header = None
            continue
        if header is None:
            header = row
            continue
        record = dict(zip(header, row, strict=False))
        if "error" in header and "_value" not in header:
            raise QueryError(
                f"influxdb query error: {record.get('error', '')}",
                endpoint=endpoint,
                body=text,
                query=query,
            )
        yield record


class InfluxDBProvider(HTTPProvider):
    provider_type = ProviderType.INFLUXDB
    timeout = 15.0

    def __init__(
        self,
        spec: MetricTemplateProvider,
        credentials: Credentials | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(spec, transport=transport)
        self._query_url = validate_address(spec.address, self.provider_type) + "/api/v2/query"
        self._org = ""
        self._headers = {"Accept": "application/csv", "Content-Type": "application/json"}
        if spec.secret_ref is not None:
            token = require_credential(credentials, "token", self.provider_type)
            self._org = require_credential(credentials, "org", self.provider_type)
            self._headers["Authorization"] = f"Token {token}"

    async def _records(self, query: str) -> Iterator[dict[str, str]]:
        response = await self._request(
            "POST",
            self._query_url,
            query=query,
            headers=self._headers,
            params={"org": self._org},
            json={"query": query, "type": "flux", "dialect": _DIALECT},
        )
        return parse_annotated_csv(response.text, endpoint=self._query_url, query=query)

    async def run_query(self, query: str) -> float:
        first = next(await self._records(query), None)
        return single_value(first.get("_value") if first else None)

    async def is_online(self) -> bool:
        # drain the stream so an error table still raises
        list(await self._records(ONLINE_QUERY))
        return True
