"""Kubernetes external metrics API provider.

The query is the path below ``/namespaces/``, for example
``default/http_requests_per_second?labelSelector=app%3Dpodinfo``.
Values are Kubernetes quantities (``"250m"``, ``"1.5k"``).
"""

from __future__ import annotations

import asyncio
from decimal import InvalidOperation
from pathlib import Path

import httpx
from kubernetes.utils.quantity import parse_quantity
from pydantic import BaseModel, Field

from canary_metrics.errors import ConfigurationError, NoValuesFoundError, QueryError, QueryTimeoutError
from canary_metrics.models import Credentials, MetricTemplateProvider, ProviderType
from canary_metrics.providers.provider import HTTPProvider, optional_credential, validate_address

API_PATH = "/apis/external.metrics.k8s.io/v1beta1"
SERVICE_ACCOUNT_TOKEN = Path("/var/run/secrets/kubernetes.io/serviceaccount/token")


class _Item(BaseModel):
    metricName: str = ""
    value: str


class _ValueList(BaseModel):
    items: list[_Item] = Field(default_factory=list)


class ExternalMetricsProvider(HTTPProvider):
    """Reads ``ExternalMetricValueList`` objects; the first item answers.

    The bearer token is the ``token`` credential, or the pod's service
    account token when the bundle has none.
    """

    provider_type = ProviderType.EXTERNAL_METRICS
    timeout = 5.0

    def __init__(
        self,
        spec: MetricTemplateProvider,
        credentials: Credentials | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        token_path: Path = SERVICE_ACCOUNT_TOKEN,
    ) -> None:
        super().__init__(spec, transport=transport)
        if not spec.address:
            raise ConfigurationError("the URL of the external metric service must be provided")
        self._address = validate_address(spec.address, self.provider_type)
        self._api_url = self._address + API_PATH

        token = optional_credential(credentials, "token")
        if token is None:
            try:
                token = token_path.read_text()
            except OSError as exc:
                raise ConfigurationError(f"error reading service account token: {exc.strerror}") from exc
            if not token:
                raise ConfigurationError("pod's service account token is empty")
        self._headers = {"Authorization": f"Bearer {token.strip()}"}

    async def run_query(self, query: str) -> float:
        response = await self._request(
            "GET", f"{self._api_url}/namespaces/{query.strip()}", query=query, headers=self._headers
        )
        result = self._decode(response, _ValueList, query)
        if not result.items:
            raise NoValuesFoundError()
        try:
            return float(parse_quantity(result.items[0].value))
        except (ValueError, InvalidOperation) as exc:
            raise NoValuesFoundError(f"unparseable quantity {result.items[0].value!r}") from exc

    async def is_online(self) -> bool:
        url = httpx.URL(self._address)
        port = url.port or (443 if url.scheme == "https" else 80)
        try:
            async with asyncio.timeout(self.timeout):
                _, writer = await asyncio.open_connection(url.host, port)
        except TimeoutError as exc:
            raise QueryTimeoutError("connection timed out", endpoint=self._address) from exc
        except OSError as exc:
            raise QueryError(f"connection failed: {exc.strerror or exc}", endpoint=self._address) from exc
        writer.close()
        await writer.wait_closed()
        return True
