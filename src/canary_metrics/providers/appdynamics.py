"""AppDynamics Cloud (Cisco Observability) provider.

UQL queries go to ``/monitoring/v1/query/execute`` with an OAuth2
client-credentials token. The tenant id needed for the token URL is looked
up from the tenant host name. Both the lookup and the token exchange happen
on first use, behind a lock, and the token is reused until shortly before it
expires.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from pydantic import BaseModel
from whenever import Instant, TimeDelta

from canary_metrics.errors import ConfigurationError, QueryError
from canary_metrics.models import Credentials, MetricTemplateProvider, ProviderType
from canary_metrics.providers.provider import HTTPProvider, require_credential, validate_address
from canary_metrics.providers.values import single_value

logger = logging.getLogger("canary_metrics.providers.appdynamics")

QUERY_PATH = "/monitoring/v1/query/execute"
TENANT_LOOKUP_URL = "https://observe-tenant-lookup-api.saas.appdynamics.com/tenants/lookup/"

_EXPIRY_MARGIN = TimeDelta(seconds=30)


class _Tenant(BaseModel):
    tenantId: str = ""


class _Token(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None


def extract_uql_value(body: Any) -> Any:
    """Last point of the first series in the last data chunk of a UQL response.

    A UQL response is a list of chunks; data chunks hold
    ``[[<source>, [[<time>, <value>], ...]], ...]``.
    """
    if not isinstance(body, list) or not body:
        return None
    last = body[-1]
    data = last.get("data") if isinstance(last, dict) else None
    if not isinstance(data, list) or not data:
        return None
    row = data[0]
    if not isinstance(row, list) or len(row) < 2 or not isinstance(row[1], list) or not row[1]:
        return None
    point = row[1][-1]
    if not isinstance(point, list) or len(point) < 2:
        return None
    return point[1]


class AppDynamicsCloudProvider(HTTPProvider):
    provider_type = ProviderType.APPDYNAMICS_CLOUD
    timeout = 5.0

    def __init__(
        self,
        spec: MetricTemplateProvider,
        credentials: Credentials | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(spec, transport=transport)
        if not spec.address:
            raise ConfigurationError("appdynamics cloud endpoint url address is not set")
        self._address = validate_address(spec.address, self.provider_type)
        self._query_url = self._address + QUERY_PATH
        self._client_id = require_credential(credentials, "appdcloud_client_secret_id", self.provider_type)
        self._client_secret = require_credential(
            credentials, "appdcloud_client_secret_key", self.provider_type
        )
        self._tenant_id: str | None = None
        self._token: str | None = None
        self._token_expires: Instant | None = None
        self._lock = asyncio.Lock()

    async def _lookup_tenant(self) -> str:
        host = httpx.URL(self._address).host
        response = await self._request("GET", TENANT_LOOKUP_URL + host)
        tenant = self._decode(response, _Tenant).tenantId
        if not tenant:
            raise QueryError(
                f"failed to retrieve tenant id for tenant URL address {self._address}",
                endpoint=TENANT_LOOKUP_URL,
                status_code=response.status_code,
                body=response.text,
            )
        return tenant

    async def _access_token(self) -> str:
        async with self._lock:
            if self._token and (self._token_expires is None or Instant.now() < self._token_expires):
                return self._token

            if self._tenant_id is None:
                self._tenant_id = await self._lookup_tenant()
                logger.info("Resolved AppDynamics tenant %s for %s", self._tenant_id, self._address)

            token_url = f"{self._address}/auth/{self._tenant_id}/default/oauth2/token"
            response = await self._request(
                "POST",
                token_url,
                data={"grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
            )
            token = self._decode(response, _Token)
            self._token = token.access_token
            self._token_expires = (
                Instant.now() + TimeDelta(seconds=token.expires_in) - _EXPIRY_MARGIN
                if token.expires_in
                else None
            )
            return self._token

    async def run_query(self, query: str) -> float:
        token = await self._access_token()
        response = await self._request(
            "POST",
            self._query_url,
            query=query,
            headers={"Authorization": f"Bearer {token}"},
            json={"query": query},
        )
        return single_value(extract_uql_value(self._json(response, query)))

    async def is_online(self) -> bool:
        await self._access_token()
        return True
