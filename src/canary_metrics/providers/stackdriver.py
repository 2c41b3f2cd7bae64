"""Google Cloud Monitoring (Stackdriver) MQL provider."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from google.api_core import exceptions as gexc
from google.auth import exceptions as auth_exc
from google.cloud import monitoring_v3
from google.oauth2 import service_account

from canary_metrics.errors import ConfigurationError, QueryError, QueryTimeoutError
from canary_metrics.models import Credentials, MetricTemplateProvider, ProviderType
from canary_metrics.providers.provider import optional_credential, require_credential
from canary_metrics.providers.values import single_value

logger = logging.getLogger("canary_metrics.providers.stackdriver")

TIMEOUT_SECONDS = 30.0


class StackdriverProvider:
    """Runs MQL through the Cloud Monitoring QueryService.

    The gRPC client is created on first use and then shared by every call
    made through this provider. Without a ``serviceAccountKey`` the
    application default credentials are used.
    """

    provider_type = ProviderType.STACKDRIVER

    def __init__(
        self,
        spec: MetricTemplateProvider,
        credentials: Credentials | None = None,
        *,
        client: Any | None = None,
    ) -> None:
        self._project = ""
        self._sa_info: dict[str, Any] | None = None
        if spec.secret_ref is not None:
            self._project = f"projects/{require_credential(credentials, 'project', self.provider_type)}"
            key = optional_credential(credentials, "serviceAccountKey")
            if key is not None:
                try:
                    self._sa_info = json.loads(key)
                except json.JSONDecodeError as exc:
                    raise ConfigurationError("stackdriver serviceAccountKey is not valid JSON") from exc

        self._client = client
        self._lock = asyncio.Lock()

    async def _get_client(self) -> Any:
        async with self._lock:
            if self._client is None:
                try:
                    if self._sa_info is not None:
                        creds = service_account.Credentials.from_service_account_info(self._sa_info)
                        self._client = monitoring_v3.QueryServiceAsyncClient(credentials=creds)
                    else:
                        self._client = monitoring_v3.QueryServiceAsyncClient()
                except (auth_exc.GoogleAuthError, ValueError) as exc:
                    # ValueError: service account info missing required fields
                    raise ConfigurationError(
                        f"could not create stackdriver client: {type(exc).__name__}"
                    ) from exc
                logger.info("Created Cloud Monitoring query client for %s", self._project)
            return self._client

    async def _first_series(self, query: str) -> Any | None:
        client = await self._get_client()
        request = monitoring_v3.QueryTimeSeriesRequest(name=self._project, query=query)
        try:
            pager = await client.query_time_series(request=request, timeout=TIMEOUT_SECONDS)
            async for series in pager:
                return series
        except gexc.DeadlineExceeded as exc:
            raise QueryTimeoutError(
                "stackdriver request timed out", endpoint=self._project, query=query
            ) from exc
        except gexc.GoogleAPICallError as exc:
            raise QueryError(
                f"error requesting stackdriver: {exc.message}",
                endpoint=self._project,
                status_code=exc.code,
                query=query,
            ) from exc
        return None

    async def run_query(self, query: str) -> float:
        series = await self._first_series(query)
        if series is None or not series.point_data:
            return single_value(None)
        values = series.point_data[0].values
        if not values:
            return single_value(None)
        return single_value(_typed_value(values[0]))

    async def is_online(self) -> bool:
        try:
            await self._first_series("")
        except QueryError as exc:
            # an empty query is rejected as INVALID_ARGUMENT once auth succeeded
            if not isinstance(exc.__cause__, gexc.InvalidArgument):
                raise
        return True


def _typed_value(value: Any) -> Any:
    kind = monitoring_v3.TypedValue.pb(value).WhichOneof("value")
    if kind in ("double_value", "int64_value"):
        return getattr(value, kind)
    return None
