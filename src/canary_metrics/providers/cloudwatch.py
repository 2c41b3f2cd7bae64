"""Amazon CloudWatch GetMetricData provider.

The query is a JSON list of ``MetricDataQuery`` objects, for example::

    [{"Id": "e1", "Expression": "m1 / m2", "Label": "ErrorRate"},
     {"Id": "m1", "MetricStat": {...}, "ReturnData": false}]

Keys are matched case-insensitively on their first letter, so ``"id"`` and
``"Id"`` are both accepted. The AWS default credential chain is used.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError
from whenever import Instant

from canary_metrics.errors import ConfigurationError, QueryError, QueryTimeoutError
from canary_metrics.intervals import window
from canary_metrics.models import MetricTemplateProvider, ProviderType
from canary_metrics.providers.values import reduce_series

logger = logging.getLogger("canary_metrics.providers.cloudwatch")

# botocore standard retry mode, three retries on throttling and transient errors
MAX_RETRIES = 3
MAX_DATAPOINTS = 20
WINDOW_MULTIPLIER = 10


def _client_config() -> Config:
    return Config(
        connect_timeout=5,
        read_timeout=10,
        retries={"max_attempts": MAX_RETRIES, "mode": "standard"},
    )


def _normalize_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {k[:1].upper() + k[1:]: _normalize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize_keys(v) for v in value]
    return value


class CloudWatchProvider:
    provider_type = ProviderType.CLOUDWATCH

    def __init__(
        self,
        spec: MetricTemplateProvider,
        *,
        metric_interval: str,
        client: Any | None = None,
    ) -> None:
        if not spec.region:
            raise ConfigurationError("cloudwatch region not specified")
        self._start_delta = window(metric_interval, WINDOW_MULTIPLIER)
        self._endpoint = f"cloudwatch.{spec.region}"
        self._client = client or boto3.client(
            "cloudwatch", region_name=spec.region, config=_client_config()
        )

    async def _get_metric_data(self, query: str | None, **params: Any) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(self._client.get_metric_data, **params)
        except (ConnectTimeoutError, ReadTimeoutError) as exc:
            raise QueryTimeoutError(
                "cloudwatch request timed out", endpoint=self._endpoint, query=query
            ) from exc
        except ClientError as exc:
            meta = exc.response.get("ResponseMetadata", {})
            raise QueryError(
                f"error requesting cloudwatch: {exc.response.get('Error', {}).get('Code', 'unknown')}",
                endpoint=self._endpoint,
                status_code=meta.get("HTTPStatusCode"),
                body=exc.response.get("Error", {}).get("Message"),
                query=query,
            ) from exc
        except BotoCoreError as exc:
            raise QueryError(
                f"error requesting cloudwatch: {type(exc).__name__}",
                endpoint=self._endpoint,
                query=query,
            ) from exc

    async def run_query(self, query: str) -> float:
        try:
            queries = _normalize_keys(json.loads(query))
        except json.JSONDecodeError as exc:
            raise QueryError(f"error unmarshaling query: {exc.msg}", query=query) from exc
        if not isinstance(queries, list):
            raise QueryError("cloudwatch query must be a JSON list of MetricDataQuery", query=query)

        end = Instant.now()
        start = end - self._start_delta
        result = await self._get_metric_data(
            query,
            MetricDataQueries=queries,
            StartTime=start.to_stdlib(),
            EndTime=end.to_stdlib(),
            MaxDatapoints=MAX_DATAPOINTS,
        )

        # values come newest first
        series = [r.get("Values", []) for r in result.get("MetricDataResults", [])]
        return reduce_series(series[:1], pick_point="first")

    async def is_online(self) -> bool:
        epoch = Instant.from_timestamp(0).to_stdlib()
        try:
            await self._get_metric_data(
                None, MetricDataQueries=[], StartTime=epoch, EndTime=epoch
            )
        except QueryError as exc:
            # an empty query is rejected with 400 once auth succeeded
            if exc.status_code != 400:
                raise
        return True
