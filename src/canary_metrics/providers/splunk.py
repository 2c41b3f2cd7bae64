"""Splunk Observability (SignalFx) SignalFlow provider.

Programs are executed through the SignalFlow REST endpoint, which streams
the computation back as server-sent events. ``data`` messages carry
``{"tsId": ..., "value": ...}`` payloads; the program must publish exactly
one time series.

The configured address may be either the API host (``api.<realm>``) or the
stream host (``stream.<realm>``); each call is routed to the right one.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from whenever import Instant

from canary_metrics.errors import (
    ConfigurationError,
    MultipleValuesReturnedError,
    QueryError,
    QueryTimeoutError,
)
from canary_metrics.intervals import window
from canary_metrics.models import Credentials, MetricTemplateProvider, ProviderType
from canary_metrics.providers.provider import (
    HTTPProvider,
    endpoint_of,
    require_credential,
    validate_address,
)
from canary_metrics.providers.values import last_usable

logger = logging.getLogger("canary_metrics.providers.splunk")

EXECUTE_PATH = "/v2/signalflow/execute"
VALIDATE_PATH = "/v2/metric"

WINDOW_MULTIPLIER = 10


def _host_urls(address: str) -> tuple[str, str]:
    """Return (stream base, api base) for a SignalFx realm address."""
    if address.startswith("wss://"):
        address = "https://" + address.removeprefix("wss://")
    elif address.startswith("ws://"):
        address = "http://" + address.removeprefix("ws://")
    return address.replace("api", "stream", 1), address.replace("stream", "api", 1)


async def _server_sent_events(response: httpx.Response) -> AsyncIterator[tuple[str, str]]:
    event, data = "message", []
    async for line in response.aiter_lines():
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
        elif line.startswith(":"):
            continue
        elif line.startswith("event:"):
            event = line[6:].strip()
        elif line.startswith("data:"):
            data.append(line[5:].removeprefix(" "))
    if data:
        yield event, "\n".join(data)


class SplunkProvider(HTTPProvider):
    provider_type = ProviderType.SPLUNK
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
        if not spec.address:
            raise ConfigurationError("splunk endpoint is not set")
        stream, api = _host_urls(spec.address.strip())
        self._execute_url = validate_address(stream, self.provider_type) + EXECUTE_PATH
        self._validate_url = validate_address(api, self.provider_type) + VALIDATE_PATH
        self._token = require_credential(credentials, "sf_token_key", self.provider_type)
        lookback = window(metric_interval, WINDOW_MULTIPLIER)
        self._from_delta_ms = lookback.total("nanoseconds") // 1_000_000

    async def _payloads(self, program: str) -> list[dict[str, Any]]:
        now_ms = Instant.now().timestamp() * 1000
        params = {
            "start": str(now_ms - self._from_delta_ms),
            "stop": str(now_ms),
            "immediate": "true",
        }
        headers = {
            **self._spec_headers,
            "X-SF-Token": self._token,
            "Content-Type": "text/plain",
            "Accept": "text/event-stream",
        }
        payloads: list[dict[str, Any]] = []
        try:
            async with asyncio.timeout(self.timeout), self._client() as client:
                async with client.stream(
                    "POST", self._execute_url, params=params, headers=headers, content=program
                ) as response:
                    if not response.is_success:
                        await response.aread()
                        raise QueryError(
                            "splunk error response",
                            endpoint=endpoint_of(response.request.url),
                            status_code=response.status_code,
                            body=response.text,
                            query=program,
                        )
                    async for event, data in _server_sent_events(response):
                        payloads.extend(self._handle_event(event, data, program))
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise QueryTimeoutError(
                f"splunk computation did not finish within {self.timeout:g}s",
                endpoint=self._execute_url,
                query=program,
            ) from exc
        except httpx.HTTPError as exc:
            raise QueryError(
                f"splunk request failed: {type(exc).__name__}",
                endpoint=self._execute_url,
                query=program,
            ) from exc
        return payloads

    def _handle_event(self, event: str, data: str, program: str) -> list[dict[str, Any]]:
        try:
            message = json.loads(data)
        except json.JSONDecodeError as exc:
            raise QueryError(
                "error unmarshaling splunk message", endpoint=self._execute_url, body=data, query=program
            ) from exc
        if not isinstance(message, dict):
            raise QueryError(
                "unexpected splunk message, expected a JSON object",
                endpoint=self._execute_url,
                body=data,
                query=program,
            )
        kind = message.get("type", event)
        if kind == "error" or event == "error":
            raise QueryError(
                f"error executing query: {message.get('message', message.get('error', 'unknown'))}",
                endpoint=self._execute_url,
                body=data,
                query=program,
            )
        if kind == "data":
            points = message.get("data") or []
            if not isinstance(points, list):
                raise QueryError(
                    "unexpected splunk data message",
                    endpoint=self._execute_url,
                    body=data,
                    query=program,
                )
            return [p for p in points if isinstance(p, dict) and p.get("value") is not None]
        return []

    async def run_query(self, query: str) -> float:
        payloads = await self._payloads(query)
        if len({p.get("tsId") for p in payloads}) > 1:
            raise MultipleValuesReturnedError("splunk program published more than one time series")
        return last_usable(p.get("value") for p in payloads)

    async def is_online(self) -> bool:
        await self._request(
            "GET", self._validate_url, headers={"X-SF-Token": self._token}, params={"limit": "1"}
        )
        return True
