"""Provider contract and the shared HTTP plumbing behind most backends.

A provider executes an already-rendered query against one backend and
reduces the response to a float. Providers are built once per metric
template and then reused by many concurrent analyses, so instances keep no
per-call mutable state: every HTTP call opens its own ``httpx.AsyncClient``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, ClassVar, Protocol, TypeVar, runtime_checkable

import httpx
from pydantic import BaseModel, ValidationError

from canary_metrics.errors import (
    ConfigurationError,
    MissingCredentialError,
    QueryError,
    QueryTimeoutError,
)
from canary_metrics.models import Credentials, MetricTemplateProvider

logger = logging.getLogger("canary_metrics.providers")

ModelT = TypeVar("ModelT", bound=BaseModel)


@runtime_checkable
class MetricsProvider(Protocol):
    """What every backend adapter implements."""

    async def run_query(self, query: str) -> float:
        """Run a rendered query and return its single value."""
        ...

    async def is_online(self) -> bool:
        """Probe reachability and auth; returns True or raises."""
        ...


def require_credential(credentials: Credentials | None, key: str, provider_type: str) -> str:
    """Read one required key from a credential bundle as text."""
    if not credentials or key not in credentials:
        raise MissingCredentialError(key, provider_type)
    return decode_secret(credentials[key])


def optional_credential(credentials: Credentials | None, key: str) -> str | None:
    if not credentials or key not in credentials:
        return None
    return decode_secret(credentials[key])


def decode_secret(value: bytes | str) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


def validate_address(address: str, provider_type: str, *, default: str | None = None) -> str:
    """Check that ``address`` is an absolute http(s) URL; return it without a trailing slash."""
    address = address.strip() or (default or "")
    if not address:
        raise ConfigurationError(f"{provider_type} address is not set")
    try:
        url = httpx.URL(address)
    except httpx.InvalidURL as exc:
        raise ConfigurationError(f"{provider_type} address {address} is not a valid URL") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigurationError(f"{provider_type} address {address} is not a valid URL")
    return address.rstrip("/")


def endpoint_of(url: httpx.URL) -> str:
    """URL without query string or userinfo, safe to put in error messages."""
    port = f":{url.port}" if url.port else ""
    return f"{url.scheme}://{url.host}{port}{url.path}"


class HTTPProvider:
    """Base for providers that talk to their backend over HTTP.

    Subclasses set ``provider_type`` and ``timeout`` and call ``_request``;
    the base applies the provider spec's custom headers, the TLS override and the
    mapping of transport failures to ``QueryError``.
    """

    provider_type: ClassVar[str]
    timeout: ClassVar[float] = 5.0

    def __init__(
        self,
        spec: MetricTemplateProvider,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._spec_headers = dict(spec.headers)
        self._verify = not spec.insecure_skip_verify
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            verify=self._verify,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        url: str,
        *,
        query: str | None = None,
        headers: Mapping[str, str] | None = None,
        ok_statuses: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request; non-2xx (outside ``ok_statuses``) raises ``QueryError``."""
        merged = {**self._spec_headers, **(headers or {})}
        async with self._client() as client:
            try:
                response = await client.request(method, url, headers=merged, **kwargs)
            except httpx.TimeoutException as exc:
                raise QueryTimeoutError(
                    f"{self.provider_type} request timed out after {self.timeout:g}s",
                    endpoint=_endpoint_from_error(exc, url),
                    query=query,
                ) from exc
            except httpx.HTTPError as exc:
                raise QueryError(
                    f"{self.provider_type} request failed: {type(exc).__name__}",
                    endpoint=_endpoint_from_error(exc, url),
                    query=query,
                ) from exc

        if not response.is_success and response.status_code not in ok_statuses:
            raise QueryError(
                f"{self.provider_type} error response",
                endpoint=endpoint_of(response.request.url),
                status_code=response.status_code,
                body=response.text,
                query=query,
            )
        return response

    def _decode(self, response: httpx.Response, model: type[ModelT], query: str | None = None) -> ModelT:
        """Decode a JSON body into a typed model, mapping failures to ``QueryError``."""
        try:
            return model.model_validate_json(response.content)
        except ValidationError as exc:
            raise QueryError(
                f"error unmarshaling {self.provider_type} response: {exc.error_count()} errors",
                endpoint=endpoint_of(response.request.url),
                status_code=response.status_code,
                body=response.text,
                query=query,
            ) from exc

    def _json(self, response: httpx.Response, query: str | None = None) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise QueryError(
                f"error unmarshaling {self.provider_type} response",
                endpoint=endpoint_of(response.request.url),
                status_code=response.status_code,
                body=response.text,
                query=query,
            ) from exc


def _endpoint_from_error(exc: httpx.HTTPError, fallback: str) -> str:
    try:
        return endpoint_of(exc.request.url)
    except RuntimeError:
        return endpoint_of(httpx.URL(fallback))
