"""Error taxonomy for metric analysis.

Four families, each distinguishable with ``except`` / ``isinstance``:

- ``ConfigurationError``: bad address, missing credential key, unparseable
  interval. Raised while building a provider or observer; never retried.
- ``TemplateError``: bad placeholder syntax or a missing variable. Raised per
  call at render time.
- ``NoValuesFoundError`` / ``MultipleValuesReturnedError``: the backend was
  reached but its response does not hold exactly one usable value.
- ``QueryError``: transport failures, non-2xx responses, undecodable bodies
  and timeouts. Carries the endpoint, status and a truncated body.

Credential values never appear in any message.
"""

from __future__ import annotations

_BODY_LIMIT = 512


def truncate(text: str, limit: int = _BODY_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "...(truncated)"


class MetricsError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(MetricsError, ValueError):
    """A provider, observer or interval could not be built from its configuration."""


class TemplateError(MetricsError, ValueError):
    """A query template could not be rendered."""

    def __init__(self, message: str, template: str | None = None) -> None:
        self.template = template
        super().__init__(message)


class MissingCredentialError(ConfigurationError):
    """A required key is absent from the credential bundle."""

    def __init__(self, key: str, provider_type: str) -> None:
        self.key = key
        self.provider_type = provider_type
        super().__init__(f"{provider_type} credentials does not contain the key '{key}'")


class NoValuesFoundError(MetricsError):
    """The backend answered, but with zero usable data points."""

    def __init__(self, message: str = "no values found") -> None:
        super().__init__(message)


class MultipleValuesReturnedError(MetricsError):
    """The backend answered with more than one series where one was expected."""

    def __init__(self, message: str = "multiple values returned") -> None:
        super().__init__(message)


class QueryError(MetricsError):
    """The backend could not be reached or returned something unusable."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
        query: str | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = truncate(body) if body is not None else None
        self.query = query
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.args[0] if self.args else "query failed"]
        if self.endpoint:
            parts.append(f"endpoint={self.endpoint}")
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.query:
            parts.append(f"query={self.query!r}")
        if self.body:
            parts.append(f"body={self.body!r}")
        return ", ".join(parts)


class QueryTimeoutError(QueryError, TimeoutError):
    """The backend did not answer within the provider's timeout."""
