"""Keptn metrics provider.

Queries address Keptn custom resources through the Kubernetes API::

    keptnmetric/<namespace>/<name>
    analysis/<namespace>/<definition>/<duration>/<key=value;key=value>

A ``KeptnMetric`` answers with its ``status.value``. An ``analysis`` query
submits a new ``Analysis`` for the named definition, polls it until it
completes and answers ``1.0`` when it passed and ``0.0`` when it failed.
The submitted resource is deleted on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from enum import StrEnum
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from pydantic import BaseModel, Field

from canary_metrics.errors import ConfigurationError, QueryError, QueryTimeoutError
from canary_metrics.models import ProviderType
from canary_metrics.providers.values import single_value

logger = logging.getLogger("canary_metrics.providers.keptn")

GROUP = "metrics.keptn.sh"
VERSION = "v1beta1"
KEPTN_METRICS = "keptnmetrics"
ANALYSES = "analyses"

ANALYSIS_TIMEOUT_SECONDS = 10.0
POLL_INTERVAL_SECONDS = 1.0
DEFAULT_ANALYSIS_DURATION = "1m"

_KINDS = {
    "keptnmetric": KEPTN_METRICS,
    KEPTN_METRICS: KEPTN_METRICS,
    "analysis": ANALYSES,
    ANALYSES: ANALYSES,
}


class KeptnQuery(BaseModel):
    plural: str
    namespace: str
    name: str
    duration: str = DEFAULT_ANALYSIS_DURATION
    arguments: dict[str, str] = Field(default_factory=dict)


def parse_keptn_query(query: str) -> KeptnQuery:
    """Parse a lower-cased ``<kind>/<namespace>/<name>[/<duration>[/<args>]]`` query."""
    parts = query.strip().lower().split("/")
    if len(parts) < 3:
        raise QueryError(
            "unexpected query format, expected "
            "<keptnmetric|analysis>/<namespace>/<resourceName>/<duration>/<arguments>",
            query=query,
        )
    plural = _KINDS.get(parts[0])
    if plural is None:
        raise QueryError(
            "unexpected resource kind in query, must be one of: keptnmetric, analysis", query=query
        )

    parsed = KeptnQuery(plural=plural, namespace=parts[1], name=parts[2])
    if plural == ANALYSES:
        if len(parts) >= 4 and parts[3]:
            parsed.duration = parts[3]
        if len(parts) >= 5:
            for arg in parts[4].split(";"):
                key_value = arg.split("=")
                if len(key_value) == 2:
                    parsed.arguments[key_value[0]] = key_value[1]
    return parsed


class AnalysisState(StrEnum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"


class AnalysisRun:
    """Tracks one submitted Analysis through its states."""

    def __init__(self, query: KeptnQuery) -> None:
        self.query = query
        self.name = f"{query.name}-{uuid.uuid4().hex[:6]}"
        self.state = AnalysisState.SUBMITTED
        self.passed: bool | None = None

    def transition(self, state: AnalysisState) -> None:
        logger.debug("Analysis %s/%s: %s -> %s", self.query.namespace, self.name, self.state, state)
        self.state = state

    def body(self) -> dict[str, Any]:
        return {
            "apiVersion": f"{GROUP}/{VERSION}",
            "kind": "Analysis",
            "metadata": {"name": self.name, "namespace": self.query.namespace},
            "spec": {
                "analysisDefinition": {"name": self.query.name},
                "timeframe": {"recent": self.query.duration},
                "args": self.query.arguments,
            },
        }

    def observe(self, resource: dict[str, Any]) -> bool:
        """Record the polled resource; True once the analysis has a verdict."""
        status = resource.get("status") or {}
        if status.get("state") == "Completed" and isinstance(status.get("pass"), bool):
            self.passed = status["pass"]
            self.transition(AnalysisState.COMPLETED)
            return True
        return False


class KeptnProvider:
    provider_type = ProviderType.KEPTN

    def __init__(
        self,
        *,
        api: Any | None = None,
        kubeconfig: str | None = None,
        analysis_timeout: float = ANALYSIS_TIMEOUT_SECONDS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ) -> None:
        self._api = api
        self._kubeconfig = kubeconfig
        self.analysis_timeout = analysis_timeout
        self.poll_interval = poll_interval
        self._lock = asyncio.Lock()

    async def _custom_objects(self) -> Any:
        async with self._lock:
            if self._api is None:
                try:
                    if self._kubeconfig:
                        await asyncio.to_thread(config.load_kube_config, config_file=self._kubeconfig)
                    else:
                        await asyncio.to_thread(config.load_incluster_config)
                except ConfigException as exc:
                    source = self._kubeconfig or "in-cluster config"
                    raise ConfigurationError(
                        f"could not load Kubernetes configuration from {source}: {exc}"
                    ) from exc
                self._api = client.CustomObjectsApi()
            return self._api

    async def _call(self, description: str, query: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, GROUP, VERSION, *args)
        except ApiException as exc:
            raise QueryError(
                f"could not {description}: {exc.reason}",
                endpoint=f"{GROUP}/{VERSION}",
                status_code=exc.status,
                body=exc.body if isinstance(exc.body, str) else None,
                query=query,
            ) from exc

    async def run_query(self, query: str) -> float:
        parsed = parse_keptn_query(query)
        api = await self._custom_objects()
        if parsed.plural == KEPTN_METRICS:
            return await self._query_metric(api, parsed, query)
        return await self._query_analysis(api, parsed, query)

    async def _query_metric(self, api: Any, parsed: KeptnQuery, query: str) -> float:
        resource = await self._call(
            f"retrieve KeptnMetric {parsed.namespace}/{parsed.name}",
            query,
            api.get_namespaced_custom_object,
            parsed.namespace,
            KEPTN_METRICS,
            parsed.name,
        )
        return single_value((resource.get("status") or {}).get("value"))

    @asynccontextmanager
    async def _submitted(self, api: Any, run: AnalysisRun, query: str) -> AsyncIterator[AnalysisRun]:
        namespace = run.query.namespace
        await self._call(
            f"create Keptn Analysis {namespace}/{run.query.name}",
            query,
            api.create_namespaced_custom_object,
            namespace,
            ANALYSES,
            run.body(),
        )
        try:
            yield run
        finally:
            try:
                await self._call(
                    f"delete Keptn Analysis {namespace}/{run.name}",
                    query,
                    api.delete_namespaced_custom_object,
                    namespace,
                    ANALYSES,
                    run.name,
                )
            except QueryError as exc:
                logger.warning("Could not delete Keptn Analysis %s/%s: %s", namespace, run.name, exc)

    async def _query_analysis(self, api: Any, parsed: KeptnQuery, query: str) -> float:
        run = AnalysisRun(parsed)
        async with self._submitted(api, run, query):
            run.transition(AnalysisState.POLLING)
            try:
                async with asyncio.timeout(self.analysis_timeout):
                    while True:
                        await asyncio.sleep(self.poll_interval)
                        resource = await self._call(
                            f"check status of Keptn Analysis {parsed.namespace}/{run.name}",
                            query,
                            api.get_namespaced_custom_object,
                            parsed.namespace,
                            ANALYSES,
                            run.name,
                        )
                        if run.observe(resource):
                            break
            except TimeoutError as exc:
                run.transition(AnalysisState.TIMED_OUT)
                raise QueryTimeoutError(
                    f"timeout while waiting for Keptn Analysis {parsed.namespace}/{parsed.name} to finish",
                    endpoint=f"{GROUP}/{VERSION}",
                    query=query,
                ) from exc
        return 1.0 if run.passed else 0.0

    async def is_online(self) -> bool:
        return True
