"""Data model for metric analysis.

Everything here is plain configuration or per-evaluation data. Nothing is
persisted: provider specs and credential bundles are read once to build a
long-lived provider, while ``MetricTemplateModel`` is built fresh for every
analysis tick and dropped right after.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from canary_metrics.intervals import DEFAULT_INTERVAL

Credentials = dict[str, bytes]
"""Opaque secret key -> byte value, as read from a Kubernetes secret."""


class ProviderType(StrEnum):
    PROMETHEUS = "prometheus"
    DATADOG = "datadog"
    CLOUDWATCH = "cloudwatch"
    STACKDRIVER = "stackdriver"
    NEWRELIC = "newrelic"
    NEWRELIC_NERDGRAPH = "newrelic-nerdgraph"
    DYNATRACE = "dynatrace"
    GRAPHITE = "graphite"
    INFLUXDB = "influxdb"
    SPLUNK = "splunk"
    SKYWALKING = "skywalking"
    KEPTN = "keptn"
    EXTERNAL_METRICS = "external-metrics"
    APPDYNAMICS_CLOUD = "appdynamicscloud"
    SIGNOZ = "signoz"


class MeshProvider(StrEnum):
    ISTIO = "istio"
    LINKERD = "linkerd"
    APPMESH = "appmesh"
    CONTOUR = "contour"
    GLOO = "gloo"
    NGINX = "nginx"
    KUBERNETES = "kubernetes"
    SKIPPER = "skipper"
    TRAEFIK = "traefik"
    KUMA = "kuma"
    APISIX = "apisix"
    CONSUL = "consul"
    CROSSOVER = "crossover"
    CROSSOVER_SERVICE = "crossover:service"


class MetricTemplateModel(BaseModel):
    """Substitution context for one render of a query template."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    namespace: str = ""
    target: str = ""
    service: str = ""
    ingress: str = ""
    interval: str = DEFAULT_INTERVAL
    variables: dict[str, str] = Field(default_factory=dict)


class MetricTemplateProvider(BaseModel):
    """Backend selection and connection info for a metric template."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(default="", description="Provider tag; unknown or empty means prometheus")
    address: str = ""
    region: str = ""
    secret_ref: str | None = Field(
        default=None, description="Name of the secret holding the credential bundle"
    )
    headers: dict[str, str] = Field(default_factory=dict)
    insecure_skip_verify: bool = False


class ThresholdRange(BaseModel):
    """Inclusive acceptance band; either bound may be absent."""

    min: float | None = None
    max: float | None = None

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


class MetricTemplateRef(BaseModel):
    name: str
    namespace: str | None = None


class MetricTemplate(BaseModel):
    """A reusable query bound to one backend."""

    name: str
    namespace: str = ""
    provider: MetricTemplateProvider = Field(default_factory=MetricTemplateProvider)
    query: str


class CanaryMetric(BaseModel):
    """One entry in a canary analysis."""

    name: str
    interval: str | None = None
    threshold: float | None = None
    threshold_range: ThresholdRange | None = None
    query: str | None = Field(default=None, description="Inline query run against the mesh metrics server")
    template_ref: MetricTemplateRef | None = None
    template_variables: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _require_bound(self) -> CanaryMetric:
        if self.threshold is None and self.threshold_range is None:
            raise ValueError(f"metric '{self.name}' needs a threshold or a threshold_range")
        return self

    @property
    def effective_interval(self) -> str:
        return self.interval or DEFAULT_INTERVAL
