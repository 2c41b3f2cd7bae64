"""Threshold evaluation and check classification.

A check either completes, meaning a value was obtained and compared, or it
is inconclusive because the value could not be obtained. The reconcile
loop counts only completed-but-failed checks against the canary, so the two
must never be folded together: ``MetricCheckResult.outcome`` keeps them
apart and ``MetricCheckResult.error`` keeps the original exception.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from whenever import TimeDelta

from canary_metrics.errors import (
    ConfigurationError,
    MultipleValuesReturnedError,
    NoValuesFoundError,
    QueryError,
    TemplateError,
)
from canary_metrics.models import CanaryMetric

logger = logging.getLogger("canary_metrics.evaluation")


class CheckOutcome(StrEnum):
    PASSED = "passed"
    FAILED = "failed"
    NO_VALUES = "no-values"
    MULTIPLE_VALUES = "multiple-values"
    TEMPLATE_ERROR = "template-error"
    QUERY_ERROR = "query-error"
    CONFIGURATION_ERROR = "configuration-error"


# Most specific first: QueryTimeoutError is a QueryError.
_CLASSIFICATION: tuple[tuple[type[Exception], CheckOutcome], ...] = (
    (NoValuesFoundError, CheckOutcome.NO_VALUES),
    (MultipleValuesReturnedError, CheckOutcome.MULTIPLE_VALUES),
    (TemplateError, CheckOutcome.TEMPLATE_ERROR),
    (ConfigurationError, CheckOutcome.CONFIGURATION_ERROR),
    (QueryError, CheckOutcome.QUERY_ERROR),
)

_HANDLED = tuple(exc_type for exc_type, _ in _CLASSIFICATION)


class MetricCheckResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    metric: str
    outcome: CheckOutcome
    value: float | None = None
    message: str = ""
    error: Exception | None = Field(default=None, exclude=True)

    @property
    def completed(self) -> bool:
        """True when a value was obtained, whatever the verdict."""
        return self.outcome in (CheckOutcome.PASSED, CheckOutcome.FAILED)

    @property
    def passed(self) -> bool:
        return self.outcome is CheckOutcome.PASSED


def to_milliseconds(value: float | TimeDelta) -> float:
    if isinstance(value, TimeDelta):
        return value.total("nanoseconds") / 1_000_000
    return float(value)


def within_threshold(value: float, metric: CanaryMetric, *, lower_bound: bool = False) -> bool:
    """Compare ``value`` against the metric's bound.

    A range wins over a single threshold. A single threshold is an upper
    bound unless ``lower_bound`` is set, which the success-rate builtin uses.
    """
    if metric.threshold_range is not None:
        return metric.threshold_range.contains(value)
    if metric.threshold is None:
        raise ConfigurationError(f"metric '{metric.name}' has no threshold")
    if lower_bound:
        return value >= metric.threshold
    return value <= metric.threshold


def _describe_bound(metric: CanaryMetric, lower_bound: bool) -> str:
    if metric.threshold_range is not None:
        return f"range [{metric.threshold_range.min}, {metric.threshold_range.max}]"
    return f"{'minimum' if lower_bound else 'maximum'} {metric.threshold}"


def evaluate(
    metric: CanaryMetric,
    value: float | TimeDelta,
    *,
    lower_bound: bool = False,
) -> MetricCheckResult:
    """Turn an obtained value into a completed result.

    Durations are compared in milliseconds.
    """
    number = to_milliseconds(value)
    ok = within_threshold(number, metric, lower_bound=lower_bound)
    outcome = CheckOutcome.PASSED if ok else CheckOutcome.FAILED
    message = "" if ok else f"{metric.name} {number} outside {_describe_bound(metric, lower_bound)}"
    return MetricCheckResult(metric=metric.name, outcome=outcome, value=number, message=message)


def classify(exc: Exception) -> CheckOutcome:
    for exc_type, outcome in _CLASSIFICATION:
        if isinstance(exc, exc_type):
            return outcome
    raise TypeError(f"unclassified error type {type(exc).__name__}")


async def run_check(
    metric: CanaryMetric,
    fetch: Callable[[], Awaitable[float | TimeDelta]],
    *,
    lower_bound: bool = False,
) -> MetricCheckResult:
    """Obtain a value with ``fetch`` and evaluate it.

    Errors from this package become inconclusive results. Anything else,
    including cancellation, propagates.
    """
    try:
        value = await fetch()
    except _HANDLED as exc:
        outcome = classify(exc)
        logger.info("Metric %s inconclusive (%s): %s", metric.name, outcome, exc)
        return MetricCheckResult(metric=metric.name, outcome=outcome, message=str(exc), error=exc)

    result = evaluate(metric, value, lower_bound=lower_bound)
    if not result.passed:
        logger.info("Metric %s failed: %s", metric.name, result.message)
    return result
