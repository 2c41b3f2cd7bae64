"""Pytest configuration and fixtures for the canary metrics tests."""

import pytest

from canary_metrics.models import MetricTemplateModel


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def model() -> MetricTemplateModel:
    """A canary model as the reconcile loop would build it for podinfo."""
    return MetricTemplateModel(
        name="podinfo",
        namespace="test",
        target="podinfo",
        service="podinfo",
        ingress="podinfo",
        interval="1m",
    )
