"""Built-in success-rate and duration queries per service mesh."""

from canary_metrics.observers.factory import ObserverFactory, resolve_mesh
from canary_metrics.observers.observer import (
    DurationUnit,
    MeshObserver,
    Observer,
    ObserverQueries,
)

__all__ = [
    "DurationUnit",
    "MeshObserver",
    "Observer",
    "ObserverFactory",
    "ObserverQueries",
    "resolve_mesh",
]
