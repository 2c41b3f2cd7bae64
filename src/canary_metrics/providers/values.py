"""Shared reduction of backend responses to a single float.

Every provider decodes its own response shape, then hands the candidate
series to ``reduce_series`` so the empty / multi-valued / NaN rules are
applied the same way everywhere:

- no series, or no usable point in the chosen series -> ``NoValuesFoundError``
- more than one series when the backend must return one -> ``MultipleValuesReturnedError``
- ``None``, non-numeric strings and NaN are not usable values (never zero)
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Literal

from canary_metrics.errors import MultipleValuesReturnedError, NoValuesFoundError


def to_float(raw: Any) -> float | None:
    """Coerce a backend value to float, or ``None`` when it is not a usable number."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        try:
            value = float(raw.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(value):
        return None
    return value


def reduce_series(
    series: Sequence[Sequence[Any]],
    *,
    allow_multiple: bool = True,
    pick_series: Literal["first", "last"] = "first",
    pick_point: Literal["first", "last"] = "last",
) -> float:
    """Reduce a list of series (each a list of raw points) to one value.

    Args:
        series: Raw point values per series, oldest first.
        allow_multiple: When False, two or more series is an error.
        pick_series: Which series answers when several are allowed.
        pick_point: Which usable point of that series answers.
    """
    if not series:
        raise NoValuesFoundError()
    if len(series) > 1 and not allow_multiple:
        raise MultipleValuesReturnedError(f"expected one series, got {len(series)}")

    chosen = series[0] if pick_series == "first" else series[-1]
    points = [v for v in (to_float(p) for p in chosen) if v is not None]
    if not points:
        raise NoValuesFoundError()
    return points[0] if pick_point == "first" else points[-1]


def single_value(raw: Any) -> float:
    """Reduce one raw value, raising ``NoValuesFoundError`` when unusable."""
    value = to_float(raw)
    if value is None:
        raise NoValuesFoundError()
    return value


def last_usable(values: Iterable[Any]) -> float:
    """Last usable value across a flat stream of raw values."""
    found: float | None = None
    for raw in values:
        value = to_float(raw)
        if value is not None:
            found = value
    if found is None:
        raise NoValuesFoundError()
    return found


def find_result_value(data: Any, key: str = "results") -> float:
    """Find the first numeric leaf nested anywhere under ``key``.

    Used for backends whose result schema depends on the query (for example
    NRQL aggregate names). When ``key`` holds a list only its first entry is
    searched; nested lists are searched in order, mappings in insertion
    order. Raises ``NoValuesFoundError`` when ``key`` is missing or holds no
    number.
    """
    container = _find_key(data, key)
    if container is _MISSING:
        raise NoValuesFoundError(f"no '{key}' in response")
    if isinstance(container, list):
        container = container[:1]
    value = _first_number(container)
    if value is None:
        raise NoValuesFoundError(f"no numeric value under '{key}'")
    return value


_MISSING = object()


def _find_key(data: Any, key: str) -> Any:
    if isinstance(data, Mapping):
        if key in data:
            return data[key]
        for child in data.values():
            found = _find_key(child, key)
            if found is not _MISSING:
                return found
    elif isinstance(data, list):
        for child in data:
            found = _find_key(child, key)
            if found is not _MISSING:
                return found
    return _MISSING


def _first_number(data: Any) -> float | None:
    if isinstance(data, bool):
        return None
    if isinstance(data, (int, float)):
        return None if math.isnan(data) else float(data)
    if isinstance(data, Mapping):
        children: Iterable[Any] = data.values()
    elif isinstance(data, list):
        children = data
    else:
        return None
    for child in children:
        value = _first_number(child)
        if value is not None:
            return value
    return None
