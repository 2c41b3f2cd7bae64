"""Duration strings used for analysis intervals ("30s", "1m", "1m30s", "1.5h")."""

from __future__ import annotations

import re

from whenever import TimeDelta

from canary_metrics.errors import ConfigurationError

DEFAULT_INTERVAL = "1m"

_NANOS_PER_UNIT: dict[str, int] = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_interval(value: str) -> TimeDelta:
    """Parse a duration string into a ``TimeDelta``.

    Accepts a sequence of decimal numbers with unit suffixes, optionally
    signed. ``"0"`` is the only unitless value allowed.
    """
    text = value.strip()
    if not text:
        raise ConfigurationError("interval is empty")

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return TimeDelta()

    nanos = 0
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        if match is None:
            raise ConfigurationError(f"invalid interval '{value}'")
        number, unit = match.groups()
        nanos += round(float(number) * _NANOS_PER_UNIT[unit])
        pos = match.end()

    return TimeDelta(nanoseconds=sign * nanos)


def window(value: str, multiplier: int) -> TimeDelta:
    """Look-back window of ``multiplier`` analysis intervals."""
    return parse_interval(value) * multiplier
