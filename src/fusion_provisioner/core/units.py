"""Data-unit and time-period normalisation.

Size, bandwidth and IOPS limits may be written either as a bare integer in the
base unit or with a single unit suffix (``512G``, ``100M``).  Both forms must
normalise to the same stored integer so that drift and immutability checks
compare like with like.

Time periods use the compound ``1Y2W3D4H5M`` notation (minutes when no unit
is given) and travel on the wire as ISO-8601 minutes (``PT10M``).
"""

from __future__ import annotations

import re
from typing import Annotated, Any

from pydantic import BeforeValidator

BINARY = 1024
DECIMAL = 1000

_SUFFIX_POWERS: dict[str, int] = {"K": 1, "M": 2, "G": 3, "T": 4, "P": 5}
_DATA_UNIT_RE = re.compile(r"^(0|[1-9]\d*)([KMGTP]?)$")

_MINUTES_PER_UNIT: dict[str, int] = {
    "Y": 365 * 24 * 60,
    "W": 7 * 24 * 60,
    "D": 24 * 60,
    "H": 60,
    "M": 1,
}
_TIME_PERIOD_RE = re.compile(r"^(\d+Y)?(\d+W)?(\d+D)?(\d+H)?(\d+M)?$")
_ISO8601_MINUTES_RE = re.compile(r"^PT(\d+)M$")


def parse_data_units(value: int | str, factor: int, *, suffixes: str = "KMGTP") -> int:
    """Convert ``value`` to an integer in the base unit.

    Raises:
        ValueError: When the value is negative, malformed or uses a suffix
            outside ``suffixes``.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid data unit format: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"invalid data unit format: {value!r}")
        return value

    text = str(value).strip()
    match = _DATA_UNIT_RE.match(text)
    if match is None:
        raise ValueError(f"invalid data unit format: {value!r}")
    number, suffix = match.groups()
    if suffix and suffix not in suffixes:
        allowed = ", ".join(suffixes)
        raise ValueError(f"unit suffix '{suffix}' not allowed here (allowed: {allowed})")
    if not suffix:
        return int(number)
    return int(number) * factor ** _SUFFIX_POWERS[suffix]


def data_units(
    factor: int,
    *,
    suffixes: str = "KMGTP",
    minimum: int | None = None,
    maximum: int | None = None,
) -> BeforeValidator:
    """Build a pydantic ``BeforeValidator`` that normalises a data-unit field."""

    def _validate(value: Any) -> int | None:
        if value is None:
            return None
        converted = parse_data_units(value, factor, suffixes=suffixes)
        too_small = minimum is not None and converted < minimum
        too_large = maximum is not None and converted > maximum
        if too_small or too_large:
            raise ValueError(
                f"expected to be in the range ({minimum} - {maximum}), got {converted}"
            )
        return converted

    return BeforeValidator(_validate)


def parse_time_period(value: int | str) -> int:
    """Parse a human-readable time period (``2d``, ``3w5h``, ``90``) into minutes."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value).strip().upper()
    if not text:
        raise ValueError("wrong format, expected human-readable time period (e.g. 2d, 3w5h, 1Y32D)")
    if text.isdigit():
        return int(text)
    if _TIME_PERIOD_RE.match(text) is None:
        raise ValueError("wrong format, expected human-readable time period (e.g. 2d, 3w5h, 1Y32D)")

    minutes = 0
    for amount, unit in re.findall(r"(\d+)([YWDHM])", text):
        minutes += int(amount) * _MINUTES_PER_UNIT[unit]
    return minutes


def minutes_to_iso8601(minutes: int) -> str:
    return f"PT{minutes}M"


def iso8601_to_minutes(value: str) -> int:
    match = _ISO8601_MINUTES_RE.match(value)
    if match is None:
        raise ValueError(f"wrong format, expected ISO8601 minutes (e.g. PT10M), got {value!r}")
    return int(match.group(1))


Minutes = Annotated[int, BeforeValidator(parse_time_period)]
