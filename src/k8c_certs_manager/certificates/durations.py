"""Duration strings used by Certificate specs.

``renewBefore`` and the computed ``validityInHours`` use the duration syntax
Kubernetes users already know from ``metav1.Duration`` fields (``300ms``,
``5m``, ``1h30m``). ``validity`` additionally accepts days and years.
"""

from __future__ import annotations

import re
from datetime import timedelta
from decimal import Decimal, InvalidOperation

_UNITS: dict[str, Decimal] = {
    "ns": Decimal(1),
    "us": Decimal(1_000),
    "µs": Decimal(1_000),  # micro sign
    "μs": Decimal(1_000),  # Greek mu
    "ms": Decimal(1_000_000),
    "s": Decimal(1_000_000_000),
    "m": Decimal(60 * 1_000_000_000),
    "h": Decimal(3600 * 1_000_000_000),
}
_COMPONENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_MAX_NANOSECONDS = 2**63 - 1
_DIGITS = re.compile(r"\d+", re.ASCII)

HOURS_PER_DAY = 24
HOURS_PER_YEAR = 365 * HOURS_PER_DAY

DEFAULT_RENEW_BEFORE = "5m"
MINIMUM_RENEW_BEFORE = timedelta(minutes=5)


def parse_duration(value: str) -> timedelta:
    """Parse a unit-suffixed duration string such as ``1h30m``.

    A duration is an optionally signed sequence of decimal numbers, each with
    an optional fraction and a unit suffix (``ns``, ``us``, ``ms``, ``s``,
    ``m``, ``h``). ``"0"`` is accepted on its own.

    Raises:
        ValueError: If the string is not a valid duration or exceeds the
            range of a 64-bit nanosecond count.
    """
    if not isinstance(value, str):
        raise ValueError(f"invalid duration {value!r}")

    text = value
    negative = False
    if text[:1] in ("+", "-"):
        negative = text[0] == "-"
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    total = Decimal(0)
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        try:
            total += Decimal(match.group(1)) * _UNITS[match.group(2)]
        except InvalidOperation as e:
            raise ValueError(f"invalid duration {value!r}") from e
        pos = match.end()

    nanoseconds = int(total)
    if nanoseconds > _MAX_NANOSECONDS:
        raise ValueError(f"invalid duration {value!r}: out of range")
    duration = timedelta(microseconds=nanoseconds // 1000)
    return -duration if negative else duration


def format_hours(hours: int) -> str:
    """Render a whole number of hours as a duration string (``"720h"``)."""
    return f"{hours}h"


def validity_to_hours(validity: str) -> str:
    """Convert a ``validity`` value into an absolute duration string.

    ``Nd`` becomes ``N*24`` hours, ``Ny`` becomes ``N*365*24`` hours and an
    hour duration is kept verbatim once it parses.

    Raises:
        ValueError: If the unit is not ``h``, ``d`` or ``y`` or the amount
            does not parse.
    """
    if not validity:
        raise ValueError("validity is required")

    unit = validity[-1]
    amount = validity[:-1]
    if unit in ("d", "y"):
        if not _DIGITS.fullmatch(amount):
            raise ValueError(f"failed to parse validity value {validity!r} for certificate")
        factor = HOURS_PER_DAY if unit == "d" else HOURS_PER_YEAR
        return format_hours(int(amount) * factor)
    if unit == "h":
        parse_duration(validity)
        return validity
    raise ValueError(
        f"invalid value {validity} for Validity field, should end with `h`(hours), "
        "`d`(days) or `y`(years) e:g 1y, 20d"
    )
