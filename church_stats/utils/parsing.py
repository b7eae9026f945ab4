"""Shared parsing utilities for raw report cells and rate strings.

This module provides common functions used by the extractor, the row builders
and the reference import.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

Number = int | float

RawRecord = Mapping[str, Any]


def parse_number(value: Any) -> Number | None:
    """Parse a cell value into a number, rejecting anything malformed.

    Examples
    --------
    - 12 -> 12
    - "12" -> 12
    - " 1,342 " -> 1342
    - "3.5" -> 3.5
    - "" -> None
    - "n/a" -> None
    - True -> None

    Parameters
    ----------
    value
        Raw cell content from a parsed report.

    Returns
    -------
    int | float | None
        Parsed numeric value, or None when the cell holds no usable number.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return value

    if isinstance(value, float):
        return value if math.isfinite(value) else None

    if not isinstance(value, str):
        return None

    cleaned = value.strip().replace(",", "")
    if not cleaned:
        return None

    try:
        result = float(cleaned)
    except ValueError:
        logger.debug("Could not parse number: %r", value)
        return None

    if not math.isfinite(result):
        return None

    # Keep integral values as int so traces read "12" rather than "12.0"
    return int(result) if result.is_integer() and "." not in cleaned else result


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with halves rounded towards +inf."""
    return math.floor(value + 0.5)


def format_number(value: Number) -> str:
    """Render a number for audit traces without a spurious ``.0``."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_rate(numerator: Number, denominator: Number) -> str:
    """Format ``numerator / denominator`` as a one-decimal percentage.

    Parameters
    ----------
    numerator
        Observed value.
    denominator
        Goal or base value.

    Returns
    -------
    str
        Percentage such as ``"42.5%"``; ``"0.0%"`` when the denominator is 0.
    """
    if not denominator:
        return "0.0%"
    return f"{numerator / denominator * 100:.1f}%"


def record_text(record: RawRecord) -> str:
    """Concatenate every non-null value of a record into one string."""
    return "".join(str(v) for v in record.values() if v is not None)


def string_values(record: RawRecord) -> list[str]:
    """Return the string-typed cell values of a record, in column order."""
    return [v for v in record.values() if isinstance(v, str)]
