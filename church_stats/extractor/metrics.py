"""Metric extraction from representative report rows.

A metric is read from one or more rows by looking up a list of column-name
aliases, then reduced to a single number with one of three modes:

* ``sum``: add every matched value.
* ``max``: keep the largest value. Used for cumulative counters (year-to-date
  baptisms) that reappear in every weekly snapshot.
* ``avg``: trimmed mean. With more than four values the two lowest and two
  highest are dropped before averaging; the result is rounded to an integer.

Every extraction returns a :class:`MetricResult` carrying a human-readable
trace so that each reported number can be audited back to its inputs.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from church_stats.utils.parsing import (
    Number,
    RawRecord,
    format_number,
    parse_number,
    round_half_up,
)

logger = logging.getLogger(__name__)

__all__ = [
    "MODE_AVG",
    "MODE_MAX",
    "MODE_SUM",
    "NO_DATA",
    "MetricResult",
    "collect_values",
    "extract_metric",
    "normalize_components",
    "trimmed_mean",
]

MODE_SUM = "sum"
MODE_MAX = "max"
MODE_AVG = "avg"
VALID_MODES = frozenset({MODE_SUM, MODE_MAX, MODE_AVG})

NO_DATA = "no data"

# Trimmed mean kicks in above this many samples
TRIM_THRESHOLD = 4
TRIM_EACH_SIDE = 2


@dataclass
class MetricResult:
    """Outcome of extracting one metric.

    Attributes
    ----------
    value : int | float
        Extracted number (``0`` when no row carried the metric).
    info : str
        Derivation trace for auditing.
    has_data : bool
        ``False`` when no row had any matching column, which distinguishes
        "no data" from a genuine zero.
    """

    value: Number
    info: str
    has_data: bool = True

    @classmethod
    def empty(cls) -> MetricResult:
        """Result for a metric with no matching column in any row."""
        return cls(value=0, info=NO_DATA, has_data=False)


def normalize_components(aliases: Sequence[str] | Sequence[Sequence[str]]) -> list[list[str]]:
    """Accept a flat alias list or a list of alias lists.

    A flat list such as ``["主日_青職"]`` is one component; a nested list adds
    one value per component (e.g., pre-school + elementary groups).
    """
    if all(isinstance(a, str) for a in aliases):
        return [list(aliases)]  # type: ignore[arg-type]
    return [list(component) for component in aliases]


def _row_value(row: RawRecord, components: list[list[str]]) -> Number | None:
    """Return the per-row value, or None if no component matched."""
    total: Number = 0
    matched = False
    for component in components:
        for alias in component:
            if alias not in row:
                continue
            value = parse_number(row[alias])
            if value is None:
                # Malformed cell: try the next alias
                continue
            total += value
            matched = True
            break
    return total if matched else None


def collect_values(
    rows: Iterable[RawRecord],
    aliases: Sequence[str] | Sequence[Sequence[str]],
) -> list[Number]:
    """Collect one value per row that carries any of the aliases.

    Parameters
    ----------
    rows
        Candidate rows, usually the representative rows of a church.
    aliases
        Alias list, or list of alias lists (see :func:`normalize_components`).

    Returns
    -------
    list[int | float]
        Matched values in row order; rows without a match are skipped.
    """
    components = normalize_components(aliases)
    values: list[Number] = []
    for row in rows:
        value = _row_value(row, components)
        if value is not None:
            values.append(value)
    return values


def _join(values: Iterable[Number]) -> str:
    return ", ".join(format_number(v) for v in values)


def trimmed_mean(values: Sequence[Number]) -> MetricResult:
    """Average ``values``, trimming two from each end when more than four.

    Parameters
    ----------
    values
        Matched sample values, in any order.

    Returns
    -------
    MetricResult
        Rounded average with a trace listing dropped and kept samples.

    Examples
    --------
    >>> trimmed_mean([8, 10, 12, 14, 16]).value
    12
    >>> trimmed_mean([10, 20]).value
    15
    """
    if not values:
        return MetricResult.empty()

    ordered = sorted(values)

    if len(ordered) > TRIM_THRESHOLD:
        dropped_low = ordered[:TRIM_EACH_SIDE]
        dropped_high = ordered[-TRIM_EACH_SIDE:]
        kept = ordered[TRIM_EACH_SIDE:-TRIM_EACH_SIDE]
        total = sum(kept)
        avg = round_half_up(total / len(kept))
        info = "\n".join(
            [
                f"[trimmed mean: drop {TRIM_EACH_SIDE} lowest and {TRIM_EACH_SIDE} highest]",
                f"count: {len(ordered)} (more than {TRIM_THRESHOLD}, trimming)",
                f"sorted: {_join(ordered)}",
                f"dropped low: {_join(dropped_low)}",
                f"dropped high: {_join(dropped_high)}",
                f"kept: {_join(kept)}",
                f"average: {format_number(total)} / {len(kept)} = {avg}",
            ],
        )
        return MetricResult(value=avg, info=info)

    total = sum(ordered)
    avg = round_half_up(total / len(ordered))
    info = "\n".join(
        [
            "[plain mean]",
            f"count: {len(ordered)} ({TRIM_THRESHOLD} or fewer, no trimming)",
            f"values: {_join(values)}",
            f"average: {format_number(total)} / {len(ordered)} = {avg}",
        ],
    )
    return MetricResult(value=avg, info=info)


def extract_metric(
    rows: Iterable[RawRecord],
    aliases: Sequence[str] | Sequence[Sequence[str]],
    mode: str = MODE_AVG,
) -> MetricResult:
    """Extract one number from ``rows`` using ``mode``.

    Parameters
    ----------
    rows
        Representative or candidate rows.
    aliases
        Acceptable column names; the first one present in a row wins.
    mode
        ``"sum"``, ``"max"`` or ``"avg"``.

    Returns
    -------
    MetricResult
        Value plus trace. When no row matched: ``0`` with trace ``"no data"``.

    Raises
    ------
    ValueError
        If ``mode`` is not one of the supported modes.
    """
    if mode not in VALID_MODES:
        msg = f"Unknown extraction mode: {mode}. Must be one of {sorted(VALID_MODES)}."
        raise ValueError(msg)

    values = collect_values(rows, aliases)
    if not values:
        return MetricResult.empty()

    if mode == MODE_MAX:
        return MetricResult(
            value=max(values),
            info=f"[max]\nvalues ({len(values)}): {_join(values)}",
        )

    if mode == MODE_SUM:
        return MetricResult(
            value=sum(values),
            info=f"[sum]\nvalues ({len(values)}): {_join(values)}",
        )

    return trimmed_mean(values)
