"""Consistency checks for the aggregate rows of a consolidated tree.

Subtotals are always rebuilt from their members, so a mismatch here means
rows were edited or loaded without the cascade. The pipeline runs the check
after every build and logs failures as warnings.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from church_stats.transformer.fields import numeric_fields
from church_stats.transformer.subtotals import is_region_member

if TYPE_CHECKING:
    from church_stats.sheets.consolidated import ConsolidatedRow
    from church_stats.utils.parsing import Number

logger = logging.getLogger(__name__)

__all__ = [
    "SumValidationResult",
    "format_sum_validation_status",
    "format_sum_validations",
    "log_sum_validations",
    "validate_subtotals",
]


@dataclass
class SumValidationResult:
    """Result of checking one aggregate row against the sum of its members.

    Attributes
    ----------
    description
        Name of the aggregate row.
    member_count
        Number of rows summed.
    match
        True when every numeric field agrees within tolerance.
    mismatches
        Field name -> (stored value, calculated sum) for disagreeing fields.
    tolerance
        Allowed absolute difference per field.
    """

    description: str
    member_count: int
    match: bool
    mismatches: dict[str, tuple[Number, Number]] = field(default_factory=dict)
    tolerance: float = 0


def _check(
    row: ConsolidatedRow,
    members: Sequence[ConsolidatedRow],
    tolerance: float,
) -> SumValidationResult:
    mismatches: dict[str, tuple[Number, Number]] = {}
    for name in numeric_fields():
        stored = getattr(row, name)
        calculated = sum(getattr(m, name) for m in members)
        if abs(stored - calculated) > tolerance:
            mismatches[name] = (stored, calculated)
    return SumValidationResult(
        description=row.name,
        member_count=len(members),
        match=not mismatches,
        mismatches=mismatches,
        tolerance=tolerance,
    )


def validate_subtotals(
    rows: Sequence[ConsolidatedRow],
    tolerance: float = 0,
) -> list[SumValidationResult]:
    """Check every region subtotal and the grand total.

    Parameters
    ----------
    rows
        Consolidated tree.
    tolerance
        Allowed absolute difference per field; averages are floats so a
        small tolerance absorbs summation noise.

    Returns
    -------
    list[SumValidationResult]
        One result per aggregate row, in tree order.
    """
    results: list[SumValidationResult] = []
    subtotals = [r for r in rows if r.is_subtotal and not r.is_grand_total]

    for row in rows:
        if row.is_grand_total:
            results.append(_check(row, subtotals, tolerance))
        elif row.is_subtotal:
            members = [r for r in rows if is_region_member(r, row.region)]
            results.append(_check(row, members, tolerance))

    return results


def format_sum_validation_status(result: SumValidationResult) -> str:
    """Format one result as a status line."""
    if result.match:
        return f"✓ {result.description}: sum of {result.member_count} rows matches"
    fields = ", ".join(
        f"{name} (stored={stored}, sum={calculated})"
        for name, (stored, calculated) in result.mismatches.items()
    )
    return f"✗ {result.description}: {fields}"


def format_sum_validations(results: Sequence[SumValidationResult]) -> str:
    """Format validation results as a text block."""
    if not results:
        return "Subtotal Validation: (no aggregate rows)"
    failures = [r for r in results if not r.match]
    header = (
        "Subtotal Validation: ✓ All aggregates match"
        if not failures
        else f"Subtotal Validation: ✗ {len(failures)} of {len(results)} aggregates disagree"
    )
    lines = [header]
    lines.extend(f"  {format_sum_validation_status(r)}" for r in results)
    return "\n".join(lines)


def log_sum_validations(results: Sequence[SumValidationResult]) -> None:
    """Log failed results as warnings and a one-line summary at debug level."""
    for result in results:
        if not result.match:
            logger.warning(format_sum_validation_status(result))
    logger.debug("Validated %d aggregate rows", len(results))
