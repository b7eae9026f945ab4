"""Bottom-up recomputation of region subtotals and the grand total.

Aggregate rows are never stored independently: after any change to a church
row the whole aggregate layer is rebuilt from the members. The procedure is
idempotent, so running it twice without touching the members gives the same
rows.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import TYPE_CHECKING

from church_stats.transformer.fields import numeric_fields
from church_stats.transformer.rates import recalculate_rates

if TYPE_CHECKING:
    from church_stats.sheets.consolidated import ConsolidatedRow

logger = logging.getLogger(__name__)

__all__ = [
    "is_region_member",
    "recalculate_subtotals",
    "sum_into",
]


def is_region_member(row: ConsolidatedRow, region: str) -> bool:
    """Return True for church rows of ``region`` (not aggregates, not last year)."""
    return row.region == region and not row.is_aggregate and not row.is_last_year


def sum_into(target: ConsolidatedRow, members: Iterable[ConsolidatedRow]) -> ConsolidatedRow:
    """Zero the numeric fields of ``target`` and add ``members`` into it.

    Parameters
    ----------
    target
        Aggregate row whose labels and flags are kept.
    members
        Rows to add field by field.

    Returns
    -------
    ConsolidatedRow
        New aggregate row with recomputed rates.
    """
    names = numeric_fields()
    totals = dict.fromkeys(names, 0)
    for member in members:
        for name in names:
            totals[name] += getattr(member, name)
    return recalculate_rates(replace(target, **totals))


def recalculate_subtotals(rows: Sequence[ConsolidatedRow]) -> list[ConsolidatedRow]:
    """Rebuild every region subtotal and the grand total from their members.

    Parameters
    ----------
    rows
        Full consolidated row tree (churches, subtotals, grand total and the
        optional last-year row) in any order.

    Returns
    -------
    list[ConsolidatedRow]
        New list in the same order. Church rows and the last-year row are
        returned unchanged.
    """
    result = list(rows)

    for index, row in enumerate(result):
        if not row.is_subtotal or row.is_grand_total:
            continue
        members = [r for r in result if is_region_member(r, row.region)]
        result[index] = sum_into(row, members)

    grand_indexes = [i for i, row in enumerate(result) if row.is_grand_total]
    if grand_indexes:
        subtotals = [r for r in result if r.is_subtotal and not r.is_grand_total]
        for index in grand_indexes:
            result[index] = sum_into(result[index], subtotals)

    logger.debug("Recalculated %d aggregate rows", sum(1 for r in result if r.is_aggregate))
    return result
