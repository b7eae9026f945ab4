"""Merging and reconciliation of consolidated row sets.

Two procedures, both pure, both driven by :data:`FIELD_KINDS`:

``merge_consolidated_rows``
    Combine two complete row sets that cover disjoint raw data, e.g. two
    operators' project files. ``max`` fields keep the larger value,
    ``overwrite`` fields take the incoming value, ``sum`` fields add up.

``reconcile_with_legacy``
    Combine freshly computed rows with previously edited rows. ``max``
    fields keep the larger value; every other field keeps the fresh value
    unless it is exactly zero while the legacy value is not, which covers
    churches whose raw source is missing this time but were typed in by hand.

Aggregate rows are never merged: both procedures rebuild them afterwards.
The last-year row is inert: it is not field-merged or recalculated.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from typing import TYPE_CHECKING

from church_stats.sheets.consolidated import ConsolidatedRow, recalculate_row
from church_stats.transformer.fields import KIND_MAX, KIND_OVERWRITE, field_kind, numeric_fields
from church_stats.transformer.subtotals import recalculate_subtotals
from church_stats.utils.parsing import Number

if TYPE_CHECKING:
    from church_stats.config import ReportConfig

logger = logging.getLogger(__name__)

# Derived goals that are also max-merged
GOAL_FIELDS = ("bap_youth_goal", "bap_all_goal")

__all__ = [
    "merge_consolidated_rows",
    "merge_values",
    "reconcile_values",
    "reconcile_with_legacy",
]


def merge_values(kind: str, current: Number, incoming: Number) -> Number:
    """Combine two values of a field of the given kind (cross-set merge)."""
    if kind == KIND_MAX:
        return max(current, incoming)
    if kind == KIND_OVERWRITE:
        return incoming
    return current + incoming


def reconcile_values(kind: str, fresh: Number, legacy: Number) -> Number:
    """Combine a freshly computed value with a legacy one."""
    if kind == KIND_MAX:
        return max(fresh, legacy)
    if fresh == 0 and legacy != 0:
        return legacy
    return fresh


def _recalculate_merged(row: ConsolidatedRow, config: ReportConfig | None) -> ConsolidatedRow:
    """Recalculate a merged row without lowering a merged goal below its formula.

    Goals are ``max`` fields: the formula may raise them, but a larger merged
    value (typed in by hand on either side) is kept.
    """
    recalculated = recalculate_row(row, config=config)
    protected = [name for name in GOAL_FIELDS if getattr(row, name) > getattr(recalculated, name)]
    if not protected:
        return recalculated
    return recalculate_row(row, skip_fields=protected, config=config)


def _combine_rows(
    base: ConsolidatedRow,
    other: ConsolidatedRow,
    combine: Callable[[str, Number, Number], Number],
) -> ConsolidatedRow:
    values = {
        name: combine(field_kind(name), getattr(base, name), getattr(other, name))
        for name in numeric_fields()
    }
    return replace(base, **values)


def merge_consolidated_rows(
    current: Sequence[ConsolidatedRow],
    incoming: Sequence[ConsolidatedRow],
    config: ReportConfig | None = None,
) -> list[ConsolidatedRow]:
    """Merge ``incoming`` into ``current`` church by church.

    Parameters
    ----------
    current
        Row set kept as the base; its order and shape are preserved.
    incoming
        Row set to fold in. Rows are matched by ``name``; incoming rows with
        no counterpart are ignored.
    config
        Report configuration used by the row recalculation.

    Returns
    -------
    list[ConsolidatedRow]
        Merged rows with derived totals, rates and aggregates rebuilt.
    """
    incoming_by_name = {row.name: row for row in incoming}
    merged_count = 0

    result: list[ConsolidatedRow] = []
    for row in current:
        other = incoming_by_name.get(row.name)
        if row.is_aggregate or row.is_last_year or other is None:
            result.append(row)
            continue

        merged = _combine_rows(row, other, merge_values)
        if other.sun_all_avg_details:
            merged = replace(merged, sun_all_avg_details=other.sun_all_avg_details)
        result.append(_recalculate_merged(merged, config))
        merged_count += 1

    logger.info("Merged %d church rows", merged_count)
    return recalculate_subtotals(result)


def reconcile_with_legacy(
    fresh: Sequence[ConsolidatedRow],
    legacy: Sequence[ConsolidatedRow],
    config: ReportConfig | None = None,
) -> list[ConsolidatedRow]:
    """Fold legacy (manually edited or previously imported) rows into fresh rows.

    Parameters
    ----------
    fresh
        Rows just computed from raw records.
    legacy
        Rows from a project file or an earlier pass, matched by ``name``.
    config
        Report configuration used by the row recalculation.

    Returns
    -------
    list[ConsolidatedRow]
        Reconciled rows with derived totals, rates and aggregates rebuilt. A
        legacy last-year row replaces the fresh placeholder as is.
    """
    legacy_by_name = {row.name: row for row in legacy}
    restored = 0

    result: list[ConsolidatedRow] = []
    for row in fresh:
        old = legacy_by_name.get(row.name)
        if row.is_aggregate or old is None:
            result.append(row)
            continue

        if row.is_last_year:
            result.append(old if old.is_last_year else row)
            continue

        merged = _combine_rows(row, old, reconcile_values)
        if old.sun_all_avg_details and not merged.sun_all_avg_details:
            merged = replace(merged, sun_all_avg_details=old.sun_all_avg_details)
        result.append(_recalculate_merged(merged, config))
        restored += 1

    logger.info("Reconciled %d church rows with legacy values", restored)
    return recalculate_subtotals(result)
