"""End-to-end report construction.

Raw records -> monthly rows -> consolidated rows -> subtotals, optionally
reconciled with legacy (previously edited) consolidated rows.

Inputs may mix raw records with consolidated rows persisted by an earlier
version of the project file. :func:`partition_records` separates the two
once, at the boundary, so that every later stage works on typed values.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from church_stats.config import get_report_config
from church_stats.sheets.consolidated import ConsolidatedRow, build_consolidated_rows, is_legacy_row
from church_stats.sheets.monthly import aggregate_monthly_report, monthly_rows_from_consolidated
from church_stats.transformer.merge import reconcile_with_legacy
from church_stats.transformer.validation import log_sum_validations, validate_subtotals

if TYPE_CHECKING:
    from church_stats.config import ReportConfig
    from church_stats.sheets.monthly import MonthlyMetricRow
    from church_stats.transformer.validation import SumValidationResult

logger = logging.getLogger(__name__)

__all__ = [
    "RecordBatch",
    "ReportResult",
    "build_report",
    "partition_records",
    "process_consolidated_report",
]

# Averages are floats; allow summation noise when checking aggregates
VALIDATION_TOLERANCE = 1e-6


@dataclass
class RecordBatch:
    """Raw records and legacy consolidated rows found in one input."""

    raw: list[dict[str, Any]] = field(default_factory=list)
    legacy: list[ConsolidatedRow] = field(default_factory=list)


@dataclass
class ReportResult:
    """Both report views plus the aggregate checks."""

    monthly_rows: list[MonthlyMetricRow]
    consolidated_rows: list[ConsolidatedRow]
    validations: list[SumValidationResult] = field(default_factory=list)

    def is_valid(self) -> bool:
        """Check if every aggregate row matches its members."""
        return all(v.match for v in self.validations)


def partition_records(records: Iterable[Mapping[str, Any]]) -> RecordBatch:
    """Split an input into raw records and legacy consolidated rows.

    A mapping is a legacy row when it carries both ``name`` and
    ``bap_ya_actual``; everything else is a raw record.
    """
    batch = RecordBatch()
    for record in records:
        if is_legacy_row(record):
            batch.legacy.append(ConsolidatedRow.from_dict(dict(record)))
        else:
            batch.raw.append(dict(record))
    if batch.legacy:
        logger.info(
            "Input holds %d raw records and %d legacy rows",
            len(batch.raw),
            len(batch.legacy),
        )
    return batch


def process_consolidated_report(
    raw_records: Sequence[Mapping[str, Any]],
    legacy_rows: Sequence[ConsolidatedRow] | None = None,
    config: ReportConfig | None = None,
) -> list[ConsolidatedRow]:
    """Build the consolidated tree from raw records.

    Parameters
    ----------
    raw_records
        Raw records of the period (already partitioned).
    legacy_rows
        Previously edited or imported rows whose manual values must survive.
    config
        Report configuration; defaults to the project config.

    Returns
    -------
    list[ConsolidatedRow]
        Consolidated tree. Without raw records but with legacy rows, a zero
        tree in taxonomy order is reconciled with the legacy rows, so every
        church row and rate is recomputed and missing churches are zero-filled.
    """
    cfg = config if config is not None else get_report_config()
    legacy = list(legacy_rows or [])

    if not raw_records and legacy:
        # Zero tree keeps the taxonomy shape; reconciling recomputes every row
        logger.info("No raw records; rebuilding from %d legacy rows", len(legacy))
        return reconcile_with_legacy(build_consolidated_rows([], cfg), legacy, cfg)

    monthly = aggregate_monthly_report(raw_records, cfg)
    rows = build_consolidated_rows(monthly, cfg)
    if legacy:
        rows = reconcile_with_legacy(rows, legacy, cfg)
    return rows


def build_report(
    records: Iterable[Mapping[str, Any]],
    legacy_rows: Sequence[ConsolidatedRow] | None = None,
    config: ReportConfig | None = None,
) -> ReportResult:
    """Build both report views from a mixed input.

    Parameters
    ----------
    records
        Raw records, possibly mixed with persisted consolidated rows.
    legacy_rows
        Additional legacy rows (e.g. from a project file).
    config
        Report configuration; defaults to the project config.

    Returns
    -------
    ReportResult
        Monthly rows, consolidated rows and aggregate validations.
    """
    cfg = config if config is not None else get_report_config()
    batch = partition_records(records)
    legacy = [*batch.legacy, *(legacy_rows or [])]

    if batch.raw or not legacy:
        monthly = aggregate_monthly_report(batch.raw, cfg)
    else:
        monthly = monthly_rows_from_consolidated(legacy, cfg)

    consolidated = process_consolidated_report(batch.raw, legacy, cfg)
    validations = validate_subtotals(consolidated, tolerance=VALIDATION_TOLERANCE)
    log_sum_validations(validations)

    return ReportResult(
        monthly_rows=monthly,
        consolidated_rows=consolidated,
        validations=validations,
    )
