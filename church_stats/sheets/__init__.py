"""Sheets package: the two report views.

Submodules
----------
monthly
    One row of per-period metrics per church, with audit traces.
consolidated
    Full reporting schema per church: targets, actuals, derived totals and
    rates, with region subtotals, grand total and the last-year row.
"""

from church_stats.sheets.consolidated import (
    ConsolidatedRow,
    apply_cell_edit,
    build_consolidated_row,
    build_consolidated_rows,
    is_legacy_row,
    recalculate_row,
)
from church_stats.sheets.monthly import (
    MonthlyAggregator,
    MonthlyMetricRow,
    aggregate_monthly_report,
    monthly_rows_from_consolidated,
    sum_monthly_rows,
)

__all__ = [
    "ConsolidatedRow",
    "MonthlyAggregator",
    "MonthlyMetricRow",
    "aggregate_monthly_report",
    "apply_cell_edit",
    "build_consolidated_row",
    "build_consolidated_rows",
    "is_legacy_row",
    "monthly_rows_from_consolidated",
    "recalculate_row",
    "sum_monthly_rows",
]
