"""Report output: JSON snapshot and a plain Excel dump of both views.

Workbook layout (no styling):
- "月報表": one row per church/subtotal with the monthly metrics
- "總表": the consolidated table, rates as fractions
- "計算說明": metric derivation traces (church, metric, trace)
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import pandas as pd

from church_stats.config import DATA_DIR, setup_logging
from church_stats.sheets.consolidated import ConsolidatedRow
from church_stats.transformer.fields import rate_fields

if TYPE_CHECKING:
    from pathlib import Path

    from church_stats.pipeline import ReportResult
    from church_stats.sheets.monthly import MonthlyMetricRow

logger = setup_logging(__name__)

__all__ = [
    "details_to_dataframe",
    "rate_to_fraction",
    "rows_to_dataframe",
    "save_report_json",
    "write_report_excel",
]

MONTHLY_SHEET = "月報表"
CONSOLIDATED_SHEET = "總表"
DETAILS_SHEET = "計算說明"


def rate_to_fraction(value: str | float) -> float:
    """Convert a percentage string such as ``"42.5%"`` to ``0.425``."""
    if isinstance(value, int | float):
        return float(value)
    cleaned = str(value).replace("%", "").strip()
    if not cleaned:
        return 0.0
    try:
        return float(cleaned) / 100
    except ValueError:
        logger.debug("Could not parse rate: %r", value)
        return 0.0


def rows_to_dataframe(
    rows: Sequence[ConsolidatedRow] | Sequence[MonthlyMetricRow],
    rates_as_fractions: bool = False,
) -> pd.DataFrame:
    """Flatten report rows into a DataFrame, one row per report line.

    Parameters
    ----------
    rows
        Consolidated or monthly rows.
    rates_as_fractions
        Convert consolidated rate strings to floats (for spreadsheets).

    Returns
    -------
    pd.DataFrame
        Columns follow the row's persisted key order; monthly ``details``
        are dropped (see :func:`details_to_dataframe`).
    """
    records: list[dict[str, Any]] = []
    for row in rows:
        data = row.to_dict()
        data.pop("details", None)
        data.pop("sun_all_avg_details", None)
        records.append(data)

    df = pd.DataFrame(records)
    if rates_as_fractions and rows and isinstance(rows[0], ConsolidatedRow):
        for name in rate_fields():
            if name in df.columns:
                df[name] = df[name].map(rate_to_fraction)
    # Flags are only persisted when true
    for flag in ("isSubtotal", "isGrandTotal", "isLastYear"):
        if flag in df.columns:
            df[flag] = df[flag].fillna(False).astype(bool)
    return df


def details_to_dataframe(rows: Sequence[MonthlyMetricRow]) -> pd.DataFrame:
    """Long-format table of derivation traces: church, metric, trace."""
    records = [
        {"name": row.name, "metric": metric, "trace": trace}
        for row in rows
        for metric, trace in row.details.items()
    ]
    return pd.DataFrame(records, columns=["name", "metric", "trace"])


def save_report_json(
    result: ReportResult,
    path: Path | None = None,
    title: str = "",
) -> Path:
    """Save both views and validation status as JSON.

    Parameters
    ----------
    result
        Output of :func:`church_stats.pipeline.build_report`.
    path
        Destination file; defaults to ``DATA_DIR/output/report_<date>.json``.
    title
        Report title stored in the snapshot.

    Returns
    -------
    Path
        Location of the written file.
    """
    now = datetime.now(UTC)
    filepath = path if path is not None else DATA_DIR / "output" / f"report_{now:%Y-%m-%d}.json"
    filepath.parent.mkdir(parents=True, exist_ok=True)

    output = {
        "title": title,
        "generated_at": now.isoformat(),
        "valid": result.is_valid(),
        "monthly": [row.to_dict() for row in result.monthly_rows],
        "consolidated": [row.to_dict() for row in result.consolidated_rows],
    }

    with filepath.open("w", encoding="utf-8") as f:
        json.dump(output, f, indent=2, ensure_ascii=False, default=str)

    logger.info("Saved report JSON: %s", filepath)
    return filepath


def write_report_excel(result: ReportResult, path: Path) -> Path:
    """Dump both views and the derivation traces into one workbook.

    Parameters
    ----------
    result
        Output of :func:`church_stats.pipeline.build_report`.
    path
        Destination ``.xlsx`` file.

    Returns
    -------
    Path
        Location of the written workbook.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    sheets = {
        MONTHLY_SHEET: rows_to_dataframe(result.monthly_rows),
        CONSOLIDATED_SHEET: rows_to_dataframe(result.consolidated_rows, rates_as_fractions=True),
        DETAILS_SHEET: details_to_dataframe(result.monthly_rows),
    }

    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, df in sheets.items():
            df.to_excel(writer, sheet_name=sheet_name, index=False)
            logger.debug("Added sheet: %s (%d rows)", sheet_name, len(df))

    logger.info("Workbook created: %s", path)
    return path
