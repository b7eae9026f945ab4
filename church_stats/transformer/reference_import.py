"""Import of Sunday bases and baptism targets from reference spreadsheets.

Reference sheets are maintained by hand and their column headers vary from
year to year ("青職基數", "大專 目標", "全召會受浸人數", ...). Instead of a fixed
column map, every header is normalised (whitespace removed, lower-cased) and
classified by keyword into one base or target field.

Rules applied per source row:

1. Resolve the church: a name column, or a short first cell. Names containing
   a total word or ending with the district marker are skipped.
2. Skip rate columns (``%``, ``率``, ``rate``, ``達成``, ``比``).
3. Skip explicit actual columns (``實際``, ``完成``, ``actual``, ``去年``)
   unless they also carry a target word.
4. Classify the remaining headers by mode (``base`` or ``target``).

Imported fields are protected from their formulas during the row
recalculation. ``bap_youth_goal`` is left unprotected so that it follows
the imported sub-targets.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from church_stats.config import get_report_config
from church_stats.sheets.consolidated import ConsolidatedRow, recalculate_row
from church_stats.transformer.fields import BASE_FIELDS, TARGET_FIELDS
from church_stats.transformer.subtotals import recalculate_subtotals
from church_stats.utils.parsing import Number, parse_number

if TYPE_CHECKING:
    from church_stats.config import ReportConfig

logger = logging.getLogger(__name__)

__all__ = [
    "IMPORT_MODES",
    "ImportResult",
    "apply_reference_import",
    "classify_base_column",
    "classify_target_column",
    "clear_targets_and_bases",
    "resolve_unit_name",
]

MODE_BASE = "base"
MODE_TARGET = "target"
IMPORT_MODES = (MODE_BASE, MODE_TARGET)

NAME_COLUMNS = ("召會", "Name", "名稱", "召會名稱")
SKIP_NAME_WORDS = ("召會", "總計", "合計", "小計", "統計")
MAX_FIRST_CELL_NAME = 10

RATE_WORDS = ("%", "率", "rate", "達成", "比")
ACTUAL_WORDS = ("實際", "完成", "actual", "去年")
TARGET_WORDS = ("目標", "goal", "target")
GENERIC_TARGET_WORDS = ("受浸", "人數")

TEEN_WORDS = ("青少", "中學", "國高", "國中", "高中")
UNI_WORDS = ("大學", "大專")
GROUP_WORDS = ("青職", "大學", "青少", "兒童", "青年", "中學", "國高", "國中", "高中")

PROTECTED_FIELDS = (*BASE_FIELDS, *(f for f in TARGET_FIELDS if f != "bap_youth_goal"))


@dataclass
class ImportResult:
    """Outcome of a reference import."""

    rows: list[ConsolidatedRow]
    updated_units: list[str] = field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return len(self.updated_units)


# =============================================================================
# Column classification
# =============================================================================


def _normalize_key(key: str) -> str:
    return re.sub(r"\s+", "", key).lower()


def _has_any(text: str, words: Sequence[str]) -> bool:
    return any(word in text for word in words)


def classify_base_column(key: str, base_source: bool = False) -> str | None:
    """Map a header to a Sunday base field.

    Parameters
    ----------
    key
        Column header as found in the sheet.
    base_source
        True when the sheet or file name marks the whole source as bases.

    Returns
    -------
    str | None
        Field name, or None when the column is not a base.
    """
    k = _normalize_key(key)
    if _has_any(k, RATE_WORDS):
        return None
    is_target = _has_any(k, TARGET_WORDS)
    if _has_any(k, ACTUAL_WORDS) and not is_target:
        return None

    looks_like_base = "基數" in k or k == "base" or base_source
    if not looks_like_base or is_target:
        return None

    if "青職" in k:
        return "sun_ya_base"
    if _has_any(k, UNI_WORDS):
        return "sun_uni_base"
    if _has_any(k, TEEN_WORDS):
        return "sun_teen_base"
    # "含兒童" and "不含兒童" are both whole-church columns
    if "含兒童" in k:
        return "sun_all_base"
    if "兒童" in k:
        return "sun_child_base"
    if _has_any(k, ("全召會", "總計", "合計")) or k in ("基數", "base"):
        return "sun_all_base"
    return None


def classify_target_column(
    key: str,
    target_source: bool = False,
    base_source: bool = False,
) -> str | None:
    """Map a header to a baptism target field.

    Parameters
    ----------
    key
        Column header as found in the sheet.
    target_source
        True when the sheet or file name marks the whole source as targets.
    base_source
        True when the sheet or file name marks the source as bases; generic
        headers such as "人數" are then not read as targets.

    Returns
    -------
    str | None
        Field name, or None when the column is not a target.
    """
    k = _normalize_key(key)
    if _has_any(k, RATE_WORDS):
        return None
    is_target = _has_any(k, TARGET_WORDS)
    if _has_any(k, ACTUAL_WORDS) and not is_target:
        return None

    generic = _has_any(k, GENERIC_TARGET_WORDS) or k in ("target", "goal")
    if not (is_target or target_source or (generic and not base_source)):
        return None

    if "青職" in k:
        return "bap_ya_target"
    if _has_any(k, UNI_WORDS):
        return "bap_uni_target"
    if _has_any(k, TEEN_WORDS):
        return "bap_teen_target"
    if "青年" in k and _has_any(k, ("總", "合")):
        return "bap_youth_goal"
    if "全召會" in k:
        return "bap_all_goal"
    if _has_any(k, ("總計", "合計")) and "青年" not in k:
        return "bap_all_goal"
    if generic and not _has_any(k, GROUP_WORDS):
        return "bap_all_goal"
    return None


# =============================================================================
# Row resolution
# =============================================================================


def resolve_unit_name(source_row: Mapping[str, Any], district_marker: str = "區") -> str | None:
    """Return the church name a reference row is about, or None to skip it."""
    name = ""
    for column in NAME_COLUMNS:
        value = source_row.get(column)
        if value:
            name = str(value).strip()
            break

    if not name and source_row:
        first = str(next(iter(source_row.values()))).strip()
        if 0 < len(first) < MAX_FIRST_CELL_NAME:
            name = first

    if not name or _has_any(name, SKIP_NAME_WORDS) or name.endswith(district_marker):
        return None
    return name


def _find_unit_index(rows: Sequence[ConsolidatedRow], name: str) -> int | None:
    candidates = [
        i for i, row in enumerate(rows) if not row.is_aggregate and not row.is_last_year
    ]
    for i in candidates:
        if rows[i].name == name:
            return i
    for i in candidates:
        if name in rows[i].name or rows[i].name in name:
            return i
    return None


def _import_value(value: Any) -> Number | None:
    if isinstance(value, str):
        value = value.replace("%", "")
    return parse_number(value)


# =============================================================================
# Import
# =============================================================================


def apply_reference_import(
    rows: Sequence[ConsolidatedRow],
    source_rows: Sequence[Mapping[str, Any]],
    mode: str,
    config: ReportConfig | None = None,
) -> ImportResult:
    """Write bases or targets from a reference sheet into consolidated rows.

    Parameters
    ----------
    rows
        Current consolidated tree.
    source_rows
        Parsed reference sheet, one mapping per row.
    mode
        ``"base"`` for Sunday bases, ``"target"`` for baptism targets.
    config
        Report configuration; defaults to the project config.

    Returns
    -------
    ImportResult
        New tree with subtotals recomputed, and the churches that changed.

    Raises
    ------
    ValueError
        If ``mode`` is not a known import mode.
    """
    if mode not in IMPORT_MODES:
        msg = f"Unknown import mode '{mode}', expected one of {IMPORT_MODES}"
        raise ValueError(msg)

    cfg = config if config is not None else get_report_config()
    skip_columns = {cfg.source_key, cfg.sheet_key, *NAME_COLUMNS}
    result = list(rows)
    updated: list[str] = []

    for source_row in source_rows:
        name = resolve_unit_name(source_row, cfg.district_marker)
        if name is None:
            continue
        index = _find_unit_index(result, name)
        if index is None:
            logger.debug("Reference row '%s' matches no church", name)
            continue

        origin = f"{source_row.get(cfg.sheet_key) or ''}{source_row.get(cfg.source_key) or ''}"
        base_source = "基數" in origin
        target_source = "目標" in origin

        values: dict[str, Number] = {}
        for key, raw in source_row.items():
            if key in skip_columns:
                continue
            number = _import_value(raw)
            if number is None:
                continue
            if mode == MODE_BASE:
                field_name = classify_base_column(str(key), base_source)
            else:
                field_name = classify_target_column(str(key), target_source, base_source)
            if field_name is not None:
                values[field_name] = number

        if not values:
            continue

        row = replace(result[index], **values)
        result[index] = recalculate_row(row, skip_fields=PROTECTED_FIELDS, config=cfg)
        updated.append(row.name)
        logger.debug("Imported %s for %s: %s", mode, row.name, values)

    if updated:
        result = recalculate_subtotals(result)
        logger.info("Imported %s values for %d churches", mode, len(updated))
    else:
        logger.warning("Reference import (%s) matched no church", mode)
    return ImportResult(rows=result, updated_units=updated)


def clear_targets_and_bases(
    rows: Sequence[ConsolidatedRow],
    config: ReportConfig | None = None,
) -> list[ConsolidatedRow]:
    """Zero every base, target and church-life count of the church rows.

    Goals are recomputed from their formulas, so churches with other
    baptisms keep the goal allowance. Aggregates are rebuilt afterwards; the
    last-year row is left alone.
    """
    zeroed = dict.fromkeys((*BASE_FIELDS, *TARGET_FIELDS, "cl_count"), 0)
    result = [
        row
        if row.is_aggregate or row.is_last_year
        else recalculate_row(replace(row, **zeroed), config=config)
        for row in rows
    ]
    logger.info("Cleared targets and bases")
    return recalculate_subtotals(result)
