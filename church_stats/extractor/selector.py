"""Representative-row selection and church matching for raw report records.

Raw records arrive flattened from many spreadsheets. A single sheet may hold
weekly rows, per-district rows and one or more summary rows for the same
church, so before any metric is extracted each (source file, sheet) group is
reduced to the row(s) that stand for the church's value.

Selection policy per file group (first match wins):

1. a row that names the church *and* carries a total keyword
   (``"斗六小計"``);
2. any total row (files already filtered to one church);
3. rows naming the church that are not totals, skipping district breakdowns
   (``"斗六一區"``) unless the church name itself is a district;
4. the last row of the group.

When branch 3 returns several rows they are later averaged as independent
samples rather than summed as components. This is a known trade-off of the
policy and is kept as is.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from church_stats.config import get_report_config
from church_stats.utils.parsing import RawRecord, record_text, string_values

if TYPE_CHECKING:
    from church_stats.config import ReportConfig

logger = logging.getLogger(__name__)

__all__ = [
    "UnitMatcher",
    "group_by_source",
    "is_total_row",
    "select_representative_rows",
]


def is_total_row(record: RawRecord, keywords: Sequence[str]) -> bool:
    """Return True when any string cell contains a total keyword."""
    return any(kw in value for value in string_values(record) for kw in keywords)


def group_by_source(
    records: Iterable[RawRecord],
    source_key: str,
    sheet_key: str,
) -> dict[tuple[str, str], list[RawRecord]]:
    """Group records by (source file, sheet) pair in first-seen order.

    Parameters
    ----------
    records
        Raw records of one church.
    source_key
        Reserved key carrying the source file name.
    sheet_key
        Reserved key carrying the sheet/table name.

    Returns
    -------
    dict[tuple[str, str], list[RawRecord]]
        Ordered mapping; missing provenance values group under ``"unknown"``.
    """
    groups: dict[tuple[str, str], list[RawRecord]] = {}
    for record in records:
        key = (
            str(record.get(source_key) or "unknown"),
            str(record.get(sheet_key) or "unknown"),
        )
        groups.setdefault(key, []).append(record)
    return groups


def _is_district_row(record: RawRecord, unit: str, district_marker: str) -> bool:
    """Check whether the first cell naming ``unit`` is a district breakdown."""
    matching = next((v for v in string_values(record) if unit in v), None)
    if matching is None:
        return False
    return district_marker in matching and district_marker not in unit


def _select_from_group(
    rows: list[RawRecord],
    unit: str,
    keywords: Sequence[str],
    district_marker: str,
) -> list[RawRecord]:
    """Apply the four-step priority policy to one file group."""
    # Priority 1: church-specific total row
    for row in rows:
        if unit in record_text(row) and is_total_row(row, keywords):
            return [row]

    # Priority 2: generic total row
    for row in rows:
        if is_total_row(row, keywords):
            return [row]

    # Priority 3: rows naming the church, excluding districts and totals
    specific = [
        row
        for row in rows
        if any(unit in v for v in string_values(row))
        and not _is_district_row(row, unit, district_marker)
        and not is_total_row(row, keywords)
    ]
    if specific:
        if len(specific) > 1:
            logger.debug(
                "%s: %d non-total rows selected from one file; treated as samples",
                unit,
                len(specific),
            )
        return specific

    # Priority 4: last row
    return [rows[-1]]


def select_representative_rows(
    records: Sequence[RawRecord],
    unit: str,
    config: ReportConfig | None = None,
) -> list[RawRecord]:
    """Pick the rows that represent ``unit`` in every source file.

    Parameters
    ----------
    records
        All raw records matched to the church (any number of files).
    unit
        Church name from the taxonomy.
    config
        Report configuration supplying provenance keys, total keywords and
        the district marker; defaults to the project config.

    Returns
    -------
    list[RawRecord]
        Selected rows, grouped by file in first-seen order. Empty only when
        ``records`` is empty.
    """
    cfg = config if config is not None else get_report_config()
    groups = group_by_source(records, cfg.source_key, cfg.sheet_key)

    selected: list[RawRecord] = []
    for (source, sheet), rows in groups.items():
        chosen = _select_from_group(rows, unit, cfg.total_keywords, cfg.district_marker)
        logger.debug("%s: %s/%s -> %d of %d rows", unit, source, sheet, len(chosen), len(rows))
        selected.extend(chosen)
    return selected


class UnitMatcher:
    """Match raw records to taxonomy churches.

    A record belongs to a church when its source file name, its sheet name
    or any cell value contains the church name. Church names that are
    substrings of other church names or of region names (a "朴子區 小計"
    row also names 朴子) make this ambiguous; such pairs are reported in
    :attr:`ambiguous_pairs` and logged once, but not resolved.
    """

    def __init__(self, config: ReportConfig) -> None:
        self.config = config
        self.units = config.unit_names()
        labels = [*self.units, *(spec.region for spec in config.regions)]
        self.ambiguous_pairs: list[tuple[str, str]] = [
            (short, long)
            for short in self.units
            for long in labels
            if short != long and short in long
        ]
        for short, long in self.ambiguous_pairs:
            logger.warning(
                "Church name '%s' is contained in '%s'; records of '%s' also match '%s'",
                short,
                long,
                long,
                short,
            )

    def matches(self, record: RawRecord, unit: str) -> bool:
        """Return True when ``record`` belongs to ``unit``."""
        source = str(record.get(self.config.source_key) or "")
        sheet = str(record.get(self.config.sheet_key) or "")
        if unit in source or unit in sheet:
            return True
        return any(unit in str(v) for v in record.values() if v is not None)

    def filter(self, records: Iterable[RawRecord], unit: str) -> list[RawRecord]:
        """Return the records that belong to ``unit``, preserving order."""
        return [record for record in records if self.matches(record, unit)]

    def is_ambiguous(self, unit: str) -> bool:
        """Return True when ``unit`` takes part in an ambiguous pair."""
        return any(unit in pair for pair in self.ambiguous_pairs)
