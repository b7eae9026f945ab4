"""Monthly report aggregation.

This module turns the raw records of one reporting period into one
:class:`MonthlyMetricRow` per church, region subtotals and a grand total.

Key Classes:
    MonthlyMetricRow: Dataclass holding one church's metrics plus traces.
    MonthlyAggregator: Applies the metric table of a ReportConfig.

Key Functions:
    aggregate_monthly_report(): Full pass over raw records (canonical).
    monthly_rows_from_consolidated(): Monthly view of a legacy project.
    sum_monthly_rows(): Field-wise sum used for subtotals.

Configuration files:
- config/taxonomy.json: region -> church order
- config/monthly/metrics.json: alias tables and modes per metric
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any

from church_stats.config import get_report_config
from church_stats.extractor.metrics import MetricResult, extract_metric
from church_stats.extractor.selector import UnitMatcher, select_representative_rows
from church_stats.utils.parsing import Number, RawRecord

if TYPE_CHECKING:
    from church_stats.config import ReportConfig
    from church_stats.sheets.consolidated import ConsolidatedRow

logger = logging.getLogger(__name__)

LEGACY_INFO = "From processed data (legacy project file)"


# =============================================================================
# Monthly Row
# =============================================================================


@dataclass
class MonthlyMetricRow:
    """One church's aggregated metrics for the period.

    Attributes
    ----------
    name : str
        Church name, or the subtotal/grand-total label.
    region : str
        Region tag (empty for the grand total).
    is_subtotal, is_grand_total : bool
        Aggregate row flags; the grand total carries both.
    details : dict[str, str]
        Metric key -> derivation trace. Used for auditing only.

    Baptisms (cumulative, max mode):
    bap_roll_call : total baptized this year.
    bap_online : baptisms reported through the online form.
    bap_child, bap_teen, bap_uni, bap_ya : per age bracket.

    Averages (trimmed mean):
    sun_* : Sunday meeting attendance by bracket and total.
    gospel_* : gospel outreach.
    home_* : home meetings.
    life_* : life-study.
    group_* : small-group attendance.
    """

    name: str
    region: str = ""
    is_subtotal: bool = False
    is_grand_total: bool = False
    details: dict[str, str] = field(default_factory=dict)

    # Baptisms
    bap_roll_call: Number = 0
    bap_online: Number = 0
    bap_child: Number = 0
    bap_teen: Number = 0
    bap_uni: Number = 0
    bap_ya: Number = 0

    # Sunday meeting
    sun_child: Number = 0
    sun_teen: Number = 0
    sun_uni: Number = 0
    sun_ya: Number = 0
    sun_total: Number = 0

    # Gospel outreach
    gospel_ya: Number = 0
    gospel_total: Number = 0

    # Home meetings
    home_ya: Number = 0
    home_total: Number = 0

    # Life-study
    life_teen: Number = 0
    life_uni: Number = 0
    life_ya: Number = 0
    life_total: Number = 0

    # Small groups
    group_child: Number = 0
    group_teen: Number = 0
    group_uni: Number = 0
    group_ya: Number = 0

    @classmethod
    def metric_fields(cls) -> list[str]:
        """Return the numeric metric field names in report order."""
        skip = {"name", "region", "is_subtotal", "is_grand_total", "details"}
        return [f.name for f in fields(cls) if f.name not in skip]

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary using the persisted key names."""
        data: dict[str, Any] = {
            "name": self.name,
            "region": self.region,
            "isSubtotal": self.is_subtotal,
            "isGrandTotal": self.is_grand_total,
        }
        for name in self.metric_fields():
            data[name] = getattr(self, name)
        data["details"] = dict(self.details)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MonthlyMetricRow:
        """Create instance from dictionary."""
        row = cls(
            name=str(data.get("name", "")),
            region=str(data.get("region") or ""),
            is_subtotal=bool(data.get("isSubtotal", False)),
            is_grand_total=bool(data.get("isGrandTotal", False)),
            details=dict(data.get("details") or {}),
        )
        for name in cls.metric_fields():
            setattr(row, name, data.get(name) or 0)
        return row


def sum_monthly_rows(
    rows: Iterable[MonthlyMetricRow],
    name: str,
    region: str = "",
    is_grand_total: bool = False,
) -> MonthlyMetricRow:
    """Field-wise sum of ``rows`` into a new aggregate row."""
    total = MonthlyMetricRow(
        name=name,
        region=region,
        is_subtotal=True,
        is_grand_total=is_grand_total,
    )
    metric_names = MonthlyMetricRow.metric_fields()
    for row in rows:
        for metric in metric_names:
            setattr(total, metric, getattr(total, metric) + getattr(row, metric))
    return total


# =============================================================================
# Aggregator
# =============================================================================


class MonthlyAggregator:
    """Aggregate raw records into monthly rows using a :class:`ReportConfig`."""

    def __init__(self, config: ReportConfig | None = None) -> None:
        self.config = config if config is not None else get_report_config()
        self.matcher = UnitMatcher(self.config)

    def _extract(
        self,
        key: str,
        representative: Sequence[RawRecord],
        unit_rows: Sequence[RawRecord],
    ) -> MetricResult:
        spec = self.config.metric(key)
        rows = unit_rows if spec.scope == "unit" else representative
        return extract_metric(rows, spec.components, spec.mode)

    def aggregate_unit(
        self,
        records: Sequence[RawRecord],
        unit: str,
        region: str,
    ) -> MonthlyMetricRow:
        """Build the monthly row of one church.

        Parameters
        ----------
        records
            Every raw record of the period.
        unit
            Church name.
        region
            Region the church belongs to.

        Returns
        -------
        MonthlyMetricRow
            Metrics with traces; all zeros when no record matches.
        """
        unit_rows = self.matcher.filter(records, unit)
        if not unit_rows:
            logger.debug("%s: no matching records, zero-filled row", unit)
            return MonthlyMetricRow(name=unit, region=region)

        representative = select_representative_rows(unit_rows, unit, self.config)
        row = MonthlyMetricRow(name=unit, region=region)

        def take(key: str, result: MetricResult) -> Number:
            if result.info:
                row.details[key] = result.info
            return result.value

        def extract(key: str) -> Number:
            return take(key, self._extract(key, representative, unit_rows))

        # Baptisms
        row.bap_roll_call = extract("bap_roll_call")
        manual_online = self._extract("bap_online_manual", representative, unit_rows)
        if manual_online.has_data:
            row.bap_online = take("bap_online", manual_online)
        else:
            row.bap_online = extract("bap_online")
        row.bap_child = extract("bap_child")
        row.bap_teen = extract("bap_teen")
        row.bap_uni = extract("bap_uni")
        row.bap_ya = extract("bap_ya")

        # Sunday meeting
        row.sun_child = extract("sun_child")
        row.sun_teen = extract("sun_teen")
        row.sun_uni = extract("sun_uni")
        row.sun_ya = extract("sun_ya")
        row.sun_total = extract("sun_total")
        if row.sun_total == 0:
            bracket_sum = row.sun_child + row.sun_teen + row.sun_uni + row.sun_ya
            if bracket_sum > 0:
                row.sun_total = bracket_sum
                row.details["sun_total"] = (
                    row.details.get("sun_total", "") + "\n(summed: child + teen + uni + ya)"
                )

        # Gospel outreach and home meetings fall back to the young-adult figure
        row.gospel_ya = extract("gospel_ya")
        row.gospel_total = extract("gospel_total")
        if row.gospel_total == 0 and row.gospel_ya > 0:
            row.gospel_total = row.gospel_ya

        row.home_ya = extract("home_ya")
        row.home_total = extract("home_total")
        if row.home_total == 0 and row.home_ya > 0:
            row.home_total = row.home_ya

        # Life-study
        row.life_teen = extract("life_teen")
        row.life_uni = extract("life_uni")
        row.life_ya = extract("life_ya")
        row.life_total = extract("life_total")
        if row.life_total == 0:
            row.life_total = row.life_teen + row.life_uni + row.life_ya

        # Small groups
        row.group_child = extract("group_child")
        row.group_teen = extract("group_teen")
        row.group_uni = extract("group_uni")
        row.group_ya = extract("group_ya")

        logger.debug(
            "%s: %d records, %d representative, sun_total=%s",
            unit,
            len(unit_rows),
            len(representative),
            row.sun_total,
        )
        return row

    def aggregate(self, records: Sequence[RawRecord]) -> list[MonthlyMetricRow]:
        """Aggregate every taxonomy church, with subtotals and grand total.

        Returns
        -------
        list[MonthlyMetricRow]
            ``[churches..., region subtotal]`` per region in taxonomy order,
            followed by one grand-total row.
        """
        results: list[MonthlyMetricRow] = []
        subtotals: list[MonthlyMetricRow] = []

        for spec in self.config.regions:
            region_rows = [self.aggregate_unit(records, unit, spec.region) for unit in spec.churches]
            subtotal = sum_monthly_rows(
                region_rows,
                name=self.config.subtotal_label(spec.region),
                region=spec.region,
            )
            results.extend(region_rows)
            results.append(subtotal)
            subtotals.append(subtotal)

        results.append(
            sum_monthly_rows(subtotals, name=self.config.grand_total_label, is_grand_total=True),
        )
        logger.info(
            "Aggregated %d records into %d monthly rows",
            len(records),
            len(results),
        )
        return results


def aggregate_monthly_report(
    records: Sequence[RawRecord],
    config: ReportConfig | None = None,
) -> list[MonthlyMetricRow]:
    """Aggregate raw records into the monthly row tree (canonical entry point)."""
    return MonthlyAggregator(config).aggregate(records)


# =============================================================================
# Legacy Projects
# =============================================================================


def _monthly_from_consolidated_row(row: ConsolidatedRow, region: str) -> MonthlyMetricRow:
    """Map the consolidated fields that have a monthly counterpart."""
    return MonthlyMetricRow(
        name=row.name,
        region=region,
        is_subtotal=row.is_subtotal,
        is_grand_total=row.is_grand_total,
        details={"info": LEGACY_INFO},
        bap_roll_call=row.bap_all_total,
        bap_teen=row.bap_teen_actual,
        bap_uni=row.bap_uni_actual,
        bap_ya=row.bap_ya_actual,
        sun_child=row.sun_child_w_avg,
        sun_teen=row.sun_teen_avg,
        sun_uni=row.sun_uni_avg,
        sun_ya=row.sun_ya_avg,
        sun_total=row.sun_all_avg,
        gospel_ya=row.vis_ya_avg,
        gospel_total=row.vis_all_avg,
        home_ya=row.home_ya_avg,
        home_total=row.home_all_avg,
        life_ya=row.life_ya_avg,
        life_total=row.life_all_avg,
        group_child=row.grp_child_w_avg,
        group_teen=row.grp_teen_avg,
        group_uni=row.grp_uni_cnt,
        group_ya=row.grp_ya_avg,
    )


def monthly_rows_from_consolidated(
    rows: Sequence[ConsolidatedRow],
    config: ReportConfig | None = None,
) -> list[MonthlyMetricRow]:
    """Rebuild the monthly view from a project that only kept consolidated rows.

    Older project files stored the consolidated table without its raw
    records. The monthly view is then derived from the consolidated fields
    that have a monthly counterpart, keeping the taxonomy shape: churches
    missing from ``rows`` are zero-filled and aggregate rows are recomputed.

    Parameters
    ----------
    rows
        Consolidated rows loaded from a legacy project file.
    config
        Report configuration; defaults to the project config.

    Returns
    -------
    list[MonthlyMetricRow]
        Monthly tree in the same shape as :func:`aggregate_monthly_report`.
    """
    cfg = config if config is not None else get_report_config()
    by_name = {row.name: row for row in rows if not row.is_aggregate and not row.is_last_year}

    results: list[MonthlyMetricRow] = []
    subtotals: list[MonthlyMetricRow] = []
    for spec in cfg.regions:
        region_rows = []
        for unit in spec.churches:
            source = by_name.get(unit)
            if source is None:
                region_rows.append(MonthlyMetricRow(name=unit, region=spec.region))
            else:
                region_rows.append(_monthly_from_consolidated_row(source, spec.region))
        subtotal = sum_monthly_rows(
            region_rows,
            name=cfg.subtotal_label(spec.region),
            region=spec.region,
        )
        results.extend(region_rows)
        results.append(subtotal)
        subtotals.append(subtotal)

    results.append(sum_monthly_rows(subtotals, name=cfg.grand_total_label, is_grand_total=True))
    return results
