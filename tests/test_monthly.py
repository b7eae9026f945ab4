"""Tests for the monthly aggregator.

Tests cover:
1. Tree shape: churches, region subtotals, grand total, placeholders
2. Representative total rows vs weekly rows
3. Trimmed mean across files and max for cumulative baptisms
4. Fallbacks (Sunday total, outreach/home totals, life-study total)
5. Manual online-baptism override
6. Monthly view rebuilt from legacy consolidated rows
"""

from __future__ import annotations

from church_stats.extractor.metrics import NO_DATA
from church_stats.sheets.consolidated import ConsolidatedRow
from church_stats.sheets.monthly import (
    LEGACY_INFO,
    MonthlyAggregator,
    MonthlyMetricRow,
    aggregate_monthly_report,
    monthly_rows_from_consolidated,
    sum_monthly_rows,
)


def _by_name(rows: list[MonthlyMetricRow]) -> dict[str, MonthlyMetricRow]:
    return {row.name: row for row in rows}


# =============================================================================
# Tree shape
# =============================================================================


class TestMonthlyTree:
    """Tests for the order and aggregates of the monthly tree."""

    def test_taxonomy_order_with_aggregates(self, report_config, record_factory) -> None:
        """Churches, then the region subtotal, per region; grand total last."""
        rows = aggregate_monthly_report(
            [record_factory("a.xlsx", "甲小計", {"主日_青職": 12})],
            report_config,
        )
        assert [r.name for r in rows] == ["甲", "乙", "東區 小計", "丙", "西區 小計", "合計"]
        assert rows[2].is_subtotal and not rows[2].is_grand_total
        assert rows[-1].is_subtotal and rows[-1].is_grand_total

    def test_church_without_records_is_zero_filled(self, report_config, record_factory) -> None:
        """A church with no records keeps a zero row in its position."""
        rows = aggregate_monthly_report(
            [record_factory("a.xlsx", "甲小計", {"主日_青職": 12})],
            report_config,
        )
        placeholder = rows[1]
        assert placeholder.name == "乙"
        assert placeholder.region == "東區"
        assert all(getattr(placeholder, f) == 0 for f in MonthlyMetricRow.metric_fields())
        assert placeholder.details == {}

    def test_empty_input_keeps_shape(self, report_config) -> None:
        """No records at all still yields the full tree."""
        rows = aggregate_monthly_report([], report_config)
        assert len(rows) == 6
        assert rows[-1].sun_total == 0

    def test_subtotals_sum_members(self, report_config, record_factory) -> None:
        """Region subtotals add churches; the grand total adds subtotals."""
        records = [
            record_factory("a.xlsx", "甲小計", {"主日_青職": 12}),
            record_factory("b.xlsx", "乙小計", {"主日_青職": 8}),
            record_factory("c.xlsx", "丙小計", {"主日_青職": 5}),
        ]
        rows = _by_name(aggregate_monthly_report(records, report_config))
        assert rows["東區 小計"].sun_ya == 20
        assert rows["西區 小計"].sun_ya == 5
        assert rows["合計"].sun_ya == 25


# =============================================================================
# Extraction per church
# =============================================================================


class TestAggregateUnit:
    """Tests for one church's metrics."""

    def test_total_row_used_weekly_rows_ignored(self, report_config, record_factory) -> None:
        """Only the tagged total row feeds the metrics."""
        records = [
            record_factory("a.xlsx", "甲", {"週": "第1週", "主日_青職": 100}),
            record_factory("a.xlsx", "甲", {"週": "第2週", "主日_青職": 100}),
            record_factory("a.xlsx", "甲小計", {"主日_青職": 12, "主日_小計": 50}),
        ]
        row = MonthlyAggregator(report_config).aggregate_unit(records, "甲", "東區")
        assert row.sun_ya == 12
        assert row.sun_total == 50

    def test_trimmed_mean_across_files(self, report_config, record_factory) -> None:
        """Five files give five samples; two are trimmed from each end."""
        records = [
            record_factory(f"{i}.xlsx", "甲小計", {"主日_青職": value})
            for i, value in enumerate([8, 16, 10, 14, 12])
        ]
        row = MonthlyAggregator(report_config).aggregate_unit(records, "甲", "東區")
        assert row.sun_ya == 12
        assert "trimmed mean" in row.details["sun_ya"]

    def test_cumulative_baptisms_use_max(self, report_config, record_factory) -> None:
        """Year-to-date counters are not summed across snapshots."""
        records = [
            record_factory(f"w{i}.xlsx", "甲小計", {"今年受浸小計": value, "今年受浸_青職": 1})
            for i, value in enumerate([3, 5, 5, 7])
        ]
        row = MonthlyAggregator(report_config).aggregate_unit(records, "甲", "東區")
        assert row.bap_roll_call == 7
        assert row.bap_ya == 1

    def test_missing_metric_traced_as_no_data(self, report_config, record_factory) -> None:
        """A metric absent from every row is 0 with a no-data trace."""
        records = [record_factory("a.xlsx", "甲小計", {"主日_青職": 12})]
        row = MonthlyAggregator(report_config).aggregate_unit(records, "甲", "東區")
        assert row.gospel_ya == 0
        assert row.details["gospel_ya"] == NO_DATA

    def test_sunday_total_falls_back_to_bracket_sum(self, report_config, record_factory) -> None:
        """Without a total column the four brackets are added."""
        values = {"主日_兒童": 5, "主日_中學": 6, "主日_大專": 7, "主日_青職": 8}
        records = [record_factory("a.xlsx", "甲", values)]
        row = MonthlyAggregator(report_config).aggregate_unit(records, "甲", "東區")
        assert row.sun_total == 26
        assert "summed" in row.details["sun_total"]

    def test_outreach_and_home_fall_back_to_young_adults(
        self,
        report_config,
        record_factory,
    ) -> None:
        """Outreach and home totals use the young-adult figure when missing."""
        values = {"福音出訪_青職": 4, "家聚會出訪_青職": 6}
        records = [record_factory("a.xlsx", "甲小計", values)]
        row = MonthlyAggregator(report_config).aggregate_unit(records, "甲", "東區")
        assert row.gospel_total == 4
        assert row.home_total == 6

    def test_life_study_total_falls_back_to_sum(self, report_config, record_factory) -> None:
        """Life-study total adds the brackets when no total column exists."""
        values = {"生命讀經_中學": 1, "生命讀經_大專": 2, "生命讀經_青職": 3}
        records = [record_factory("a.xlsx", "甲小計", values)]
        row = MonthlyAggregator(report_config).aggregate_unit(records, "甲", "東區")
        assert row.life_total == 6

    def test_child_groups_add_components(self, report_config, record_factory) -> None:
        """Pre-school and elementary small groups are added per row."""
        records = [record_factory("a.xlsx", "甲小計", {"小排_學齡前": 3, "小排_小學": 4})]
        row = MonthlyAggregator(report_config).aggregate_unit(records, "甲", "東區")
        assert row.group_child == 7

    def test_manual_online_baptisms_override(self, report_config, record_factory) -> None:
        """A manual online figure on any church row wins over the column."""
        records = [
            record_factory("a.xlsx", "甲", {"bap_online_manual": 3}),
            record_factory("a.xlsx", "甲小計", {"受浸_線上": 1}),
        ]
        row = MonthlyAggregator(report_config).aggregate_unit(records, "甲", "東區")
        assert row.bap_online == 3

    def test_online_baptisms_without_override(self, report_config, record_factory) -> None:
        """Without a manual figure the online column is used."""
        records = [record_factory("a.xlsx", "甲小計", {"受浸_線上": 1})]
        row = MonthlyAggregator(report_config).aggregate_unit(records, "甲", "東區")
        assert row.bap_online == 1

    def test_records_of_other_churches_ignored(self, report_config, record_factory) -> None:
        """Only records naming the church are read."""
        records = [
            record_factory("a.xlsx", "甲小計", {"主日_青職": 12}),
            record_factory("b.xlsx", "乙小計", {"主日_青職": 99}),
        ]
        rows = _by_name(aggregate_monthly_report(records, report_config))
        assert rows["甲"].sun_ya == 12
        assert rows["乙"].sun_ya == 99


# =============================================================================
# Row helpers and legacy projects
# =============================================================================


class TestMonthlyRow:
    """Tests for MonthlyMetricRow helpers."""

    def test_sum_monthly_rows(self) -> None:
        """Field-wise sum into a new aggregate row."""
        rows = [MonthlyMetricRow(name="a", sun_ya=2), MonthlyMetricRow(name="b", sun_ya=3)]
        total = sum_monthly_rows(rows, name="t", region="R")
        assert total.sun_ya == 5
        assert total.is_subtotal
        assert total.region == "R"

    def test_dict_roundtrip_keeps_details(self) -> None:
        """to_dict/from_dict preserve flags, metrics and traces."""
        row = MonthlyMetricRow(name="甲", region="東區", sun_ya=12, details={"sun_ya": "x"})
        restored = MonthlyMetricRow.from_dict(row.to_dict())
        assert restored == row


class TestMonthlyFromConsolidated:
    """Tests for the monthly view of a legacy project."""

    def test_maps_consolidated_fields(self, report_config) -> None:
        """Consolidated averages and actuals map back to monthly metrics."""
        legacy = [ConsolidatedRow(name="甲", region="東區", sun_all_avg=40, bap_all_total=9)]
        rows = _by_name(monthly_rows_from_consolidated(legacy, report_config))
        assert rows["甲"].sun_total == 40
        assert rows["甲"].bap_roll_call == 9
        assert rows["甲"].details == {"info": LEGACY_INFO}
        assert rows["乙"].sun_total == 0
        assert rows["東區 小計"].sun_total == 40
        assert rows["合計"].bap_roll_call == 9
