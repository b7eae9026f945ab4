"""Tests for the consolidated row builder.

Tests cover:
1. Mapping monthly metrics into the consolidated schema
2. recalculate_row formulas, skip fields and rates
3. Tree construction (order, placeholders, last-year row)
4. Cell edits and their cascade
5. Dictionary round trip with the persisted key names
"""

from __future__ import annotations

import pytest

from church_stats.sheets.consolidated import (
    ConsolidatedRow,
    apply_cell_edit,
    build_consolidated_row,
    build_consolidated_rows,
    is_legacy_row,
    recalculate_row,
)
from church_stats.sheets.monthly import MonthlyMetricRow
from church_stats.transformer.fields import numeric_fields


def _row(rows: list[ConsolidatedRow], name: str) -> ConsolidatedRow:
    return next(r for r in rows if r.name == name)


# =============================================================================
# Builder
# =============================================================================


class TestBuildConsolidatedRow:
    """Tests for the monthly -> consolidated mapping."""

    def test_baptism_derivations(self, report_config) -> None:
        """Teen actual adds child+teen; other is total minus youth."""
        monthly = MonthlyMetricRow(
            name="甲",
            bap_roll_call=10,
            bap_child=1,
            bap_teen=1,
            bap_uni=1,
            bap_ya=2,
        )
        row = build_consolidated_row(monthly, "甲", "東區", report_config)
        assert row.bap_teen_actual == 2
        assert row.bap_uni_actual == 1
        assert row.bap_ya_actual == 2
        assert row.bap_youth_total == 5
        assert row.bap_other_actual == 5
        assert row.bap_all_total == 10

    def test_other_never_negative(self, report_config) -> None:
        """Inconsistent sources never produce negative other baptisms."""
        monthly = MonthlyMetricRow(name="甲", bap_roll_call=1, bap_ya=4)
        row = build_consolidated_row(monthly, "甲", "東區", report_config)
        assert row.bap_other_actual == 0
        assert row.bap_all_total == 4

    def test_goal_allowance_for_other_baptisms(self, report_config) -> None:
        """Other baptisms add the configured allowance to the all-church goal."""
        monthly = MonthlyMetricRow(name="甲", bap_roll_call=10, bap_ya=2)
        row = build_consolidated_row(monthly, "甲", "東區", report_config)
        assert row.bap_youth_goal == 0
        assert row.bap_all_goal == report_config.other_goal_allowance
        assert row.bap_all_rate == "200.0%"

    def test_averages_and_seeds(self, report_config) -> None:
        """Averages are copied; group counts come from the seed maps."""
        monthly = MonthlyMetricRow(
            name="甲",
            sun_ya=12,
            sun_total=40,
            gospel_ya=3,
            group_child=6,
            details={"sun_total": "trace"},
        )
        row = build_consolidated_row(monthly, "甲", "東區", report_config)
        assert row.sun_ya_avg == 12
        assert row.sun_all_avg == 40
        assert row.vis_ya_avg == 3
        assert row.grp_child_w_avg == 6
        assert row.grp_child_cnt == 2
        assert row.grp_teen_cnt == 1
        assert row.sun_all_avg_details == "trace"
        assert row.sun_ya_pct == "30.0%"

    def test_without_monthly_row(self, report_config) -> None:
        """A missing monthly row gives zeros plus seed counts."""
        row = build_consolidated_row(None, "丙", "西區", report_config)
        assert row.sun_all_avg == 0
        assert row.grp_teen_cnt == 3
        assert row.bap_all_rate == "0.0%"


class TestRecalculateRow:
    """Tests for derived totals and rates."""

    def test_formulas(self, report_config) -> None:
        """Youth and all-church goals and totals follow their components."""
        row = ConsolidatedRow(
            name="甲",
            bap_ya_target=3,
            bap_uni_target=2,
            bap_teen_target=1,
            bap_ya_actual=3,
            bap_uni_actual=0,
            bap_teen_actual=0,
        )
        result = recalculate_row(row, config=report_config)
        assert result.bap_youth_goal == 6
        assert result.bap_youth_total == 3
        assert result.bap_all_goal == 6
        assert result.bap_all_total == 3
        assert result.bap_youth_rate == "50.0%"

    def test_skip_fields_preserve_manual_values(self, report_config) -> None:
        """A skipped field keeps its typed value and feeds later formulas."""
        row = ConsolidatedRow(name="甲", bap_ya_target=3, bap_youth_goal=20)
        result = recalculate_row(row, skip_fields=["bap_youth_goal"], config=report_config)
        assert result.bap_youth_goal == 20
        assert result.bap_all_goal == 20

    def test_rates_against_bases(self, report_config) -> None:
        """Outreach, home and life-study rates divide by Sunday bases."""
        row = ConsolidatedRow(
            name="甲",
            vis_ya_avg=5,
            home_all_avg=30,
            life_ya_avg=2,
            sun_ya_base=20,
            sun_all_base=120,
            sun_all_avg=90,
        )
        result = recalculate_row(row, config=report_config)
        assert result.vis_ya_rate == "25.0%"
        assert result.home_all_rate == "25.0%"
        assert result.life_ya_rate == "10.0%"
        assert result.sun_all_yoy == "75.0%"

    def test_zero_denominators(self, report_config) -> None:
        """Every rate is 0.0% when its denominator is zero."""
        result = recalculate_row(ConsolidatedRow(name="甲", vis_ya_avg=5), config=report_config)
        assert result.vis_ya_rate == "0.0%"
        assert result.sun_ya_pct == "0.0%"

    def test_input_not_mutated(self, report_config) -> None:
        """Recalculation returns a new row."""
        row = ConsolidatedRow(name="甲", bap_ya_actual=2)
        recalculate_row(row, config=report_config)
        assert row.bap_youth_total == 0


# =============================================================================
# Tree
# =============================================================================


class TestBuildConsolidatedRows:
    """Tests for the full consolidated tree."""

    def test_tree_order(self, report_config) -> None:
        """Regions in order, grand total, then the last-year row."""
        rows = build_consolidated_rows([], report_config)
        assert [r.name for r in rows] == [
            "甲",
            "乙",
            "東區 小計",
            "丙",
            "西區 小計",
            "合計",
            "去年統計",
        ]
        assert rows[-1].is_last_year
        assert rows[-2].is_grand_total

    def test_placeholders_are_zero(self, report_config) -> None:
        """Churches without data keep zero numeric fields (except seeds)."""
        rows = build_consolidated_rows([], report_config)
        placeholder = _row(rows, "乙")
        assert all(getattr(placeholder, name) == 0 for name in numeric_fields())

    def test_subtotals_from_monthly(self, report_config) -> None:
        """Region subtotals sum the church rows."""
        monthly = [
            MonthlyMetricRow(name="甲", region="東區", sun_ya=12),
            MonthlyMetricRow(name="乙", region="東區", sun_ya=8),
            MonthlyMetricRow(name="東區 小計", region="東區", is_subtotal=True, sun_ya=999),
        ]
        rows = build_consolidated_rows(monthly, report_config)
        assert _row(rows, "東區 小計").sun_ya_avg == 20
        assert _row(rows, "合計").sun_ya_avg == 20
        assert _row(rows, "合計").grp_teen_cnt == 4


# =============================================================================
# Editing
# =============================================================================


class TestApplyCellEdit:
    """Tests for single-cell edits."""

    def test_edit_cascades_to_aggregates(self, report_config) -> None:
        """Editing a target updates the goal, the subtotal and the grand total."""
        rows = build_consolidated_rows([], report_config)
        edited = apply_cell_edit(rows, "甲", "bap_ya_target", 4, report_config)
        assert _row(edited, "甲").bap_ya_target == 4
        assert _row(edited, "甲").bap_youth_goal == 4
        assert _row(edited, "東區 小計").bap_ya_target == 4
        assert _row(edited, "合計").bap_youth_goal == 4
        # Original tree untouched
        assert _row(rows, "甲").bap_ya_target == 0

    def test_edited_field_survives_its_formula(self, report_config) -> None:
        """The edited derived total is not overwritten."""
        rows = build_consolidated_rows([], report_config)
        edited = apply_cell_edit(rows, "甲", "bap_all_goal", 30, report_config)
        assert _row(edited, "甲").bap_all_goal == 30

    def test_last_year_row_is_editable(self, report_config) -> None:
        """The last-year row accepts values without recalculation."""
        rows = build_consolidated_rows([], report_config)
        edited = apply_cell_edit(rows, "去年統計", "bap_all_total", 50, report_config)
        assert _row(edited, "去年統計").bap_all_total == 50
        assert _row(edited, "合計").bap_all_total == 0

    def test_aggregate_rows_rejected(self, report_config) -> None:
        """Aggregates are always recomputed, never edited."""
        rows = build_consolidated_rows([], report_config)
        with pytest.raises(ValueError, match="aggregate"):
            apply_cell_edit(rows, "合計", "bap_ya_target", 1, report_config)

    def test_derived_fields_rejected(self, report_config) -> None:
        """Rate strings cannot be edited."""
        rows = build_consolidated_rows([], report_config)
        with pytest.raises(ValueError, match="derived"):
            apply_cell_edit(rows, "甲", "bap_all_rate", 1, report_config)

    def test_unknown_row_or_field(self, report_config) -> None:
        """Unknown names raise KeyError."""
        rows = build_consolidated_rows([], report_config)
        with pytest.raises(KeyError):
            apply_cell_edit(rows, "戊", "bap_ya_target", 1, report_config)
        with pytest.raises(KeyError):
            apply_cell_edit(rows, "甲", "no_such_field", 1, report_config)


# =============================================================================
# Persistence
# =============================================================================


class TestConsolidatedRowDict:
    """Tests for to_dict/from_dict."""

    def test_flags_only_when_true(self) -> None:
        """Flags use camelCase keys and are omitted when false."""
        data = ConsolidatedRow(name="合計", is_subtotal=True, is_grand_total=True).to_dict()
        assert data["isSubtotal"] is True
        assert data["isGrandTotal"] is True
        assert "isLastYear" not in data

    def test_roundtrip(self, report_config) -> None:
        """A recalculated row survives a round trip."""
        row = recalculate_row(
            ConsolidatedRow(name="甲", region="東區", bap_ya_target=3, sun_all_avg=40),
            config=report_config,
        )
        assert ConsolidatedRow.from_dict(row.to_dict()) == row

    def test_malformed_values_become_zero(self) -> None:
        """Missing or malformed numbers load as zero."""
        row = ConsolidatedRow.from_dict({"name": "甲", "bap_ya_actual": "abc", "sun_ya_avg": "12"})
        assert row.bap_ya_actual == 0
        assert row.sun_ya_avg == 12
        assert row.bap_uni_actual == 0

    def test_is_legacy_row(self) -> None:
        """Legacy rows carry both name and bap_ya_actual."""
        assert is_legacy_row({"name": "甲", "bap_ya_actual": 0})
        assert not is_legacy_row({"name": "甲", "主日_青職": 3})
