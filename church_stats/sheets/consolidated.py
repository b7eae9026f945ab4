"""Consolidated report rows.

The consolidated report is the full reporting schema per church: targets,
actuals and derived totals across five sections (baptisms; gospel outreach,
home meetings and life-study; small groups; Sunday attendance; church life),
plus derived percentage strings.

Key Classes:
    ConsolidatedRow: Dataclass holding one row of the consolidated table.

Key Functions:
    build_consolidated_row(): Map one monthly row into the consolidated schema.
    build_consolidated_rows(): Full tree in taxonomy order (canonical).
    recalculate_row(): Recompute derived totals honouring manual overrides.
    apply_cell_edit(): Replace one value and cascade to the aggregates.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from church_stats.config import get_report_config
from church_stats.transformer.fields import FIELD_KINDS, KIND_DERIVED, field_kind, numeric_fields
from church_stats.transformer.rates import recalculate_rates
from church_stats.transformer.subtotals import recalculate_subtotals
from church_stats.utils.parsing import Number, parse_number

if TYPE_CHECKING:
    from church_stats.config import ReportConfig
    from church_stats.sheets.monthly import MonthlyMetricRow

logger = logging.getLogger(__name__)

DEFAULT_RATE = "0.0%"


# =============================================================================
# Consolidated Row
# =============================================================================


@dataclass
class ConsolidatedRow:
    """One row of the consolidated table.

    Rows are identified by ``name`` across merges. Aggregate rows carry
    ``is_subtotal`` (and ``is_grand_total`` for the grand total); the
    trailing prior-period row carries ``is_last_year`` and is never
    recalculated or merged.

    Attributes
    ----------
    bap_*_target, bap_youth_goal, bap_all_goal :
        Baptism goals (imported or typed in).
    bap_*_actual, bap_youth_total, bap_all_total :
        Observed baptisms and their derived totals.
    vis_*, home_*, life_* :
        Averages for gospel outreach, home meetings and life-study.
    grp_*, uni_house_cnt :
        Small-group attendance and counts, university houses.
    sun_*_base, sun_*_avg :
        Sunday attendance bases (prior period) and current averages.
    cl_count :
        Church-life headcount (manual).
    *_rate, sun_ya_pct, sun_all_yoy :
        Derived percentage strings.
    sun_all_avg_details :
        Trace of the Sunday total average, kept for auditing.
    """

    name: str
    region: str = ""
    is_subtotal: bool = False
    is_grand_total: bool = False
    is_last_year: bool = False

    # Baptisms
    bap_ya_target: Number = 0
    bap_ya_actual: Number = 0
    bap_uni_target: Number = 0
    bap_uni_actual: Number = 0
    bap_teen_target: Number = 0
    bap_teen_actual: Number = 0
    bap_youth_goal: Number = 0
    bap_youth_total: Number = 0
    bap_youth_rate: str = DEFAULT_RATE
    bap_other_actual: Number = 0
    bap_all_goal: Number = 0
    bap_all_total: Number = 0
    bap_all_rate: str = DEFAULT_RATE

    # Gospel outreach, home meetings, life-study
    vis_ya_avg: Number = 0
    vis_ya_rate: str = DEFAULT_RATE
    vis_all_avg: Number = 0
    vis_all_rate: str = DEFAULT_RATE
    home_ya_avg: Number = 0
    home_ya_rate: str = DEFAULT_RATE
    home_all_avg: Number = 0
    home_all_rate: str = DEFAULT_RATE
    life_ya_avg: Number = 0
    life_ya_rate: str = DEFAULT_RATE
    life_all_avg: Number = 0
    life_all_rate: str = DEFAULT_RATE

    # Small groups
    grp_ya_avg: Number = 0
    grp_uni_cnt: Number = 0
    grp_teen_cnt: Number = 0
    grp_teen_avg: Number = 0
    grp_child_cnt: Number = 0
    grp_child_w_avg: Number = 0
    uni_house_cnt: Number = 0

    # Sunday meeting
    sun_ya_base: Number = 0
    sun_ya_avg: Number = 0
    sun_ya_pct: str = DEFAULT_RATE
    sun_uni_base: Number = 0
    sun_uni_avg: Number = 0
    sun_teen_base: Number = 0
    sun_teen_avg: Number = 0
    sun_child_base: Number = 0
    sun_child_w_avg: Number = 0
    sun_all_base: Number = 0
    sun_all_avg: Number = 0
    sun_all_yoy: str = DEFAULT_RATE
    sun_all_avg_details: str | None = None

    # Church life
    cl_count: Number = 0

    @property
    def is_aggregate(self) -> bool:
        """True for region subtotals and the grand total."""
        return self.is_subtotal or self.is_grand_total

    def numeric_values(self) -> dict[str, Number]:
        """Return every numeric field in report column order."""
        return {name: getattr(self, name) for name in numeric_fields()}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary using the persisted key names."""
        data: dict[str, Any] = {"name": self.name, "region": self.region}
        if self.is_subtotal:
            data["isSubtotal"] = True
        if self.is_grand_total:
            data["isGrandTotal"] = True
        if self.is_last_year:
            data["isLastYear"] = True
        for name in FIELD_KINDS:
            data[name] = getattr(self, name)
        if self.sun_all_avg_details is not None:
            data["sun_all_avg_details"] = self.sun_all_avg_details
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsolidatedRow:
        """Create instance from a persisted dictionary.

        Numeric fields go through :func:`parse_number`; missing or malformed
        values become ``0``. Rate strings are copied as stored and are
        recomputed on the next pass.
        """
        values: dict[str, Any] = {}
        for name, kind in FIELD_KINDS.items():
            if kind == KIND_DERIVED:
                values[name] = str(data.get(name) or DEFAULT_RATE)
            else:
                parsed = parse_number(data.get(name))
                values[name] = parsed if parsed is not None else 0

        details = data.get("sun_all_avg_details")
        return cls(
            name=str(data.get("name", "")),
            region=str(data.get("region") or ""),
            is_subtotal=bool(data.get("isSubtotal", False)),
            is_grand_total=bool(data.get("isGrandTotal", False)),
            is_last_year=bool(data.get("isLastYear", False)),
            sun_all_avg_details=str(details) if details else None,
            **values,
        )


def is_legacy_row(record: dict[str, Any]) -> bool:
    """Return True when a persisted mapping is a consolidated row, not raw data."""
    return "name" in record and "bap_ya_actual" in record


# =============================================================================
# Recalculation
# =============================================================================


def recalculate_row(
    row: ConsolidatedRow,
    skip_fields: Iterable[str] = (),
    config: ReportConfig | None = None,
) -> ConsolidatedRow:
    """Recompute derived totals and rates of a church row.

    Parameters
    ----------
    row
        Row to recompute.
    skip_fields
        Fields holding a manually typed value that must not be overwritten
        by its formula (e.g., the field the user just edited).
    config
        Supplies the goal allowance added for non-youth baptisms.

    Returns
    -------
    ConsolidatedRow
        New row with ``bap_youth_total``, ``bap_youth_goal``,
        ``bap_all_total`` and ``bap_all_goal`` recomputed unless skipped,
        and every rate field recomputed.
    """
    cfg = config if config is not None else get_report_config()
    skip = set(skip_fields)
    values: dict[str, Number] = {}

    youth_total = row.bap_youth_total
    if "bap_youth_total" not in skip:
        youth_total = row.bap_ya_actual + row.bap_uni_actual + row.bap_teen_actual
        values["bap_youth_total"] = youth_total

    youth_goal = row.bap_youth_goal
    if "bap_youth_goal" not in skip:
        youth_goal = row.bap_ya_target + row.bap_uni_target + row.bap_teen_target
        values["bap_youth_goal"] = youth_goal

    if "bap_all_total" not in skip:
        values["bap_all_total"] = youth_total + row.bap_other_actual

    if "bap_all_goal" not in skip:
        allowance = cfg.other_goal_allowance if row.bap_other_actual > 0 else 0
        values["bap_all_goal"] = youth_goal + allowance

    return recalculate_rates(replace(row, **values))


# =============================================================================
# Builder
# =============================================================================


def build_consolidated_row(
    monthly: MonthlyMetricRow | None,
    name: str,
    region: str,
    config: ReportConfig | None = None,
) -> ConsolidatedRow:
    """Map a church's monthly metrics into the consolidated schema.

    Parameters
    ----------
    monthly
        Monthly row of the church, or ``None`` when none exists.
    name
        Church name.
    region
        Region tag.
    config
        Supplies the small-group seed counts.

    Returns
    -------
    ConsolidatedRow
        Recalculated row. Targets and bases are zero; they are filled in by
        the reference import or carried over from legacy rows.
    """
    cfg = config if config is not None else get_report_config()

    teen_actual = (monthly.bap_child + monthly.bap_teen) if monthly else 0
    uni_actual = monthly.bap_uni if monthly else 0
    ya_actual = monthly.bap_ya if monthly else 0
    total_actual = monthly.bap_roll_call if monthly else 0

    youth_total = teen_actual + uni_actual + ya_actual
    # Sources disagree sometimes; never report negative "other" baptisms
    other_actual = max(0, total_actual - youth_total)

    row = ConsolidatedRow(
        name=name,
        region=region,
        bap_ya_actual=ya_actual,
        bap_uni_actual=uni_actual,
        bap_teen_actual=teen_actual,
        bap_youth_total=youth_total,
        bap_other_actual=other_actual,
        bap_all_total=total_actual,
        vis_ya_avg=monthly.gospel_ya if monthly else 0,
        vis_all_avg=monthly.gospel_total if monthly else 0,
        home_ya_avg=monthly.home_ya if monthly else 0,
        home_all_avg=monthly.home_total if monthly else 0,
        life_ya_avg=monthly.life_ya if monthly else 0,
        life_all_avg=monthly.life_total if monthly else 0,
        grp_ya_avg=monthly.group_ya if monthly else 0,
        grp_uni_cnt=monthly.group_uni if monthly else 0,
        grp_teen_cnt=cfg.teen_group_seeds.get(name, 0),
        grp_teen_avg=monthly.group_teen if monthly else 0,
        grp_child_cnt=cfg.child_group_seeds.get(name, 0),
        grp_child_w_avg=monthly.group_child if monthly else 0,
        sun_ya_avg=monthly.sun_ya if monthly else 0,
        sun_uni_avg=monthly.sun_uni if monthly else 0,
        sun_teen_avg=monthly.sun_teen if monthly else 0,
        sun_child_w_avg=monthly.sun_child if monthly else 0,
        sun_all_avg=monthly.sun_total if monthly else 0,
        sun_all_avg_details=monthly.details.get("sun_total") if monthly else None,
    )
    return recalculate_row(row, config=cfg)


def build_consolidated_rows(
    monthly_rows: Sequence[MonthlyMetricRow],
    config: ReportConfig | None = None,
) -> list[ConsolidatedRow]:
    """Build the consolidated tree from the monthly tree.

    Parameters
    ----------
    monthly_rows
        Output of :func:`church_stats.sheets.monthly.aggregate_monthly_report`.
    config
        Report configuration; defaults to the project config.

    Returns
    -------
    list[ConsolidatedRow]
        ``[churches..., region subtotal]`` per region in taxonomy order, the
        grand total, then the inert last-year row. Every taxonomy church is
        present even without monthly data.
    """
    cfg = config if config is not None else get_report_config()
    monthly_by_name = {
        row.name: row for row in monthly_rows if not row.is_subtotal and not row.is_grand_total
    }

    rows: list[ConsolidatedRow] = []
    for spec in cfg.regions:
        for unit in spec.churches:
            rows.append(build_consolidated_row(monthly_by_name.get(unit), unit, spec.region, cfg))
        rows.append(
            recalculate_rates(
                ConsolidatedRow(
                    name=cfg.subtotal_label(spec.region),
                    region=spec.region,
                    is_subtotal=True,
                ),
            ),
        )
    rows.append(
        recalculate_rates(
            ConsolidatedRow(name=cfg.grand_total_label, is_subtotal=True, is_grand_total=True),
        ),
    )

    rows = recalculate_subtotals(rows)
    rows.append(ConsolidatedRow(name=cfg.last_year_label, is_last_year=True))
    return rows


# =============================================================================
# Editing
# =============================================================================


def apply_cell_edit(
    rows: Sequence[ConsolidatedRow],
    name: str,
    field_name: str,
    value: Number,
    config: ReportConfig | None = None,
) -> list[ConsolidatedRow]:
    """Replace one value of a church row and cascade the change.

    The edited field is protected from its own formula during the row
    recalculation, then the region subtotal and grand total are rebuilt.

    Parameters
    ----------
    rows
        Current consolidated tree.
    name
        Church name of the edited row.
    field_name
        Numeric field being edited.
    value
        New value.
    config
        Report configuration; defaults to the project config.

    Returns
    -------
    list[ConsolidatedRow]
        New tree with the edit applied.

    Raises
    ------
    KeyError
        If no row is named ``name`` or the field is unknown.
    ValueError
        If the row is an aggregate or the field is a derived rate.
    """
    if field_kind(field_name) == KIND_DERIVED:
        msg = f"Field '{field_name}' is derived and cannot be edited"
        raise ValueError(msg)

    index = next((i for i, row in enumerate(rows) if row.name == name), None)
    if index is None:
        msg = f"No row named '{name}'"
        raise KeyError(msg)

    target = rows[index]
    if target.is_aggregate:
        msg = f"Row '{name}' is an aggregate and is always recomputed"
        raise ValueError(msg)

    updated = list(rows)
    edited = replace(target, **{field_name: value})
    if target.is_last_year:
        updated[index] = edited
    else:
        updated[index] = recalculate_row(edited, skip_fields=[field_name], config=config)
    logger.info("Edited %s.%s: %s -> %s", name, field_name, getattr(target, field_name), value)
    return recalculate_subtotals(updated)
