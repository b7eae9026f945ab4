"""Derived percentage fields of consolidated rows.

Rates are never primary inputs: every pass recomputes them from the numeric
fields of the same row, so they cannot drift from the values they describe.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from church_stats.utils.parsing import format_rate

if TYPE_CHECKING:
    from church_stats.sheets.consolidated import ConsolidatedRow


def rate_values(row: ConsolidatedRow) -> dict[str, str]:
    """Compute every rate field of ``row``.

    Returns
    -------
    dict[str, str]
        Field name -> percentage string with one decimal place.
    """
    return {
        # Achievement: actual / goal
        "bap_youth_rate": format_rate(row.bap_youth_total, row.bap_youth_goal),
        "bap_all_rate": format_rate(row.bap_all_total, row.bap_all_goal),
        # Outreach, home meetings and life-study against the Sunday base
        "vis_ya_rate": format_rate(row.vis_ya_avg, row.sun_ya_base),
        "vis_all_rate": format_rate(row.vis_all_avg, row.sun_all_base),
        "home_ya_rate": format_rate(row.home_ya_avg, row.sun_ya_base),
        "home_all_rate": format_rate(row.home_all_avg, row.sun_all_base),
        "life_ya_rate": format_rate(row.life_ya_avg, row.sun_ya_base),
        "life_all_rate": format_rate(row.life_all_avg, row.sun_all_base),
        # Young-adult share of Sunday attendance
        "sun_ya_pct": format_rate(row.sun_ya_avg, row.sun_all_avg),
        # Year-over-year proxy: current average against last year's base
        "sun_all_yoy": format_rate(row.sun_all_avg, row.sun_all_base),
    }


def recalculate_rates(row: ConsolidatedRow) -> ConsolidatedRow:
    """Return a copy of ``row`` with every rate field recomputed."""
    return replace(row, **rate_values(row))
