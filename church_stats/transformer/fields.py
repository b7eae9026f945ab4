"""Per-field aggregation metadata for consolidated rows.

One table drives every place that needs to know what kind of value a column
holds: the row builder (what to recompute), the subtotal engine (what to
add), the merge engine (how to combine two values) and the reference import
(what may be imported).

Kinds
-----
``sum``
    Observed actuals. Two disjoint imports are added together.
``max``
    Targets, bases and manually kept counts. Merging keeps the larger value,
    so a manual entry is never lost.
``overwrite``
    Averages. The incoming recomputation is taken as authoritative.
``derived``
    Percentage strings. Never merged, always recomputed from the row.
"""

from __future__ import annotations

__all__ = [
    "BASE_FIELDS",
    "FIELD_KINDS",
    "KIND_DERIVED",
    "KIND_MAX",
    "KIND_OVERWRITE",
    "KIND_SUM",
    "TARGET_FIELDS",
    "field_kind",
    "numeric_fields",
    "rate_fields",
]

KIND_SUM = "sum"
KIND_MAX = "max"
KIND_OVERWRITE = "overwrite"
KIND_DERIVED = "derived"

# Insertion order is the column order of the consolidated report.
FIELD_KINDS: dict[str, str] = {
    # Baptisms
    "bap_ya_target": KIND_MAX,
    "bap_ya_actual": KIND_SUM,
    "bap_uni_target": KIND_MAX,
    "bap_uni_actual": KIND_SUM,
    "bap_teen_target": KIND_MAX,
    "bap_teen_actual": KIND_SUM,
    "bap_youth_goal": KIND_MAX,
    "bap_youth_total": KIND_SUM,
    "bap_youth_rate": KIND_DERIVED,
    "bap_other_actual": KIND_SUM,
    "bap_all_goal": KIND_MAX,
    "bap_all_total": KIND_SUM,
    "bap_all_rate": KIND_DERIVED,
    # Gospel outreach, home meetings, life-study
    "vis_ya_avg": KIND_OVERWRITE,
    "vis_ya_rate": KIND_DERIVED,
    "vis_all_avg": KIND_OVERWRITE,
    "vis_all_rate": KIND_DERIVED,
    "home_ya_avg": KIND_OVERWRITE,
    "home_ya_rate": KIND_DERIVED,
    "home_all_avg": KIND_OVERWRITE,
    "home_all_rate": KIND_DERIVED,
    "life_ya_avg": KIND_OVERWRITE,
    "life_ya_rate": KIND_DERIVED,
    "life_all_avg": KIND_OVERWRITE,
    "life_all_rate": KIND_DERIVED,
    # Small groups and university houses
    "grp_ya_avg": KIND_OVERWRITE,
    "grp_uni_cnt": KIND_MAX,
    "grp_teen_cnt": KIND_MAX,
    "grp_teen_avg": KIND_OVERWRITE,
    "grp_child_cnt": KIND_MAX,
    "grp_child_w_avg": KIND_OVERWRITE,
    "uni_house_cnt": KIND_MAX,
    # Sunday attendance
    "sun_ya_base": KIND_MAX,
    "sun_ya_avg": KIND_OVERWRITE,
    "sun_ya_pct": KIND_DERIVED,
    "sun_uni_base": KIND_MAX,
    "sun_uni_avg": KIND_OVERWRITE,
    "sun_teen_base": KIND_MAX,
    "sun_teen_avg": KIND_OVERWRITE,
    "sun_child_base": KIND_MAX,
    "sun_child_w_avg": KIND_OVERWRITE,
    "sun_all_base": KIND_MAX,
    "sun_all_avg": KIND_OVERWRITE,
    "sun_all_yoy": KIND_DERIVED,
    # Church life
    "cl_count": KIND_MAX,
}

BASE_FIELDS = (
    "sun_ya_base",
    "sun_uni_base",
    "sun_teen_base",
    "sun_child_base",
    "sun_all_base",
)

TARGET_FIELDS = (
    "bap_ya_target",
    "bap_uni_target",
    "bap_teen_target",
    "bap_youth_goal",
    "bap_all_goal",
)


def field_kind(name: str) -> str:
    """Return the aggregation kind of a consolidated field.

    Raises
    ------
    KeyError
        If ``name`` is not a consolidated report field.
    """
    if name not in FIELD_KINDS:
        msg = f"Unknown consolidated field: {name}"
        raise KeyError(msg)
    return FIELD_KINDS[name]


def numeric_fields() -> list[str]:
    """Return every non-derived field in report column order."""
    return [name for name, kind in FIELD_KINDS.items() if kind != KIND_DERIVED]


def rate_fields() -> list[str]:
    """Return the derived percentage fields in report column order."""
    return [name for name, kind in FIELD_KINDS.items() if kind == KIND_DERIVED]
