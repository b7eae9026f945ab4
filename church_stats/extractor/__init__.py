"""Extractor package: representative-row selection and metric extraction.

Submodules
----------
selector
    Church matching and the per-file representative-row policy.
metrics
    ``sum`` / ``max`` / trimmed-mean extraction with audit traces.
"""

from church_stats.extractor.metrics import (
    MODE_AVG,
    MODE_MAX,
    MODE_SUM,
    NO_DATA,
    MetricResult,
    collect_values,
    extract_metric,
    trimmed_mean,
)
from church_stats.extractor.selector import (
    UnitMatcher,
    group_by_source,
    is_total_row,
    select_representative_rows,
)

__all__ = [
    "MODE_AVG",
    "MODE_MAX",
    "MODE_SUM",
    "NO_DATA",
    "MetricResult",
    "UnitMatcher",
    "collect_values",
    "extract_metric",
    "group_by_source",
    "is_total_row",
    "select_representative_rows",
    "trimmed_mean",
]
