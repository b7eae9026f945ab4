"""Transformer package: field metadata, derived values and aggregate rows.

Submodules
----------
fields
    Aggregation kind of every consolidated column (``sum``, ``max``,
    ``overwrite``, ``derived``).
rates
    Percentage strings recomputed from each row.
subtotals
    Bottom-up rebuild of region subtotals and the grand total.
validation
    Checks that aggregate rows equal the sum of their members.
merge
    Cross-set merge and reconciliation with legacy rows.
reference_import
    Keyword-driven import of Sunday bases and baptism targets.

Notes
-----
``merge`` and ``reference_import`` depend on :mod:`church_stats.sheets.consolidated`,
which itself imports from this package, so they are not re-exported here.
Import them from their modules.
"""

from church_stats.transformer.fields import (
    BASE_FIELDS,
    FIELD_KINDS,
    KIND_DERIVED,
    KIND_MAX,
    KIND_OVERWRITE,
    KIND_SUM,
    TARGET_FIELDS,
    field_kind,
    numeric_fields,
    rate_fields,
)
from church_stats.transformer.rates import rate_values, recalculate_rates
from church_stats.transformer.subtotals import is_region_member, recalculate_subtotals, sum_into
from church_stats.transformer.validation import (
    SumValidationResult,
    format_sum_validations,
    validate_subtotals,
)

__all__ = [
    "BASE_FIELDS",
    "FIELD_KINDS",
    "KIND_DERIVED",
    "KIND_MAX",
    "KIND_OVERWRITE",
    "KIND_SUM",
    "TARGET_FIELDS",
    "SumValidationResult",
    "field_kind",
    "format_sum_validations",
    "is_region_member",
    "numeric_fields",
    "rate_fields",
    "rate_values",
    "recalculate_rates",
    "recalculate_subtotals",
    "sum_into",
    "validate_subtotals",
]
