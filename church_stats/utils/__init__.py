"""Shared utility functions for church_stats package."""

from church_stats.utils.parsing import (
    Number,
    RawRecord,
    format_number,
    format_rate,
    parse_number,
    record_text,
    round_half_up,
    string_values,
)

__all__ = [
    "Number",
    "RawRecord",
    "format_number",
    "format_rate",
    "parse_number",
    "record_text",
    "round_half_up",
    "string_values",
]
