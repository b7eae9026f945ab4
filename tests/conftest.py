"""Pytest configuration for church_stats tests.

This module provides:
- A small two-region ReportConfig using the real metric alias table
- Raw-record builders shaped like the parsing collaborator's output
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from dotenv import load_dotenv

from church_stats.config import RegionSpec, ReportConfig, get_metric_specs, parse_metric_specs

# Load environment variables from project .env so path overrides apply in tests
PROJECT_ROOT = Path(__file__).parent.parent
load_dotenv(PROJECT_ROOT / ".env")

SOURCE_KEY = "來源報表"
SHEET_KEY = "工作表名稱"


@pytest.fixture(scope="session")
def report_config() -> ReportConfig:
    """Two regions, three churches with names that never contain each other.

    - 東區: 甲, 乙
    - 西區: 丙
    """
    return ReportConfig(
        regions=[
            RegionSpec(region="東區", churches=["甲", "乙"]),
            RegionSpec(region="西區", churches=["丙"]),
        ],
        child_group_seeds={"甲": 2},
        teen_group_seeds={"甲": 1, "丙": 3},
        metrics=parse_metric_specs(get_metric_specs()),
    )


def make_record(
    source: str,
    name: str,
    values: dict[str, Any] | None = None,
    sheet: str = "Sheet1",
) -> dict[str, Any]:
    """Build one raw record as the parser would emit it."""
    record: dict[str, Any] = {SOURCE_KEY: source, SHEET_KEY: sheet, "召會": name}
    record.update(values or {})
    return record


@pytest.fixture
def record_factory():
    """Expose :func:`make_record` to tests."""
    return make_record
