"""Tests for project documents.

Tests cover:
1. Save/load of the persisted JSON shape
2. Rejection of files that are not project documents
3. Overwrite import (open a project)
4. Merge import (combine two operators' projects)
"""

from __future__ import annotations

import json
from dataclasses import replace

import pytest

from church_stats.pipeline import build_report
from church_stats.sheets.consolidated import ConsolidatedRow, build_consolidated_rows
from church_stats.writer.project_writer import (
    ProjectDocument,
    default_project_path,
    import_project,
    load_project_json,
    save_project_json,
)


def _row(rows: list[ConsolidatedRow], name: str) -> ConsolidatedRow:
    return next(r for r in rows if r.name == name)


def _with(rows: list[ConsolidatedRow], name: str, **values) -> list[ConsolidatedRow]:
    return [replace(r, **values) if r.name == name else r for r in rows]


@pytest.fixture
def project(report_config, record_factory) -> ProjectDocument:
    """Project with one raw record for 丙 and a manual target for 丙."""
    raw = [record_factory("west.xlsx", "丙小計", {"主日_青職": 5})]
    rows = build_report(raw, config=report_config).consolidated_rows
    rows = _with(rows, "丙", bap_ya_target=3)
    rows = _with(rows, "甲", bap_ya_target=1)
    return ProjectDocument(title="三月總表", master_rows=rows, raw_records=raw)


# =============================================================================
# Persistence
# =============================================================================


class TestProjectPersistence:
    """Tests for save_project_json and load_project_json."""

    def test_roundtrip(self, project, report_config, tmp_path) -> None:
        """Rows, raw records and title survive a save/load cycle."""
        path = save_project_json(project, tmp_path / "p.json")
        loaded = load_project_json(path, report_config)
        assert loaded.title == "三月總表"
        assert loaded.master_rows == project.master_rows
        assert loaded.raw_records == project.raw_records
        assert loaded.version == "2.0"
        assert loaded.timestamp

    def test_persisted_keys(self, project, tmp_path) -> None:
        """The file uses the masterData/rawData key names and plain UTF-8."""
        path = save_project_json(project, tmp_path / "p.json")
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        assert set(data) == {"title", "masterData", "rawData", "timestamp", "version"}
        assert "三月總表" in text

    def test_missing_file(self, tmp_path) -> None:
        """A missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_project_json(tmp_path / "missing.json")

    def test_not_a_project(self, tmp_path, report_config) -> None:
        """A file without masterData is rejected."""
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"title": "x", "rawData": []}), encoding="utf-8")
        with pytest.raises(ValueError, match="masterData"):
            load_project_json(path, report_config)

    def test_top_level_list_rejected(self, tmp_path, report_config) -> None:
        """A JSON list is not a project document."""
        path = tmp_path / "list.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ValueError, match="Invalid project file"):
            load_project_json(path, report_config)

    def test_default_title(self) -> None:
        """A missing title falls back to the default."""
        doc = ProjectDocument.from_dict({"masterData": []}, default_title="總表")
        assert doc.title == "總表"
        assert doc.raw_records == []

    def test_default_project_path(self, tmp_path) -> None:
        """Default file name is the sanitised title plus the date."""
        path = default_project_path("三月 總表", tmp_path)
        assert path.parent == tmp_path
        assert path.name.startswith("三月_總表_")
        assert path.suffix == ".json"


# =============================================================================
# Import
# =============================================================================


class TestImportProject:
    """Tests for opening and merging project documents."""

    def test_overwrite_mode(self, project, report_config) -> None:
        """With nothing open, the project replaces the state."""
        result = import_project(project, config=report_config)
        assert not result.merged
        assert result.title == "三月總表"
        assert result.raw_records == project.raw_records
        assert _row(result.rows, "丙").bap_ya_target == 3
        assert _row(result.rows, "丙").sun_ya_avg == 5
        assert _row(result.rows, "西區 小計").bap_ya_target == 3

    def test_overwrite_keeps_typed_goal(self, report_config) -> None:
        """A typed goal above its formula is kept when a project is opened."""
        rows = _with(
            build_consolidated_rows([], report_config),
            "甲",
            bap_ya_target=2,
            bap_youth_goal=9,
        )
        doc = ProjectDocument(title="t", master_rows=rows)
        result = import_project(doc, config=report_config)
        assert _row(result.rows, "甲").bap_youth_goal == 9
        assert _row(result.rows, "合計").bap_youth_goal == 9

    def test_merge_mode(self, project, report_config, record_factory) -> None:
        """Both raw sets are combined and both sides' targets survive."""
        current_raw = [record_factory("east.xlsx", "甲小計", {"主日_青職": 12})]
        current_rows = build_report(current_raw, config=report_config).consolidated_rows
        current_rows = _with(current_rows, "甲", bap_ya_target=2)

        result = import_project(project, current_rows, current_raw, report_config)
        assert result.merged
        assert result.title is None
        assert len(result.raw_records) == 2
        assert _row(result.rows, "甲").bap_ya_target == 2
        assert _row(result.rows, "丙").bap_ya_target == 3
        assert _row(result.rows, "甲").sun_ya_avg == 12
        assert _row(result.rows, "丙").sun_ya_avg == 5
        assert _row(result.rows, "合計").bap_ya_target == 5

    def test_merge_without_current_rows(self, project, report_config, record_factory) -> None:
        """Merging with raw data but no rows uses the project's rows."""
        current_raw = [record_factory("east.xlsx", "甲小計", {"主日_青職": 12})]
        result = import_project(project, (), current_raw, report_config)
        assert result.merged
        assert _row(result.rows, "丙").bap_ya_target == 3
        assert _row(result.rows, "甲").sun_ya_avg == 12
