"""Project documents: save, load and import the full working state.

A project file stores the consolidated rows (with every manual target, base
and edit), the raw records they were computed from and a title, so that a
report can be reopened, shared between operators and merged.

Persisted shape (version "2.0")::

    {
      "title": "總表",
      "masterData": [ {consolidated row}, ... ],
      "rawData": [ {raw record}, ... ],
      "timestamp": "2025-03-01T08:00:00+00:00",
      "version": "2.0"
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from church_stats.config import DATA_DIR, get_report_config, setup_logging
from church_stats.pipeline import partition_records, process_consolidated_report
from church_stats.sheets.consolidated import ConsolidatedRow, recalculate_row
from church_stats.transformer.merge import GOAL_FIELDS, merge_consolidated_rows

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from church_stats.config import ReportConfig

logger = setup_logging(__name__)

__all__ = [
    "ProjectDocument",
    "ProjectImportResult",
    "default_project_path",
    "import_project",
    "load_project_json",
    "save_project_json",
]


@dataclass
class ProjectDocument:
    """Persisted project state."""

    title: str
    master_rows: list[ConsolidatedRow] = field(default_factory=list)
    raw_records: list[dict[str, Any]] = field(default_factory=list)
    timestamp: str = ""
    version: str = "2.0"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary using the persisted key names."""
        return {
            "title": self.title,
            "masterData": [row.to_dict() for row in self.master_rows],
            "rawData": list(self.raw_records),
            "timestamp": self.timestamp or datetime.now(UTC).isoformat(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_title: str = "總表") -> ProjectDocument:
        """Create instance from a persisted dictionary.

        Raises
        ------
        ValueError
            If ``masterData`` is missing or not a list.
        """
        master = data.get("masterData")
        if not isinstance(master, list):
            msg = "Invalid project file: 'masterData' must be a list"
            raise ValueError(msg)

        raw = data.get("rawData") or []
        if not isinstance(raw, list):
            msg = "Invalid project file: 'rawData' must be a list"
            raise ValueError(msg)

        return cls(
            title=str(data.get("title") or default_title),
            master_rows=[ConsolidatedRow.from_dict(row) for row in master],
            raw_records=[dict(record) for record in raw],
            timestamp=str(data.get("timestamp") or ""),
            version=str(data.get("version") or ""),
        )


@dataclass
class ProjectImportResult:
    """Outcome of importing a project document.

    ``title`` is the document title in overwrite mode and ``None`` in merge
    mode, where the current title is kept.
    """

    rows: list[ConsolidatedRow]
    raw_records: list[dict[str, Any]]
    title: str | None
    merged: bool


# =============================================================================
# Persistence
# =============================================================================


def default_project_path(title: str, output_dir: Path | None = None) -> Path:
    """Return ``<output_dir>/<title>_<YYYY-MM-DD>.json``.

    ``output_dir`` defaults to ``DATA_DIR/projects``.
    """
    save_dir = output_dir if output_dir is not None else DATA_DIR / "projects"
    safe_title = title.strip().replace("/", "_").replace(" ", "_") or "project"
    return save_dir / f"{safe_title}_{datetime.now(UTC).strftime('%Y-%m-%d')}.json"


def save_project_json(doc: ProjectDocument, path: Path | None = None) -> Path:
    """Write a project document as UTF-8 JSON.

    Parameters
    ----------
    doc
        Project state to persist.
    path
        Destination file; defaults to :func:`default_project_path`.

    Returns
    -------
    Path
        Location of the written file.
    """
    filepath = path if path is not None else default_project_path(doc.title)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with filepath.open("w", encoding="utf-8") as f:
        json.dump(doc.to_dict(), f, indent=2, ensure_ascii=False, default=str)

    logger.info("Saved project: %s (%d rows)", filepath, len(doc.master_rows))
    return filepath


def load_project_json(path: Path, config: ReportConfig | None = None) -> ProjectDocument:
    """Load a project document.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    ValueError
        If the file is not a project document.
    """
    if not path.exists():
        msg = f"Project file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open(encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict):
        msg = f"Invalid project file: {path}"
        raise ValueError(msg)

    cfg = config if config is not None else get_report_config()
    doc = ProjectDocument.from_dict(data, default_title=cfg.default_title)
    logger.info("Loaded project '%s' from %s", doc.title, path)
    return doc


# =============================================================================
# Import
# =============================================================================


def import_project(
    doc: ProjectDocument,
    current_rows: Sequence[ConsolidatedRow] = (),
    current_raw: Sequence[dict[str, Any]] = (),
    config: ReportConfig | None = None,
) -> ProjectImportResult:
    """Open or merge a project document into the current state.

    Without current raw data the document replaces the state (overwrite
    mode). Otherwise both raw datasets are concatenated, the two row sets
    are cross-merged so that both sides' targets survive, and the tree is
    rebuilt from the combined raw data (merge mode).

    Parameters
    ----------
    doc
        Loaded project document.
    current_rows
        Consolidated rows currently open.
    current_raw
        Raw records currently open.
    config
        Report configuration; defaults to the project config.

    Returns
    -------
    ProjectImportResult
        New rows and raw records, the title to use, and the mode applied.
    """
    cfg = config if config is not None else get_report_config()
    # Stored goals may have been typed in; the reconcile step raises them to
    # their formula if needed
    imported_rows = [
        row
        if row.is_aggregate or row.is_last_year
        else recalculate_row(row, skip_fields=GOAL_FIELDS, config=cfg)
        for row in doc.master_rows
    ]

    merging = len(current_raw) > 0
    if merging:
        final_raw = [*current_raw, *doc.raw_records]
        legacy_rows = (
            merge_consolidated_rows(current_rows, imported_rows, cfg) if current_rows else imported_rows
        )
        logger.info("Merging project '%s' into current report", doc.title)
    else:
        final_raw = list(doc.raw_records)
        legacy_rows = imported_rows
        logger.info("Opening project '%s'", doc.title)

    batch = partition_records(final_raw)
    rows = process_consolidated_report(batch.raw, [*legacy_rows, *batch.legacy], cfg)

    return ProjectImportResult(
        rows=rows,
        raw_records=final_raw,
        title=None if merging else doc.title,
        merged=merging,
    )
