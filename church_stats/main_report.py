#!/usr/bin/env python3
"""Report orchestrator - load raw records, build both views, save.

This module orchestrates the complete report workflow:
1. Load raw record arrays (one JSON file per parsed spreadsheet)
2. Optionally open or merge a saved project file
3. Optionally import Sunday bases and baptism targets
4. Build the monthly and consolidated views and check aggregates
5. Save a project file (and optionally a report JSON and Excel dump)
6. Print a region summary

Usage (from project root):
    python -m church_stats.main_report --raw data/raw/yunlin.json data/raw/chiayi.json
    python -m church_stats.main_report --raw data/raw/*.json --project data/projects/總表.json
    python -m church_stats.main_report --raw data/raw/*.json --import-target data/ref/目標.json
    python -m church_stats.main_report --raw data/raw/*.json --excel --quiet

CLI Flags:
    --raw               Raw record files (JSON arrays)
    --project, -p       Project file to open (or merge, when --raw is given)
    --import-base       Reference file with Sunday bases
    --import-target     Reference file with baptism targets
    --title, -t         Report title (default: project title or config default)
    --output-dir, -o    Output directory (default: DATA_DIR/output)
    --excel             Also write an Excel workbook
    --no-save           Don't save project/report files
    --quiet             Suppress the summary
    --fail-on-sum-mismatch Exit with error code if aggregate checks fail
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

# Add project root to path when running directly
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from church_stats.config import DATA_DIR, ReportConfig, get_report_config, setup_logging  # noqa: E402
from church_stats.pipeline import VALIDATION_TOLERANCE, ReportResult, build_report  # noqa: E402
from church_stats.transformer.reference_import import apply_reference_import  # noqa: E402
from church_stats.transformer.validation import (  # noqa: E402
    format_sum_validations,
    validate_subtotals,
)
from church_stats.writer.project_writer import (  # noqa: E402
    ProjectDocument,
    import_project,
    load_project_json,
    save_project_json,
)
from church_stats.writer.report_writer import save_report_json, write_report_excel  # noqa: E402

logger = setup_logging(__name__)


# =============================================================================
# Input Loading
# =============================================================================


def load_records(path: Path) -> list[dict[str, Any]]:
    """Load a JSON array of records.

    A project-like object carrying a ``rawData`` list is accepted too.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    ValueError
        If the file holds neither a list nor a ``rawData`` list.
    """
    if not path.exists():
        msg = f"Input file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open(encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict) and isinstance(data.get("rawData"), list):
        data = data["rawData"]
    if not isinstance(data, list):
        msg = f"Expected a JSON array of records in {path}"
        raise ValueError(msg)

    records = [r for r in data if isinstance(r, dict)]
    logger.info("Loaded %d records from %s", len(records), path.name)
    return records


# =============================================================================
# Report
# =============================================================================


def print_report(result: ReportResult, title: str) -> None:
    """Print a region summary of the consolidated view.

    Parameters
    ----------
    result
        Built report.
    title
        Report title shown in the header.
    """
    print(f"\n{'=' * 72}")
    print(f"{title}")
    print(f"{'=' * 72}")
    print(
        f"  {'':<14}{'Baptisms':>10}{'Goal':>8}{'Rate':>9}"
        f"{'Sunday':>10}{'Base':>8}{'YA share':>10}",
    )
    print(f"  {'─' * 68}")

    for row in result.consolidated_rows:
        if not row.is_aggregate:
            continue
        print(
            f"  {row.name:<14}{row.bap_all_total:>10,}{row.bap_all_goal:>8,}"
            f"{row.bap_all_rate:>9}{row.sun_all_avg:>10,}{row.sun_all_base:>8,}"
            f"{row.sun_ya_pct:>10}",
        )

    empty = [
        row.name
        for row in result.monthly_rows
        if not row.is_subtotal and not row.is_grand_total and not row.details
    ]
    if empty:
        print(f"\nNo data: {', '.join(empty)}")

    print()
    print(format_sum_validations(result.validations))
    print(f"{'=' * 72}\n")


def _apply_reference(
    result: ReportResult,
    path: Path,
    mode: str,
    config: ReportConfig,
) -> ReportResult:
    imported = apply_reference_import(result.consolidated_rows, load_records(path), mode, config)
    logger.info("Imported %s for %d churches from %s", mode, imported.updated_count, path.name)
    return ReportResult(
        monthly_rows=result.monthly_rows,
        consolidated_rows=imported.rows,
        validations=validate_subtotals(imported.rows, tolerance=VALIDATION_TOLERANCE),
    )


def process_report(
    raw_paths: list[Path],
    project_path: Path | None = None,
    base_path: Path | None = None,
    target_path: Path | None = None,
    title: str | None = None,
    output_dir: Path | None = None,
    save: bool = True,
    excel: bool = False,
    verbose: bool = True,
) -> tuple[ReportResult, ProjectDocument]:
    """Run the end-to-end report workflow.

    Parameters
    ----------
    raw_paths : list[Path]
        Raw record files.
    project_path : Path, optional
        Project file to open; merged into the raw data when both are given.
    base_path, target_path : Path, optional
        Reference files for Sunday bases and baptism targets.
    title : str, optional
        Report title; defaults to the project title or the config default.
    output_dir : Path, optional
        Where output files go; defaults to ``DATA_DIR/output``.
    save : bool, optional
        Persist the project file and report JSON when ``True``.
    excel : bool, optional
        Also write an Excel workbook.
    verbose : bool, optional
        Print the summary when ``True``.

    Returns
    -------
    tuple[ReportResult, ProjectDocument]
        Built report and the project document describing it.
    """
    cfg = get_report_config()
    raw_records: list[dict[str, Any]] = []
    for path in raw_paths:
        raw_records.extend(load_records(path))

    result = build_report(raw_records, config=cfg)
    report_title = title or cfg.default_title

    # Step 2: open or merge a project
    if project_path is not None:
        doc = load_project_json(project_path, cfg)
        imported = import_project(doc, result.consolidated_rows, raw_records, cfg)
        raw_records = imported.raw_records
        if imported.title and not title:
            report_title = imported.title
        result = build_report(raw_records, legacy_rows=imported.rows, config=cfg)

    # Step 3: reference imports
    if base_path is not None:
        result = _apply_reference(result, base_path, "base", cfg)
    if target_path is not None:
        result = _apply_reference(result, target_path, "target", cfg)

    document = ProjectDocument(
        title=report_title,
        master_rows=result.consolidated_rows,
        raw_records=raw_records,
        version=cfg.document_version,
    )

    # Step 4: save
    if save:
        out_dir = output_dir if output_dir is not None else DATA_DIR / "output"
        project_file = save_project_json(
            document,
            out_dir / f"{report_title}_project.json",
        )
        logger.info("Saved project to: %s", project_file)
        save_report_json(result, out_dir / f"{report_title}_report.json", title=report_title)
        if excel:
            write_report_excel(result, out_dir / f"{report_title}.xlsx")

    # Step 5: summary
    if verbose:
        print_report(result, report_title)

    return result, document


# =============================================================================
# CLI
# =============================================================================


def main() -> int:
    """Parse CLI flags and build the report.

    Returns
    -------
    int
        ``0`` on success; ``1`` on input errors or (with
        ``--fail-on-sum-mismatch``) aggregate mismatches.
    """
    parser = argparse.ArgumentParser(
        description="Build the monthly and consolidated church statistics report.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m church_stats.main_report --raw a.json b.json
  python -m church_stats.main_report --project data/projects/總表_2025-03-01.json
  python -m church_stats.main_report --raw a.json --project p.json   # Merge
  python -m church_stats.main_report --raw a.json --import-base 基數.json --excel
        """,
    )
    parser.add_argument("--raw", type=Path, nargs="*", default=[], help="Raw record JSON files")
    parser.add_argument("--project", "-p", type=Path, help="Project file to open or merge")
    parser.add_argument("--import-base", type=Path, help="Reference file with Sunday bases")
    parser.add_argument("--import-target", type=Path, help="Reference file with baptism targets")
    parser.add_argument("--title", "-t", help="Report title")
    parser.add_argument("--output-dir", "-o", type=Path, help="Output directory")
    parser.add_argument("--excel", action="store_true", help="Also write an Excel workbook")
    parser.add_argument("--no-save", action="store_true", help="Don't save output files")
    parser.add_argument("--quiet", action="store_true", help="Don't print the summary")
    parser.add_argument(
        "--fail-on-sum-mismatch",
        action="store_true",
        help="Exit with error if an aggregate row disagrees with its members",
    )

    args = parser.parse_args()

    if not args.raw and args.project is None:
        parser.error("provide --raw files, --project, or both")

    try:
        result, _document = process_report(
            raw_paths=args.raw,
            project_path=args.project,
            base_path=args.import_base,
            target_path=args.import_target,
            title=args.title,
            output_dir=args.output_dir,
            save=not args.no_save,
            excel=args.excel,
            verbose=not args.quiet,
        )
    except (FileNotFoundError, ValueError) as e:
        logger.error("Cannot build report: %s", e)
        return 1

    if args.fail_on_sum_mismatch and not result.is_valid():
        logger.error("Aggregate check failed and --fail-on-sum-mismatch is set")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
