"""Writer package: project documents and report output.

Project files: <title>_<YYYY-MM-DD>.json under data/projects
Report output: report_<YYYY-MM-DD>.json and an optional .xlsx dump
"""

from church_stats.writer.project_writer import (
    ProjectDocument,
    ProjectImportResult,
    default_project_path,
    import_project,
    load_project_json,
    save_project_json,
)
from church_stats.writer.report_writer import (
    details_to_dataframe,
    rate_to_fraction,
    rows_to_dataframe,
    save_report_json,
    write_report_excel,
)

__all__ = [
    # Project documents
    "ProjectDocument",
    "ProjectImportResult",
    "default_project_path",
    "details_to_dataframe",
    "import_project",
    "load_project_json",
    "rate_to_fraction",
    # Report output
    "rows_to_dataframe",
    "save_project_json",
    "save_report_json",
    "write_report_excel",
]
