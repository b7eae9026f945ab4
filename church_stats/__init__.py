"""church-stats: monthly and consolidated statistics for a group of churches.

The package turns heterogeneous spreadsheet records (already parsed into
key/value mappings) into a per-church monthly report and a consolidated
report with targets, actuals, derived rates, region subtotals and a grand
total.

Architecture
------------
* ``extractor``: representative-row selection and sum/max/trimmed-mean metrics.
* ``sheets``: the monthly and consolidated views and their row builders.
* ``transformer``: field kinds, rates, subtotals, merge/reconcile and
  reference (base/target) imports.
* ``writer``: project documents (JSON) and report output (JSON/Excel).
* ``pipeline``: raw records -> monthly -> consolidated -> subtotals.

Configuration
-------------
Taxonomy, labels and metric alias tables live under ``config/``. Paths
respect ``CONFIG_DIR``, ``DATA_DIR`` and ``LOGS_DIR`` overrides.

Examples
--------
Build a report from two parsed spreadsheets:

    >>> python -m church_stats.main_report --raw yunlin.json chiayi.json

Merge a colleague's project file into it:

    >>> python -m church_stats.main_report --raw yunlin.json --project shared.json
"""

__version__ = "0.1.0"
__all__ = ["__version__"]


def get_version() -> str:
    """Return the current package version string.

    Returns
    -------
    str
        Semantic version identifier (e.g., ``"0.1.0"``).
    """
    return __version__


__all__.append("get_version")
