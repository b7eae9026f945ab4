"""Configuration management for church-stats.

This module centralizes file-system paths, environment variables, logging
setup, and the split configuration loaders used by the aggregation pipeline.

Split configuration files
-------------------------
* ``config.json``: shared project config (provenance keys, row labels, total
  keywords, document version)
* ``taxonomy.json``: ordered region -> church taxonomy and small-group seed maps
* ``monthly/metrics.json``: column alias tables and extraction modes per metric

Environment variables
---------------------
``CONFIG_DIR``, ``DATA_DIR`` and ``LOGS_DIR`` override default directories.
Data and log directories are created eagerly on import so downstream callers
can rely on their existence.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = Path(os.getenv("CONFIG_DIR", PROJECT_ROOT / "config"))
DATA_DIR = Path(os.getenv("DATA_DIR", PROJECT_ROOT / "data"))
LOGS_DIR = Path(os.getenv("LOGS_DIR", PROJECT_ROOT / "logs"))

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# Fallbacks used when config.json omits a key
DEFAULT_SOURCE_KEY = "來源報表"
DEFAULT_SHEET_KEY = "工作表名稱"
DEFAULT_TOTAL_KEYWORDS = ("小計", "合計", "總計", "Total", "總數", "全召會")


def _load_json(path: Path, description: str) -> dict[str, Any]:
    """Read a JSON config file, raising a descriptive error when missing."""
    if not path.exists():
        msg = f"{description} not found: {path}"
        raise FileNotFoundError(msg)

    with path.open(encoding="utf-8") as f:
        return json.load(f)  # type: ignore[no-any-return]


def get_config(config_dir: Path | None = None) -> dict[str, Any]:
    """Load the primary project configuration.

    Parameters
    ----------
    config_dir : Path, optional
        Directory holding the config files; defaults to ``CONFIG_DIR``.

    Returns
    -------
    dict[str, Any]
        Parsed contents of ``config/config.json``.

    Raises
    ------
    FileNotFoundError
        If ``config/config.json`` is missing.
    json.JSONDecodeError
        If the file exists but is not valid JSON.
    """
    base = config_dir if config_dir is not None else CONFIG_DIR
    return _load_json(base / "config.json", "Configuration file")


def get_taxonomy_config(config_dir: Path | None = None) -> dict[str, Any]:
    """Load the region/church taxonomy and seed maps from ``taxonomy.json``."""
    base = config_dir if config_dir is not None else CONFIG_DIR
    return _load_json(base / "taxonomy.json", "Taxonomy file")


def get_metric_specs(config_dir: Path | None = None) -> dict[str, Any]:
    """Load monthly metric alias tables from ``monthly/metrics.json``.

    Returns
    -------
    dict[str, Any]
        Mapping with a ``metrics`` key: metric name -> ``mode``, optional
        ``scope`` and ``components`` (list of alias lists).

    Raises
    ------
    FileNotFoundError
        If the specs file is missing.
    """
    base = config_dir if config_dir is not None else CONFIG_DIR
    return _load_json(base / "monthly" / "metrics.json", "Metric specs")


def setup_logging(name: str = "church_stats") -> logging.Logger:
    """Configure a console+file logger if not already present.

    Parameters
    ----------
    name : str, optional
        Logger namespace; reused to avoid duplicate handlers.

    Returns
    -------
    logging.Logger
        Logger with INFO-level console handler and DEBUG-level file handler
        under ``LOGS_DIR``.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        logger.setLevel(logging.DEBUG)

        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_format = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
        console_handler.setFormatter(console_format)
        logger.addHandler(console_handler)

        # File handler
        log_filename = f"{datetime.now(UTC).strftime('%Y-%m-%d')}_run.log"
        file_handler = logging.FileHandler(LOGS_DIR / log_filename, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    return logger


# =============================================================================
# Report Configuration Object
# =============================================================================


@dataclass
class RegionSpec:
    """One region of the taxonomy with its churches in report order."""

    region: str
    churches: list[str] = field(default_factory=list)


@dataclass
class MetricSpec:
    """Extraction rule for one monthly metric.

    Attributes
    ----------
    key : str
        Metric name (e.g., ``"sun_ya"``).
    components : list[list[str]]
        Alias lists. Within a component the first alias present in a row
        wins; components are added together per row.
    mode : str
        ``"sum"``, ``"max"`` or ``"avg"`` (trimmed mean).
    scope : str
        ``"representative"`` to read the selected rows, ``"unit"`` to read
        every row matched to the church.
    """

    key: str
    components: list[list[str]]
    mode: str = "avg"
    scope: str = "representative"


@dataclass
class ReportConfig:
    """Static configuration handed to the aggregation pipeline.

    Holds the ordered taxonomy, the small-group seed maps, the raw-record
    provenance keys, the row labels used for aggregate rows, and the metric
    alias table. Build it with :func:`load_report_config` or directly in
    tests.
    """

    regions: list[RegionSpec]
    child_group_seeds: dict[str, int] = field(default_factory=dict)
    teen_group_seeds: dict[str, int] = field(default_factory=dict)
    metrics: dict[str, MetricSpec] = field(default_factory=dict)
    source_key: str = DEFAULT_SOURCE_KEY
    sheet_key: str = DEFAULT_SHEET_KEY
    total_keywords: tuple[str, ...] = DEFAULT_TOTAL_KEYWORDS
    district_marker: str = "區"
    subtotal_suffix: str = " 小計"
    grand_total_label: str = "合計"
    last_year_label: str = "去年統計"
    other_goal_allowance: int = 5
    default_title: str = "總表"
    document_version: str = "2.0"

    def unit_names(self) -> list[str]:
        """Return every church name in taxonomy order."""
        return [church for spec in self.regions for church in spec.churches]

    def region_of(self, unit: str) -> str | None:
        """Return the region owning ``unit``, or ``None`` if unknown."""
        for spec in self.regions:
            if unit in spec.churches:
                return spec.region
        return None

    def subtotal_label(self, region: str) -> str:
        """Return the display name of a region subtotal row."""
        return f"{region}{self.subtotal_suffix}"

    def metric(self, key: str) -> MetricSpec:
        """Return the metric spec for ``key``.

        Raises
        ------
        KeyError
            If the metric table has no entry for ``key``.
        """
        if key not in self.metrics:
            msg = f"Metric '{key}' not defined in monthly/metrics.json"
            raise KeyError(msg)
        return self.metrics[key]


def parse_metric_specs(raw: dict[str, Any]) -> dict[str, MetricSpec]:
    """Convert the ``metrics`` mapping of ``metrics.json`` into specs."""
    specs: dict[str, MetricSpec] = {}
    for key, spec in raw.get("metrics", {}).items():
        specs[key] = MetricSpec(
            key=key,
            components=[list(aliases) for aliases in spec.get("components", [])],
            mode=spec.get("mode", "avg"),
            scope=spec.get("scope", "representative"),
        )
    return specs


def load_report_config(config_dir: Path | None = None) -> ReportConfig:
    """Assemble a :class:`ReportConfig` from the split JSON files.

    Parameters
    ----------
    config_dir : Path, optional
        Directory holding ``config.json``, ``taxonomy.json`` and
        ``monthly/metrics.json``; defaults to ``CONFIG_DIR``.

    Returns
    -------
    ReportConfig
        Fully populated configuration.
    """
    config = get_config(config_dir)
    taxonomy = get_taxonomy_config(config_dir)
    metrics = parse_metric_specs(get_metric_specs(config_dir))

    provenance = config.get("provenance_keys", {})
    labels = config.get("labels", {})
    project = config.get("project", {})
    seeds = taxonomy.get("seed_group_counts", {})

    return ReportConfig(
        regions=[
            RegionSpec(region=entry["region"], churches=list(entry.get("churches", [])))
            for entry in taxonomy.get("regions", [])
        ],
        child_group_seeds=cast("dict[str, int]", dict(seeds.get("child", {}))),
        teen_group_seeds=cast("dict[str, int]", dict(seeds.get("teen", {}))),
        metrics=metrics,
        source_key=provenance.get("source_file", DEFAULT_SOURCE_KEY),
        sheet_key=provenance.get("sheet", DEFAULT_SHEET_KEY),
        total_keywords=tuple(config.get("total_keywords", DEFAULT_TOTAL_KEYWORDS)),
        district_marker=config.get("district_marker", "區"),
        subtotal_suffix=labels.get("subtotal_suffix", " 小計"),
        grand_total_label=labels.get("grand_total", "合計"),
        last_year_label=labels.get("last_year", "去年統計"),
        other_goal_allowance=int(config.get("other_goal_allowance", 5)),
        default_title=project.get("default_title", "總表"),
        document_version=str(project.get("document_version", "2.0")),
    )


_default_config: ReportConfig | None = None


def get_report_config() -> ReportConfig:
    """Return the process-wide default config, loading it on first use."""
    global _default_config
    if _default_config is None:
        _default_config = load_report_config()
    return _default_config
