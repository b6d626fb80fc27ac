"""Pydantic-based configuration model and YAML loader for QualityIQ."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field


__all__ = [
    "EngineSettings",
    "DeduplicationSettings",
    "CrossoverSettings",
    "SchedulerSettings",
    "DatabaseSettings",
    "WatchSettings",
    "QualityIQSettings",
    "load_settings",
]

_CONFIG_FILE_NAMES: list[str] = [
    "qualityiq.yaml",
    "qualityiq.yml",
    ".qualityiq.yaml",
    ".qualityiq.yml",
]


class EngineSettings(BaseModel):
    """Execution settings for one analyzer adapter."""

    enabled: bool = Field(default=True, description="Run this analyzer.")
    priority: int = Field(
        default=1,
        description="Ordering key for merge tie-breaking (lower comes first).",
    )
    timeout: float | None = Field(
        default=None,
        description="Seconds before the analyzer is cancelled; None disables the timeout.",
    )
    allow_failure: bool = Field(
        default=True,
        description="Degrade to an empty result instead of aborting the cycle when the analyzer fails.",
    )
    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Analyzer-specific options.",
    )


def _default_engines() -> dict[str, EngineSettings]:
    return {
        "typescript": EngineSettings(priority=1, timeout=60.0),
        "eslint": EngineSettings(priority=2, timeout=35.0, options={"round_robin": True}),
        "unused-exports": EngineSettings(priority=3, timeout=30.0),
    }


class DeduplicationSettings(BaseModel):
    enabled: bool = Field(default=True, description="Collapse duplicate violations after merging.")
    strategy: Literal["exact", "location", "similar"] = Field(
        default="exact",
        description="exact: file+line+code+source; location: file+line; similar: file+category+code prefix.",
    )


class CrossoverSettings(BaseModel):
    enabled: bool = Field(default=True, description="Run crossover detection after each merge.")
    warn_on_type_aware_rules: bool = Field(
        default=True,
        description="Warn when the linter reports rules that need full type information.",
    )
    warn_on_duplicate_violations: bool = Field(
        default=True,
        description="Warn when the type analyzer and the linter flag the same location.",
    )
    fail_on_crossover: bool = Field(
        default=False,
        description="Fail the cycle when an error-severity crossover warning is produced.",
    )
    slow_engine_threshold: float = Field(
        default=10.0,
        description="Seconds of linter runtime above which a configuration conflict is reported.",
    )
    type_engine: str = Field(default="typescript", description="Adapter acting as the type analyzer.")
    lint_engine: str = Field(default="eslint", description="Adapter acting as the pattern linter.")


class SchedulerSettings(BaseModel):
    zero_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive empty checks before a rule is backed off.",
    )
    reduced_interval: int = Field(
        default=5,
        ge=1,
        description="Cycles between checks of a backed-off rule.",
    )


class DatabaseSettings(BaseModel):
    path: str = Field(
        default=".qualityiq/quality.db",
        description="SQLite database file, relative to the project root.",
    )
    batch_size: int = Field(default=100, ge=1, description="Records per upsert transaction.")
    max_history_days: int = Field(default=30, ge=1, description="Retention for history and resolved violations.")
    enable_metrics: bool = Field(default=True, description="Record performance metrics.")


class WatchSettings(BaseModel):
    interval: float = Field(default=3.0, gt=0, description="Seconds between watch cycles.")
    debounce: float = Field(default=0.5, ge=0, description="Quiet period before a change-triggered cycle.")
    auto_cleanup: bool = Field(default=True, description="Periodically purge old history.")
    cleanup_every: int = Field(default=100, ge=1, description="Cycles between automatic cleanups.")


class QualityIQSettings(BaseModel):
    """Top-level QualityIQ configuration."""

    target_path: str = Field(default=".", description="Directory to analyze, relative to the project root.")
    top_files: int = Field(default=10, ge=1, description="Number of files listed in summaries.")
    engines: dict[str, EngineSettings] = Field(
        default_factory=_default_engines,
        description="Per-analyzer settings keyed by adapter name.",
    )
    deduplication: DeduplicationSettings = Field(default_factory=DeduplicationSettings)
    crossover: CrossoverSettings = Field(default_factory=CrossoverSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)

    def engine(self, name: str) -> EngineSettings:
        return self.engines.get(name) or EngineSettings()


def _find_config_file(search_dir: Path) -> Path | None:
    """Walk up from *search_dir* looking for a config file."""
    current = search_dir.resolve()
    while True:
        for name in _CONFIG_FILE_NAMES:
            candidate = current / name
            if candidate.is_file():
                return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def load_settings(
    config_path: Path | None = None,
    search_dir: Path | None = None,
) -> QualityIQSettings:
    """Load settings from a YAML file, falling back to defaults."""
    raw: dict[str, Any] = {}

    if config_path is not None:
        resolved = Path(config_path).resolve()
        if resolved.is_file():
            raw = yaml.safe_load(resolved.read_text(encoding="utf-8")) or {}
    else:
        found = _find_config_file(search_dir or Path.cwd())
        if found is not None:
            raw = yaml.safe_load(found.read_text(encoding="utf-8")) or {}

    engines = raw.get("engines")
    if isinstance(engines, dict):
        # partial engine blocks in YAML are layered over the defaults
        merged = {name: cfg.model_dump() for name, cfg in _default_engines().items()}
        for name, cfg in engines.items():
            merged[name] = {**merged.get(name, {}), **(cfg or {})}
        raw = {**raw, "engines": merged}

    return QualityIQSettings(**raw)
