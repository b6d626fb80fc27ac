"""Orchestration engine: runs adapters concurrently, merges, deduplicates and persists."""

from __future__ import annotations

import logging
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from qualityiq.adapters.base import BaseAnalyzerAdapter
from qualityiq.adapters.eslint_adapter import ESLintAdapter
from qualityiq.adapters.typescript_adapter import TypeScriptAdapter
from qualityiq.adapters.unused_exports_adapter import UnusedExportsAdapter
from qualityiq.config.settings import QualityIQSettings
from qualityiq.core.crossover import CrossoverDetector, CrossoverWarning
from qualityiq.core.violation import SEVERITY_RANK, EngineResult, Violation, ViolationSeverity
from qualityiq.storage.service import DeltaResult, StorageError, StorageService, StoreResult
from qualityiq.storage.utils import validate_violation

__all__ = [
    "QualityIQEngine",
    "EngineExecutionError",
    "ViolationSummary",
    "AnalysisResult",
    "CycleResult",
    "merge_violations",
    "deduplicate_violations",
    "build_summary",
]

logger = logging.getLogger(__name__)

_ADAPTER_TYPES: dict[str, type[BaseAnalyzerAdapter]] = {
    TypeScriptAdapter.name: TypeScriptAdapter,
    ESLintAdapter.name: ESLintAdapter,
    UnusedExportsAdapter.name: UnusedExportsAdapter,
}


class EngineExecutionError(Exception):
    """A non-recoverable adapter failed; the cycle was aborted after all adapters settled."""

    def __init__(self, failures: dict[str, Exception], results: list[EngineResult]) -> None:
        self.failures = failures
        self.results = results
        detail = ", ".join(f"{name}: {exc}" for name, exc in failures.items())
        super().__init__(f"Non-recoverable analyzer failure ({detail})")


@dataclass
class ViolationSummary:
    total: int = 0
    by_severity: dict[str, int] = field(default_factory=dict)
    by_source: dict[str, int] = field(default_factory=dict)
    by_category: dict[str, int] = field(default_factory=dict)
    top_files: list[tuple[str, int]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class AnalysisResult:
    violations: list[Violation]
    engine_results: list[EngineResult]
    summary: ViolationSummary
    crossover_warnings: list[CrossoverWarning] = field(default_factory=list)
    total_execution_time: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_errors(self) -> bool:
        return self.summary.by_severity.get(ViolationSeverity.ERROR.value, 0) > 0

    @property
    def failed_engines(self) -> list[str]:
        return [r.engine_name for r in self.engine_results if not r.success]

    @property
    def exit_code(self) -> int:
        return 1 if self.has_errors else 0


@dataclass
class CycleResult:
    analysis: AnalysisResult
    check_id: int
    store: StoreResult
    delta: DeltaResult

    @property
    def exit_code(self) -> int:
        return self.analysis.exit_code


def merge_violations(results: Iterable[EngineResult], priority_order: list[str]) -> list[Violation]:
    """Concatenate successful results and sort them independently of completion order.

    Sort key: adapter priority, severity (error < warn < info), file, line.
    """
    rank = {name: index for index, name in enumerate(priority_order)}
    tagged: list[tuple[int, Violation]] = []
    for result in results:
        if not result.success:
            continue
        position = rank.get(result.engine_name, len(rank))
        tagged.extend((position, v) for v in result.violations)
    tagged.sort(key=lambda item: (item[0], SEVERITY_RANK.get(item[1].severity, 99), item[1].file, item[1].line))
    return [v for _, v in tagged]


def _dedup_key(violation: Violation, strategy: str) -> tuple[Any, ...]:
    if strategy == "location":
        return (violation.file, violation.line)
    if strategy == "similar":
        return (violation.file, violation.category, violation.code[:50])
    return (violation.file, violation.line, violation.code, violation.source)


def deduplicate_violations(violations: list[Violation], strategy: str = "exact") -> list[Violation]:
    """Keep the first violation for every key of *strategy*."""
    if strategy not in ("exact", "location", "similar"):
        raise ValueError(f"Unknown deduplication strategy: {strategy}")
    seen: set[tuple[Any, ...]] = set()
    unique: list[Violation] = []
    for v in violations:
        key = _dedup_key(v, strategy)
        if key in seen:
            continue
        seen.add(key)
        unique.append(v)
    return unique


def build_summary(violations: list[Violation], results: list[EngineResult], top_n: int = 10) -> ViolationSummary:
    summary = ViolationSummary(
        total=len(violations),
        by_severity={s.value: 0 for s in ViolationSeverity},
    )
    for v in violations:
        summary.by_severity[v.severity.value] = summary.by_severity.get(v.severity.value, 0) + 1
        summary.by_source[v.source.value] = summary.by_source.get(v.source.value, 0) + 1
        summary.by_category[v.category.value] = summary.by_category.get(v.category.value, 0) + 1
    # most_common keeps first-encountered order for equal counts
    summary.top_files = Counter(v.file for v in violations).most_common(top_n)
    summary.errors = [f"{r.engine_name}: {r.error or 'failed'}" for r in results if not r.success]
    return summary


class QualityIQEngine:
    """Central orchestrator for analysis cycles."""

    def __init__(
        self,
        settings: QualityIQSettings,
        root_dir: Path | None = None,
        storage: StorageService | None = None,
        adapters: Iterable[BaseAnalyzerAdapter] | None = None,
    ) -> None:
        self.settings = settings
        self.root_dir = (root_dir or Path.cwd()).resolve()
        self.storage = storage
        self.adapters: dict[str, BaseAnalyzerAdapter] = {}
        for adapter in (self._build_adapters() if adapters is None else adapters):
            self._register(adapter)
        self.crossover = self._build_crossover()
        self._restore_schedules()

    def _build_adapters(self) -> list[BaseAnalyzerAdapter]:
        adapters: list[BaseAnalyzerAdapter] = []
        for name, cfg in self.settings.engines.items():
            if not cfg.enabled:
                continue
            adapter_type = _ADAPTER_TYPES.get(name)
            if adapter_type is None:
                logger.warning("No adapter registered for engine %r; skipping", name)
                continue
            if adapter_type is ESLintAdapter:
                adapters.append(ESLintAdapter(
                    self.root_dir,
                    cfg,
                    zero_threshold=self.settings.scheduler.zero_threshold,
                    reduced_interval=self.settings.scheduler.reduced_interval,
                ))
            else:
                adapters.append(adapter_type(self.root_dir, cfg))
        return adapters

    def _register(self, adapter: BaseAnalyzerAdapter) -> None:
        if adapter.name in self.adapters:
            logger.warning("Replacing adapter %r", adapter.name)
        self.adapters[adapter.name] = adapter

    def _build_crossover(self) -> CrossoverDetector:
        return CrossoverDetector(
            self.settings.crossover,
            {a.name: a.source for a in self.adapters.values()},
        )

    def add_adapter(self, adapter: BaseAnalyzerAdapter) -> None:
        self._register(adapter)
        self.crossover = self._build_crossover()

    def remove_adapter(self, name: str) -> bool:
        if self.adapters.pop(name, None) is None:
            return False
        self.crossover = self._build_crossover()
        return True

    def ordered_adapters(self) -> list[BaseAnalyzerAdapter]:
        """Adapters by priority; ties keep registration order."""
        return sorted(self.adapters.values(), key=lambda a: a.priority)

    def _scheduled_adapters(self) -> list[Any]:
        return [a for a in self.adapters.values() if getattr(a, "scheduler", None) is not None]

    def _restore_schedules(self) -> None:
        if self.storage is None:
            return
        for adapter in self._scheduled_adapters():
            saved = self.storage.load_rule_schedules(adapter.name)
            if saved:
                adapter.scheduler.restore(saved)
                logger.debug("Restored %d schedule entries for %s", len(saved), adapter.name)

    def save_schedules(self) -> None:
        if self.storage is None:
            return
        for adapter in self._scheduled_adapters():
            self.storage.save_rule_schedules(adapter.scheduler.entries(), priority=adapter.priority)

    def analyze(self, target_path: str | Path | None = None) -> AnalysisResult:
        """Run every adapter concurrently and return the merged, deduplicated batch.

        Raises :class:`EngineExecutionError` when an adapter with
        ``allow_failure=False`` fails, and
        :class:`~qualityiq.core.crossover.CrossoverViolationError` when the
        crossover failure policy applies.
        """
        start = time.perf_counter()
        target = target_path if target_path is not None else self.settings.target_path
        adapters = self.ordered_adapters()
        results: dict[str, EngineResult] = {}
        failures: dict[str, Exception] = {}

        if adapters:
            with ThreadPoolExecutor(max_workers=len(adapters), thread_name_prefix="qualityiq-engine") as pool:
                futures = {pool.submit(adapter.execute, target): adapter for adapter in adapters}
                for future in as_completed(futures):
                    adapter = futures[future]
                    try:
                        results[adapter.name] = future.result()
                    except Exception as exc:
                        logger.error("[%s] Non-recoverable failure: %s", adapter.name, exc)
                        failures[adapter.name] = exc

        engine_results = [results[a.name] for a in adapters if a.name in results]
        if failures:
            raise EngineExecutionError(failures, engine_results)

        merged = merge_violations(engine_results, [a.name for a in adapters])
        if self.settings.deduplication.enabled:
            merged = deduplicate_violations(merged, self.settings.deduplication.strategy)

        warnings = self.crossover.analyze(merged, engine_results)
        self.crossover.enforce(warnings)

        summary = build_summary(merged, engine_results, self.settings.top_files)
        elapsed = time.perf_counter() - start
        logger.info(
            "Analysis finished in %.2fs: %d violations from %d analyzers (%d failed)",
            elapsed, len(merged), len(engine_results), len(summary.errors),
        )
        return AnalysisResult(
            violations=merged,
            engine_results=engine_results,
            summary=summary,
            crossover_warnings=warnings,
            total_execution_time=elapsed,
        )

    def run_cycle(self, target_path: str | Path | None = None) -> CycleResult:
        """One full cycle: analyze, record deltas, store, then save scheduler state.

        Fingerprints missing from the batch are only recorded as ``removed``
        history; they stay active until resolved explicitly.
        """
        if self.storage is None:
            raise RuntimeError("run_cycle requires a storage service")
        storage = self.storage
        analysis = self.analyze(target_path)

        check_id = storage.start_rule_check("all", "orchestrator")
        try:
            current = [v.fingerprint for v in analysis.violations if not validate_violation(v)]
            delta = storage.record_violation_deltas(check_id, current)
            stored = storage.store_violations(analysis.violations)
            self._record_engine_checks(analysis.engine_results)
            storage.record_performance_metric(
                "cycle_time",
                analysis.total_execution_time * 1000,
                "ms",
                {"violations": len(analysis.violations), "engines": len(analysis.engine_results)},
            )
        except StorageError as exc:
            try:
                storage.fail_rule_check(check_id, str(exc))
            except StorageError:
                logger.warning("Could not mark check %d as failed", check_id)
            raise

        storage.complete_rule_check(
            check_id,
            len(analysis.violations),
            int(round(analysis.total_execution_time * 1000)),
        )
        self.save_schedules()
        for message in stored.errors:
            logger.warning("Rejected violation: %s", message)
        return CycleResult(analysis=analysis, check_id=check_id, store=stored, delta=delta)

    def _record_engine_checks(self, results: list[EngineResult]) -> None:
        assert self.storage is not None
        for result in results:
            rule = result.metadata.get("checked_rule") or "all"
            check_id = self.storage.start_rule_check(rule, result.engine_name)
            if result.success:
                self.storage.complete_rule_check(check_id, len(result.violations), result.execution_time_ms)
            else:
                self.storage.fail_rule_check(check_id, result.error or "failed", result.execution_time_ms)

    def status(self) -> list[dict[str, Any]]:
        info: list[dict[str, Any]] = []
        for adapter in self.ordered_adapters():
            entry = adapter.metadata()
            scheduler = getattr(adapter, "scheduler", None)
            if scheduler is not None:
                entry["schedule"] = scheduler.status()
            info.append(entry)
        return info
