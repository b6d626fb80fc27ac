"""Tests for the QualityIQ orchestration engine."""
from __future__ import annotations
import pytest
from qualityiq.adapters.eslint_adapter import ESLintAdapter
from qualityiq.adapters.typescript_adapter import TypeScriptAdapter
from qualityiq.adapters.unused_exports_adapter import UnusedExportsAdapter
from qualityiq.config.settings import CrossoverSettings, EngineSettings, QualityIQSettings, SchedulerSettings
from qualityiq.core.crossover import CrossoverViolationError
from qualityiq.core.engine import (
    EngineExecutionError, QualityIQEngine, build_summary, deduplicate_violations, merge_violations,
)
from qualityiq.core.violation import EngineResult, ViolationCategory as Cat, ViolationSeverity as Sev, ViolationSource as Src
from qualityiq.rules.scheduler import RuleScheduleEntry
from tests.conftest import FakeAdapter, make_violation

TYPE_AWARE = "@typescript-eslint/no-unnecessary-condition"


def _engine(tmp_path, adapters, storage=None, **settings) -> QualityIQEngine:
    return QualityIQEngine(QualityIQSettings(**settings), tmp_path, storage=storage, adapters=adapters)


class TestMerge:
    def test_sort_key(self) -> None:
        a = EngineResult("a", [
            make_violation(file="z.ts", line=1, severity=Sev.INFO),
            make_violation(file="b.ts", line=9, severity=Sev.ERROR),
            make_violation(file="b.ts", line=2, severity=Sev.ERROR),
        ])
        b = EngineResult("b", [make_violation(file="a.ts", line=1, severity=Sev.ERROR)])
        merged = merge_violations([b, a], ["a", "b"])
        assert [(v.file, v.line) for v in merged] == [("b.ts", 2), ("b.ts", 9), ("z.ts", 1), ("a.ts", 1)]

    def test_failed_results_skipped(self) -> None:
        failed = EngineResult("a", [make_violation()], success=False)
        assert merge_violations([failed], ["a"]) == []


class TestDeduplicate:
    def test_exact_keeps_first(self) -> None:
        first = make_violation(message="first")
        second = make_violation(message="second")
        assert deduplicate_violations([first, second], "exact") == [first]

    def test_exact_keeps_different_sources(self) -> None:
        batch = [make_violation(source=Src.ESLINT), make_violation(source=Src.TYPESCRIPT)]
        assert len(deduplicate_violations(batch, "exact")) == 2

    def test_location(self) -> None:
        batch = [make_violation(code="a"), make_violation(code="b", source=Src.TYPESCRIPT), make_violation(line=2)]
        assert len(deduplicate_violations(batch, "location")) == 2

    def test_similar_uses_code_prefix(self) -> None:
        prefix = "x" * 50
        batch = [make_violation(line=1, code=prefix + "1"), make_violation(line=8, code=prefix + "2")]
        assert len(deduplicate_violations(batch, "similar")) == 1

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ValueError):
            deduplicate_violations([], "fuzzy")


class TestSummary:
    def test_counts(self) -> None:
        batch = [make_violation(severity=Sev.ERROR), make_violation(line=2, category=Cat.STYLE)]
        summary = build_summary(batch, [])
        assert summary.total == 2 and summary.by_severity == {"error": 1, "warn": 1, "info": 0}
        assert summary.by_source == {"eslint": 2} and summary.by_category == {"code-quality": 1, "style": 1}

    def test_top_files_ties_keep_first_seen(self) -> None:
        batch = [make_violation(file="b.ts"), make_violation(file="a.ts"), make_violation(file="c.ts", line=1),
                 make_violation(file="c.ts", line=2)]
        assert build_summary(batch, [], top_n=3).top_files == [("c.ts", 2), ("b.ts", 1), ("a.ts", 1)]

    def test_errors_list(self) -> None:
        failed = EngineResult("lint", success=False, error="connection refused")
        assert build_summary([], [failed]).errors == ["lint: connection refused"]


class TestAdapterRegistry:
    def test_builds_default_adapters(self, tmp_path) -> None:
        engine = QualityIQEngine(QualityIQSettings(), tmp_path)
        assert [a.name for a in engine.ordered_adapters()] == ["typescript", "eslint", "unused-exports"]
        assert isinstance(engine.adapters["typescript"], TypeScriptAdapter)
        assert isinstance(engine.adapters["unused-exports"], UnusedExportsAdapter)

    def test_status_includes_schedule_for_round_robin_linter(self, tmp_path) -> None:
        status = {s["name"]: s for s in QualityIQEngine(QualityIQSettings(), tmp_path).status()}
        assert "schedule" in status["eslint"] and "schedule" not in status["typescript"]
        assert status["typescript"]["priority"] == 1 and status["eslint"]["source"] == "eslint"

    def test_scheduler_settings_passed_to_linter(self, tmp_path) -> None:
        settings = QualityIQSettings(scheduler=SchedulerSettings(zero_threshold=2, reduced_interval=7))
        lint = QualityIQEngine(settings, tmp_path).adapters["eslint"]
        assert isinstance(lint, ESLintAdapter)
        assert (lint.scheduler.zero_threshold, lint.scheduler.reduced_interval) == (2, 7)

    def test_disabled_engine_skipped(self, tmp_path) -> None:
        engines = {"typescript": EngineSettings(enabled=False), "eslint": EngineSettings(priority=2)}
        engine = QualityIQEngine(QualityIQSettings(engines=engines), tmp_path)
        assert list(engine.adapters) == ["eslint"]

    def test_add_and_remove(self, tmp_path) -> None:
        engine = _engine(tmp_path, [])
        engine.add_adapter(FakeAdapter("x"))
        assert engine.remove_adapter("x") and not engine.remove_adapter("x")

    def test_priority_ties_keep_insertion_order(self, tmp_path) -> None:
        engine = _engine(tmp_path, [FakeAdapter("b", priority=2), FakeAdapter("c", priority=1), FakeAdapter("a", priority=2)])
        assert [a.name for a in engine.ordered_adapters()] == ["c", "b", "a"]


class TestAnalyze:
    def test_clean_run(self, tmp_path) -> None:
        a = FakeAdapter("types", [make_violation(file="a.ts", line=1), make_violation(file="b.ts", line=2)],
                        source=Src.TYPESCRIPT, priority=1)
        b = FakeAdapter("lint", [make_violation(file="c.ts", line=3)], source=Src.ESLINT, priority=2)
        result = _engine(tmp_path, [a, b]).analyze()
        assert len(result.violations) == 3 and result.crossover_warnings == []
        assert result.summary.errors == [] and [r.engine_name for r in result.engine_results] == ["types", "lint"]

    def test_adapter_isolation(self, tmp_path) -> None:
        good = FakeAdapter("good", [make_violation()], priority=1)
        bad = FakeAdapter("bad", error=RuntimeError("connection refused"), priority=2)
        result = _engine(tmp_path, [good, bad]).analyze()
        assert len(result.violations) == 1
        assert result.failed_engines == ["bad"] and "bad: connection refused" in result.summary.errors

    def test_order_independent_of_completion(self, tmp_path) -> None:
        slow = FakeAdapter("slow", [make_violation(file="z.ts")], priority=1, delay=0.3)
        fast = FakeAdapter("fast", [make_violation(file="a.ts")], priority=2)
        result = _engine(tmp_path, [fast, slow]).analyze()
        assert [v.file for v in result.violations] == ["z.ts", "a.ts"]

    def test_non_recoverable_failure_aborts(self, tmp_path) -> None:
        good = FakeAdapter("good", [make_violation()])
        fatal = FakeAdapter("fatal", error=RuntimeError("boom"), allow_failure=False)
        with pytest.raises(EngineExecutionError) as exc_info:
            _engine(tmp_path, [good, fatal]).analyze()
        assert list(exc_info.value.failures) == ["fatal"]
        assert [r.engine_name for r in exc_info.value.results] == ["good"]

    def test_deduplication_applied(self, tmp_path) -> None:
        adapter = FakeAdapter("lint", [make_violation(message="one"), make_violation(message="two")])
        assert len(_engine(tmp_path, [adapter]).analyze().violations) == 1

    def test_deduplication_disabled(self, tmp_path) -> None:
        adapter = FakeAdapter("lint", [make_violation(message="one"), make_violation(message="two")])
        engine = _engine(tmp_path, [adapter], deduplication={"enabled": False})
        assert len(engine.analyze().violations) == 2

    def test_crossover_warnings_reported(self, tmp_path) -> None:
        types = FakeAdapter("typescript", [make_violation(file="file.ts", line=10, code="TS2322")], source=Src.TYPESCRIPT)
        lint = FakeAdapter("eslint", [make_violation(file="file.ts", line=10)], source=Src.ESLINT, priority=2)
        result = _engine(tmp_path, [types, lint]).analyze()
        assert [w.type.value for w in result.crossover_warnings] == ["duplicate-violation"]

    def test_crossover_follows_configured_type_engine(self, tmp_path) -> None:
        flow = FakeAdapter("flow", [make_violation(file="file.ts", line=10, code="F1")], source=Src.CUSTOM)
        lint = FakeAdapter("eslint", [make_violation(file="file.ts", line=10)], source=Src.ESLINT, priority=2)
        engine = _engine(tmp_path, [flow, lint], crossover=CrossoverSettings(type_engine="flow"))
        assert [w.type.value for w in engine.analyze().crossover_warnings] == ["duplicate-violation"]
        engine.remove_adapter("flow")
        assert engine.crossover.type_source is None

    def test_fail_on_crossover(self, tmp_path) -> None:
        lint = FakeAdapter("eslint", [make_violation(rule=TYPE_AWARE, severity=Sev.ERROR)], source=Src.ESLINT)
        engine = _engine(tmp_path, [lint], crossover=CrossoverSettings(fail_on_crossover=True))
        with pytest.raises(CrossoverViolationError):
            engine.analyze()

    def test_exit_code(self, tmp_path) -> None:
        assert _engine(tmp_path, [FakeAdapter("x", [make_violation()])]).analyze().exit_code == 0
        assert _engine(tmp_path, [FakeAdapter("x", [make_violation(severity=Sev.ERROR)])]).analyze().exit_code == 1

    def test_no_adapters(self, tmp_path) -> None:
        result = _engine(tmp_path, []).analyze()
        assert result.violations == [] and result.summary.total == 0


class TestRunCycle:
    def test_requires_storage(self, tmp_path) -> None:
        with pytest.raises(RuntimeError):
            _engine(tmp_path, []).run_cycle()

    def test_clean_run_persists(self, tmp_path, storage) -> None:
        a = FakeAdapter("types", [make_violation(file="a.ts", line=1), make_violation(file="b.ts", line=2)],
                        source=Src.TYPESCRIPT)
        b = FakeAdapter("lint", [make_violation(file="c.ts", line=3)], source=Src.ESLINT, priority=2)
        cycle = _engine(tmp_path, [a, b], storage=storage).run_cycle()
        assert cycle.store.inserted == 3 and cycle.delta.counts["added"] == 3
        data = storage.get_dashboard_data()
        assert data.active_violations == 3 and data.total_files_affected == 3

    def test_missing_fingerprint_stays_active(self, tmp_path, storage) -> None:
        keep, gone = make_violation(line=1), make_violation(line=2)
        adapter = FakeAdapter("lint", [keep, gone], source=Src.ESLINT)
        engine = _engine(tmp_path, [adapter], storage=storage)
        engine.run_cycle()
        adapter.violations = [keep]
        cycle = engine.run_cycle()
        assert cycle.delta.counts == {"added": 0, "removed": 1, "unchanged": 1}
        assert storage.get_storage_stats().active_violations == 2
        removed = storage.get_violation_history(actions=["removed"])
        assert [(h.check_id, h.fingerprint) for h in removed] == [(cycle.check_id, gone.fingerprint)]

    def test_recoverable_crash_does_not_resolve(self, tmp_path, storage) -> None:
        v = make_violation(source=Src.TYPESCRIPT)
        adapter = FakeAdapter("types", [v], source=Src.TYPESCRIPT)
        engine = _engine(tmp_path, [adapter], storage=storage)
        engine.run_cycle()
        adapter.error = RuntimeError("connection refused")
        cycle = engine.run_cycle()
        assert cycle.analysis.summary.errors == ["types: connection refused"]
        assert [r.status for r in storage.get_violations(status=None)] == ["active"]

    def test_explicit_resolve_after_cycle(self, tmp_path, storage) -> None:
        v = make_violation()
        _engine(tmp_path, [FakeAdapter("lint", [v], source=Src.ESLINT)], storage=storage).run_cycle()
        assert storage.resolve_violations([v.fingerprint]) == 1
        assert storage.get_violations(status="resolved")[0].fingerprint == v.fingerprint

    def test_records_rule_checks(self, tmp_path, storage) -> None:
        good = FakeAdapter("good", [make_violation()])
        bad = FakeAdapter("bad", error=RuntimeError("nope"), priority=2)
        _engine(tmp_path, [good, bad], storage=storage).run_cycle()
        perf = {(p.rule_id, p.engine): p for p in storage.get_rule_performance()}
        assert perf[("all", "orchestrator")].successful_runs == 1
        assert perf[("all", "good")].successful_runs == 1 and perf[("all", "bad")].failed_runs == 1

    def test_fatal_failure_persists_nothing(self, tmp_path, storage) -> None:
        good = FakeAdapter("good", [make_violation()])
        fatal = FakeAdapter("fatal", error=RuntimeError("boom"), allow_failure=False)
        with pytest.raises(EngineExecutionError):
            _engine(tmp_path, [good, fatal], storage=storage).run_cycle()
        stats = storage.get_storage_stats()
        assert stats.total_violations == 0 and stats.total_history_records == 0

    def test_scheduler_state_persisted_and_restored(self, tmp_path, storage) -> None:
        engines = {"eslint": EngineSettings(options={"round_robin": True, "rules": ["no-console"]})}
        settings = QualityIQSettings(engines=engines)
        engine = QualityIQEngine(settings, tmp_path, storage=storage)
        engine.save_schedules()
        storage.save_rule_schedules([
            RuleScheduleEntry(entry.rule_id, entry.engine, zero_streak=6, last_checked_cycle=4)
            for entry in engine.adapters["eslint"].scheduler.entries()
        ])
        restored = QualityIQEngine(settings, tmp_path, storage=storage)
        entry = restored.adapters["eslint"].scheduler.entries()[0]
        assert (entry.zero_streak, entry.last_checked_cycle) == (6, 4)
