"""Tests for the adapter contract and the concrete analyzer adapters."""
from __future__ import annotations
import json
import threading
import time
from pathlib import Path
import pytest
from qualityiq.adapters.base import AdapterTimeoutError
from qualityiq.adapters.eslint_adapter import DEFAULT_LINT_RULES, ESLintAdapter
from qualityiq.adapters.typescript_adapter import TypeScriptAdapter
from qualityiq.adapters.unused_exports_adapter import UnusedExportsAdapter
from qualityiq.config.settings import EngineSettings
from qualityiq.core.violation import ViolationCategory, ViolationSeverity, ViolationSource
from qualityiq.utils.process import ToolOutput
from tests.conftest import TSC_OUTPUT, UNUSED_EXPORTS_OUTPUT, FakeAdapter, make_violation


class StubRunner:
    def __init__(self, stdout: str = "", stderr: str = "", returncode: int = 0) -> None:
        self.output = ToolOutput(stdout=stdout, stderr=stderr, returncode=returncode)
        self.calls: list[list[str]] = []

    def run(self, args, *, timeout=None, token=None) -> ToolOutput:
        self.calls.append(list(args))
        return self.output


def _eslint_json(root: Path) -> str:
    return json.dumps([{
        "filePath": str(root / "src" / "app.ts"),
        "messages": [
            {"ruleId": "no-console", "message": "Unexpected console statement.", "line": 1, "column": 1, "severity": 1},
            {"ruleId": "prefer-const", "message": "'x' is never reassigned.", "line": 2, "column": 5, "severity": 2},
        ],
    }])


class TestAdapterContract:
    def test_success_result(self, tmp_path) -> None:
        adapter = FakeAdapter("fake", [make_violation()], root_dir=tmp_path)
        result = adapter.execute(".")
        assert result.success and result.engine_name == "fake" and len(result.violations) == 1
        assert result.execution_time >= 0 and result.metadata["violations_found"] == 1

    def test_normalization_trims_and_stamps_source(self, tmp_path) -> None:
        raw = make_violation(file=" src/a.ts ", message="  spaced  ", source=ViolationSource.ESLINT)
        adapter = FakeAdapter("fake", [raw], source=ViolationSource.TYPESCRIPT, root_dir=tmp_path)
        v = adapter.execute(".").violations[0]
        assert v.file == "src/a.ts" and v.message == "spaced" and v.source == ViolationSource.TYPESCRIPT

    def test_failure_recovered_when_allowed(self, tmp_path) -> None:
        adapter = FakeAdapter("flaky", [make_violation()], error=RuntimeError("connection refused"), root_dir=tmp_path)
        result = adapter.execute(".")
        assert not result.success and result.violations == [] and result.error == "connection refused"
        assert result.metadata["failure_recovery"] is True and result.execution_time >= 0

    def test_failure_propagates_when_not_allowed(self, tmp_path) -> None:
        adapter = FakeAdapter("strict", error=RuntimeError("boom"), allow_failure=False, root_dir=tmp_path)
        with pytest.raises(RuntimeError, match="boom"):
            adapter.execute(".")

    def test_timeout_synthesizes_failed_result(self, tmp_path) -> None:
        adapter = FakeAdapter("slow", [make_violation()], delay=5.0, timeout=0.1, root_dir=tmp_path)
        start = time.monotonic()
        result = adapter.execute(".")
        assert time.monotonic() - start < 3
        assert not result.success and result.metadata["timed_out"] is True and "timed out" in result.error
        assert adapter.tokens[0].cancelled

    def test_timeout_raises_when_not_allowed(self, tmp_path) -> None:
        adapter = FakeAdapter("slow", delay=5.0, timeout=0.1, allow_failure=False, root_dir=tmp_path)
        with pytest.raises(AdapterTimeoutError):
            adapter.execute(".")

    def test_worker_is_daemon_thread(self, tmp_path) -> None:
        seen: list[threading.Thread] = []

        class RecordingAdapter(FakeAdapter):
            def analyze(self, target_path, options, token):
                seen.append(threading.current_thread())
                return super().analyze(target_path, options, token)

        RecordingAdapter("fake", root_dir=tmp_path).execute(".")
        assert seen[0].daemon and seen[0] is not threading.main_thread()

    def test_timeout_with_analyzer_ignoring_token(self, tmp_path) -> None:
        release = threading.Event()

        class StubbornAdapter(FakeAdapter):
            def analyze(self, target_path, options, token):
                release.wait(5)
                return []

        start = time.monotonic()
        result = StubbornAdapter("stubborn", timeout=0.1, root_dir=tmp_path).execute(".")
        release.set()
        assert time.monotonic() - start < 3 and result.metadata["timed_out"] is True

    def test_fresh_token_per_invocation(self, tmp_path) -> None:
        adapter = FakeAdapter("fake", root_dir=tmp_path)
        adapter.execute(".")
        adapter.execute(".")
        assert adapter.tokens[0] is not adapter.tokens[1]

    def test_target_and_options(self, tmp_path) -> None:
        adapter = FakeAdapter("fake", root_dir=tmp_path)
        adapter.config.options["configured"] = 1
        adapter.execute("src", {"extra": True})
        target, options = adapter.calls[0]
        assert target == (tmp_path / "src").resolve()
        assert options == {"configured": 1, "extra": True}

    def test_metadata(self, tmp_path) -> None:
        meta = FakeAdapter("fake", priority=4, root_dir=tmp_path).metadata()
        assert meta["name"] == "fake" and meta["priority"] == 4 and meta["allow_failure"] is True


class TestTypeScriptAdapter:
    def test_parse_output(self, tmp_path) -> None:
        violations = TypeScriptAdapter(tmp_path, runner=StubRunner()).parse_output(TSC_OUTPUT)
        assert len(violations) == 3
        first = violations[0]
        assert (first.file, first.line, first.column, first.rule) == ("src/api/client.ts", 12, 5, "TS2307")
        assert first.category == ViolationCategory.IMPORT_ERROR and first.severity == ViolationSeverity.ERROR
        assert violations[2].severity == ViolationSeverity.WARN
        assert violations[2].category == ViolationCategory.UNUSED_VARS

    def test_missing_tsconfig_reports_setup_issue(self, tmp_path) -> None:
        runner = StubRunner()
        result = TypeScriptAdapter(tmp_path, runner=runner).execute(".")
        assert result.success and len(result.violations) == 1
        v = result.violations[0]
        assert v.category == ViolationCategory.SETUP_ISSUE and v.source == ViolationSource.TYPESCRIPT
        assert runner.calls == []

    def test_execute_with_diagnostics(self, tmp_ts_project) -> None:
        runner = StubRunner(stdout=TSC_OUTPUT, returncode=2)
        result = TypeScriptAdapter(tmp_ts_project, runner=runner).execute(".")
        assert result.success and len(result.violations) == 3
        assert runner.calls[0][:3] == ["npx", "tsc", "--noEmit"]

    def test_crash_becomes_failed_result(self, tmp_ts_project) -> None:
        runner = StubRunner(stderr="npx: command not found", returncode=127)
        result = TypeScriptAdapter(tmp_ts_project, runner=runner).execute(".")
        assert not result.success and "npx" in result.error

    def test_custom_command(self, tmp_path) -> None:
        runner = StubRunner()
        config = EngineSettings(options={"command": ["tsc", "-p", "custom.json"]})
        TypeScriptAdapter(tmp_path, config, runner=runner).execute(".")
        assert runner.calls == [["tsc", "-p", "custom.json"]]


class TestESLintAdapter:
    def test_default_rules(self, tmp_path) -> None:
        assert ESLintAdapter(tmp_path, runner=StubRunner()).rules == DEFAULT_LINT_RULES

    def test_parse_output(self, tmp_path) -> None:
        violations = ESLintAdapter(tmp_path, runner=StubRunner()).parse_output(_eslint_json(tmp_path))
        assert [(v.file, v.line, v.rule) for v in violations] == [
            ("src/app.ts", 1, "no-console"), ("src/app.ts", 2, "prefer-const"),
        ]
        assert violations[0].category == ViolationCategory.CODE_QUALITY

    def test_parse_output_filters_rules(self, tmp_path) -> None:
        violations = ESLintAdapter(tmp_path, runner=StubRunner()).parse_output(_eslint_json(tmp_path), ["prefer-const"])
        assert [v.rule for v in violations] == ["prefer-const"]

    def test_fatal_message_is_parse_error(self, tmp_path) -> None:
        text = json.dumps([{"filePath": "src/bad.ts", "messages": [
            {"ruleId": None, "fatal": True, "message": "Parsing error: Unexpected token", "line": 3, "severity": 2},
        ]}])
        v = ESLintAdapter(tmp_path, runner=StubRunner()).parse_output(text)[0]
        assert v.rule == "parse-error" and v.category == ViolationCategory.SYNTAX_ERROR
        assert v.severity == ViolationSeverity.ERROR

    def test_trailing_garbage_recovered(self, tmp_path) -> None:
        text = _eslint_json(tmp_path) + "\n(node:123) Warning: something odd"
        assert len(ESLintAdapter(tmp_path, runner=StubRunner()).parse_output(text)) == 2

    def test_unparseable_output(self, tmp_path) -> None:
        assert ESLintAdapter(tmp_path, runner=StubRunner()).parse_output("not json at all") == []

    def test_round_robin_checks_one_rule_per_cycle(self, tmp_path) -> None:
        runner = StubRunner(stdout=_eslint_json(tmp_path), returncode=1)
        config = EngineSettings(options={"round_robin": True, "rules": ["no-console", "prefer-const"]})
        adapter = ESLintAdapter(tmp_path, config, runner=runner)

        first = adapter.execute(".")
        assert [v.rule for v in first.violations] == ["no-console"]
        assert first.metadata["checked_rule"] == "no-console"

        second = adapter.execute(".")
        assert [v.rule for v in second.violations] == ["no-console", "prefer-const"]
        assert second.metadata["checked_rule"] == "prefer-const"

    def test_full_run_without_round_robin(self, tmp_path) -> None:
        runner = StubRunner(stdout=_eslint_json(tmp_path), returncode=1)
        config = EngineSettings(options={"round_robin": False, "rules": ["no-console", "prefer-const"]})
        result = ESLintAdapter(tmp_path, config, runner=runner).execute(".")
        assert len(result.violations) == 2 and all(v.source == ViolationSource.ESLINT for v in result.violations)

    def test_configuration_error_fails(self, tmp_path) -> None:
        runner = StubRunner(stderr="Oops! Something went wrong", returncode=2)
        result = ESLintAdapter(tmp_path, runner=runner).execute(".")
        assert not result.success and "Something went wrong" in result.error

    def test_empty_output(self, tmp_path) -> None:
        result = ESLintAdapter(tmp_path, runner=StubRunner(stdout="")).execute(".")
        assert result.success and result.violations == []


class TestUnusedExportsAdapter:
    def test_parse_output(self, tmp_path) -> None:
        violations = UnusedExportsAdapter(tmp_path, runner=StubRunner()).parse_output(UNUSED_EXPORTS_OUTPUT)
        assert [(v.file, v.line, v.code) for v in violations] == [
            ("src/utils/format.ts", 8, "formatDate"),
            ("src/utils/format.ts", 8, "formatTime"),
            ("src/legacy/index.ts", 1, "default"),
        ]
        v = violations[0]
        assert v.category == ViolationCategory.UNUSED_EXPORT and v.severity == ViolationSeverity.INFO
        assert v.message == "Unused export 'formatDate' - consider removing if not needed"

    def test_execute(self, tmp_ts_project) -> None:
        runner = StubRunner(stdout=UNUSED_EXPORTS_OUTPUT, returncode=1)
        result = UnusedExportsAdapter(tmp_ts_project, runner=runner).execute(".")
        assert result.success and len(result.violations) == 3
        assert result.violations[0].source == ViolationSource.UNUSED_EXPORTS

    def test_unexpected_exit_code(self, tmp_ts_project) -> None:
        runner = StubRunner(stderr="crash", returncode=3)
        assert not UnusedExportsAdapter(tmp_ts_project, runner=runner).execute(".").success
