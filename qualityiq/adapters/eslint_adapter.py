"""Lint analyzer adapter with optional adaptive round-robin rule checking."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from qualityiq.adapters.base import BaseAnalyzerAdapter
from qualityiq.config.settings import EngineSettings
from qualityiq.core.violation import Violation, ViolationSource
from qualityiq.rules.catalog import categorize_lint_rule
from qualityiq.rules.scheduler import REDUCED_INTERVAL, ZERO_THRESHOLD, AdaptiveRuleScheduler
from qualityiq.utils.process import CancellationToken, ToolError, ToolRunner

__all__ = ["ESLintAdapter", "DEFAULT_LINT_RULES"]

logger = logging.getLogger(__name__)

DEFAULT_LINT_RULES: list[str] = [
    "no-console",
    "no-debugger",
    "prefer-const",
    "no-var",
    "no-unused-vars",
    "no-restricted-imports",
    "@typescript-eslint/no-unused-vars",
    "@typescript-eslint/no-floating-promises",
    "@typescript-eslint/prefer-nullish-coalescing",
    "@typescript-eslint/prefer-optional-chain",
    "unicorn/prefer-node-protocol",
    "unicorn/prefer-module",
    "unicorn/prefer-array-flat-map",
    "unicorn/prefer-string-starts-ends-with",
    "unicorn/prefer-number-properties",
    "unicorn/prefer-spread",
    "unicorn/explicit-length-check",
    "unicorn/no-useless-undefined",
]


class ESLintAdapter(BaseAnalyzerAdapter):
    """Runs eslint with JSON output.

    In round-robin mode only one rule's results are refreshed per cycle (chosen
    by an :class:`AdaptiveRuleScheduler`); the other rules contribute their
    cached results.
    """

    name = "eslint"
    source = ViolationSource.ESLINT

    def __init__(
        self,
        root_dir: Path,
        config: EngineSettings | None = None,
        runner: ToolRunner | None = None,
        *,
        zero_threshold: int = ZERO_THRESHOLD,
        reduced_interval: int = REDUCED_INTERVAL,
    ) -> None:
        super().__init__(root_dir, config)
        self.runner = runner or ToolRunner(self.root_dir)
        rules = self.config.options.get("rules")
        self.rules: list[str] = list(rules) if isinstance(rules, list) else list(DEFAULT_LINT_RULES)
        self.scheduler = AdaptiveRuleScheduler(
            self.rules, self.name,
            zero_threshold=zero_threshold,
            reduced_interval=reduced_interval,
        )

    @classmethod
    def default_config(cls) -> EngineSettings:
        return EngineSettings(priority=2, timeout=35.0, options={"round_robin": True})

    def analyze(self, target_path: Path, options: Mapping[str, Any], token: CancellationToken) -> list[Violation]:
        if options.get("round_robin", True):
            _, violations = self.scheduler.run_cycle(
                lambda rule: self.run_rules([rule], target_path, options, token)
            )
            return violations
        return self.run_rules(self.rules, target_path, options, token)

    def result_metadata(self) -> dict[str, Any]:
        status = self.scheduler.status()
        return {
            "checked_rule": status.last_checked_rule,
            "round_robin_progress": status.progress,
            "adaptive_rules": status.adaptive_rules,
        }

    def build_command(self, target_path: Path, options: Mapping[str, Any]) -> list[str]:
        if options.get("command"):
            return [str(part) for part in options["command"]]
        max_warnings = int(options.get("max_warnings", 500))
        return ["npx", "eslint", "--format", "json", "--max-warnings", str(max_warnings), str(target_path)]

    def run_rules(
        self,
        rules: list[str],
        target_path: Path,
        options: Mapping[str, Any],
        token: CancellationToken,
    ) -> list[Violation]:
        cmd = self.build_command(target_path, options)
        output = self.runner.run(cmd, timeout=options.get("process_timeout"), token=token)
        # 0 = clean, 1 = lint problems, 2 = configuration error
        if output.returncode == 2 or output.returncode > 2:
            raise ToolError(cmd[0], output.stderr or "eslint configuration error", output.returncode)
        if output.stderr:
            logger.debug("[%s] stderr: %s", self.name, output.stderr[:200])
        if not output.stdout.strip():
            logger.warning("[%s] No output received", self.name)
            return []
        only = rules if len(rules) < len(self.rules) else None
        return self.parse_output(output.stdout, only)

    def parse_output(self, text: str, only_rules: list[str] | None = None) -> list[Violation]:
        results = _load_json_results(text)
        wanted = set(only_rules) if only_rules else None
        violations: list[Violation] = []
        for file_result in results:
            file_path = self.relative_path(str(file_result.get("filePath", "")))
            for message in file_result.get("messages", []):
                rule = message.get("ruleId")
                if rule is None and message.get("fatal"):
                    rule = "parse-error"
                if wanted is not None and rule not in wanted:
                    continue
                text_msg = message.get("message") or "ESLint violation"
                category, severity = categorize_lint_rule(rule)
                violations.append(self.create_violation(
                    file_path,
                    int(message.get("line") or 1),
                    text_msg,
                    category,
                    severity,
                    rule=rule,
                    message=text_msg,
                    column=message.get("column"),
                ))
        return violations


def _load_json_results(text: str) -> list[dict[str, Any]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # truncated output: keep everything up to the last complete array
        last = text.rfind("]")
        if last <= 0:
            logger.warning("Could not parse eslint JSON output")
            return []
        try:
            data = json.loads(text[: last + 1])
        except json.JSONDecodeError:
            logger.warning("Could not recover partial eslint JSON output")
            return []
    return data if isinstance(data, list) else []
