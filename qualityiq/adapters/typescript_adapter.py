"""Type analyzer adapter: runs the TypeScript compiler in check-only mode."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Mapping

from qualityiq.adapters.base import BaseAnalyzerAdapter
from qualityiq.config.settings import EngineSettings
from qualityiq.core.violation import Violation, ViolationCategory, ViolationSeverity, ViolationSource
from qualityiq.rules.catalog import categorize_compiler_code
from qualityiq.utils.process import CancellationToken, ToolError, ToolRunner

__all__ = ["TypeScriptAdapter"]

_DIAGNOSTIC_RE = re.compile(r"^(?P<file>.+?)\((?P<line>\d+),(?P<col>\d+)\):\s*(?P<level>error|warning)\s+(?P<code>TS\d+):\s*(?P<message>.+)$")


class TypeScriptAdapter(BaseAnalyzerAdapter):
    name = "typescript"
    source = ViolationSource.TYPESCRIPT

    def __init__(self, root_dir: Path, config: EngineSettings | None = None, runner: ToolRunner | None = None) -> None:
        super().__init__(root_dir, config)
        self.runner = runner or ToolRunner(self.root_dir)

    @classmethod
    def default_config(cls) -> EngineSettings:
        return EngineSettings(priority=1, timeout=60.0)

    def find_tsconfig(self, target_path: Path) -> Path | None:
        for directory in (target_path, self.root_dir):
            candidate = directory / "tsconfig.json"
            if candidate.is_file():
                return candidate
        return None

    def build_command(self, target_path: Path, options: Mapping[str, Any]) -> list[str] | None:
        if options.get("command"):
            return [str(part) for part in options["command"]]
        tsconfig = self.find_tsconfig(target_path)
        if tsconfig is None:
            return None
        return ["npx", "tsc", "--noEmit", "--pretty", "false", "-p", str(tsconfig)]

    def analyze(self, target_path: Path, options: Mapping[str, Any], token: CancellationToken) -> list[Violation]:
        cmd = self.build_command(target_path, options)
        if cmd is None:
            return [self.create_violation(
                "tsconfig.json", 1, "tsconfig.json not found",
                ViolationCategory.SETUP_ISSUE, ViolationSeverity.WARN,
                rule="TS-SETUP-001",
                message=f"No tsconfig.json found in {target_path} or the project root; type analysis skipped.",
            )]
        output = self.runner.run(cmd, timeout=options.get("process_timeout"), token=token)
        # tsc exits 1 or 2 when it reports diagnostics
        if output.returncode not in (0, 1, 2):
            raise ToolError(cmd[0], output.stderr or output.stdout, output.returncode)
        return self.parse_output(output.stdout + "\n" + output.stderr, token)

    def parse_output(self, text: str, token: CancellationToken | None = None) -> list[Violation]:
        violations: list[Violation] = []
        for raw_line in text.splitlines():
            if token is not None:
                token.raise_if_cancelled()
            match = _DIAGNOSTIC_RE.match(raw_line.strip())
            if not match:
                continue
            code = match.group("code")
            message = match.group("message").strip()
            severity = ViolationSeverity.ERROR if match.group("level") == "error" else ViolationSeverity.WARN
            violations.append(self.create_violation(
                self.relative_path(match.group("file")),
                int(match.group("line")),
                message,
                categorize_compiler_code(code),
                severity,
                rule=code,
                message=message,
                column=int(match.group("col")),
            ))
        return violations
