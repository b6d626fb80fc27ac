"""Auxiliary detector for exports nothing imports (ts-unused-exports)."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Mapping

from qualityiq.adapters.base import BaseAnalyzerAdapter
from qualityiq.config.settings import EngineSettings
from qualityiq.core.violation import Violation, ViolationCategory, ViolationSeverity, ViolationSource
from qualityiq.utils.process import CancellationToken, ToolError, ToolRunner

__all__ = ["UnusedExportsAdapter"]

_ENTRY_RE = re.compile(r"^(?P<file>.+?)\[(?P<line>\d+),(?P<col>\d+)\]:\s*(?P<names>.+)$")


class UnusedExportsAdapter(BaseAnalyzerAdapter):
    name = "unused-exports"
    source = ViolationSource.UNUSED_EXPORTS

    def __init__(self, root_dir: Path, config: EngineSettings | None = None, runner: ToolRunner | None = None) -> None:
        super().__init__(root_dir, config)
        self.runner = runner or ToolRunner(self.root_dir)

    @classmethod
    def default_config(cls) -> EngineSettings:
        return EngineSettings(priority=3, timeout=30.0)

    def build_command(self, target_path: Path, options: Mapping[str, Any]) -> list[str]:
        if options.get("command"):
            return [str(part) for part in options["command"]]
        return [
            "npx", "ts-unused-exports", str(target_path / "tsconfig.json"),
            "--showLineNumber",
            "--allowUnusedTypes",
            "--excludeDeclarationFiles",
            "--ignoreTestFiles",
            "--ignoreLocallyUsed",
        ]

    def analyze(self, target_path: Path, options: Mapping[str, Any], token: CancellationToken) -> list[Violation]:
        cmd = self.build_command(target_path, options)
        output = self.runner.run(cmd, timeout=options.get("process_timeout"), token=token)
        # exit code 1 means unused exports were found
        if output.returncode not in (0, 1):
            raise ToolError(cmd[0], output.stderr or output.stdout, output.returncode)
        if output.returncode == 1 and not output.stdout.strip() and output.stderr:
            raise ToolError(cmd[0], output.stderr, output.returncode)
        return self.parse_output(output.stdout)

    def parse_output(self, text: str) -> list[Violation]:
        violations: list[Violation] = []
        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line or "modules with unused exports" in line:
                continue
            match = _ENTRY_RE.match(line)
            if not match:
                continue
            file_path = self.relative_path(match.group("file"))
            for name in (n.strip() for n in match.group("names").split(",")):
                if not name:
                    continue
                violations.append(self.create_violation(
                    file_path,
                    int(match.group("line")),
                    name,
                    ViolationCategory.UNUSED_EXPORT,
                    ViolationSeverity.INFO,
                    rule="unused-export",
                    message=f"Unused export '{name}' - consider removing if not needed",
                    column=int(match.group("col")),
                ))
        return violations
