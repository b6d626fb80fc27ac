"""Shared pytest fixtures for QualityIQ test suite."""

from __future__ import annotations

import textwrap
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Mapping

import pytest

from qualityiq.adapters.base import BaseAnalyzerAdapter
from qualityiq.config.settings import EngineSettings, QualityIQSettings
from qualityiq.core.violation import Violation, ViolationCategory, ViolationSeverity, ViolationSource
from qualityiq.storage.database import Database
from qualityiq.storage.service import StorageService
from qualityiq.utils.process import CancellationToken

TSC_OUTPUT = textwrap.dedent("""\
    src/api/client.ts(12,5): error TS2307: Cannot find module './missing' or its corresponding type declarations.
    src/api/client.ts(40,17): error TS2322: Type 'string' is not assignable to type 'number'.
    src/utils/format.ts(3,1): warning TS6133: 'unused' is declared but its value is never read.
    Found 3 errors in 2 files.
""")

UNUSED_EXPORTS_OUTPUT = textwrap.dedent("""\
    2 modules with unused exports
    src/utils/format.ts[8,1]: formatDate, formatTime
    src/legacy/index.ts[1,1]: default
""")


def make_violation(
    file: str = "src/app.ts",
    line: int = 1,
    code: str = "Unexpected console statement.",
    category: ViolationCategory = ViolationCategory.CODE_QUALITY,
    severity: ViolationSeverity = ViolationSeverity.WARN,
    source: ViolationSource = ViolationSource.ESLINT,
    rule: str | None = "no-console",
    message: str | None = None,
    column: int | None = None,
) -> Violation:
    return Violation(
        file=file, line=line, code=code, category=category, severity=severity,
        source=source, rule=rule, message=message, column=column,
    )


class FakeAdapter(BaseAnalyzerAdapter):
    """In-process adapter returning canned violations."""

    def __init__(
        self,
        name: str,
        violations: list[Violation] | None = None,
        *,
        source: ViolationSource = ViolationSource.CUSTOM,
        priority: int = 1,
        allow_failure: bool = True,
        timeout: float | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
        root_dir: Path | None = None,
    ) -> None:
        self.name = name
        self.source = source
        super().__init__(
            root_dir or Path.cwd(),
            EngineSettings(priority=priority, allow_failure=allow_failure, timeout=timeout),
        )
        self.violations = list(violations or [])
        self.error = error
        self.delay = delay
        self.tokens: list[CancellationToken] = []
        self.calls: list[tuple[Path, dict[str, Any]]] = []

    def analyze(self, target_path: Path, options: Mapping[str, Any], token: CancellationToken) -> list[Violation]:
        self.tokens.append(token)
        self.calls.append((target_path, dict(options)))
        if self.delay:
            # returns early once the wrapper cancels the token
            token.wait(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.violations)


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def default_settings() -> QualityIQSettings:
    return QualityIQSettings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def database(tmp_path: Path):
    db = Database.for_path(tmp_path / "quality.db")
    yield db
    db.dispose()


@pytest.fixture
def storage(database: Database, clock: FakeClock) -> StorageService:
    return StorageService(database, batch_size=100, max_history_days=30, clock=clock)


@pytest.fixture
def tmp_ts_project(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.ts").write_text("console.log('hi')\n")
    (tmp_path / "tsconfig.json").write_text('{"compilerOptions": {"strict": true}}\n')
    return tmp_path
