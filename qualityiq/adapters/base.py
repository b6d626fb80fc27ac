"""Abstract analyzer adapter and the shared execution wrapper."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping

from qualityiq.config.settings import EngineSettings
from qualityiq.core.violation import (
    EngineResult,
    Violation,
    ViolationCategory,
    ViolationSeverity,
    ViolationSource,
)
from qualityiq.rules.catalog import fix_suggestion_for
from qualityiq.utils.process import CancellationToken

__all__ = ["AdapterTimeoutError", "BaseAnalyzerAdapter"]

logger = logging.getLogger(__name__)


class AdapterTimeoutError(Exception):
    def __init__(self, engine_name: str, timeout: float) -> None:
        self.engine_name = engine_name
        self.timeout = timeout
        super().__init__(f"{engine_name} timed out after {timeout:g}s")


def _strip(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


class BaseAnalyzerAdapter(ABC):
    """Interface every analyzer wrapper implements.

    Subclasses only implement :meth:`analyze`. :meth:`execute` owns the
    contract: per-invocation cancellation token, timeout, timing, failure
    isolation and normalization of the returned violations.
    """

    name: str = "base"
    source: ViolationSource = ViolationSource.CUSTOM

    def __init__(self, root_dir: Path, config: EngineSettings | None = None) -> None:
        self.root_dir = root_dir.resolve()
        self.config = config or self.default_config()

    @classmethod
    def default_config(cls) -> EngineSettings:
        return EngineSettings()

    @property
    def priority(self) -> int:
        return self.config.priority

    @property
    def allow_failure(self) -> bool:
        return self.config.allow_failure

    @abstractmethod
    def analyze(
        self,
        target_path: Path,
        options: Mapping[str, Any],
        token: CancellationToken,
    ) -> list[Violation]:
        """Run the underlying tool against *target_path* and return its violations.

        Runs on a worker thread. Implementations must poll *token* (or pass it
        to :class:`~qualityiq.utils.process.ToolRunner`) and stop once it is
        cancelled; after a timeout the worker is abandoned, not joined.
        """

    def execute(self, target_path: str | Path, options: Mapping[str, Any] | None = None) -> EngineResult:
        """Run :meth:`analyze` under the adapter contract and return an :class:`EngineResult`.

        Raises the analyzer's exception (or :class:`AdapterTimeoutError`) only
        when the adapter is configured with ``allow_failure=False``.
        """
        target = (self.root_dir / target_path).resolve()
        merged: dict[str, Any] = {**self.config.options, **(options or {})}
        token = CancellationToken()
        timeout = self.config.timeout
        start = time.perf_counter()

        future: Future[list[Violation]] = Future()

        def _run() -> None:
            try:
                future.set_result(self.analyze(target, merged, token))
            except BaseException as exc:
                future.set_exception(exc)

        # abandoned, not joined, on timeout
        threading.Thread(target=_run, name=f"qualityiq-{self.name}", daemon=True).start()
        try:
            raw = future.result(timeout=timeout)
        except FutureTimeout:
            token.cancel()
            return self._failed(AdapterTimeoutError(self.name, timeout or 0.0), start, target, timed_out=True)
        except Exception as exc:
            return self._failed(exc, start, target)

        violations = self.normalize(raw)
        elapsed = time.perf_counter() - start
        return EngineResult(
            engine_name=self.name,
            violations=violations,
            execution_time=elapsed,
            success=True,
            metadata={
                "target_path": str(target),
                "violations_found": len(violations),
                **self.result_metadata(),
            },
        )

    def _failed(self, exc: Exception, start: float, target: Path, *, timed_out: bool = False) -> EngineResult:
        elapsed = time.perf_counter() - start
        message = str(exc) or exc.__class__.__name__
        logger.warning("[%s] Analysis failed after %.2fs: %s", self.name, elapsed, message)
        if not self.allow_failure:
            raise exc
        return EngineResult(
            engine_name=self.name,
            violations=[],
            execution_time=elapsed,
            success=False,
            error=message,
            metadata={"target_path": str(target), "failure_recovery": True, "timed_out": timed_out},
        )

    def result_metadata(self) -> dict[str, Any]:
        """Extra metadata attached to successful results; adapters may override."""
        return {}

    def normalize(self, violations: list[Violation]) -> list[Violation]:
        """Trim text fields and stamp the adapter's declared source."""
        normalized: list[Violation] = []
        for v in violations:
            normalized.append(replace(
                v,
                file=v.file.strip() if isinstance(v.file, str) else v.file,
                code=v.code.strip() if isinstance(v.code, str) else v.code,
                rule=_strip(v.rule),
                message=_strip(v.message),
                fix_suggestion=_strip(v.fix_suggestion),
                source=self.source,
            ))
        return normalized

    def create_violation(
        self,
        file: str,
        line: int,
        code: str,
        category: ViolationCategory,
        severity: ViolationSeverity,
        rule: str | None = None,
        message: str | None = None,
        column: int | None = None,
    ) -> Violation:
        return Violation(
            file=file,
            line=line,
            column=column,
            code=code,
            category=category,
            severity=severity,
            rule=rule,
            message=message,
            fix_suggestion=self.generate_fix_suggestion(category, rule, code),
        )

    def generate_fix_suggestion(self, category: ViolationCategory, rule: str | None, code: str) -> str | None:
        return fix_suggestion_for(category)

    def relative_path(self, path: str) -> str:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.root_dir / candidate
        try:
            return candidate.resolve().relative_to(self.root_dir).as_posix()
        except ValueError:
            return Path(path).as_posix()

    def metadata(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "source": self.source.value,
            "enabled": self.config.enabled,
            "priority": self.config.priority,
            "allow_failure": self.config.allow_failure,
            "timeout": self.config.timeout,
        }
