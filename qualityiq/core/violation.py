"""Shared violation model for all QualityIQ analyzers."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

__all__ = [
    "ViolationSeverity",
    "ViolationSource",
    "ViolationCategory",
    "Violation",
    "EngineResult",
    "SEVERITY_RANK",
    "fingerprint",
]


class ViolationSeverity(str, Enum):
    ERROR = "error"
    WARN = "warn"
    INFO = "info"


SEVERITY_RANK: dict[ViolationSeverity, int] = {
    ViolationSeverity.ERROR: 0,
    ViolationSeverity.WARN: 1,
    ViolationSeverity.INFO: 2,
}


class ViolationSource(str, Enum):
    TYPESCRIPT = "typescript"
    ESLINT = "eslint"
    UNUSED_EXPORTS = "unused-exports"
    PARSER = "parser"
    COMPLEXITY = "complexity"
    SECURITY = "security"
    PERFORMANCE = "performance"
    CUSTOM = "custom"


class ViolationCategory(str, Enum):
    # compiler responsibility
    TYPE_ALIAS = "type-alias"
    ANNOTATION = "annotation"
    CAST = "cast"
    RECORD_TYPE = "record-type"
    GENERIC_UNKNOWN = "generic-unknown"
    UNKNOWN_REFERENCE = "unknown-reference"
    BRANDED_TYPE = "branded-type"
    GENERIC_CONSTRAINT = "generic-constraint"
    TYPE_MISMATCH = "type-mismatch"
    NULL_SAFETY = "null-safety"
    # linter responsibility
    CODE_QUALITY = "code-quality"
    STYLE = "style"
    ARCHITECTURE = "architecture"
    MODERNIZATION = "modernization"
    UNUSED_VARS = "unused-vars"
    UNUSED_EXPORT = "unused-export"
    # type-aware rules running in the linter
    LEGACY_TYPE_RULE = "legacy-type-rule"
    RETURN_TYPE = "return-type"
    NO_EXPLICIT_ANY = "no-explicit-any"
    OTHER_ESLINT = "other-eslint"
    # parsing
    SYNTAX_ERROR = "syntax-error"
    PARSE_ERROR = "parse-error"
    IMPORT_ERROR = "import-error"
    SETUP_ISSUE = "setup-issue"
    # general quality
    COMPLEXITY = "complexity"
    MAINTAINABILITY = "maintainability"
    SECURITY = "security"
    PERFORMANCE = "performance"
    OTHER = "other"


@dataclass(frozen=True)
class Violation:
    """A single finding reported by one analyzer.

    ``(file, line, code, source)`` is the natural identity used for exact
    deduplication. ``category`` and ``severity`` are derived from the rule by
    the reporting adapter.
    """

    file: str
    line: int
    code: str
    category: ViolationCategory
    severity: ViolationSeverity
    source: ViolationSource = ViolationSource.CUSTOM
    column: int | None = None
    rule: str | None = None
    message: str | None = None
    fix_suggestion: str | None = None

    @property
    def location(self) -> tuple[str, int]:
        return (self.file, self.line)

    @property
    def fingerprint(self) -> str:
        return fingerprint(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "code": self.code,
            "category": self.category.value,
            "severity": self.severity.value,
            "source": self.source.value,
            "rule": self.rule,
            "message": self.message,
            "fix_suggestion": self.fix_suggestion,
        }


def _enum_value(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def fingerprint(violation: Violation) -> str:
    """Return the stable SHA-256 digest identifying *violation* across runs.

    Pure function of ``file``, ``line``, message (or code when there is no
    message), ``rule``, ``category``, ``severity`` and ``source``.
    """
    parts = [
        str(violation.file),
        str(violation.line),
        violation.message if violation.message else str(violation.code),
        violation.rule or "",
        _enum_value(violation.category),
        _enum_value(violation.severity),
        _enum_value(violation.source),
    ]
    return hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()


@dataclass
class EngineResult:
    """Outcome of one adapter execution within a single cycle."""

    engine_name: str
    violations: list[Violation] = field(default_factory=list)
    execution_time: float = 0.0
    success: bool = True
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def execution_time_ms(self) -> int:
        return int(round(self.execution_time * 1000))
