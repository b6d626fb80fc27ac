"""Crossover detection between the type analyzer and the pattern linter.

The detector never produces violations. It inspects one merged and
deduplicated batch and reports advisory warnings when the two primary
analyzers overlap in responsibility.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from qualityiq.config.settings import CrossoverSettings
from qualityiq.core.violation import EngineResult, Violation, ViolationCategory, ViolationSeverity, ViolationSource
from qualityiq.rules.catalog import TYPE_AWARE_LINT_RULES

__all__ = [
    "CrossoverType",
    "CrossoverWarning",
    "CrossoverViolationError",
    "CrossoverDetector",
    "OPTIMIZATION_SUGGESTIONS",
]

logger = logging.getLogger(__name__)

OPTIMIZATION_SUGGESTIONS: list[str] = [
    "Linter focus: code quality, style and architecture rules (no-console, prefer-const).",
    "Compiler focus: all type safety (strict, noImplicitAny, strictNullChecks).",
    "Performance: disabling type-aware lint rules typically speeds the linter up 5-10x.",
    "Configuration: keep the TypeScript lint plugin to syntax-only rules.",
    "Monitoring: keep crossover detection enabled to preserve the separation.",
]


class CrossoverType(str, Enum):
    TYPE_AWARE_RULE = "type-aware-rule"
    DUPLICATE_VIOLATION = "duplicate-violation"
    CONFIGURATION_CONFLICT = "configuration-conflict"


@dataclass(frozen=True)
class CrossoverWarning:
    type: CrossoverType
    severity: ViolationSeverity
    message: str
    details: str
    suggestion: str
    affected_rules: list[str] = field(default_factory=list)
    affected_files: list[str] = field(default_factory=list)


class CrossoverViolationError(Exception):
    """Raised when ``fail_on_crossover`` is set and an error-severity warning exists."""

    def __init__(self, warnings: list[CrossoverWarning]) -> None:
        self.warnings = warnings
        rules = sorted({r for w in warnings for r in w.affected_rules})
        files = sorted({f for w in warnings for f in w.affected_files})
        parts = ["Critical crossover between the type analyzer and the linter"]
        if rules:
            parts.append(f"rules: {', '.join(rules)}")
        if files:
            parts.append(f"files: {', '.join(files)}")
        parts.append("disable these rules in the linter or set crossover.fail_on_crossover to false")
        super().__init__("; ".join(parts))


class CrossoverDetector:
    """Stateless checks over a merged batch; every check runs independently.

    The two primary sources are looked up from ``type_engine`` and
    ``lint_engine``: first in *engine_sources* (adapter name to declared
    source), then among the built-in source names. A check that needs a
    source which cannot be resolved is skipped.
    """

    def __init__(
        self,
        settings: CrossoverSettings | None = None,
        engine_sources: Mapping[str, ViolationSource] | None = None,
    ) -> None:
        self.settings = settings or CrossoverSettings()
        sources: dict[str, ViolationSource] = {s.value: s for s in ViolationSource}
        sources.update(engine_sources or {})
        self.type_source = sources.get(self.settings.type_engine)
        self.lint_source = sources.get(self.settings.lint_engine)
        for role, name, source in (
            ("type", self.settings.type_engine, self.type_source),
            ("lint", self.settings.lint_engine, self.lint_source),
        ):
            if source is None:
                logger.warning("Unknown %s engine %r; dependent crossover checks are skipped", role, name)

    def analyze(self, violations: list[Violation], engine_results: list[EngineResult] | None = None) -> list[CrossoverWarning]:
        if not self.settings.enabled:
            return []
        warnings: list[CrossoverWarning] = []
        if self.settings.warn_on_type_aware_rules:
            warnings.extend(self.detect_type_aware_rules(violations))
        if self.settings.warn_on_duplicate_violations:
            warnings.extend(self.detect_duplicate_violations(violations))
        warnings.extend(self.detect_configuration_conflicts(violations, engine_results or []))
        return warnings

    def detect_type_aware_rules(self, violations: list[Violation]) -> list[CrossoverWarning]:
        if self.lint_source is None:
            return []
        hits = [
            v for v in violations
            if v.source == self.lint_source and v.rule and v.rule in TYPE_AWARE_LINT_RULES
        ]
        if not hits:
            return []
        rules = list(dict.fromkeys(v.rule for v in hits if v.rule))
        # the linter failing builds on type checks is treated as an error
        severity = (
            ViolationSeverity.ERROR
            if any(v.severity == ViolationSeverity.ERROR for v in hits)
            else ViolationSeverity.WARN
        )
        return [CrossoverWarning(
            type=CrossoverType.TYPE_AWARE_RULE,
            severity=severity,
            message=f"Found {len(rules)} type-aware lint rule(s) that duplicate the type analyzer",
            details=(
                f"Type-aware rules detected: {', '.join(rules)}. These rules need full type "
                "information, slow the linter down and repeat what the compiler already checks."
            ),
            suggestion=(
                "Disable these rules in the linter and rely on strict compiler settings "
                "(noImplicitAny, strictNullChecks) for type safety."
            ),
            affected_rules=rules,
            affected_files=list(dict.fromkeys(v.file for v in hits)),
        )]

    def detect_duplicate_violations(self, violations: list[Violation]) -> list[CrossoverWarning]:
        if self.type_source is None or self.lint_source is None or self.type_source == self.lint_source:
            return []
        by_location: dict[tuple[str, int], set[ViolationSource]] = {}
        for v in violations:
            if v.source in (self.type_source, self.lint_source):
                by_location.setdefault(v.location, set()).add(v.source)
        conflicting = [loc for loc, sources in by_location.items() if len(sources) == 2]
        if not conflicting:
            return []
        files = list(dict.fromkeys(file for file, _ in conflicting))
        return [CrossoverWarning(
            type=CrossoverType.DUPLICATE_VIOLATION,
            severity=ViolationSeverity.WARN,
            message=f"Found {len(conflicting)} location(s) flagged by both the type analyzer and the linter",
            details=(
                "Both analyzers report issues at the same locations, which suggests overlapping "
                "responsibilities such as type-aware lint rules."
            ),
            suggestion=(
                "Keep the linter on code quality and leave type safety to the compiler."
            ),
            affected_files=files,
        )]

    def detect_configuration_conflicts(
        self,
        violations: list[Violation],
        engine_results: list[EngineResult],
    ) -> list[CrossoverWarning]:
        warnings: list[CrossoverWarning] = []
        legacy = [v for v in violations if v.category == ViolationCategory.LEGACY_TYPE_RULE]
        if legacy:
            rules = list(dict.fromkeys(v.rule for v in legacy if v.rule))
            warnings.append(CrossoverWarning(
                type=CrossoverType.CONFIGURATION_CONFLICT,
                severity=ViolationSeverity.WARN,
                message=f"Found {len(legacy)} violation(s) from legacy type-aware lint rules",
                details=(
                    f"Rules like {', '.join(rules) or 'these'} are legacy because they duplicate "
                    "compiler checks and hurt linter performance."
                ),
                suggestion=(
                    "Move these checks to the compiler configuration: noImplicitAny, "
                    "strictNullChecks, noImplicitReturns."
                ),
                affected_rules=rules,
                affected_files=list(dict.fromkeys(v.file for v in legacy)),
            ))

        lint_time = next(
            (r.execution_time for r in engine_results if r.engine_name == self.settings.lint_engine),
            0.0,
        )
        if lint_time > self.settings.slow_engine_threshold:
            warnings.append(CrossoverWarning(
                type=CrossoverType.CONFIGURATION_CONFLICT,
                severity=ViolationSeverity.WARN,
                message=f"{self.settings.lint_engine} took {round(lint_time)}s, suggesting type-aware rules",
                details=(
                    f"Linter runs above {self.settings.slow_engine_threshold:g}s usually mean rules "
                    "that require a full type-checked program."
                ),
                suggestion="Disable type-aware lint rules for faster feedback and let the compiler check types.",
            ))
        return warnings

    @staticmethod
    def has_critical_issues(warnings: list[CrossoverWarning]) -> bool:
        return any(w.severity == ViolationSeverity.ERROR for w in warnings)

    def enforce(self, warnings: list[CrossoverWarning]) -> None:
        """Raise :class:`CrossoverViolationError` when the failure policy applies."""
        if self.settings.fail_on_crossover and self.has_critical_issues(warnings):
            critical = [w for w in warnings if w.severity == ViolationSeverity.ERROR]
            logger.error("Crossover policy failure: %d critical warning(s)", len(critical))
            raise CrossoverViolationError(critical)
