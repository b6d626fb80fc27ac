"""Adaptive round-robin scheduling of per-rule analyzer checks."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterable

from qualityiq.core.violation import Violation

__all__ = ["RuleScheduleEntry", "ScheduleStatus", "AdaptiveRuleScheduler"]

logger = logging.getLogger(__name__)

ZERO_THRESHOLD = 5
REDUCED_INTERVAL = 5


@dataclass
class RuleScheduleEntry:
    rule_id: str
    engine: str
    zero_streak: int = 0
    last_checked_cycle: int = 0


@dataclass(frozen=True)
class ScheduleStatus:
    last_checked_rule: str | None
    progress: str
    adaptive_rules: int
    total_checks: int


class AdaptiveRuleScheduler:
    """Checks exactly one rule per cycle and backs off on rules that stay silent.

    A rule whose zero-streak reached ``zero_threshold`` is only re-checked once
    ``reduced_interval`` cycles have passed since its last check. When a full
    rotation finds nothing eligible, the rule under the cursor is checked
    anyway so the rotation always advances.
    """

    def __init__(
        self,
        rules: Iterable[str],
        engine: str,
        *,
        zero_threshold: int = ZERO_THRESHOLD,
        reduced_interval: int = REDUCED_INTERVAL,
    ) -> None:
        if zero_threshold < 1 or reduced_interval < 1:
            raise ValueError("zero_threshold and reduced_interval must be positive")
        self.engine = engine
        self.zero_threshold = zero_threshold
        self.reduced_interval = reduced_interval
        self._lock = threading.Lock()
        self._rules: list[str] = list(dict.fromkeys(rules))
        self._entries: dict[str, RuleScheduleEntry] = {}
        self._cache: dict[str, list[Violation]] = {}
        self._cursor = 0
        self._cycle = 0
        self._last_checked: str | None = None
        self._init_entries()

    def _init_entries(self) -> None:
        self._entries = {r: RuleScheduleEntry(rule_id=r, engine=self.engine) for r in self._rules}

    @property
    def rules(self) -> list[str]:
        return list(self._rules)

    @property
    def cycle(self) -> int:
        return self._cycle

    def is_backed_off(self, rule: str) -> bool:
        entry = self._entries[rule]
        return entry.zero_streak >= self.zero_threshold

    def _eligible(self, entry: RuleScheduleEntry) -> bool:
        if self._cycle <= 1 or entry.zero_streak < self.zero_threshold:
            return True
        return self._cycle - entry.last_checked_cycle >= self.reduced_interval

    def select_next_rule(self) -> str | None:
        """Advance to the next cycle and return the rule to check in it."""
        with self._lock:
            if not self._rules:
                return None
            self._cycle += 1
            total = len(self._rules)
            start = self._cursor
            for _ in range(total):
                candidate = self._rules[self._cursor]
                self._cursor = (self._cursor + 1) % total
                if self._eligible(self._entries[candidate]):
                    return candidate
            forced = self._rules[start]
            self._cursor = (start + 1) % total
            logger.debug("No rule eligible in cycle %d; forcing %s", self._cycle, forced)
            return forced

    def record(self, rule: str, violations: list[Violation]) -> None:
        """Store the fresh result for *rule* and update its zero-streak."""
        with self._lock:
            entry = self._entries[rule]
            entry.last_checked_cycle = self._cycle
            if violations:
                entry.zero_streak = 0
            else:
                entry.zero_streak += 1
            self._cache[rule] = list(violations)
            self._last_checked = rule

    def cached_violations(self) -> list[Violation]:
        with self._lock:
            merged: list[Violation] = []
            for rule in self._rules:
                merged.extend(self._cache.get(rule, []))
            return merged

    def run_cycle(self, check: Callable[[str], list[Violation]]) -> tuple[str | None, list[Violation]]:
        """Check one rule with *check* and return it with the effective violation set."""
        rule = self.select_next_rule()
        if rule is None:
            return None, []
        self.record(rule, check(rule))
        return rule, self.cached_violations()

    def entries(self) -> list[RuleScheduleEntry]:
        with self._lock:
            return [
                RuleScheduleEntry(e.rule_id, e.engine, e.zero_streak, e.last_checked_cycle)
                for e in (self._entries[r] for r in self._rules)
            ]

    def restore(self, entries: Iterable[RuleScheduleEntry]) -> None:
        """Load persisted schedule state; entries for unknown rules are ignored."""
        with self._lock:
            for saved in entries:
                entry = self._entries.get(saved.rule_id)
                if entry is None or saved.engine != self.engine:
                    continue
                entry.zero_streak = saved.zero_streak
                entry.last_checked_cycle = saved.last_checked_cycle
                self._cycle = max(self._cycle, saved.last_checked_cycle)

    def status(self) -> ScheduleStatus:
        with self._lock:
            adaptive = sum(1 for e in self._entries.values() if e.zero_streak >= self.zero_threshold)
            return ScheduleStatus(
                last_checked_rule=self._last_checked,
                progress=f"{self._cursor}/{len(self._rules)}",
                adaptive_rules=adaptive,
                total_checks=self._cycle,
            )

    def reset(self) -> None:
        with self._lock:
            self._cursor = 0
            self._cycle = 0
            self._cache.clear()
            self._last_checked = None
            self._init_entries()

    def update_rules(self, rules: Iterable[str]) -> None:
        with self._lock:
            self._rules = list(dict.fromkeys(rules))
        self.reset()
