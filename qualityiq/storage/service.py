"""Persistence service: batched upserts, delta history, queries and maintenance."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Iterator, Sequence

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from qualityiq.core.violation import Violation
from qualityiq.rules.scheduler import RuleScheduleEntry
from qualityiq.storage.database import Database
from qualityiq.storage.models import (
    HISTORY_ACTIONS,
    STATUS_ACTIVE,
    STATUS_RESOLVED,
    PerformanceMetric,
    RuleCheck,
    RuleSchedule,
    ViolationHistory,
    ViolationRecord,
)
from qualityiq.storage.utils import chunk, enum_value, validate_violation

__all__ = [
    "StorageError",
    "StoreResult",
    "DeltaResult",
    "CleanupResult",
    "ViolationSummaryItem",
    "RulePerformanceItem",
    "DashboardData",
    "StorageStats",
    "StorageService",
    "MAX_QUERY_LIMIT",
]

logger = logging.getLogger(__name__)

MAX_QUERY_LIMIT = 1000
# keeps IN (...) clauses under SQLite's bound-parameter limit
_IN_CLAUSE_SIZE = 500


class StorageError(Exception):
    """A transaction or query against the store failed."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class StoreResult:
    inserted: int = 0
    updated: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class DeltaResult:
    check_id: int
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        return {"added": len(self.added), "removed": len(self.removed), "unchanged": len(self.unchanged)}


@dataclass
class CleanupResult:
    history_deleted: int = 0
    resolved_deleted: int = 0
    metrics_deleted: int = 0


@dataclass
class ViolationSummaryItem:
    rule_id: str | None
    category: str
    severity: str
    source: str
    count: int
    affected_files: int
    first_occurrence: datetime | None
    last_occurrence: datetime | None


@dataclass
class RulePerformanceItem:
    rule_id: str
    engine: str
    total_runs: int
    successful_runs: int
    failed_runs: int
    avg_execution_time_ms: float
    avg_violations_found: float
    last_run_at: datetime | None
    zero_streak: int = 0


@dataclass
class DashboardData:
    active_violations: int = 0
    total_files_affected: int = 0
    by_severity: dict[str, int] = field(default_factory=dict)
    by_source: dict[str, int] = field(default_factory=dict)
    by_category: dict[str, int] = field(default_factory=dict)
    summary: list[ViolationSummaryItem] = field(default_factory=list)
    rule_performance: list[RulePerformanceItem] = field(default_factory=list)
    recent_history: list[ViolationHistory] = field(default_factory=list)
    last_check_time: datetime | None = None


@dataclass
class StorageStats:
    total_violations: int = 0
    active_violations: int = 0
    resolved_violations: int = 0
    total_rule_checks: int = 0
    total_history_records: int = 0
    total_metrics: int = 0


class StorageService:
    """Owns every write to the violation and history tables."""

    def __init__(
        self,
        database: Database,
        *,
        batch_size: int = 100,
        max_history_days: int = 30,
        enable_metrics: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.database = database
        self.batch_size = batch_size
        self.max_history_days = max_history_days
        self.enable_metrics = enable_metrics
        self.clock = clock

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        try:
            with self.database.session() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Storage %s failed: %s", action, exc)
            raise StorageError(f"{action} failed: {exc}") from exc

    # -- violations -------------------------------------------------------

    def store_violations(self, violations: Sequence[Violation]) -> StoreResult:
        """Upsert *violations* keyed on fingerprint, one transaction per chunk.

        Malformed records are skipped and reported in ``errors``. A database
        error raises :class:`StorageError`; chunks committed before it stay.
        """
        result = StoreResult()
        valid: list[tuple[str, Violation]] = []
        for index, violation in enumerate(violations):
            problems = validate_violation(violation)
            if problems:
                result.errors.append(
                    f"violation {index} ({getattr(violation, 'file', '?')}:{getattr(violation, 'line', '?')}): "
                    + "; ".join(problems)
                )
                continue
            valid.append((violation.fingerprint, violation))

        for batch in chunk(valid, self.batch_size):
            now = self.clock()
            with self._session("store_violations") as session:
                fingerprints = list({fp for fp, _ in batch})
                existing = {
                    row.fingerprint: row
                    for row in session.scalars(
                        select(ViolationRecord).where(ViolationRecord.fingerprint.in_(fingerprints))
                    )
                }
                for fp, violation in batch:
                    record = existing.get(fp)
                    if record is not None:
                        record.last_seen_at = now
                        record.status = STATUS_ACTIVE
                        record.resolved_at = None
                        result.updated += 1
                        continue
                    record = ViolationRecord(
                        fingerprint=fp,
                        file_path=violation.file,
                        line_number=violation.line,
                        column_number=violation.column,
                        message=violation.message or violation.code,
                        code_snippet=violation.code,
                        category=enum_value(violation.category),
                        severity=enum_value(violation.severity),
                        source=enum_value(violation.source),
                        rule_id=violation.rule,
                        fix_suggestion=violation.fix_suggestion,
                        first_seen_at=now,
                        last_seen_at=now,
                        status=STATUS_ACTIVE,
                    )
                    session.add(record)
                    existing[fp] = record
                    result.inserted += 1

        logger.debug(
            "Stored violations: %d inserted, %d updated, %d rejected",
            result.inserted, result.updated, len(result.errors),
        )
        return result

    def resolve_violations(self, fingerprints: Iterable[str]) -> int:
        """Mark active records resolved; returns how many actually changed."""
        unique = list(dict.fromkeys(fingerprints))
        if not unique:
            return 0
        now = self.clock()
        changed = 0
        with self._session("resolve_violations") as session:
            for part in chunk(unique, _IN_CLAUSE_SIZE):
                outcome = session.execute(
                    update(ViolationRecord)
                    .where(ViolationRecord.fingerprint.in_(part), ViolationRecord.status == STATUS_ACTIVE)
                    .values(status=STATUS_RESOLVED, resolved_at=now)
                )
                changed += outcome.rowcount or 0
        return changed

    def record_violation_deltas(self, check_id: int, current_fingerprints: Iterable[str]) -> DeltaResult:
        """Diff *current_fingerprints* against the active set and write one history row each."""
        current = list(dict.fromkeys(current_fingerprints))
        current_set = set(current)
        now = self.clock()
        with self._session("record_violation_deltas") as session:
            previous = list(session.scalars(
                select(ViolationRecord.fingerprint)
                .where(ViolationRecord.status == STATUS_ACTIVE)
                .order_by(ViolationRecord.fingerprint)
            ))
            previous_set = set(previous)
            delta = DeltaResult(
                check_id=check_id,
                added=[fp for fp in current if fp not in previous_set],
                removed=[fp for fp in previous if fp not in current_set],
                unchanged=[fp for fp in current if fp in previous_set],
            )
            for action, fps in (("added", delta.added), ("removed", delta.removed), ("unchanged", delta.unchanged)):
                session.add_all(
                    ViolationHistory(check_id=check_id, fingerprint=fp, action=action, recorded_at=now)
                    for fp in fps
                )
        logger.debug("Check %d deltas: %s", check_id, delta.counts)
        return delta

    def get_violations(
        self,
        *,
        status: str | None = STATUS_ACTIVE,
        categories: Sequence[str] | None = None,
        sources: Sequence[str] | None = None,
        severities: Sequence[str] | None = None,
        file_paths: Sequence[str] | None = None,
        since: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ViolationRecord]:
        stmt = select(ViolationRecord)
        if status:
            stmt = stmt.where(ViolationRecord.status == status)
        if categories:
            stmt = stmt.where(ViolationRecord.category.in_(categories))
        if sources:
            stmt = stmt.where(ViolationRecord.source.in_(sources))
        if severities:
            stmt = stmt.where(ViolationRecord.severity.in_(severities))
        if file_paths:
            stmt = stmt.where(ViolationRecord.file_path.in_(file_paths))
        if since is not None:
            stmt = stmt.where(ViolationRecord.last_seen_at >= since)
        stmt = (
            stmt.order_by(ViolationRecord.file_path, ViolationRecord.line_number, ViolationRecord.fingerprint)
            .limit(max(0, min(limit, MAX_QUERY_LIMIT)))
            .offset(max(0, offset))
        )
        with self._session("get_violations") as session:
            return list(session.scalars(stmt))

    def get_violation_summary(self) -> list[ViolationSummaryItem]:
        """Active violations grouped by rule, category, severity and source."""
        count = func.count(ViolationRecord.fingerprint)
        stmt = (
            select(
                ViolationRecord.rule_id,
                ViolationRecord.category,
                ViolationRecord.severity,
                ViolationRecord.source,
                count.label("count"),
                func.count(func.distinct(ViolationRecord.file_path)).label("affected_files"),
                func.min(ViolationRecord.first_seen_at).label("first_occurrence"),
                func.max(ViolationRecord.last_seen_at).label("last_occurrence"),
            )
            .where(ViolationRecord.status == STATUS_ACTIVE)
            .group_by(
                ViolationRecord.rule_id,
                ViolationRecord.category,
                ViolationRecord.severity,
                ViolationRecord.source,
            )
            .order_by(count.desc(), ViolationRecord.category, ViolationRecord.rule_id)
        )
        with self._session("get_violation_summary") as session:
            return [
                ViolationSummaryItem(
                    rule_id=row.rule_id,
                    category=row.category,
                    severity=row.severity,
                    source=row.source,
                    count=int(row.count),
                    affected_files=int(row.affected_files),
                    first_occurrence=row.first_occurrence,
                    last_occurrence=row.last_occurrence,
                )
                for row in session.execute(stmt)
            ]

    def get_violation_history(
        self,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        actions: Sequence[str] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ViolationHistory]:
        stmt = select(ViolationHistory)
        if since is not None:
            stmt = stmt.where(ViolationHistory.recorded_at >= since)
        if until is not None:
            stmt = stmt.where(ViolationHistory.recorded_at <= until)
        if actions:
            unknown = set(actions) - set(HISTORY_ACTIONS)
            if unknown:
                raise ValueError(f"Unknown history action(s): {', '.join(sorted(unknown))}")
            stmt = stmt.where(ViolationHistory.action.in_(actions))
        stmt = (
            stmt.order_by(ViolationHistory.recorded_at.desc(), ViolationHistory.id.desc())
            .limit(max(0, min(limit, MAX_QUERY_LIMIT)))
            .offset(max(0, offset))
        )
        with self._session("get_violation_history") as session:
            return list(session.scalars(stmt))

    # -- rule checks and schedules -----------------------------------------

    def start_rule_check(self, rule_id: str, engine: str) -> int:
        with self._session("start_rule_check") as session:
            check = RuleCheck(rule_id=rule_id, engine=engine, status="running", started_at=self.clock())
            session.add(check)
            session.flush()
            return check.id

    def complete_rule_check(self, check_id: int, violations_found: int, execution_time_ms: int) -> None:
        with self._session("complete_rule_check") as session:
            check = session.get(RuleCheck, check_id)
            if check is None:
                logger.warning("Rule check %d not found", check_id)
                return
            check.status = "completed"
            check.completed_at = self.clock()
            check.violations_found = violations_found
            check.execution_time_ms = execution_time_ms

    def fail_rule_check(self, check_id: int, error_message: str, execution_time_ms: int = 0) -> None:
        with self._session("fail_rule_check") as session:
            check = session.get(RuleCheck, check_id)
            if check is None:
                logger.warning("Rule check %d not found", check_id)
                return
            check.status = "failed"
            check.completed_at = self.clock()
            check.error_message = error_message
            check.execution_time_ms = execution_time_ms

    def save_rule_schedules(self, entries: Iterable[RuleScheduleEntry], priority: int = 1) -> None:
        entries = list(entries)
        if not entries:
            return
        with self._session("save_rule_schedules") as session:
            existing = {
                (row.rule_id, row.engine): row
                for row in session.scalars(
                    select(RuleSchedule).where(RuleSchedule.engine.in_({e.engine for e in entries}))
                )
            }
            for entry in entries:
                row = existing.get((entry.rule_id, entry.engine))
                if row is None:
                    row = RuleSchedule(rule_id=entry.rule_id, engine=entry.engine, enabled=True, priority=priority)
                    session.add(row)
                    existing[(entry.rule_id, entry.engine)] = row
                row.zero_streak = entry.zero_streak
                row.last_checked_cycle = entry.last_checked_cycle

    def load_rule_schedules(self, engine: str) -> list[RuleScheduleEntry]:
        with self._session("load_rule_schedules") as session:
            return [
                RuleScheduleEntry(
                    rule_id=row.rule_id,
                    engine=row.engine,
                    zero_streak=row.zero_streak,
                    last_checked_cycle=row.last_checked_cycle,
                )
                for row in session.scalars(
                    select(RuleSchedule)
                    .where(RuleSchedule.engine == engine, RuleSchedule.enabled.is_(True))
                    .order_by(RuleSchedule.id)
                )
            ]

    def get_rule_performance(self) -> list[RulePerformanceItem]:
        stmt = (
            select(
                RuleCheck.rule_id,
                RuleCheck.engine,
                func.count(RuleCheck.id).label("total_runs"),
                func.sum(case((RuleCheck.status == "completed", 1), else_=0)).label("successful_runs"),
                func.sum(case((RuleCheck.status == "failed", 1), else_=0)).label("failed_runs"),
                func.avg(RuleCheck.execution_time_ms).label("avg_time"),
                func.avg(RuleCheck.violations_found).label("avg_found"),
                func.max(RuleCheck.started_at).label("last_run"),
            )
            .group_by(RuleCheck.rule_id, RuleCheck.engine)
            .order_by(RuleCheck.engine, RuleCheck.rule_id)
        )
        with self._session("get_rule_performance") as session:
            streaks = {
                (row.rule_id, row.engine): row.zero_streak
                for row in session.scalars(select(RuleSchedule))
            }
            return [
                RulePerformanceItem(
                    rule_id=row.rule_id,
                    engine=row.engine,
                    total_runs=int(row.total_runs),
                    successful_runs=int(row.successful_runs or 0),
                    failed_runs=int(row.failed_runs or 0),
                    avg_execution_time_ms=float(row.avg_time or 0.0),
                    avg_violations_found=float(row.avg_found or 0.0),
                    last_run_at=row.last_run,
                    zero_streak=streaks.get((row.rule_id, row.engine), 0),
                )
                for row in session.execute(stmt)
            ]

    # -- dashboard and maintenance ------------------------------------------

    def get_dashboard_data(self, history_limit: int = 20) -> DashboardData:
        """Aggregate everything the display needs; an empty store yields zeros."""
        summary = self.get_violation_summary()
        data = DashboardData(
            summary=summary,
            rule_performance=self.get_rule_performance(),
            recent_history=self.get_violation_history(limit=history_limit),
            by_severity={"error": 0, "warn": 0, "info": 0},
        )
        for item in summary:
            data.active_violations += item.count
            data.by_severity[item.severity] = data.by_severity.get(item.severity, 0) + item.count
            data.by_source[item.source] = data.by_source.get(item.source, 0) + item.count
            data.by_category[item.category] = data.by_category.get(item.category, 0) + item.count
        with self._session("get_dashboard_data") as session:
            data.total_files_affected = session.scalar(
                select(func.count(func.distinct(ViolationRecord.file_path)))
                .where(ViolationRecord.status == STATUS_ACTIVE)
            ) or 0
            data.last_check_time = session.scalar(
                select(func.max(RuleCheck.completed_at)).where(RuleCheck.status == "completed")
            )
        return data

    def record_performance_metric(
        self,
        metric_type: str,
        value: float,
        unit: str = "ms",
        context: dict[str, Any] | None = None,
    ) -> None:
        if not self.enable_metrics:
            return
        with self._session("record_performance_metric") as session:
            session.add(PerformanceMetric(
                metric_type=metric_type,
                value=float(value),
                unit=unit,
                context=context,
                recorded_at=self.clock(),
            ))

    def cleanup_old_data(self, max_age_days: int | None = None) -> CleanupResult:
        """Purge old history, resolved violations and metrics. Active records are never touched."""
        days = self.max_history_days if max_age_days is None else max_age_days
        cutoff = self.clock() - timedelta(days=days)
        result = CleanupResult()
        with self._session("cleanup_old_data") as session:
            result.history_deleted = session.execute(
                delete(ViolationHistory).where(ViolationHistory.recorded_at < cutoff)
            ).rowcount or 0
            result.resolved_deleted = session.execute(
                delete(ViolationRecord).where(
                    ViolationRecord.status == STATUS_RESOLVED,
                    func.coalesce(ViolationRecord.resolved_at, ViolationRecord.last_seen_at) < cutoff,
                )
            ).rowcount or 0
            result.metrics_deleted = session.execute(
                delete(PerformanceMetric).where(PerformanceMetric.recorded_at < cutoff)
            ).rowcount or 0
        logger.info(
            "Cleanup removed %d history rows, %d resolved violations, %d metrics",
            result.history_deleted, result.resolved_deleted, result.metrics_deleted,
        )
        return result

    def get_storage_stats(self) -> StorageStats:
        with self._session("get_storage_stats") as session:
            def count(stmt: Any) -> int:
                return int(session.scalar(stmt) or 0)

            return StorageStats(
                total_violations=count(select(func.count()).select_from(ViolationRecord)),
                active_violations=count(
                    select(func.count()).select_from(ViolationRecord).where(ViolationRecord.status == STATUS_ACTIVE)
                ),
                resolved_violations=count(
                    select(func.count()).select_from(ViolationRecord).where(ViolationRecord.status == STATUS_RESOLVED)
                ),
                total_rule_checks=count(select(func.count()).select_from(RuleCheck)),
                total_history_records=count(select(func.count()).select_from(ViolationHistory)),
                total_metrics=count(select(func.count()).select_from(PerformanceMetric)),
            )
