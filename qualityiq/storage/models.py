"""SQLAlchemy models for persisted violations, history and rule scheduling.

All timestamps are stored as naive UTC datetimes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

__all__ = [
    "Base",
    "ViolationRecord",
    "ViolationHistory",
    "RuleCheck",
    "RuleSchedule",
    "PerformanceMetric",
    "STATUS_ACTIVE",
    "STATUS_RESOLVED",
    "HISTORY_ACTIONS",
]

STATUS_ACTIVE = "active"
STATUS_RESOLVED = "resolved"

HISTORY_ACTIONS = ("added", "removed", "unchanged")


class Base(DeclarativeBase):
    pass


class ViolationRecord(Base):
    """Durable form of a violation, keyed by its fingerprint."""

    __tablename__ = "violations"
    __table_args__ = (
        Index("idx_violations_file_status", "file_path", "status"),
        Index("idx_violations_category", "category"),
    )

    fingerprint: Mapped[str] = mapped_column(String(64), primary_key=True)
    file_path: Mapped[str] = mapped_column(String(1024))
    line_number: Mapped[int] = mapped_column(Integer)
    column_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    message: Mapped[str] = mapped_column(Text)
    code_snippet: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(50))
    severity: Mapped[str] = mapped_column(String(10))
    source: Mapped[str] = mapped_column(String(30))
    rule_id: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    fix_suggestion: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    first_seen_at: Mapped[datetime] = mapped_column(DateTime)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=STATUS_ACTIVE, index=True)


class ViolationHistory(Base):
    """Immutable delta row: one per fingerprint per recorded check."""

    __tablename__ = "violation_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    check_id: Mapped[int] = mapped_column(Integer, index=True)
    fingerprint: Mapped[str] = mapped_column(String(64), index=True)
    action: Mapped[str] = mapped_column(String(20))  # added, removed, unchanged
    recorded_at: Mapped[datetime] = mapped_column(DateTime, index=True)


class RuleCheck(Base):
    __tablename__ = "rule_checks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule_id: Mapped[str] = mapped_column(String(200))
    engine: Mapped[str] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(20), default="running")  # running, completed, failed
    started_at: Mapped[datetime] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    violations_found: Mapped[int] = mapped_column(Integer, default=0)
    execution_time_ms: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class RuleSchedule(Base):
    """Persisted adaptive-scheduler state so backoff survives restarts."""

    __tablename__ = "rule_schedules"
    __table_args__ = (UniqueConstraint("rule_id", "engine", name="uq_rule_schedule"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule_id: Mapped[str] = mapped_column(String(200))
    engine: Mapped[str] = mapped_column(String(50))
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    priority: Mapped[int] = mapped_column(Integer, default=1)
    zero_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_checked_cycle: Mapped[int] = mapped_column(Integer, default=0)


class PerformanceMetric(Base):
    __tablename__ = "performance_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    metric_type: Mapped[str] = mapped_column(String(50), index=True)
    value: Mapped[float] = mapped_column(Float)
    unit: Mapped[str] = mapped_column(String(20))
    context: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, index=True)
