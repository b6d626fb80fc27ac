"""Validation and batching helpers for the storage service."""

from __future__ import annotations

from typing import Any, Iterator, Sequence, TypeVar

from qualityiq.core.violation import Violation, ViolationCategory, ViolationSeverity, ViolationSource

__all__ = ["MAX_MESSAGE_LENGTH", "enum_value", "validate_violation", "chunk"]

MAX_MESSAGE_LENGTH = 2000

T = TypeVar("T")

_CATEGORIES = {c.value for c in ViolationCategory}
_SEVERITIES = {s.value for s in ViolationSeverity}
_SOURCES = {s.value for s in ViolationSource}


def enum_value(field: Any) -> Any:
    return getattr(field, "value", field)


def validate_violation(violation: Violation) -> list[str]:
    """Return a list of problems with *violation*; empty means it can be stored."""
    errors: list[str] = []
    if not isinstance(violation.file, str) or not violation.file.strip():
        errors.append("file path is required")
    line = violation.line
    if isinstance(line, bool) or not isinstance(line, int) or line < 1:
        errors.append(f"line must be a positive integer, got {line!r}")
    column = violation.column
    if column is not None and (isinstance(column, bool) or not isinstance(column, int) or column < 0):
        errors.append(f"column must be a non-negative integer, got {column!r}")
    if not isinstance(violation.code, str) or not violation.code.strip():
        errors.append("code is required")
    if enum_value(violation.category) not in _CATEGORIES:
        errors.append(f"unknown category {violation.category!r}")
    if enum_value(violation.severity) not in _SEVERITIES:
        errors.append(f"unknown severity {violation.severity!r}")
    if enum_value(violation.source) not in _SOURCES:
        errors.append(f"unknown source {violation.source!r}")
    message = violation.message or violation.code
    if isinstance(message, str) and len(message) > MAX_MESSAGE_LENGTH:
        errors.append(f"message exceeds {MAX_MESSAGE_LENGTH} characters")
    return errors


def chunk(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]
