"""Watch loop: re-runs the full cycle on an interval or after debounced change notifications."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from qualityiq.config.settings import WatchSettings
from qualityiq.core.engine import CycleResult, QualityIQEngine
from qualityiq.storage.service import StorageError, StorageService

__all__ = ["WatchController", "CycleListener"]

logger = logging.getLogger(__name__)

CycleListener = Callable[[Optional[CycleResult], Optional[Exception]], None]


class WatchController:
    """Runs :meth:`QualityIQEngine.run_cycle` repeatedly without ever overlapping cycles.

    A cycle failure is logged and reported to listeners; the loop keeps going
    until :meth:`stop` is called.
    """

    def __init__(
        self,
        engine: QualityIQEngine,
        settings: WatchSettings | None = None,
        storage: StorageService | None = None,
    ) -> None:
        self.engine = engine
        self.settings = settings or WatchSettings()
        self.storage = storage if storage is not None else engine.storage
        self.cycles = 0
        self.failures = 0
        self.last_result: CycleResult | None = None
        self.last_error: Exception | None = None
        self._listeners: list[CycleListener] = []
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._cycle_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._pending_change: float | None = None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    @property
    def busy(self) -> bool:
        return self._cycle_lock.locked()

    def add_listener(self, listener: CycleListener) -> None:
        self._listeners.append(listener)

    def notify_change(self) -> None:
        """Request a cycle once no further change arrives within the debounce window."""
        with self._state_lock:
            self._pending_change = time.monotonic()
        self._wake.set()

    def stop(self) -> None:
        self._stop.set()
        self._wake.set()

    def run_once(self) -> CycleResult | None:
        """Run one cycle unless another is in progress; returns None when skipped or failed."""
        if not self._cycle_lock.acquire(blocking=False):
            logger.debug("Cycle already running; skipping")
            return None
        try:
            self.cycles += 1
            try:
                result = self.engine.run_cycle()
            except Exception as exc:
                self.failures += 1
                self.last_error = exc
                logger.error("Watch cycle %d failed: %s", self.cycles, exc, exc_info=True)
                self._emit(None, exc)
                return None
            self.last_result = result
            self.last_error = None
            self._emit(result, None)
            self._maybe_cleanup()
            return result
        finally:
            self._cycle_lock.release()

    def run(self, max_cycles: int | None = None) -> None:
        """Block running cycles until :meth:`stop` or *max_cycles* cycles have run."""
        self._stop.clear()
        completed = 0
        logger.info("Watch mode started (interval %.1fs)", self.settings.interval)
        while not self._stop.is_set():
            self.run_once()
            completed += 1
            if max_cycles is not None and completed >= max_cycles:
                break
            self._wait_for_trigger()
        logger.info("Watch mode stopped after %d cycle(s)", completed)

    def _wait_for_trigger(self) -> None:
        deadline = time.monotonic() + self.settings.interval
        while not self._stop.is_set():
            now = time.monotonic()
            timeout = deadline - now
            with self._state_lock:
                pending = self._pending_change
                if pending is not None:
                    ready_at = pending + self.settings.debounce
                    if now >= ready_at:
                        self._pending_change = None
                        return
                    timeout = min(timeout, ready_at - now)
            if timeout <= 0:
                return
            self._wake.wait(timeout)
            self._wake.clear()

    def _maybe_cleanup(self) -> None:
        if not self.settings.auto_cleanup or self.storage is None:
            return
        if self.cycles % self.settings.cleanup_every:
            return
        try:
            self.storage.cleanup_old_data()
        except StorageError as exc:
            logger.error("Scheduled cleanup failed: %s", exc)

    def _emit(self, result: CycleResult | None, error: Exception | None) -> None:
        for listener in self._listeners:
            try:
                listener(result, error)
            except Exception:
                logger.exception("Watch listener raised")
