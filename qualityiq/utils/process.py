"""Cancellable subprocess wrapper for external analyzer tools."""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

__all__ = ["CancellationToken", "AnalysisCancelled", "ToolError", "ToolOutput", "ToolRunner"]

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05


class AnalysisCancelled(Exception):
    """Raised inside an adapter once its cancellation token has fired."""


class CancellationToken:
    """One-shot cancellation signal scoped to a single adapter invocation."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AnalysisCancelled("analysis was cancelled")


class ToolError(Exception):
    def __init__(self, command: str, stderr: str, returncode: int) -> None:
        self.command = command
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(f"{command} failed (rc={returncode}): {stderr.strip()}")


@dataclass(frozen=True)
class ToolOutput:
    stdout: str
    stderr: str
    returncode: int


class ToolRunner:
    """Runs an external command, killing it on timeout or cancellation."""

    def __init__(self, cwd: Path | None = None) -> None:
        self.cwd = (cwd or Path.cwd()).resolve()

    def run(
        self,
        args: Sequence[str],
        *,
        timeout: float | None = None,
        token: CancellationToken | None = None,
    ) -> ToolOutput:
        cmd = list(args)
        name = cmd[0] if cmd else "<empty>"
        logger.debug("Running: %s (cwd=%s)", " ".join(cmd), self.cwd)
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=self.cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except FileNotFoundError:
            raise ToolError(name, f"{name} is not installed or not in PATH", 127)

        # communicate() in a helper thread drains the pipes while we poll the token
        outputs: dict[str, str] = {}

        def _collect() -> None:
            out, err = proc.communicate()
            outputs["stdout"] = out or ""
            outputs["stderr"] = err or ""

        reader = threading.Thread(target=_collect, name=f"qualityiq-{name}-reader", daemon=True)
        reader.start()
        deadline = None if timeout is None else time.monotonic() + timeout
        while reader.is_alive():
            if token is not None and token.cancelled:
                self._kill(proc, reader)
                raise AnalysisCancelled(f"{name} was cancelled")
            if deadline is not None and time.monotonic() >= deadline:
                self._kill(proc, reader)
                raise ToolError(name, f"Command timed out after {timeout:g}s", 124)
            reader.join(_POLL_INTERVAL)
        return ToolOutput(
            stdout=outputs.get("stdout", ""),
            stderr=outputs.get("stderr", ""),
            returncode=proc.returncode,
        )

    @staticmethod
    def _kill(proc: subprocess.Popen, reader: threading.Thread) -> None:
        proc.kill()
        reader.join(1.0)
