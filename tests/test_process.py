"""Tests for the cancellable external process runner."""
from __future__ import annotations
import sys
import threading
import time
import pytest
from qualityiq.utils.process import AnalysisCancelled, CancellationToken, ToolError, ToolRunner


class TestCancellationToken:
    def test_initially_not_cancelled(self) -> None:
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel(self) -> None:
        token = CancellationToken()
        token.cancel()
        assert token.cancelled and token.wait(0)
        with pytest.raises(AnalysisCancelled):
            token.raise_if_cancelled()

    def test_tokens_independent(self) -> None:
        a, b = CancellationToken(), CancellationToken()
        a.cancel()
        assert not b.cancelled


class TestToolRunner:
    def test_captures_stdout(self, tmp_path) -> None:
        out = ToolRunner(tmp_path).run([sys.executable, "-c", "print('hello')"])
        assert out.returncode == 0 and out.stdout.strip() == "hello"

    def test_captures_stderr_and_returncode(self, tmp_path) -> None:
        code = "import sys; sys.stderr.write('bad'); sys.exit(3)"
        out = ToolRunner(tmp_path).run([sys.executable, "-c", code])
        assert out.returncode == 3 and out.stderr == "bad"

    def test_runs_in_cwd(self, tmp_path) -> None:
        out = ToolRunner(tmp_path).run([sys.executable, "-c", "import os; print(os.getcwd())"])
        assert out.stdout.strip() == str(tmp_path.resolve())

    def test_missing_executable(self, tmp_path) -> None:
        with pytest.raises(ToolError) as exc_info:
            ToolRunner(tmp_path).run(["definitely-not-a-real-tool-xyz"])
        assert exc_info.value.returncode == 127

    def test_timeout_kills_process(self, tmp_path) -> None:
        start = time.monotonic()
        with pytest.raises(ToolError) as exc_info:
            ToolRunner(tmp_path).run([sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.3)
        assert exc_info.value.returncode == 124
        assert time.monotonic() - start < 5

    def test_cancellation_kills_process(self, tmp_path) -> None:
        token = CancellationToken()
        timer = threading.Timer(0.2, token.cancel)
        timer.start()
        start = time.monotonic()
        try:
            with pytest.raises(AnalysisCancelled):
                ToolRunner(tmp_path).run([sys.executable, "-c", "import time; time.sleep(10)"], token=token)
        finally:
            timer.cancel()
        assert time.monotonic() - start < 5
