"""Unit tests for BuildExecutor and BuildLog."""

import os
import sys
import time
from unittest.mock import Mock, patch

import psutil
import pytest

from plugforge.build.build_executor import BuildCommandError, BuildExecutor, kill_process_tree
from plugforge.build.build_log import BuildLog, LogEntry


def python_command(code):
    return [sys.executable, "-c", code]


class TestBuildLog:
    """Tests for BuildLog."""

    def test_add_and_format(self):
        log = BuildLog()
        entry = log.add("hello\n", stream="stdout")

        assert entry.line == "hello"
        assert len(log) == 1
        formatted = log.get_logs()[0]
        assert formatted.endswith("] [stdout] hello")
        assert formatted.startswith("[")

    def test_format_has_milliseconds(self):
        entry = LogEntry(line="x", stream="info", timestamp=1700000000.25)
        clock = time.strftime("%H:%M:%S", time.localtime(1700000000.25))
        assert entry.format() == f"[{clock}.250] [info] x"

    def test_clear(self):
        log = BuildLog()
        log.add("a")
        log.clear()
        assert log.get_logs() == []


class TestBuildExecutor:
    """Tests for running real subprocesses."""

    def test_captures_stdout_and_stderr(self, tmp_path):
        log = BuildLog()
        executor = BuildExecutor(log, timeout=30)

        result = executor.run(
            python_command("import sys; print('out'); print('err', file=sys.stderr)"),
            cwd=tmp_path,
            env=dict(os.environ),
        )

        assert result.exit_code == 0
        assert sorted(result.output) == ["err", "out"]
        streams = {(entry.stream, entry.line) for entry in log.entries()}
        assert ("stdout", "out") in streams
        assert ("stderr", "err") in streams

    def test_uses_cwd_and_env(self, tmp_path):
        env = dict(os.environ)
        env["PLUGFORGE_TEST_VALUE"] = "42"
        executor = BuildExecutor(timeout=30)

        result = executor.run(
            python_command("import os; print(os.getcwd()); print(os.environ['PLUGFORGE_TEST_VALUE'])"),
            cwd=tmp_path,
            env=env,
        )

        assert os.path.samefile(result.output[0], tmp_path)
        assert result.output[1] == "42"

    def test_with_log_keeps_settings(self, tmp_path):
        executor = BuildExecutor(BuildLog(), timeout=12, verbose=True)
        log = BuildLog()

        bound = executor.with_log(log)
        bound.run(python_command("print('hi')"), cwd=tmp_path, env=dict(os.environ))

        assert bound.timeout == 12
        assert bound.verbose
        assert ("stdout", "hi") in {(entry.stream, entry.line) for entry in log.entries()}
        assert len(executor.log) == 0
        assert "PLUGFORGE_TEST_VALUE" not in os.environ

    def test_non_zero_exit(self, tmp_path):
        executor = BuildExecutor(timeout=30)

        with pytest.raises(BuildCommandError) as exc_info:
            executor.run(
                python_command("print('compiling'); raise SystemExit(3)"),
                cwd=tmp_path,
                env=dict(os.environ),
            )

        assert exc_info.value.exit_code == 3
        assert exc_info.value.captured_output == ["compiling"]
        assert "exit code 3" in str(exc_info.value)

    def test_missing_executable(self, tmp_path):
        executor = BuildExecutor(timeout=30)

        with pytest.raises(BuildCommandError, match="Failed to start"):
            executor.run(["plugforge-no-such-binary"], cwd=tmp_path, env=dict(os.environ))

    def test_timeout_kills_process(self, tmp_path):
        executor = BuildExecutor(timeout=30)
        start = time.time()

        with pytest.raises(BuildCommandError, match="timed out") as exc_info:
            executor.run(
                python_command("import time; print('started', flush=True); time.sleep(60)"),
                cwd=tmp_path,
                env=dict(os.environ),
                timeout=1,
            )

        assert time.time() - start < 30
        assert exc_info.value.exit_code is None
        assert exc_info.value.captured_output == ["started"]


class TestKillProcessTree:
    """Tests for kill_process_tree."""

    def test_missing_process(self):
        with patch("plugforge.build.build_executor.psutil.Process", side_effect=psutil.NoSuchProcess(1)):
            assert kill_process_tree(1) == 0

    def test_terminates_children_before_parent(self):
        order = []
        child = Mock(pid=2)
        child.terminate.side_effect = lambda: order.append("child")
        root = Mock(pid=1)
        root.terminate.side_effect = lambda: order.append("root")
        root.children.return_value = [child]

        with patch("plugforge.build.build_executor.psutil.Process", return_value=root), patch(
            "plugforge.build.build_executor.psutil.wait_procs", return_value=([child, root], [])
        ):
            assert kill_process_tree(1) == 2

        assert order == ["child", "root"]
        root.kill.assert_not_called()

    def test_force_kills_survivors(self):
        root = Mock(pid=1)
        root.children.return_value = []

        with patch("plugforge.build.build_executor.psutil.Process", return_value=root), patch(
            "plugforge.build.build_executor.psutil.wait_procs", return_value=([], [root])
        ):
            kill_process_tree(1, grace_period=0.1)

        root.kill.assert_called_once()
