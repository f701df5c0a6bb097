"""命令执行器测试"""

from __future__ import annotations

import os
import sys

import pytest

from hagidesk.utils.shell import (
    CommandResult,
    LocalExecutor,
    get_executor,
    set_executor,
    stream_command,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="依赖 POSIX shell")


class TestCommandResult:
    def test_output_merges_streams(self) -> None:
        assert CommandResult(0, "a", "b").output == "a\nb"
        assert CommandResult(0, "", "b").output == "b"
        assert CommandResult(1, "a", "").success is False


@posix_only
class TestLocalExecutor:
    def test_shell_command(self, tmp_path) -> None:
        r = LocalExecutor().execute("echo hello && echo err 1>&2", cwd=str(tmp_path), shell=True)
        assert r.success
        assert "hello" in r.stdout
        assert "err" in r.stderr

    def test_missing_binary_is_127(self, tmp_path) -> None:
        r = LocalExecutor().execute("definitely-not-a-command-xyz", cwd=str(tmp_path))
        assert r.returncode == 127

    def test_env_passed(self, tmp_path) -> None:
        env = {**os.environ, "MY_TEST_VAR": "42"}
        r = LocalExecutor().execute("env", cwd=str(tmp_path), env=env)
        assert "MY_TEST_VAR=42" in r.stdout


class TestExecutorSwap:
    def test_set_executor(self) -> None:
        original = get_executor()
        sentinel = LocalExecutor()
        try:
            set_executor(sentinel)
            assert get_executor() is sentinel
        finally:
            set_executor(original)


@posix_only
class TestStreamCommand:
    def test_lines_forwarded(self, tmp_path) -> None:
        lines = []
        r = stream_command("echo one; echo two 1>&2", cwd=str(tmp_path), on_line=lines.append)
        assert r.success
        assert lines == ["one", "two"]
        assert r.stdout == "one\ntwo"

    def test_failure_code(self, tmp_path) -> None:
        r = stream_command("exit 3", cwd=str(tmp_path))
        assert r.returncode == 3
