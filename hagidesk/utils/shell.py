"""Shell 命令执行工具 - 统一子进程调用

通过 CommandExecutor 协议抽象子进程执行，依赖检查/安装命令都经由它运行，
测试时可注入假实现，无需 patch subprocess。
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import sys
from dataclasses import dataclass
from typing import Callable, Protocol

from hagidesk.core.exceptions import ExecutionError

logger = logging.getLogger(__name__)


# =========================================================================
# 命令执行结果
# =========================================================================

@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout + stderr 合并文本（用于解析版本号/失败标记）"""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr


# =========================================================================
# 命令执行器协议
# =========================================================================

class CommandExecutor(Protocol):
    """命令执行器协议

    shell=True 时字符串命令交给系统 shell 解释（清单中的检查/安装命令
    可能包含管道、&& 等），否则按 shlex 切分直接执行。
    """

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
        shell: bool = False,
    ) -> CommandResult:
        ...


# =========================================================================
# 默认实现: 本地执行器
# =========================================================================

class LocalExecutor:
    """本地命令执行器（默认实现）"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
        shell: bool = False,
    ) -> CommandResult:
        if shell and isinstance(cmd, str):
            args: str | list[str] = cmd
        else:
            args = shlex.split(cmd) if isinstance(cmd, str) else cmd
            shell = False
        try:
            r = subprocess.run(
                args, capture_output=True, text=True, shell=shell,  # noqa: S602
                cwd=cwd, env=env, check=False, timeout=timeout,
            )
        except FileNotFoundError as e:
            # 与 shell 行为保持一致：命令不存在视为 127
            return CommandResult(returncode=127, stdout="", stderr=str(e))
        except subprocess.TimeoutExpired as e:
            raise ExecutionError(f"命令超时 ({timeout}s): {cmd}") from e
        return CommandResult(
            returncode=r.returncode,
            stdout=r.stdout,
            stderr=r.stderr,
        )


# =========================================================================
# 全局默认执行器（可替换）
# =========================================================================

_default_executor: CommandExecutor = LocalExecutor()


def get_executor() -> CommandExecutor:
    """获取全局默认命令执行器"""
    return _default_executor


def set_executor(executor: CommandExecutor) -> None:
    """替换全局默认命令执行器（用于测试）"""
    global _default_executor  # noqa: PLW0603
    _default_executor = executor


# =========================================================================
# 流式执行
# =========================================================================

def stream_command(
    cmd: str,
    *,
    cwd: str = ".",
    env: dict[str, str] | None = None,
    on_line: Callable[[str], None] | None = None,
) -> CommandResult:
    """经系统 shell 执行命令，逐行回调合并后的 stdout/stderr

    输出按行转发给 on_line，完整文本保存在返回结果的 stdout 中。
    """
    logger.info("执行: %s (cwd=%s)", cmd, cwd)
    try:
        proc = subprocess.Popen(  # noqa: S602
            cmd, shell=True, cwd=cwd, env=env,
            stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
            text=True, encoding="utf-8", errors="replace", bufsize=1,
        )
    except OSError as e:
        raise ExecutionError(f"启动命令失败: {cmd}: {e}") from e

    lines: list[str] = []
    assert proc.stdout is not None
    with proc.stdout:
        for raw in proc.stdout:
            line = raw.rstrip("\r\n")
            lines.append(line)
            if on_line is not None:
                on_line(line)
    returncode = proc.wait()
    return CommandResult(returncode=returncode, stdout="\n".join(lines), stderr="")


def is_windows() -> bool:
    return sys.platform == "win32"
