"""依赖解析器

职责:
- 按清单声明的 checkCommand 检查宿主机依赖（并发执行）
- installed 与 version_mismatch 独立判定：已安装但版本不符是可能的
- 执行安装命令（清单 installCommand 或入口点 install 脚本），
  按输出而非仅按退出码判定结果
- 批量安装尽力而为：单个依赖失败不中断批次
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from hagidesk.core.exceptions import ExecutionError
from hagidesk.core.manifest import Manifest, parse_install_command
from hagidesk.core.models import (
    BatchInstallResult,
    CommandBatchResult,
    DependencyCheckResult,
    DependencySpec,
    EntryPoint,
    InstallOutcome,
)
from hagidesk.core.versioning import check_constraint, extract_version
from hagidesk.services.deps.output import parse_install_output
from hagidesk.utils.shell import CommandExecutor, get_executor, stream_command

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[dict[str, Any]], None]


@dataclass
class CheckContext:
    """检查/安装命令的执行上下文"""

    workdir: str = "."
    env: dict[str, str] | None = None
    extra: dict[str, Any] = field(default_factory=dict)


def _script_command(script: str, key: str) -> str:
    """入口点 install 脚本 + 依赖键 → 命令行"""
    quoted_key = shlex.quote(key)
    if script.endswith(".sh"):
        return f"sh {shlex.quote(script)} {quoted_key}"
    if script.endswith(".ps1"):
        # cmd.exe 不识别单引号，按 Windows 规则加引号
        return subprocess.list2cmdline(
            ["powershell", "-ExecutionPolicy", "Bypass", "-File", script, key],
        )
    return f"{shlex.quote(script)} {quoted_key}"


class DependencyResolver:
    """依赖检查与安装"""

    def __init__(
        self,
        executor: CommandExecutor | None = None,
        *,
        max_workers: int = 4,
        check_timeout: int = 60,
        install_timeout: int = 1800,
        region: str | None = None,
        platform_key: str | None = None,
    ) -> None:
        self._executor = executor
        self.max_workers = max(1, max_workers)
        self.check_timeout = check_timeout
        self.install_timeout = install_timeout
        self.region = region
        self.platform_key = platform_key

    @property
    def executor(self) -> CommandExecutor:
        return self._executor or get_executor()

    # =====================================================================
    # 检查
    # =====================================================================

    def check_from_manifest(
        self, specs: list[DependencySpec], context: CheckContext | None = None,
    ) -> list[DependencyCheckResult]:
        """并发执行所有可检查依赖的 checkCommand，结果保持声明顺序"""
        ctx = context or CheckContext()
        checkable = [s for s in specs if s.checkable]
        if not checkable:
            return []
        logger.info("检查 %d 个依赖 (cwd=%s)", len(checkable), ctx.workdir)
        workers = min(self.max_workers, len(checkable))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda s: self._check_one(s, ctx), checkable))
        missing = [r.key for r in results if not r.satisfied]
        if missing:
            logger.info("依赖未满足: %s", ", ".join(missing))
        return results

    def _check_one(self, spec: DependencySpec, ctx: CheckContext) -> DependencyCheckResult:
        result = DependencyCheckResult(
            key=spec.key, name=spec.name, type=spec.type,
            required_version=spec.version_constraint.describe(),
            install_hint=spec.install_hint or None,
            description=spec.description or None,
        )
        if not spec.check_command:
            # 无法验证，按未安装处理
            logger.warning("依赖 %s 未声明 checkCommand，视为未安装", spec.key)
            return result
        try:
            r = self.executor.execute(
                spec.check_command, cwd=ctx.workdir, env=ctx.env,
                timeout=self.check_timeout, shell=True,
            )
        except (ExecutionError, OSError) as e:
            logger.warning("依赖检查命令失败 %s: %s", spec.key, e)
            return result

        result.installed = r.success
        if r.success:
            result.version = extract_version(r.output)
            result.version_mismatch = not check_constraint(result.version, spec.version_constraint)
        logger.debug(
            "依赖 %s: installed=%s version=%s mismatch=%s",
            spec.key, result.installed, result.version, result.version_mismatch,
        )
        return result

    # =====================================================================
    # 安装
    # =====================================================================

    def resolve_install_command(
        self, spec: DependencySpec, entry_point: EntryPoint | None = None,
    ) -> str | None:
        """清单 installCommand 优先，其次入口点 install 脚本"""
        cmd = parse_install_command(spec.install_command, self.region, self.platform_key)
        if cmd:
            return cmd
        if entry_point is not None and entry_point.install:
            return _script_command(entry_point.install, spec.key)
        return None

    def install_single_dependency(
        self,
        spec: DependencySpec,
        entry_point: EntryPoint | None = None,
        context: CheckContext | None = None,
    ) -> InstallOutcome:
        ctx = context or CheckContext()
        cmd = self.resolve_install_command(spec, entry_point)
        if cmd is None:
            return InstallOutcome(False, {
                "success": False,
                "error_message": f"依赖 {spec.name} 没有可自动执行的安装命令",
                "install_hint": spec.install_hint or None,
            })

        logger.info("安装依赖 %s: %s", spec.key, cmd)
        try:
            r = self.executor.execute(
                cmd, cwd=ctx.workdir, env=ctx.env,
                timeout=self.install_timeout, shell=True,
            )
        except (ExecutionError, OSError) as e:
            return InstallOutcome(False, {
                "success": False, "error_message": str(e), "command": cmd,
            })
        parsed = parse_install_output(r.returncode, r.output)
        parsed["command"] = cmd
        if not parsed["success"]:
            logger.warning("依赖安装失败 %s: %s", spec.key, parsed["error_message"])
        return InstallOutcome(parsed["success"], parsed)

    def install_from_manifest(
        self,
        manifest: Manifest,
        specs: list[DependencySpec] | None = None,
        on_progress: ProgressCallback | None = None,
        context: CheckContext | None = None,
    ) -> BatchInstallResult:
        """逐个安装，失败记录后继续；返回成功/失败分区"""
        targets = specs if specs is not None else manifest.checkable_dependencies
        result = BatchInstallResult()
        total = len(targets)

        def _emit(index: int, spec: DependencySpec, status: str) -> None:
            if on_progress is not None:
                on_progress({
                    "current": index, "total": total,
                    "dependency": spec.key, "status": status,
                })

        for i, spec in enumerate(targets, 1):
            _emit(i, spec, "installing")
            outcome = self.install_single_dependency(spec, manifest.entry_point, context)
            if outcome.success:
                result.success.append(spec.key)
                _emit(i, spec, "success")
            else:
                result.failed.append({
                    "dependency": spec.key,
                    "error": str(outcome.parsed_result.get("error_message") or "安装失败"),
                })
                _emit(i, spec, "error")

        logger.info("依赖安装汇总: %d 成功, %d 失败", len(result.success), len(result.failed))
        return result

    # =====================================================================
    # 命令序列
    # =====================================================================

    def execute_commands_with_progress(
        self,
        commands: list[str],
        workdir: str | Path,
        on_progress: ProgressCallback | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandBatchResult:
        """顺序执行命令并逐行回调输出，遇到首个失败命令即停止"""
        result = CommandBatchResult(success=True)
        total = len(commands)
        for i, cmd in enumerate(commands, 1):
            if on_progress is not None:
                on_progress({"current": i, "total": total, "command": cmd, "status": "running"})

            def _line(line: str, _cmd: str = cmd, _i: int = i) -> None:
                result.output.append(line)
                if on_progress is not None:
                    on_progress({"current": _i, "total": total, "command": _cmd, "line": line})

            try:
                r = stream_command(cmd, cwd=str(workdir), env=env, on_line=_line)
            except ExecutionError as e:
                result.success, result.failed_command, result.error = False, cmd, str(e)
                break
            if not r.success:
                result.success, result.failed_command = False, cmd
                result.error = f"命令失败 (rc={r.returncode}): {cmd}"
                if on_progress is not None:
                    on_progress({"current": i, "total": total, "command": cmd, "status": "error"})
                break
            result.completed.append(cmd)
            if on_progress is not None:
                on_progress({"current": i, "total": total, "command": cmd, "status": "success"})
        return result
