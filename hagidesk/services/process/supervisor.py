"""受监管服务进程

启动阶段: checking_port → spawning → waiting_listening → health_check → running
每个阶段以 service.phase 事件发布，并记录在 get_status() 快照中。

- 任意时刻至多一个存活子进程；状态转换在短锁内完成
- 运行中崩溃 → status=error（监控线程），不会变成 stopped
- stop(): 进程组 SIGTERM，超时后 SIGKILL（Windows 上 taskkill /F /T），始终回收子进程
- restart() 计数，达到上限后拒绝；只有从 stopped 重新 start() 或 reset_restart_count() 会清零
"""

from __future__ import annotations

import dataclasses
import logging
import os
import shutil
import signal
import subprocess
import threading
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from hagidesk.core.config import Config
from hagidesk.core.events import EventBus, Listener
from hagidesk.core.exceptions import ValidationError
from hagidesk.core.models import (
    EntryPoint,
    ProcessInfo,
    ProcessStatus,
    ReasonCode,
    StartResult,
    StartupPhase,
)
from hagidesk.core.paths import PathLayout
from hagidesk.services.process import port as portmod
from hagidesk.services.version.installer import update_app_settings
from hagidesk.utils.shell import is_windows

logger = logging.getLogger(__name__)

SERVICE_LOG = "service.log"


@dataclass
class ServiceConfig:
    """受监管服务的地址与超时"""

    host: str = "localhost"
    port: int = 36546
    start_timeout: float = 30.0
    stop_timeout: float = 10.0
    listen_timeout: float = 60.0
    probe_interval: float = 1.0
    health_path: str = "/api/health"
    max_restart_attempts: int = 3

    @classmethod
    def from_config(cls, cfg: Config) -> ServiceConfig:
        names = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in cfg.to_dict().items() if k in names})

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


# 本地服务探测不走系统代理
_LOCAL_OPENER = urllib.request.build_opener(urllib.request.ProxyHandler({}))


def _probe_health(url: str, timeout: float = 2.0) -> bool:
    try:
        with _LOCAL_OPENER.open(url, timeout=timeout) as resp:  # nosec B310
            return resp.status == 200
    except (urllib.error.URLError, OSError):
        return False


def _substitute(arg: str, values: dict[str, str]) -> str:
    for key, value in values.items():
        arg = arg.replace("{" + key + "}", value)
    return arg


class ProcessSupervisor:
    """激活版本服务进程的启动 / 停止 / 监控"""

    def __init__(
        self,
        layout: PathLayout,
        config: ServiceConfig | None = None,
        *,
        events: EventBus | None = None,
    ) -> None:
        self.layout = layout
        self.config = config or ServiceConfig()
        self.events = events if events is not None else EventBus()

        self._lock = threading.Lock()
        self._proc: subprocess.Popen[bytes] | None = None
        self._info = ProcessInfo(port=self.config.port)
        self._version_id: str | None = None
        self._entry_point: EntryPoint | None = None
        # stop() 期间为 True，监控线程据此区分主动停止与崩溃
        self._stopping = False
        # 子进程尚未创建时收到 stop()，由启动流程自行收尾
        self._cancel_start = False
        self._start_idle = threading.Event()
        self._start_idle.set()

    # =====================================================================
    # 配置 / 查询
    # =====================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.events.subscribe(listener, prefix="service.")

    def set_active_version(self, version_id: str | None) -> None:
        with self._lock:
            self._version_id = version_id
            if self._info.status == ProcessStatus.STOPPED:
                self._info.version_id = version_id
        logger.info("受监管版本: %s", version_id or "<无>")

    def set_entry_point(self, entry_point: EntryPoint | None) -> None:
        with self._lock:
            self._entry_point = entry_point

    def get_version(self) -> str | None:
        with self._lock:
            return self._version_id

    def update_config(self, partial: dict[str, Any]) -> ServiceConfig:
        """部分更新配置，下一次 start() 生效

        Raises:
            ValidationError: 包含未知字段
        """
        names = {f.name for f in dataclasses.fields(ServiceConfig)}
        unknown = sorted(set(partial) - names)
        if unknown:
            raise ValidationError(f"未知的服务配置项: {', '.join(unknown)}", details=unknown)
        with self._lock:
            self.config = dataclasses.replace(self.config, **partial)
            if self._info.status == ProcessStatus.STOPPED:
                self._info.port = self.config.port
        return self.config

    def reset_restart_count(self) -> None:
        with self._lock:
            self._info.restart_count = 0

    def get_status(self) -> ProcessInfo:
        """当前状态快照（锁内复制）"""
        with self._lock:
            info = dataclasses.replace(self._info)
        if info.status == ProcessStatus.RUNNING and info.start_time:
            info.uptime = round(time.time() - info.start_time, 3)
        else:
            info.uptime = 0.0
        return info

    def check_port_available(self) -> bool:
        return portmod.check_port_available(self.config.host, self.config.port)

    # =====================================================================
    # 启动
    # =====================================================================

    def start(self) -> StartResult:
        return self._start(fresh=True)

    def _refuse(self, code: ReasonCode, message: str) -> StartResult:
        logger.warning("拒绝启动 [%s]: %s", code.value, message)
        return StartResult(False, self.get_status(), code, message)

    def _resolve_command(self, install_dir: Path, ep: EntryPoint) -> str | None:
        command = Path(ep.command)
        if command.is_absolute():
            return str(command) if command.exists() else None
        candidate = install_dir / command
        if candidate.exists():
            return str(candidate)
        return shutil.which(ep.command)

    def _start(self, *, fresh: bool) -> StartResult:
        cfg = self.config
        with self._lock:
            busy = self._busy_result()
            if busy is not None:
                return busy
            version_id, ep = self._version_id, self._entry_point

        if not version_id:
            return self._refuse(ReasonCode.NO_ACTIVE_VERSION, "没有激活版本")
        if ep is None or not ep.command:
            return self._refuse(ReasonCode.NO_ENTRY_POINT, f"版本 {version_id} 未声明入口点")
        install_dir = self.layout.install_dir(version_id)
        command = self._resolve_command(install_dir, ep)
        if command is None:
            return self._refuse(ReasonCode.ENTRY_POINT_MISSING, f"入口点不存在: {ep.command}")

        with self._lock:
            # 二次检查：两个调用方可能同时通过了上面的检查
            busy = self._busy_result()
            if busy is not None:
                return busy
            if fresh and self._info.status == ProcessStatus.STOPPED:
                restart_count = 0
            else:
                restart_count = self._info.restart_count
            self._info = ProcessInfo(
                status=ProcessStatus.STARTING, port=cfg.port,
                version_id=version_id, restart_count=restart_count,
            )
            self._stopping = False
            self._cancel_start = False
            self._start_idle.clear()
        try:
            return self._run_startup(version_id, install_dir, command, ep)
        finally:
            self._start_idle.set()

    def _busy_result(self) -> StartResult | None:
        """调用方持有 _lock"""
        status = self._info.status
        if status in (ProcessStatus.STARTING, ProcessStatus.RUNNING):
            info = dataclasses.replace(self._info)
            return StartResult(True, info, ReasonCode.ALREADY_RUNNING, "服务已在运行")
        if status == ProcessStatus.STOPPING:
            info = dataclasses.replace(self._info)
            return StartResult(False, info, ReasonCode.NOT_RUNNING, "服务正在停止，请稍后重试")
        return None

    def _cancelled(self) -> StartResult:
        with self._lock:
            self._cancel_start = False
            self._info = ProcessInfo(
                port=self.config.port, version_id=self._version_id,
                restart_count=self._info.restart_count,
            )
            info = dataclasses.replace(self._info)
        logger.info("启动已取消")
        return StartResult(False, info, ReasonCode.NOT_RUNNING, "启动过程中服务被停止")

    def _run_startup(
        self, version_id: str, install_dir: Path, command: str, ep: EntryPoint,
    ) -> StartResult:
        cfg = self.config
        self.events.publish("service.starting", version_id=version_id)

        self._set_phase(StartupPhase.CHECKING_PORT)
        if not portmod.check_port_available(cfg.host, cfg.port):
            # 只提示，不阻止启动
            self._set_phase(StartupPhase.CHECKING_PORT, f"端口 {cfg.port} 可能已被占用")

        with self._lock:
            cancelled = self._cancel_start
        if cancelled:
            return self._cancelled()

        self._set_phase(StartupPhase.SPAWNING)
        proc = self._spawn(version_id, install_dir, command, ep)
        if proc is None:
            with self._lock:
                cancelled = self._cancel_start
            if cancelled:
                return self._cancelled()
            return self._fail(ReasonCode.START_FAILED, "服务进程启动失败")

        self._set_phase(StartupPhase.WAITING_LISTENING)
        listening = portmod.wait_for_listening(
            cfg.host, cfg.port, cfg.listen_timeout,
            interval=cfg.probe_interval, alive=lambda: proc.poll() is None,
        )
        if not listening:
            return self._abort(proc, f"服务未在 {cfg.listen_timeout:g}s 内监听 {cfg.host}:{cfg.port}")

        if cfg.health_path:
            self._set_phase(StartupPhase.HEALTH_CHECK)
            if not self._wait_healthy(proc):
                return self._abort(proc, f"健康检查失败: {cfg.base_url}{cfg.health_path}")

        with self._lock:
            if self._proc is not proc or self._stopping:
                info = dataclasses.replace(self._info)
                return StartResult(False, info, ReasonCode.NOT_RUNNING, "启动过程中服务被停止")
            exited = proc.poll() is not None
            if not exited:
                self._info.status = ProcessStatus.RUNNING
                self._info.url = cfg.base_url
        if exited:
            return self._abort(proc, "服务进程在启动过程中退出")
        self._set_phase(StartupPhase.RUNNING)
        logger.info("服务已就绪: %s (pid=%s, version=%s)", cfg.base_url, proc.pid, version_id)
        self.events.publish("service.started", version_id=version_id, pid=proc.pid, url=cfg.base_url)
        return StartResult(True, self.get_status())

    def _spawn(
        self, version_id: str, install_dir: Path, command: str, ep: EntryPoint,
    ) -> subprocess.Popen[bytes] | None:
        cfg = self.config
        url = cfg.base_url
        try:
            update_app_settings(install_dir, {"Urls": url})
        except OSError as e:
            logger.warning("写入 appsettings Urls 失败: %s", e)

        values = {"host": cfg.host, "port": str(cfg.port), "install_dir": str(install_dir)}
        argv = [command, *(_substitute(a, values) for a in ep.args)]
        if command.endswith(".sh") and not is_windows():
            argv.insert(0, "sh")
        cwd = install_dir / ep.working_directory if ep.working_directory else install_dir

        env = os.environ.copy()
        env.update({
            "HAGICODE_HOST": cfg.host,
            "HAGICODE_PORT": str(cfg.port),
            "ASPNETCORE_URLS": url,
        })
        log_dir = self.layout.logs_dir(version_id)
        log_dir.mkdir(parents=True, exist_ok=True)

        kwargs: dict[str, Any] = {}
        if is_windows():
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP  # type: ignore[attr-defined]
        else:
            kwargs["start_new_session"] = True

        logger.info("启动服务: %s (cwd=%s)", argv, cwd)
        try:
            with open(log_dir / SERVICE_LOG, "ab") as log_file:
                proc = subprocess.Popen(  # noqa: S603
                    argv, cwd=str(cwd), env=env,
                    stdin=subprocess.DEVNULL, stdout=log_file, stderr=subprocess.STDOUT,
                    **kwargs,
                )
        except OSError as e:
            logger.error("启动服务进程失败: %s", e)
            return None

        with self._lock:
            cancelled = self._cancel_start
            if not cancelled:
                self._proc = proc
                self._info.pid = proc.pid
                self._info.start_time = time.time()
        if cancelled:
            logger.info("启动已被取消，结束刚创建的服务进程 (pid=%s)", proc.pid)
            self._terminate(proc)
            return None
        threading.Thread(
            target=self._monitor, args=(proc,), name=f"supervisor-{proc.pid}", daemon=True,
        ).start()
        return proc

    def _wait_healthy(self, proc: subprocess.Popen[bytes]) -> bool:
        cfg = self.config
        url = f"{cfg.base_url}{cfg.health_path}"
        deadline = time.monotonic() + cfg.start_timeout
        while time.monotonic() < deadline:
            if proc.poll() is not None:
                return False
            if _probe_health(url):
                return True
            time.sleep(cfg.probe_interval)
        return False

    def _monitor(self, proc: subprocess.Popen[bytes]) -> None:
        """等待子进程退出；非主动停止的退出记为 error"""
        rc = proc.wait()
        with self._lock:
            if self._proc is not proc or self._stopping:
                return
            if self._info.status == ProcessStatus.STARTING:
                # 启动流程中的退出由 _start 处理
                return
            self._proc = None
            self._info.status = ProcessStatus.ERROR
            self._info.phase = StartupPhase.ERROR
            self._info.phase_message = f"服务进程意外退出 (rc={rc})"
            self._info.pid = None
            self._info.url = None
        logger.error("服务进程意外退出 (pid=%s, rc=%s)", proc.pid, rc)
        self.events.publish("service.exited", pid=proc.pid, returncode=rc)

    def _set_phase(self, phase: StartupPhase, message: str | None = None) -> None:
        with self._lock:
            self._info.phase = phase
            self._info.phase_message = message
        logger.debug("启动阶段: %s %s", phase.value, message or "")
        self.events.publish("service.phase", phase=phase.value, message=message)

    def _fail(self, code: ReasonCode, message: str) -> StartResult:
        with self._lock:
            self._info.status = ProcessStatus.ERROR
            self._info.phase = StartupPhase.ERROR
            self._info.phase_message = message
            self._info.pid = None
            self._info.url = None
        logger.error("服务启动失败: %s", message)
        self.events.publish("service.phase", phase=StartupPhase.ERROR.value, message=message)
        return StartResult(False, self.get_status(), code, message)

    def _abort(self, proc: subprocess.Popen[bytes], message: str) -> StartResult:
        with self._lock:
            if self._proc is not proc or self._stopping:
                # 已被 stop() 接管
                info = dataclasses.replace(self._info)
                return StartResult(False, info, ReasonCode.NOT_RUNNING, "启动过程中服务被停止")
            self._stopping = True
        self._terminate(proc)
        with self._lock:
            if self._proc is proc:
                self._proc = None
            self._stopping = False
        return self._fail(ReasonCode.START_FAILED, message)

    # =====================================================================
    # 停止 / 重启
    # =====================================================================

    def _signal_group(self, proc: subprocess.Popen[bytes], sig: int) -> None:
        try:
            os.killpg(proc.pid, sig)
        except (ProcessLookupError, PermissionError, OSError):
            if sig == signal.SIGTERM:
                proc.terminate()
            else:
                proc.kill()

    def _terminate(self, proc: subprocess.Popen[bytes]) -> None:
        if proc.poll() is not None:
            return
        timeout = self.config.stop_timeout
        if is_windows():
            proc.terminate()
        else:
            self._signal_group(proc, signal.SIGTERM)
        try:
            proc.wait(timeout=timeout)
            return
        except subprocess.TimeoutExpired:
            logger.warning("服务未在 %gs 内退出，强制结束 (pid=%s)", timeout, proc.pid)
        if is_windows():
            subprocess.run(  # noqa: S603, S607
                ["taskkill", "/F", "/T", "/PID", str(proc.pid)],
                capture_output=True, check=False,
            )
        else:
            self._signal_group(proc, signal.SIGKILL)
        proc.wait()

    def stop(self) -> StartResult:
        """停止服务；未运行时直接返回 not-running（成功）

        启动流程尚未创建子进程时，标记取消并等待启动线程收尾。
        """
        with self._lock:
            cancelling = self._info.status == ProcessStatus.STARTING and self._proc is None
            if cancelling:
                self._cancel_start = True
                self._info.status = ProcessStatus.STOPPING
        if cancelling:
            logger.info("取消正在进行的启动")
            self._start_idle.wait()
            with self._lock:
                proc = self._proc
            if proc is None:
                info = self.get_status()
                self.events.publish("service.stopped", pid=None, returncode=None)
                return StartResult(True, info, message="启动已取消")

        with self._lock:
            proc = self._proc
            if proc is None or proc.poll() is not None:
                self._proc = None
                self._info = ProcessInfo(
                    port=self.config.port, version_id=self._version_id,
                    restart_count=self._info.restart_count,
                )
                info = dataclasses.replace(self._info)
                return StartResult(True, info, ReasonCode.NOT_RUNNING, "服务未运行")
            self._stopping = True
            self._info.status = ProcessStatus.STOPPING

        logger.info("停止服务 (pid=%s)", proc.pid)
        self._terminate(proc)

        with self._lock:
            if self._proc is proc:
                self._proc = None
            self._info = ProcessInfo(
                port=self.config.port, version_id=self._version_id,
                restart_count=self._info.restart_count,
            )
            self._stopping = False
        self.events.publish("service.stopped", pid=proc.pid, returncode=proc.returncode)
        return StartResult(True, self.get_status())

    def restart(self) -> StartResult:
        with self._lock:
            count = self._info.restart_count
            if count >= self.config.max_restart_attempts:
                info = dataclasses.replace(self._info)
                return StartResult(
                    False, info, ReasonCode.MAX_RESTARTS_REACHED,
                    f"已达到最大重启次数 {self.config.max_restart_attempts}",
                )
        self.stop()
        with self._lock:
            self._info.restart_count = count + 1
        logger.info("重启服务 (%d/%d)", count + 1, self.config.max_restart_attempts)
        return self._start(fresh=False)

    def cleanup(self) -> None:
        """退出前调用：停止仍在运行的子进程"""
        with self._lock:
            running = self._proc is not None or self._info.status == ProcessStatus.STARTING
        if running:
            self.stop()
