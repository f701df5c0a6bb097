"""版本生命周期管理

职责:
- 列出可用版本（激活包源）与已安装版本
- 安装 / 卸载 / 切换 / 重装，按版本 id 串行化
- 依赖检查结果持久化，状态 ready / incomplete 由依赖结果派生
- 通过 EventBus 发布 version.* 事件

每个版本 id 的状态机:
    unknown → installing → {ready | incomplete} → (switching) → uninstalling → unknown

预期内的失败（版本不存在、卸载激活版本、清单缺失等）以 OperationResult
返回原因码，不抛异常。注册表只在解压与清单解析全部成功后写入。
"""

from __future__ import annotations

import logging
import shutil
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from hagidesk.core.events import EventBus, Listener
from hagidesk.core.exceptions import ConfigError, NotFoundError, SourceError, ValidationError
from hagidesk.core.manifest import Manifest, pending_results, read_manifest
from hagidesk.core.models import (
    AvailableVersion,
    BatchInstallResult,
    DependencyCheckResult,
    DownloadProgress,
    EntryPoint,
    InstalledVersion,
    InstallProgress,
    OperationResult,
    OperationState,
    Platform,
    ReasonCode,
)
from hagidesk.core.paths import PathLayout
from hagidesk.services.deps.resolver import CheckContext, DependencyResolver
from hagidesk.services.source import PackageSource
from hagidesk.services.source.config_store import SourceConfigStore
from hagidesk.services.version.installer import (
    extract_archive,
    set_executable_permissions,
    update_app_settings,
)
from hagidesk.services.version.state import ActiveVersionPointer, InstalledVersionRegistry

logger = logging.getLogger(__name__)

InstallProgressCallback = Callable[[InstallProgress], None]


class _StagedProgress:
    """将各阶段进度映射到 0-100，保证单调不减"""

    # 阶段 → (起始, 结束) 百分比
    STAGES = {
        "downloading": (0, 70),
        "extracting": (70, 80),
        "verifying": (80, 85),
        "checking": (85, 99),
        "completed": (100, 100),
    }

    def __init__(self, callback: InstallProgressCallback | None) -> None:
        self._callback = callback
        self._last = -1

    def emit(self, stage: str, fraction: float = 0.0, message: str = "") -> None:
        if self._callback is None:
            return
        lo, hi = self.STAGES[stage]
        pct = int(lo + (hi - lo) * max(0.0, min(1.0, fraction)))
        if pct < self._last:
            return
        self._last = pct
        self._callback(InstallProgress(stage=stage, percentage=pct, message=message))

    def download(self, p: DownloadProgress) -> None:
        self.emit("downloading", p.percentage / 100)


class VersionManager:
    """已安装版本注册表 + 激活指针 + 事务性安装操作"""

    def __init__(
        self,
        layout: PathLayout,
        source_store: SourceConfigStore,
        resolver: DependencyResolver,
        *,
        events: EventBus | None = None,
        platform: Platform | None = None,
    ) -> None:
        self.layout = layout
        self.source_store = source_store
        self.resolver = resolver
        self.events = events if events is not None else EventBus()
        self.platform = platform
        self.registry = InstalledVersionRegistry(layout.installed_file)
        self.pointer = ActiveVersionPointer(layout.active_file)

        # 激活指针与跨版本的注册表决策
        self._state_lock = threading.RLock()
        # 每个版本 id 一把锁 + 当前操作状态
        self._ops_lock = threading.Lock()
        self._id_locks: dict[str, threading.Lock] = {}
        self._op_state: dict[str, OperationState] = {}

    # =====================================================================
    # 订阅 / 状态
    # =====================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """订阅 version.* 事件，返回取消订阅函数"""
        return self.events.subscribe(listener, prefix="version.")

    def operation_state(self, version_id: str) -> OperationState:
        with self._ops_lock:
            return self._op_state.get(version_id, OperationState.IDLE)

    @contextmanager
    def _operation(self, version_id: str, state: OperationState) -> Iterator[None]:
        """串行化同一 id 的变更操作；不同 id 互不阻塞"""
        with self._ops_lock:
            lock = self._id_locks.setdefault(version_id, threading.Lock())
        with lock:
            with self._ops_lock:
                self._op_state[version_id] = state
            try:
                yield
            finally:
                with self._ops_lock:
                    self._op_state.pop(version_id, None)

    # =====================================================================
    # 查询
    # =====================================================================

    def _active_source(self) -> PackageSource:
        source = self.source_store.create_active_source(platform=self.platform)
        if source is None:
            raise ConfigError("没有可用的包源")
        return source

    def list_available_versions(self, channel: str | None = None) -> list[AvailableVersion]:
        """激活包源的可用版本；网络/文件系统错误时降级为空列表"""
        try:
            versions = self._active_source().list_available_versions()
        except (SourceError, ValidationError) as e:
            logger.warning("列出可用版本失败: %s", e)
            return []
        if channel:
            versions = [v for v in versions if v.channel == channel]
        return versions

    def _with_active(self, version: InstalledVersion) -> InstalledVersion:
        version.is_active = self.pointer.get() == version.id
        return version

    def _resolve_installed_id(self, version_id: str) -> str | None:
        """id 或制品文件名主干 → 已安装记录的 id"""
        if version_id in self.registry:
            return version_id
        for rec in self.registry.list():
            stem = rec.artifact_filename.rsplit(".", 1)[0]
            if version_id in (stem, rec.artifact_filename):
                return rec.id
        return None

    def get_installed_version(self, version_id: str) -> InstalledVersion | None:
        resolved = self._resolve_installed_id(version_id)
        if resolved is None:
            return None
        rec = self.registry.get(resolved)
        return self._with_active(rec) if rec else None

    def list_installed_versions(self) -> list[InstalledVersion]:
        """已安装版本（安装时间倒序）；目录已不存在的记录会被清理"""
        result = []
        with self._state_lock:
            active_id = self.pointer.get()
            for rec in self.registry.list():
                if not Path(rec.install_path).is_dir():
                    logger.warning("安装目录已不存在，清理记录: %s", rec.id)
                    self.registry.remove(rec.id)
                    if active_id == rec.id:
                        self.pointer.clear()
                        active_id = None
                    continue
                rec.is_active = rec.id == active_id
                result.append(rec)
        result.sort(key=lambda v: v.installed_at, reverse=True)
        return result

    def get_active_version(self) -> InstalledVersion | None:
        with self._state_lock:
            active_id = self.pointer.get()
            if not active_id:
                return None
            rec = self.registry.get(active_id)
            if rec is None or not Path(rec.install_path).is_dir():
                return None
            rec.is_active = True
            return rec

    def get_entry_point(self, version_id: str | None = None) -> EntryPoint | None:
        """版本清单中的入口点（默认激活版本）"""
        rec = self.get_installed_version(version_id) if version_id else self.get_active_version()
        if rec is None:
            return None
        manifest = read_manifest(rec.install_path)
        return manifest.entry_point if manifest else None

    def get_logs_path(self, version_id: str) -> Path:
        path = self.layout.logs_dir(self._resolve_installed_id(version_id) or version_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    # =====================================================================
    # 安装
    # =====================================================================

    def install(
        self, version_id: str, on_progress: InstallProgressCallback | None = None,
    ) -> OperationResult:
        """安装版本（幂等）；首个成功安装的版本自动成为激活版本"""
        existing = self.get_installed_version(version_id)
        if existing is not None:
            logger.info("版本已安装: %s", existing.id)
            return OperationResult(success=True, version=existing)

        found = self._find_target(version_id)
        if isinstance(found, OperationResult):
            return found
        source, target = found
        # 别名与规范 id 指向同一安装目录，按规范 id 加锁
        with self._operation(target.id, OperationState.INSTALLING):
            # 等锁期间可能已由另一调用方完成
            existing = self.get_installed_version(target.id)
            if existing is not None:
                return OperationResult(success=True, version=existing)
            return self._install_target(source, target, on_progress)

    def _find_target(
        self, version_id: str,
    ) -> tuple[PackageSource, AvailableVersion] | OperationResult:
        try:
            source = self._active_source()
            target = next(
                (v for v in source.list_available_versions() if v.matches(version_id)), None,
            )
        except ConfigError as e:
            return self._failed(version_id, ReasonCode.INVALID_CONFIG, str(e))
        except (SourceError, ValidationError) as e:
            return self._failed(version_id, ReasonCode.SOURCE_ERROR, str(e))
        if target is None:
            return self._failed(version_id, ReasonCode.VERSION_NOT_FOUND, f"版本不存在: {version_id}")
        return source, target

    def _install_locked(
        self, version_id: str, on_progress: InstallProgressCallback | None,
    ) -> OperationResult:
        """调用方已持有该版本的操作锁"""
        found = self._find_target(version_id)
        if isinstance(found, OperationResult):
            return found
        source, target = found
        if target.id in self.registry:
            return OperationResult(success=True, version=self.get_installed_version(target.id))
        return self._install_target(source, target, on_progress)

    def _install_target(
        self,
        source: PackageSource,
        target: AvailableVersion,
        on_progress: InstallProgressCallback | None,
    ) -> OperationResult:
        progress = _StagedProgress(on_progress)
        install_dir = self.layout.install_dir(target.id)
        cache_path = self.layout.cache_path(target.artifact_filename)
        self.events.publish("version.installing", version_id=target.id)
        logger.info("安装版本 %s -> %s", target.id, install_dir)

        if install_dir.exists():
            # 上次失败遗留的目录，不在注册表中
            shutil.rmtree(install_dir, ignore_errors=True)
        try:
            progress.emit("downloading", 0.0, target.artifact_filename)
            source.download_package(target, cache_path, progress.download)

            progress.emit("extracting")
            extract_archive(cache_path, install_dir)
            set_executable_permissions(install_dir)

            progress.emit("verifying")
            manifest = read_manifest(install_dir)
            if manifest is None:
                return self._failed(
                    target.id, ReasonCode.MANIFEST_MISSING,
                    f"制品中缺少 manifest.json: {target.artifact_filename}",
                    available=target, cleanup=install_dir,
                )

            progress.emit("checking")
            dependencies = self.resolver.check_from_manifest(
                manifest.checkable_dependencies, CheckContext(workdir=str(install_dir)),
            )
            self._prepare_runtime_dirs(target.id, install_dir)
        except ConfigError as e:
            return self._failed(
                target.id, ReasonCode.INVALID_CONFIG, str(e), available=target, cleanup=install_dir,
            )
        except (SourceError, ValidationError, OSError) as e:
            return self._failed(
                target.id, ReasonCode.INSTALL_FAILED, str(e), available=target, cleanup=install_dir,
            )

        record = InstalledVersion(
            id=target.id,
            version=target.version,
            platform=target.platform,
            artifact_filename=target.artifact_filename,
            install_path=str(install_dir),
            installed_at=datetime.now(timezone.utc).isoformat(),
            dependencies=dependencies,
        )
        with self._state_lock:
            self.registry.save(record)
            if self.pointer.get() is None:
                self.pointer.set(record.id)
                self.events.publish("version.active_changed", previous=None, current=record.id)
        progress.emit("completed")
        self._with_active(record)
        logger.info("版本安装完成: %s (status=%s)", record.id, record.status.value)
        self.events.publish(
            "version.installed", version_id=record.id, status=record.status.value,
        )
        return OperationResult(success=True, version=record, available=target)

    def _prepare_runtime_dirs(self, version_id: str, install_dir: Path) -> None:
        self.layout.logs_dir(version_id).mkdir(parents=True, exist_ok=True)
        data_dir = self.layout.service_data_dir
        data_dir.mkdir(parents=True, exist_ok=True)
        try:
            update_app_settings(install_dir, {"DataDir": str(data_dir.resolve())})
        except OSError as e:
            # 数据目录配置失败不阻塞安装
            logger.warning("写入 DataDir 配置失败 %s: %s", version_id, e)

    def _failed(
        self,
        version_id: str,
        code: ReasonCode,
        error: str,
        *,
        available: AvailableVersion | None = None,
        cleanup: Path | None = None,
    ) -> OperationResult:
        if cleanup is not None and cleanup.exists():
            shutil.rmtree(cleanup, ignore_errors=True)
        logger.error("版本操作失败 %s [%s]: %s", version_id, code.value, error)
        self.events.publish(
            "version.install_failed", version_id=version_id, code=code.value, error=error,
        )
        return OperationResult.failure(code, error, available=available)

    # =====================================================================
    # 卸载 / 切换 / 重装
    # =====================================================================

    def uninstall(self, version_id: str) -> OperationResult:
        """卸载非激活版本：删除安装目录与注册表记录"""
        resolved = self._resolve_installed_id(version_id)
        if resolved is None:
            return OperationResult.failure(ReasonCode.NOT_INSTALLED, f"版本未安装: {version_id}")

        with self._operation(resolved, OperationState.UNINSTALLING):
            with self._state_lock:
                rec = self.registry.get(resolved)
                if rec is None:
                    return OperationResult.failure(ReasonCode.NOT_INSTALLED, f"版本未安装: {version_id}")
                if self.pointer.get() == resolved:
                    return OperationResult.failure(
                        ReasonCode.VERSION_ACTIVE, f"不能卸载激活版本: {resolved}",
                    )
                try:
                    if Path(rec.install_path).exists():
                        shutil.rmtree(rec.install_path)
                except OSError as e:
                    return OperationResult.failure(
                        ReasonCode.INSTALL_FAILED, f"删除安装目录失败: {e}",
                    )
                self.registry.remove(resolved)

        logger.info("版本已卸载: %s", resolved)
        self.events.publish("version.uninstalled", version_id=resolved)
        return OperationResult(success=True, version=rec)

    def switch_version(self, version_id: str) -> OperationResult:
        """移动激活指针；依赖不完整时仍允许切换，返回缺失依赖警告"""
        resolved = self._resolve_installed_id(version_id)
        if resolved is None:
            return OperationResult.failure(ReasonCode.NOT_INSTALLED, f"版本未安装: {version_id}")

        with self._operation(resolved, OperationState.SWITCHING):
            with self._state_lock:
                rec = self.registry.get(resolved)
                if rec is None:
                    return OperationResult.failure(ReasonCode.NOT_INSTALLED, f"版本未安装: {version_id}")
                previous = self.pointer.get()
                self.pointer.set(resolved)
            rec.is_active = True

        warning = None
        missing = rec.missing_dependencies
        if missing:
            warning = {"missing": [d.to_dict() for d in missing]}
            logger.warning(
                "切换到依赖不完整的版本 %s，缺失: %s",
                resolved, ", ".join(d.key for d in missing),
            )
        if previous != resolved:
            self.events.publish("version.active_changed", previous=previous, current=resolved)
        return OperationResult(success=True, version=rec, warning=warning)

    def reinstall_version(
        self, version_id: str, on_progress: InstallProgressCallback | None = None,
    ) -> OperationResult:
        """删除后重新安装；若原为激活版本，结束后恢复激活（失败时恢复旧目录与记录）"""
        resolved = self._resolve_installed_id(version_id)
        if resolved is None:
            return self.install(version_id, on_progress)

        with self._operation(resolved, OperationState.REINSTALLING):
            old = self.registry.get(resolved)
            if old is None:
                return self._install_locked(version_id, on_progress)

            with self._state_lock:
                was_active = self.pointer.get() == resolved
                if was_active:
                    self.pointer.clear()

            install_dir = Path(old.install_path)
            backup = install_dir.with_name(f".{install_dir.name}.reinstall-backup")
            try:
                if backup.exists():
                    shutil.rmtree(backup, ignore_errors=True)
                if install_dir.exists():
                    install_dir.rename(backup)
                self.registry.remove(resolved)

                result = self._install_locked(resolved, on_progress)

                if result.success:
                    shutil.rmtree(backup, ignore_errors=True)
                else:
                    logger.warning("重装失败，恢复原安装: %s", resolved)
                    if install_dir.exists():
                        shutil.rmtree(install_dir, ignore_errors=True)
                    if backup.exists():
                        backup.rename(install_dir)
                    self.registry.save(old)
            finally:
                if was_active:
                    with self._state_lock:
                        if self.pointer.get() != resolved:
                            self.pointer.set(resolved)

        if result.version is not None:
            self._with_active(result.version)
        return result

    # =====================================================================
    # 依赖
    # =====================================================================

    def _require_installed(self, version_id: str) -> InstalledVersion:
        rec = self.get_installed_version(version_id)
        if rec is None:
            raise NotFoundError(f"版本未安装: {version_id}")
        return rec

    def _require_manifest(self, rec: InstalledVersion) -> Manifest:
        manifest = read_manifest(rec.install_path)
        if manifest is None:
            raise ConfigError(f"版本 {rec.id} 缺少 manifest.json")
        return manifest

    def get_dependency_list_from_manifest(self, version_id: str) -> list[DependencyCheckResult]:
        """只读清单，返回标注为“检查中”的依赖列表（不执行检查命令）

        Raises:
            NotFoundError: 版本未安装
        """
        rec = self._require_installed(version_id)
        manifest = read_manifest(rec.install_path)
        if manifest is None:
            return []
        return pending_results(manifest.dependencies)

    def check_version_dependencies(self, version_id: str) -> OperationResult:
        """重新执行全部依赖检查并持久化结果"""
        resolved = self._resolve_installed_id(version_id)
        if resolved is None:
            return OperationResult.failure(ReasonCode.NOT_INSTALLED, f"版本未安装: {version_id}")
        with self._operation(resolved, OperationState.CHECKING):
            return self._recheck(resolved)

    def _recheck(self, version_id: str) -> OperationResult:
        rec = self.registry.get(version_id)
        if rec is None:
            return OperationResult.failure(ReasonCode.NOT_INSTALLED, f"版本未安装: {version_id}")
        manifest = read_manifest(rec.install_path)
        if manifest is None:
            return OperationResult.failure(
                ReasonCode.MANIFEST_MISSING, f"版本 {version_id} 缺少 manifest.json",
            )
        rec.dependencies = self.resolver.check_from_manifest(
            manifest.checkable_dependencies, CheckContext(workdir=rec.install_path),
        )
        with self._state_lock:
            # 检查期间记录可能已被卸载
            if version_id in self.registry:
                self.registry.save(rec)
        self._with_active(rec)
        self.events.publish(
            "version.dependencies_checked", version_id=version_id, status=rec.status.value,
        )
        return OperationResult(success=True, version=rec)

    def install_version_dependencies(
        self,
        version_id: str,
        keys: list[str] | None = None,
        on_progress: Callable[[dict], None] | None = None,
    ) -> BatchInstallResult:
        """安装版本的依赖（可指定键），之后重新检查并持久化

        Raises:
            NotFoundError: 版本未安装
            ConfigError: 清单缺失
        """
        rec = self._require_installed(version_id)
        with self._operation(rec.id, OperationState.INSTALLING):
            manifest = self._require_manifest(rec)
            specs = manifest.checkable_dependencies
            if keys:
                wanted = set(keys)
                specs = [s for s in specs if s.key in wanted]
            result = self.resolver.install_from_manifest(
                manifest, specs, on_progress, CheckContext(workdir=rec.install_path),
            )
            self._recheck(rec.id)
        return result
