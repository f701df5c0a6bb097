"""服务容器 - 统一依赖注入，CLI / Web 均通过 get_container() 获取服务

依赖关系图（→ 表示依赖）:
  versions   → sources, resolver, events
  supervisor → events（订阅 version.* 以跟随激活版本）

用法:
    container = ServiceContainer()
    container.versions.install("hagicode-1.0.0-linux")
    container.supervisor.start()

    # 全局单例（Web / 多模块共享）
    from hagidesk.services.container import get_container
    svc = get_container().versions
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from hagidesk.core.events import EventBus
from hagidesk.core.paths import PathLayout

if TYPE_CHECKING:
    from hagidesk.core.config import Config
    from hagidesk.services.deps.resolver import DependencyResolver
    from hagidesk.services.process.supervisor import ProcessSupervisor
    from hagidesk.services.source.config_store import SourceConfigStore
    from hagidesk.services.version.manager import VersionManager

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器 - 每个实例持有一组共享的服务"""

    def __init__(self, config: Config | None = None) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from hagidesk.core.config import get_config
            config = get_config()
        self._config = config
        self.layout = PathLayout(config.data_root)
        self.events = EventBus()

    @property
    def config(self) -> Config:
        return self._config

    @property
    def sources(self) -> SourceConfigStore:
        if "sources" not in self._instances:
            from hagidesk.services.source.config_store import SourceConfigStore
            self._instances["sources"] = SourceConfigStore(
                self.layout.sources_file, http_timeout=self.config.http_timeout,
            )
        return self._instances["sources"]  # type: ignore[return-value]

    @property
    def resolver(self) -> DependencyResolver:
        if "resolver" not in self._instances:
            from hagidesk.services.deps.resolver import DependencyResolver
            self._instances["resolver"] = DependencyResolver(
                max_workers=self._config.max_workers,
                check_timeout=self._config.check_timeout,
            )
        return self._instances["resolver"]  # type: ignore[return-value]

    @property
    def versions(self) -> VersionManager:
        if "versions" not in self._instances:
            from hagidesk.services.version.manager import VersionManager
            self.layout.ensure()
            self._instances["versions"] = VersionManager(
                self.layout, self.sources, self.resolver, events=self.events,
            )
        return self._instances["versions"]  # type: ignore[return-value]

    @property
    def supervisor(self) -> ProcessSupervisor:
        if "supervisor" not in self._instances:
            from hagidesk.services.process.supervisor import ProcessSupervisor, ServiceConfig
            sup = ProcessSupervisor(
                self.layout, ServiceConfig.from_config(self._config), events=self.events,
            )
            self._instances["supervisor"] = sup
            self._follow_active_version()
            self.events.subscribe(self._on_version_event, prefix="version.")
        return self._instances["supervisor"]  # type: ignore[return-value]

    # ---- 激活版本 → 监管器 ----

    def _follow_active_version(self) -> None:
        sup: ProcessSupervisor = self._instances["supervisor"]  # type: ignore[assignment]
        active = self.versions.get_active_version()
        if active is None:
            sup.set_active_version(None)
            sup.set_entry_point(None)
            return
        sup.set_active_version(active.id)
        sup.set_entry_point(self.versions.get_entry_point(active.id))

    def _on_version_event(self, event: str, payload: dict[str, Any]) -> None:
        if event in ("version.active_changed", "version.installed"):
            self._follow_active_version()

    def shutdown(self) -> None:
        """停止受监管服务（若已创建）"""
        sup = self._instances.get("supervisor")
        if sup is not None:
            sup.cleanup()  # type: ignore[attr-defined]


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例（线程安全）"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def reset_container() -> None:
    """重置全局容器（仅用于测试）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
