"""集中配置管理

所有目录、超时、服务地址等参数统一在 Config 中声明，
支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from hagidesk.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "hagidesk.yml"


@dataclass
class Config:
    """全局配置"""

    # 数据根目录（apps/installed, cache, logs, state 均在其下）
    data_root: str = "data"

    # 受监管服务
    host: str = "localhost"
    port: int = 36546
    start_timeout: float = 30.0
    stop_timeout: float = 10.0
    listen_timeout: float = 60.0
    probe_interval: float = 1.0
    health_path: str = "/api/health"
    max_restart_attempts: int = 3

    # 包源
    http_timeout: float = 30.0
    default_channel: str = ""

    # 依赖检查
    check_timeout: int = 60
    max_workers: int = 4

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_FILE) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI / Web 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = DEFAULT_CONFIG_FILE) -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
