"""包源子包 - 按配置类型构造对应的包源实现

    from hagidesk.services.source import create_package_source
    source = create_package_source(LocalFolderConfig(path="/opt/releases"))
"""

from __future__ import annotations

from hagidesk.core.exceptions import ConfigError
from hagidesk.core.models import (
    GitHubReleaseConfig,
    HttpIndexConfig,
    LocalFolderConfig,
    PackageSourceConfig,
    Platform,
)
from hagidesk.services.source.base import DEFAULT_TIMEOUT, PackageSource
from hagidesk.services.source.github_release import GitHubReleaseSource
from hagidesk.services.source.http_index import HttpIndexSource
from hagidesk.services.source.local_folder import LocalFolderSource

# 配置变体 → 实现类（封闭映射，构造时一次性确定）
_SOURCE_CLASSES: dict[type[PackageSourceConfig], type[PackageSource]] = {
    LocalFolderConfig: LocalFolderSource,
    GitHubReleaseConfig: GitHubReleaseSource,
    HttpIndexConfig: HttpIndexSource,
}


def create_package_source(
    config: PackageSourceConfig,
    *,
    platform: Platform | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> PackageSource:
    """为配置构造包源实例

    Raises:
        ConfigError: 配置类型未知或缺少必填字段
    """
    cls = _SOURCE_CLASSES.get(type(config))
    if cls is None:
        raise ConfigError(f"不支持的包源配置: {type(config).__name__}")
    missing = config.missing_fields()
    if missing:
        raise ConfigError(f"包源 '{config.name or config.id}' 缺少必填字段: {', '.join(missing)}")
    return cls(config, platform=platform, timeout=timeout)


__all__ = [
    "GitHubReleaseSource",
    "HttpIndexSource",
    "LocalFolderSource",
    "PackageSource",
    "create_package_source",
]
