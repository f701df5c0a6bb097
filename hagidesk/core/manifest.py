"""发布清单 (manifest.json) 读取与解析

每个已安装版本目录下有一个 manifest.json，声明包信息、运行时依赖
与服务入口点。本模块只读取该格式，不负责编写。

安装命令支持三种写法:
  "npm install -g foo"
  {"china": "...", "global": "...", "isRegional": true}
  {"windows": {"china": "...", "global": "..."}, "linux": {...}, "macos": {...}}
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from hagidesk.core.exceptions import ConfigError
from hagidesk.core.models import (
    DependencyCheckResult,
    DependencySpec,
    DependencyType,
    EntryPoint,
    VersionConstraint,
)

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"
SUPPORTED_MANIFEST_VERSION = "1.0"

_CHINA_TIMEZONES = frozenset((
    "Asia/Shanghai", "Asia/Hong_Kong", "Asia/Taipei", "Asia/Chongqing", "Asia/Harbin",
))


@dataclass
class Manifest:
    manifest_version: str
    package_name: str
    package_version: str
    dependencies: list[DependencySpec] = field(default_factory=list)
    entry_point: EntryPoint | None = None

    @property
    def checkable_dependencies(self) -> list[DependencySpec]:
        """可检查的依赖（跳过 system-requirement）"""
        return [d for d in self.dependencies if d.checkable]

    def get_dependency(self, key: str) -> DependencySpec | None:
        for d in self.dependencies:
            if d.key == key:
                return d
        return None


def format_dependency_name(key: str) -> str:
    """驼峰键转展示名: claudeCode → Claude Code"""
    spaced = re.sub(r"([A-Z])", r" \1", key).strip()
    return spaced[:1].upper() + spaced[1:]


def _parse_dependency(key: str, raw: dict[str, Any]) -> DependencySpec:
    ver = raw.get("version") or {}
    if isinstance(ver, str):
        ver = {"exact": ver}
    return DependencySpec(
        key=key,
        name=str(raw.get("name") or format_dependency_name(key)),
        type=str(raw.get("type") or DependencyType.SYSTEM_RUNTIME.value),
        check_command=str(raw.get("checkCommand") or ""),
        version_constraint=VersionConstraint(
            exact=ver.get("exact"), min=ver.get("min"),
            max=ver.get("max"), recommended=ver.get("recommended"),
        ),
        install_command=raw.get("installCommand"),
        install_hint=str(raw.get("installHint") or ""),
        description=str(raw.get("description") or ""),
    )


def parse_manifest(data: dict[str, Any]) -> Manifest:
    """将 manifest.json 字典解析为 Manifest

    Raises:
        ConfigError: 结构无效
    """
    if not isinstance(data, dict):
        raise ConfigError("manifest.json 顶层必须是对象")
    version = str(data.get("manifestVersion", ""))
    if version != SUPPORTED_MANIFEST_VERSION:
        logger.warning("不受支持的清单版本: %s", version or "<空>")

    pkg = data.get("package") or {}
    deps_raw = data.get("dependencies") or {}
    if not isinstance(deps_raw, dict):
        raise ConfigError("manifest.json 的 dependencies 必须是对象")

    deps = []
    for key, raw in deps_raw.items():
        if not isinstance(raw, dict):
            raise ConfigError(f"依赖 '{key}' 定义无效")
        deps.append(_parse_dependency(key, raw))

    ep_raw = data.get("entryPoint")
    entry_point = EntryPoint.from_dict(ep_raw) if isinstance(ep_raw, dict) and ep_raw.get("command") else None

    return Manifest(
        manifest_version=version,
        package_name=str(pkg.get("name", "")),
        package_version=str(pkg.get("version", "")),
        dependencies=deps,
        entry_point=entry_point,
    )


def read_manifest(install_dir: str | Path) -> Manifest | None:
    """读取安装目录下的清单，不存在返回 None

    Raises:
        ConfigError: 文件存在但 JSON 无效或结构无效
    """
    path = Path(install_dir) / MANIFEST_FILENAME
    if not path.is_file():
        logger.warning("未找到 %s: %s", MANIFEST_FILENAME, path)
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(f"读取清单失败: {path}: {e}") from e
    manifest = parse_manifest(data)
    logger.info("清单已加载: %s %s", manifest.package_name, manifest.package_version)
    return manifest


def pending_results(specs: list[DependencySpec]) -> list[DependencyCheckResult]:
    """将依赖规格标注为“检查中”，供快速展示"""
    return [
        DependencyCheckResult(
            key=s.key, name=s.name, type=s.type,
            installed=False, required_version=s.version_constraint.describe(),
            version_mismatch=False, is_checking=True,
            install_hint=s.install_hint or None, description=s.description or None,
        )
        for s in specs if s.checkable
    ]


# =========================================================================
# 地区 / 平台 与安装命令解析
# =========================================================================


def detect_region() -> str:
    """根据语言环境与时区判断 china / global"""
    for var in ("LC_ALL", "LC_MESSAGES", "LANG"):
        locale_name = os.environ.get(var, "")
        if locale_name.lower().startswith("zh"):
            return "china"
    tz = os.environ.get("TZ", "")
    if tz in _CHINA_TIMEZONES:
        return "china"
    if time.tzname and any("CST" == name for name in time.tzname) and time.timezone == -8 * 3600:
        return "china"
    return "global"


def manifest_platform_key() -> str:
    """清单安装命令使用的平台键（windows / macos / linux）"""
    if sys.platform == "win32":
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


def parse_install_command(
    install_command: Any, region: str | None = None, platform_key: str | None = None,
) -> str | None:
    """解析出当前地区/平台可执行的安装命令，没有返回 None"""
    if not install_command:
        return None
    if isinstance(install_command, str):
        return install_command
    if not isinstance(install_command, dict):
        return None

    region = region or detect_region()
    if "isRegional" in install_command or (
        "china" in install_command and "global" in install_command
    ):
        return install_command.get(region) or install_command.get("global") or None

    per_platform = install_command.get(platform_key or manifest_platform_key())
    if isinstance(per_platform, str):
        return per_platform
    if isinstance(per_platform, dict):
        return per_platform.get(region) or per_platform.get("global") or None
    return None
