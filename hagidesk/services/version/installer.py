"""制品解压与安装目录准备

- extract_archive: 解压 .zip / tar 制品到安装目录（防路径穿越）
- set_executable_permissions: 为已知可执行文件名与 *.sh 设置 0755
- update_app_settings: 合并写入安装目录下的 config/appsettings.yml
"""

from __future__ import annotations

import logging
import os
import tarfile
import zipfile
from pathlib import Path
from typing import Any

from hagidesk.core.exceptions import SourceError
from hagidesk.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)

EXECUTABLE_NAMES = frozenset((
    "hagicode", "hagicode.exe", "pcode", "pcode.exe", "node", "node.exe",
))
APP_SETTINGS = Path("config") / "appsettings.yml"


def _is_within(base: Path, target: Path) -> bool:
    try:
        target.resolve().relative_to(base.resolve())
    except ValueError:
        return False
    return True


def extract_archive(archive: str | Path, dest: str | Path) -> None:
    """解压制品到 dest

    Raises:
        SourceError: 格式不支持、文件损坏或包含越界路径
    """
    archive, dest = Path(archive), Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    try:
        if zipfile.is_zipfile(archive):
            with zipfile.ZipFile(archive) as zf:
                for member in zf.namelist():
                    if not _is_within(dest, dest / member):
                        raise SourceError(f"制品包含越界路径: {member}")
                zf.extractall(dest)
        elif tarfile.is_tarfile(archive):
            with tarfile.open(archive) as tf:
                tf.extractall(path=str(dest), filter="data")  # noqa: S202
        else:
            raise SourceError(f"不支持的制品格式: {archive.name}")
    except (OSError, zipfile.BadZipFile, tarfile.TarError) as e:
        raise SourceError(f"解压失败: {archive.name}: {e}") from e
    logger.info("制品已解压: %s -> %s", archive.name, dest)


def set_executable_permissions(root: str | Path) -> int:
    """递归设置可执行位，返回处理的文件数（Windows 上为空操作）"""
    if os.name == "nt":
        return 0
    count = 0
    for dirpath, _dirs, files in os.walk(root):
        for name in files:
            if name in EXECUTABLE_NAMES or name.endswith(".sh"):
                try:
                    os.chmod(os.path.join(dirpath, name), 0o755)
                    count += 1
                except OSError as e:
                    logger.warning("设置可执行权限失败 %s: %s", name, e)
    return count


def update_app_settings(install_dir: str | Path, updates: dict[str, Any]) -> Path:
    """合并更新服务的 config/appsettings.yml（不存在则创建）"""
    path = Path(install_dir) / APP_SETTINGS
    data = load_yaml(path)
    data.update(updates)
    save_yaml(path, data)
    logger.debug("appsettings 已更新: %s %s", path, sorted(updates))
    return path


def read_app_settings(install_dir: str | Path) -> dict[str, Any]:
    return load_yaml(Path(install_dir) / APP_SETTINGS)
