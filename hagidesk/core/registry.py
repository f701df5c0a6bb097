"""YAML 文件注册表基类

已安装版本、激活指针、包源配置都是小型 YAML 状态文件，
共享相同的加载、保存、按键增删改查逻辑。子类只需指定 section_key。
所有读写在同一把可重入锁下进行，可被多个调用方并发使用。
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

from hagidesk.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)


class YamlRegistry:
    """YAML 文件注册表基类

    子类用法:
        class MyRegistry(YamlRegistry):
            section_key = "items"
    """

    section_key: str = "entries"
    key_field: str = "id"

    def __init__(self, registry_file: str | Path) -> None:
        self.registry_file = Path(registry_file)
        self._lock = threading.RLock()
        self._data: dict[str, Any] = load_yaml(self.registry_file)

    def reload(self) -> None:
        """从磁盘重新加载（外部修改后调用）"""
        with self._lock:
            self._data = load_yaml(self.registry_file)

    def _section(self) -> dict[str, dict[str, Any]]:
        """获取当前 section 字典（自动创建）"""
        result: dict[str, dict[str, Any]] = self._data.setdefault(self.section_key, {})
        return result

    def _save(self) -> None:
        save_yaml(self.registry_file, self._data)

    def _put(self, key: str, entry: dict[str, Any]) -> dict[str, Any]:
        """写入条目并保存（同键覆盖，保证键唯一）"""
        with self._lock:
            self._section()[key] = entry
            self._save()
        return entry

    def _get_raw(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            return self._section().get(key)

    def _list_raw(self) -> list[dict[str, Any]]:
        """列出所有条目（带 key_field 字段）"""
        with self._lock:
            return [{self.key_field: k, **v} for k, v in self._section().items()]

    def _remove(self, key: str) -> bool:
        with self._lock:
            section = self._section()
            if key not in section:
                return False
            del section[key]
            self._save()
            return True
