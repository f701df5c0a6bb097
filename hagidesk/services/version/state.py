"""版本状态持久化

- InstalledVersionRegistry: 已安装版本记录（state/installed.yml，按 id 唯一）
- ActiveVersionPointer:     激活版本指针（state/active.yml，单独记录）

is_active 不写入版本记录，读取时由指针计算，避免两处真相在写入期间不一致。
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from hagidesk.core.models import InstalledVersion
from hagidesk.core.registry import YamlRegistry

logger = logging.getLogger(__name__)


class InstalledVersionRegistry(YamlRegistry):
    section_key = "versions"

    def save(self, version: InstalledVersion) -> InstalledVersion:
        self._put(version.id, version.to_record())
        return version

    def get(self, version_id: str) -> InstalledVersion | None:
        raw = self._get_raw(version_id)
        if raw is None:
            return None
        return InstalledVersion.from_record(version_id, raw)

    def list(self) -> list[InstalledVersion]:
        with self._lock:
            return [InstalledVersion.from_record(k, v) for k, v in self._section().items()]

    def remove(self, version_id: str) -> bool:
        return self._remove(version_id)

    def __contains__(self, version_id: str) -> bool:
        return self._get_raw(version_id) is not None


class ActiveVersionPointer(YamlRegistry):
    """激活版本指针（至多一个）"""

    def get(self) -> str | None:
        with self._lock:
            return self._data.get("active_version_id") or None

    def set(self, version_id: str | None) -> None:
        with self._lock:
            self._data["active_version_id"] = version_id
            self._data["updated_at"] = datetime.now(timezone.utc).isoformat()
            self._save()
        logger.info("激活版本指针: %s", version_id or "<无>")

    def clear(self) -> None:
        self.set(None)
