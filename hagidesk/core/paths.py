"""数据目录布局

data_root/
  apps/installed/<id>/   每个已安装版本一个目录
  cache/                 下载的制品
  logs/<id>/             每个版本的服务日志
  state/                 installed.yml / active.yml / sources.yml
  userdata/              服务自身的数据目录（写入 appsettings 的 DataDir）
"""

from __future__ import annotations

from pathlib import Path


class PathLayout:
    """由 data_root 派生的全部路径"""

    def __init__(self, data_root: str | Path) -> None:
        self.root = Path(data_root)

    @property
    def install_root(self) -> Path:
        return self.root / "apps" / "installed"

    @property
    def cache_dir(self) -> Path:
        return self.root / "cache"

    @property
    def logs_root(self) -> Path:
        return self.root / "logs"

    @property
    def service_data_dir(self) -> Path:
        return self.root / "userdata"

    @property
    def state_dir(self) -> Path:
        return self.root / "state"

    @property
    def installed_file(self) -> Path:
        return self.state_dir / "installed.yml"

    @property
    def active_file(self) -> Path:
        return self.state_dir / "active.yml"

    @property
    def sources_file(self) -> Path:
        return self.state_dir / "sources.yml"

    def install_dir(self, version_id: str) -> Path:
        return self.install_root / version_id

    def cache_path(self, artifact_filename: str) -> Path:
        return self.cache_dir / artifact_filename

    def logs_dir(self, version_id: str) -> Path:
        return self.logs_root / version_id

    def ensure(self) -> None:
        for d in (
            self.install_root, self.cache_dir, self.logs_root,
            self.state_dir, self.service_data_dir,
        ):
            d.mkdir(parents=True, exist_ok=True)
