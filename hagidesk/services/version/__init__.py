"""版本生命周期子包

- manager.py: 安装 / 卸载 / 切换 / 重装 + 依赖检查持久化
- state.py: 已安装版本注册表与激活指针
- installer.py: 制品解压、可执行权限、appsettings 写入
"""

from hagidesk.services.version.manager import VersionManager
from hagidesk.services.version.state import ActiveVersionPointer, InstalledVersionRegistry

__all__ = [
    "ActiveVersionPointer",
    "InstalledVersionRegistry",
    "VersionManager",
]
