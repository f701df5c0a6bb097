"""Web 路由模块 - Blueprint 集合

- versions_bp.py: 版本安装 / 卸载 / 切换 / 进度
- sources_bp.py: 包源配置
- deps_bp.py: 版本依赖检查与安装
- service_bp.py: 服务进程控制
"""

from hagidesk.web.blueprints.deps_bp import deps_bp
from hagidesk.web.blueprints.service_bp import service_bp
from hagidesk.web.blueprints.sources_bp import sources_bp
from hagidesk.web.blueprints.versions_bp import versions_bp

__all__ = [
    "deps_bp",
    "service_bp",
    "sources_bp",
    "versions_bp",
]
