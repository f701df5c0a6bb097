"""依赖解析模块

- resolver.py: 依赖检查 / 单个与批量安装 / 命令序列执行
- output.py: 安装命令输出解析
"""

from hagidesk.services.deps.output import parse_install_output
from hagidesk.services.deps.resolver import CheckContext, DependencyResolver

__all__ = [
    "CheckContext",
    "DependencyResolver",
    "parse_install_output",
]
