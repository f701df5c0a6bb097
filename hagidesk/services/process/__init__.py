"""服务进程监管

- supervisor.py: 启动阶段机、停止、重启计数、崩溃监控
- port.py: 端口占用探测与监听等待
"""

from hagidesk.services.process.supervisor import ProcessSupervisor, ServiceConfig

__all__ = [
    "ProcessSupervisor",
    "ServiceConfig",
]
