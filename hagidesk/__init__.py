"""hagidesk - HagiCode 桌面端后端：包源、依赖检查、版本生命周期与服务进程监管"""

__version__ = "0.1.0"
