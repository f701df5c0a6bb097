"""统一异常体系

所有业务异常继承 HagiDeskError。预期内的失败（状态冲突、安装失败等）
由服务层以结构化结果返回，异常只用于配置错误与 I/O 错误。
Web 层据 code 映射 HTTP 状态码，CLI 层据此输出友好提示。
"""

from __future__ import annotations


class HagiDeskError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(HagiDeskError):
    """配置缺失或内容无效（包源配置、清单、入口点），不自动重试"""

    code = "CONFIG_ERROR"


class SourceError(HagiDeskError):
    """包源网络/文件系统错误（瞬时错误，由调用方决定是否重试）"""

    code = "SOURCE_ERROR"

    def __init__(
        self, message: str, status: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.headers = headers or {}


class ExecutionError(HagiDeskError):
    """子进程执行失败"""

    code = "EXECUTION_ERROR"


class ValidationError(HagiDeskError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class NotFoundError(HagiDeskError):
    """版本 / 包源不存在"""

    code = "NOT_FOUND"
