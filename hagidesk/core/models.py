"""核心数据模型

所有领域数据类集中定义：可用版本、已安装版本、依赖规格与检查结果、
入口点、包源配置、进程状态，以及各操作的结构化结果。
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar

# =========================================================================
# 枚举
# =========================================================================


class Platform(str, Enum):
    LINUX = "linux"
    WINDOWS = "windows"
    OSX = "osx"
    UNKNOWN = "unknown"


class VersionStatus(str, Enum):
    READY = "ready"
    INCOMPLETE = "incomplete"


class DependencyType(str, Enum):
    NPM = "npm"
    SYSTEM_RUNTIME = "system-runtime"
    SYSTEM_REQUIREMENT = "system-requirement"


class ProcessStatus(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


class StartupPhase(str, Enum):
    IDLE = "idle"
    CHECKING_PORT = "checking_port"
    SPAWNING = "spawning"
    WAITING_LISTENING = "waiting_listening"
    HEALTH_CHECK = "health_check"
    RUNNING = "running"
    ERROR = "error"


class OperationState(str, Enum):
    """单个版本 id 上正在进行的操作"""

    IDLE = "idle"
    INSTALLING = "installing"
    UNINSTALLING = "uninstalling"
    SWITCHING = "switching"
    REINSTALLING = "reinstalling"
    CHECKING = "checking"


class ReasonCode(str, Enum):
    """结构化失败原因码"""

    NO_ACTIVE_VERSION = "no-active-version"
    NO_ENTRY_POINT = "no-entry-point"
    ENTRY_POINT_MISSING = "entry-point-missing"
    ALREADY_RUNNING = "already-running"
    NOT_RUNNING = "not-running"
    VERSION_ACTIVE = "version-active"
    NOT_INSTALLED = "not-installed"
    VERSION_NOT_FOUND = "version-not-found"
    MANIFEST_MISSING = "manifest-missing"
    SOURCE_ERROR = "source-error"
    INSTALL_FAILED = "install-failed"
    INVALID_CONFIG = "invalid-config"
    MAX_RESTARTS_REACHED = "max-restarts-reached"
    START_FAILED = "start-failed"


# =========================================================================
# 进度
# =========================================================================


@dataclass
class DownloadProgress:
    current: int
    total: int
    percentage: int

    @classmethod
    def of(cls, current: int, total: int) -> DownloadProgress:
        pct = 100 if total <= 0 else min(100, int(current * 100 / total))
        return cls(current=current, total=total, percentage=pct)


@dataclass
class InstallProgress:
    """版本安装进度（阶段 + 百分比）"""

    stage: str  # downloading / extracting / verifying / checking / completed
    percentage: int
    message: str = ""


# =========================================================================
# 版本
# =========================================================================


@dataclass(frozen=True)
class AvailableVersion:
    """包源列出的可获取版本（不可变，不直接持久化）"""

    id: str
    version: str
    platform: str
    artifact_filename: str
    channel: str = "stable"
    released_at: str | None = None
    size_bytes: int | None = None
    download_url: str | None = None
    # 包源内部定位信息（本地路径等），不对外序列化
    source_path: str | None = field(default=None, compare=False, repr=False)

    @property
    def artifact_stem(self) -> str:
        name = self.artifact_filename
        for ext in (".tar.gz", ".tgz", ".zip"):
            if name.endswith(ext):
                return name[: -len(ext)]
        return name

    def matches(self, version_id: str) -> bool:
        """id 或制品文件名主干均可定位此版本"""
        return version_id in (self.id, self.artifact_stem, self.artifact_filename)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("source_path", None)
        return data


@dataclass
class VersionConstraint:
    exact: str | None = None
    min: str | None = None
    max: str | None = None
    recommended: str | None = None

    def is_empty(self) -> bool:
        return not (self.exact or self.min or self.max)

    def describe(self) -> str:
        """展示用的版本要求（exactly 2.1.0 / 18.0.0+, <= 22.0.0 / any）"""
        if self.exact:
            return f"exactly {self.exact}"
        parts = []
        if self.min:
            parts.append(f"{self.min}+")
        if self.max:
            parts.append(f"<= {self.max}")
        if self.recommended:
            parts.append(f"recommended: {self.recommended}")
        return ", ".join(parts) or "any"


@dataclass
class DependencySpec:
    """清单中声明的运行时依赖（只读）"""

    key: str
    name: str
    type: str
    check_command: str = ""
    version_constraint: VersionConstraint = field(default_factory=VersionConstraint)
    # 字符串 / {china, global, isRegional} / {windows|macos|linux: {...}}
    install_command: Any = None
    install_hint: str = ""
    description: str = ""

    @property
    def checkable(self) -> bool:
        return self.type != DependencyType.SYSTEM_REQUIREMENT.value


@dataclass
class DependencyCheckResult:
    key: str
    name: str
    type: str
    installed: bool = False
    version: str | None = None
    required_version: str | None = None
    version_mismatch: bool = False
    is_checking: bool = False
    install_hint: str | None = None
    description: str | None = None

    @property
    def satisfied(self) -> bool:
        return self.installed and not self.version_mismatch

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DependencyCheckResult:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def derive_status(dependencies: list[DependencyCheckResult]) -> VersionStatus:
    """ready 当且仅当每个依赖均 installed 且无版本不匹配"""
    if all(d.satisfied for d in dependencies):
        return VersionStatus.READY
    return VersionStatus.INCOMPLETE


@dataclass
class EntryPoint:
    command: str
    args: list[str] = field(default_factory=list)
    install: str | None = None
    working_directory: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EntryPoint:
        return cls(
            command=str(data.get("command", "")),
            args=[str(a) for a in data.get("args") or []],
            install=data.get("install") or None,
            working_directory=data.get("workingDirectory") or data.get("working_directory") or None,
        )


@dataclass
class InstalledVersion:
    """已安装版本记录（持久化；is_active 读取时由激活指针计算）"""

    id: str
    version: str
    platform: str
    artifact_filename: str
    install_path: str
    installed_at: str
    dependencies: list[DependencyCheckResult] = field(default_factory=list)
    is_active: bool = False

    @property
    def status(self) -> VersionStatus:
        return derive_status(self.dependencies)

    @property
    def missing_dependencies(self) -> list[DependencyCheckResult]:
        return [d for d in self.dependencies if not d.satisfied]

    def to_record(self) -> dict[str, Any]:
        """持久化表示（不含 is_active / status）"""
        return {
            "version": self.version,
            "platform": self.platform,
            "artifact_filename": self.artifact_filename,
            "install_path": self.install_path,
            "installed_at": self.installed_at,
            "dependencies": [d.to_dict() for d in self.dependencies],
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id, **self.to_record(),
            "status": self.status.value, "is_active": self.is_active,
        }

    @classmethod
    def from_record(cls, version_id: str, data: dict[str, Any], *, is_active: bool = False) -> InstalledVersion:
        return cls(
            id=version_id,
            version=str(data.get("version", "")),
            platform=str(data.get("platform", "")),
            artifact_filename=str(data.get("artifact_filename", "")),
            install_path=str(data.get("install_path", "")),
            installed_at=str(data.get("installed_at", "")),
            dependencies=[
                DependencyCheckResult.from_dict(d) for d in data.get("dependencies") or []
            ],
            is_active=is_active,
        )


# =========================================================================
# 包源配置（封闭变体）
# =========================================================================


@dataclass
class PackageSourceConfig:
    """包源配置基类，子类声明 type 与各自必需字段"""

    type: ClassVar[str] = ""
    required_fields: ClassVar[tuple[str, ...]] = ()

    id: str = ""
    name: str = ""
    created_at: str = ""
    last_used_at: str | None = None
    default_channel: str | None = None

    def missing_fields(self) -> list[str]:
        return [f for f in self.required_fields if not str(getattr(self, f) or "").strip()]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, **asdict(self)}


@dataclass
class LocalFolderConfig(PackageSourceConfig):
    type: ClassVar[str] = "local-folder"
    required_fields: ClassVar[tuple[str, ...]] = ("path",)

    path: str = ""


@dataclass
class GitHubReleaseConfig(PackageSourceConfig):
    type: ClassVar[str] = "github-release"
    required_fields: ClassVar[tuple[str, ...]] = ("owner", "repo")

    owner: str = ""
    repo: str = ""
    token: str | None = None


@dataclass
class HttpIndexConfig(PackageSourceConfig):
    type: ClassVar[str] = "http-index"
    required_fields: ClassVar[tuple[str, ...]] = ("index_url",)

    index_url: str = ""
    base_url: str | None = None
    auth_token: str | None = None


SOURCE_CONFIG_TYPES: dict[str, type[PackageSourceConfig]] = {
    cls.type: cls for cls in (LocalFolderConfig, GitHubReleaseConfig, HttpIndexConfig)
}

# 驼峰字段名兼容（环境变量覆盖、Web 请求体）
_FIELD_ALIASES = {
    "indexUrl": "index_url",
    "baseUrl": "base_url",
    "authToken": "auth_token",
    "createdAt": "created_at",
    "lastUsedAt": "last_used_at",
    "defaultChannel": "default_channel",
}


def source_config_from_dict(data: dict[str, Any]) -> PackageSourceConfig:
    """按 type 构造对应的配置变体

    Raises:
        ValueError: type 未知
    """
    type_name = str(data.get("type", ""))
    cls = SOURCE_CONFIG_TYPES.get(type_name)
    if cls is None:
        raise ValueError(
            f"不支持的包源类型: '{type_name}'，可选: {sorted(SOURCE_CONFIG_TYPES)}"
        )
    known = {f.name for f in fields(cls)}
    kwargs: dict[str, Any] = {}
    for k, v in data.items():
        k = _FIELD_ALIASES.get(k, k)
        if k in known:
            kwargs[k] = v
    return cls(**kwargs)


@dataclass
class ValidationResult:
    valid: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# =========================================================================
# 进程
# =========================================================================


@dataclass
class ProcessInfo:
    """受监管进程状态快照（不持久化）"""

    status: ProcessStatus = ProcessStatus.STOPPED
    pid: int | None = None
    uptime: float = 0.0
    start_time: float | None = None
    url: str | None = None
    restart_count: int = 0
    phase: StartupPhase = StartupPhase.IDLE
    phase_message: str | None = None
    port: int = 0
    version_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["phase"] = self.phase.value
        return data


@dataclass
class StartResult:
    success: bool
    info: ProcessInfo
    code: ReasonCode | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "code": self.code.value if self.code else None,
            "message": self.message,
            "info": self.info.to_dict(),
        }


# =========================================================================
# 操作结果
# =========================================================================


@dataclass
class OperationResult:
    """版本操作通用结果（失败时携带原因码，不抛异常）"""

    success: bool
    code: ReasonCode | None = None
    error: str = ""
    version: InstalledVersion | None = None
    # 安装失败时保留已知的版本元数据
    available: AvailableVersion | None = None
    warning: dict[str, Any] | None = None

    @classmethod
    def failure(
        cls, code: ReasonCode, error: str, *, available: AvailableVersion | None = None,
    ) -> OperationResult:
        return cls(success=False, code=code, error=error, available=available)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "code": self.code.value if self.code else None,
            "error": self.error,
            "version": self.version.to_dict() if self.version else None,
            "available": self.available.to_dict() if self.available else None,
            "warning": self.warning,
        }


@dataclass
class InstallOutcome:
    """单个依赖安装结果"""

    success: bool
    parsed_result: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BatchInstallResult:
    """批量安装结果（成功 / 失败分区）"""

    success: list[str] = field(default_factory=list)
    failed: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CommandBatchResult:
    success: bool
    completed: list[str] = field(default_factory=list)
    failed_command: str | None = None
    error: str | None = None
    output: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
