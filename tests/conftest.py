"""测试共用 fixture：假命令执行器、制品打包"""

from __future__ import annotations

import copy
import json
import zipfile
from pathlib import Path
from typing import Any, Callable

import pytest

from hagidesk.utils.shell import CommandResult

SAMPLE_MANIFEST: dict[str, Any] = {
    "manifestVersion": "1.0",
    "package": {"name": "hagicode", "version": "1.2.0"},
    "dependencies": {
        "dotnet": {
            "type": "system-runtime",
            "checkCommand": "dotnet --version",
            "version": {"min": "8.0.0"},
            "installHint": "https://dotnet.microsoft.com/download",
        },
        "claudeCode": {
            "type": "npm",
            "checkCommand": "claude --version",
            "version": {"exact": "2.1.0"},
            "installCommand": "npm install -g @anthropic-ai/claude-code",
        },
        "os": {"type": "system-requirement", "description": "64 位操作系统"},
    },
    "entryPoint": {"command": "start.sh", "args": ["--port", "{port}"], "install": "install.sh"},
}


class FakeExecutor:
    """按完整命令字符串返回预设结果；未预设的命令视为不存在 (127)"""

    def __init__(self, results: dict[str, CommandResult] | None = None) -> None:
        self.results: dict[str, CommandResult] = dict(results or {})
        self.calls: list[tuple[str, str]] = []

    def set(self, cmd: str, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.results[cmd] = CommandResult(returncode, stdout, stderr)

    def execute(self, cmd, *, cwd=".", env=None, timeout=None, shell=False) -> CommandResult:
        self.calls.append((cmd, cwd))
        return self.results.get(cmd, CommandResult(127, "", f"{cmd}: command not found"))


@pytest.fixture()
def sample_manifest() -> dict[str, Any]:
    return copy.deepcopy(SAMPLE_MANIFEST)


@pytest.fixture()
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture()
def make_release() -> Callable[..., Path]:
    """在 folder 中生成 zip 制品：manifest=None 时不包含 manifest.json"""

    def _make(
        folder: Path,
        filename: str,
        manifest: dict[str, Any] | None = SAMPLE_MANIFEST,
        files: dict[str, str] | None = None,
    ) -> Path:
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / filename
        with zipfile.ZipFile(path, "w") as zf:
            if manifest is not None:
                zf.writestr("manifest.json", json.dumps(manifest))
            for name, content in (files or {"start.sh": "#!/bin/sh\nexit 0\n"}).items():
                zf.writestr(name, content)
        return path

    return _make
