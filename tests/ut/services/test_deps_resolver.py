"""依赖解析器测试：检查、安装、输出解析、命令序列"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from hagidesk.core.manifest import parse_manifest
from hagidesk.services.deps import DependencyResolver
from hagidesk.services.deps.output import find_failure_marker, parse_install_output
from hagidesk.services.deps.resolver import CheckContext


@pytest.fixture()
def manifest(sample_manifest):
    return parse_manifest(sample_manifest)


@pytest.fixture()
def resolver(fake_executor) -> DependencyResolver:
    return DependencyResolver(fake_executor, max_workers=2, region="global", platform_key="linux")


class TestCheck:
    def test_results_follow_declaration_order(self, resolver, fake_executor, manifest) -> None:
        fake_executor.set("dotnet --version", 0, "8.0.100")
        fake_executor.set("claude --version", 0, "2.1.0 (Claude Code)")
        results = resolver.check_from_manifest(manifest.dependencies)
        assert [r.key for r in results] == ["dotnet", "claudeCode"]
        assert all(r.satisfied for r in results)
        assert results[0].version == "8.0.100"
        assert results[1].required_version == "exactly 2.1.0"

    def test_installed_but_mismatched(self, resolver, fake_executor, manifest) -> None:
        fake_executor.set("claude --version", 0, "2.0.0 (Claude Code)")
        spec = manifest.get_dependency("claudeCode")
        [result] = resolver.check_from_manifest([spec])
        assert result.installed is True
        assert result.version == "2.0.0"
        assert result.version_mismatch is True
        assert not result.satisfied

    def test_missing_command(self, resolver, manifest) -> None:
        [result] = resolver.check_from_manifest([manifest.get_dependency("dotnet")])
        assert result.installed is False
        assert result.version is None
        assert result.version_mismatch is False
        assert result.install_hint == "https://dotnet.microsoft.com/download"

    def test_below_minimum(self, resolver, fake_executor, manifest) -> None:
        fake_executor.set("dotnet --version", 0, "6.0.400")
        [result] = resolver.check_from_manifest([manifest.get_dependency("dotnet")])
        assert result.version_mismatch is True

    def test_unparseable_version_is_not_mismatch(self, resolver, fake_executor, manifest) -> None:
        fake_executor.set("dotnet --version", 0, "unknown build")
        [result] = resolver.check_from_manifest([manifest.get_dependency("dotnet")])
        assert result.installed is True
        assert result.version_mismatch is False

    def test_runs_in_context_workdir(self, resolver, fake_executor, manifest) -> None:
        resolver.check_from_manifest(manifest.dependencies, CheckContext(workdir="/opt/app"))
        assert {cwd for _cmd, cwd in fake_executor.calls} == {"/opt/app"}

    def test_system_requirement_skipped(self, resolver, fake_executor, manifest) -> None:
        resolver.check_from_manifest([manifest.get_dependency("os")])
        assert fake_executor.calls == []

    def test_without_check_command_is_not_installed(self, resolver, fake_executor, sample_manifest) -> None:
        sample_manifest["dependencies"]["git"] = {"type": "system-runtime", "description": "Git"}
        manifest = parse_manifest(sample_manifest)
        [result] = resolver.check_from_manifest([manifest.get_dependency("git")])
        assert result.key == "git"
        assert result.installed is False
        assert not result.satisfied
        assert fake_executor.calls == []


class TestInstall:
    def test_manifest_command_preferred(self, resolver, fake_executor, manifest) -> None:
        fake_executor.set("npm install -g @anthropic-ai/claude-code", 0, "added 1 package")
        outcome = resolver.install_single_dependency(
            manifest.get_dependency("claudeCode"), manifest.entry_point,
        )
        assert outcome.success
        assert outcome.parsed_result["command"] == "npm install -g @anthropic-ai/claude-code"

    def test_entry_point_script_fallback(self, resolver, manifest) -> None:
        cmd = resolver.resolve_install_command(manifest.get_dependency("dotnet"), manifest.entry_point)
        assert cmd == "sh install.sh dotnet"

    def test_sh_script_path_quoted(self, resolver, manifest) -> None:
        manifest.entry_point.install = "scripts/my install.sh"
        cmd = resolver.resolve_install_command(manifest.get_dependency("dotnet"), manifest.entry_point)
        assert cmd == "sh 'scripts/my install.sh' dotnet"

    def test_powershell_script_path_quoted(self, resolver, manifest) -> None:
        manifest.entry_point.install = r"C:\Program Files\hagicode\install.ps1"
        cmd = resolver.resolve_install_command(manifest.get_dependency("dotnet"), manifest.entry_point)
        assert cmd == (
            'powershell -ExecutionPolicy Bypass -File '
            '"C:\\Program Files\\hagicode\\install.ps1" dotnet'
        )

    def test_no_command_available(self, resolver, manifest) -> None:
        outcome = resolver.install_single_dependency(manifest.get_dependency("dotnet"))
        assert not outcome.success
        assert "没有可自动执行的安装命令" in outcome.parsed_result["error_message"]

    def test_zero_exit_with_error_output_fails(self, resolver, fake_executor, manifest) -> None:
        fake_executor.set("npm install -g @anthropic-ai/claude-code", 0, "npm ERR! code EACCES")
        outcome = resolver.install_single_dependency(manifest.get_dependency("claudeCode"))
        assert not outcome.success
        assert "npm ERR!" in outcome.parsed_result["error_message"]

    def test_batch_continues_after_failure(self, resolver, fake_executor, manifest) -> None:
        fake_executor.set("npm install -g @anthropic-ai/claude-code", 0, "ok")
        events: list[tuple[str, str]] = []
        result = resolver.install_from_manifest(
            manifest, on_progress=lambda p: events.append((p["dependency"], p["status"])),
        )
        assert result.success == ["claudeCode"]
        assert [f["dependency"] for f in result.failed] == ["dotnet"]
        assert events == [
            ("dotnet", "installing"), ("dotnet", "error"),
            ("claudeCode", "installing"), ("claudeCode", "success"),
        ]

    def test_regional_command(self, fake_executor) -> None:
        resolver = DependencyResolver(fake_executor, region="china")
        manifest = parse_manifest({
            "manifestVersion": "1.0",
            "dependencies": {"node": {
                "type": "npm", "checkCommand": "node -v",
                "installCommand": {"china": "cn-install", "global": "gl-install", "isRegional": True},
            }},
        })
        assert resolver.resolve_install_command(manifest.dependencies[0]) == "cn-install"


class TestInstallOutput:
    def test_structured_result_wins(self) -> None:
        out = 'downloading...\n{"success": true, "version": "2.1.0"}'
        parsed = parse_install_output(0, out)
        assert parsed["success"] is True
        assert parsed["version"] == "2.1.0"

    def test_structured_failure(self) -> None:
        parsed = parse_install_output(0, '{"success": false, "error": "磁盘已满"}')
        assert parsed["success"] is False
        assert parsed["error_message"] == "磁盘已满"

    def test_structured_success_with_nonzero_exit(self) -> None:
        parsed = parse_install_output(1, '{"success": true}')
        assert parsed["success"] is False
        assert parsed["error_message"] == "安装命令退出码 1"

    def test_error_prefix_line(self) -> None:
        parsed = parse_install_output(0, "step 1 ok\nError: permission denied\n")
        assert parsed["success"] is False
        assert parsed["error_message"] == "Error: permission denied"

    def test_nonzero_without_marker(self) -> None:
        parsed = parse_install_output(2, "something odd")
        assert parsed["error_message"] == "安装命令退出码 2"

    def test_clean_success(self) -> None:
        parsed = parse_install_output(0, "installed node v20.11.0")
        assert parsed["success"] is True
        assert parsed["version"] == "20.11.0"

    def test_no_marker(self) -> None:
        assert find_failure_marker("all good") is None


@pytest.mark.skipif(sys.platform == "win32", reason="依赖 POSIX shell")
class TestCommandSequence:
    def test_stops_at_first_failure(self, tmp_path: Path) -> None:
        resolver = DependencyResolver()
        lines: list[str] = []
        result = resolver.execute_commands_with_progress(
            ["echo one", "exit 3", "echo never"], tmp_path,
            lambda p: lines.append(p["line"]) if "line" in p else None,
        )
        assert not result.success
        assert result.completed == ["echo one"]
        assert result.failed_command == "exit 3"
        assert lines == ["one"]

    def test_all_succeed(self, tmp_path: Path) -> None:
        result = DependencyResolver().execute_commands_with_progress(
            ["echo a", "echo b"], tmp_path,
        )
        assert result.success
        assert result.output == ["a", "b"]
