"""本地目录包源 - 扫描目录中符合命名约定的制品，下载即文件复制"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from hagidesk.core.exceptions import SourceError
from hagidesk.core.models import AvailableVersion, LocalFolderConfig, ValidationResult
from hagidesk.services.source.base import PackageSource, ProgressCallback, ProgressReporter
from hagidesk.services.source.filename import is_artifact_name

logger = logging.getLogger(__name__)

COPY_CHUNK = 1024 * 1024


class LocalFolderSource(PackageSource[LocalFolderConfig]):

    @property
    def folder(self) -> Path:
        return Path(self.config.path).expanduser()

    def list_available_versions(self) -> list[AvailableVersion]:
        folder = self.folder
        logger.info("扫描本地目录: %s", folder)
        if not folder.is_dir():
            raise SourceError(f"本地目录不存在或不可访问: {folder}")

        versions = []
        try:
            entries = sorted(folder.iterdir())
        except OSError as e:
            raise SourceError(f"读取本地目录失败: {folder}: {e}") from e
        for entry in entries:
            if not entry.is_file() or not is_artifact_name(entry.name):
                continue
            stat = entry.stat()
            v = self._version_from_filename(
                entry.name,
                size_bytes=stat.st_size,
                released_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
                source_path=str(entry),
            )
            if v is not None:
                versions.append(v)

        result = self._finalize(versions)
        logger.info("本地目录中找到 %d 个 %s 版本", len(result), self.platform.value)
        return result

    def download_package(
        self,
        version: AvailableVersion,
        dest_path: str | Path,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        src = Path(version.source_path) if version.source_path else self.folder / version.artifact_filename
        if not src.is_file():
            raise SourceError(f"制品文件不存在: {src}")

        dest = Path(dest_path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        total = src.stat().st_size
        report = ProgressReporter(on_progress)
        report.start(total)
        copied = 0
        try:
            with open(src, "rb") as fin, open(dest, "wb") as fout:
                while True:
                    chunk = fin.read(COPY_CHUNK)
                    if not chunk:
                        break
                    fout.write(chunk)
                    copied += len(chunk)
                    report(copied, total)
        except OSError as e:
            dest.unlink(missing_ok=True)
            raise SourceError(f"复制制品失败: {src} -> {dest}: {e}") from e
        report.finish(total)
        logger.info("制品已复制: %s -> %s", src.name, dest)

    def validate_config(self) -> ValidationResult:
        base = super().validate_config()
        if not base.valid:
            return base
        folder = self.folder
        if not folder.exists():
            return ValidationResult(False, f"目录不存在: {folder}")
        if not folder.is_dir():
            return ValidationResult(False, f"路径不是目录: {folder}")
        if not os.access(folder, os.R_OK):
            return ValidationResult(False, f"目录不可读: {folder}")
        return ValidationResult(True)
