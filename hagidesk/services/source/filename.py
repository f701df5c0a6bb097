"""制品文件名解析

历史上出现过多种命名方式，按顺序尝试以下策略，首个成功者生效:

  1. SimpleParser        hagicode-1.2.0-linux.zip
  2. ArchSuffixParser    hagicode-1.2.0-linux-x64.zip / hagicode-1.2.0-win-x64-nort.zip
  3. FreeFormParser      hagicode-1.2.0-ubuntu-22.zip
  4. LastSegmentParser   任意含版本号的名字，末段视为平台

平台标记统一映射到 linux / windows / osx，无法识别时为 unknown。
"""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass

from hagidesk.core.models import Platform
from hagidesk.core.versioning import prerelease_label

ARTIFACT_PREFIX = "hagicode-"
ARTIFACT_EXTENSIONS = (".zip",)

_VERSION = r"\d+\.\d+\.\d+(?:-[a-zA-Z0-9.]+)?"
_CORE_VERSION_RE = re.compile(r"\d+\.\d+\.\d+")

_EXACT_TOKENS = {
    "linux": Platform.LINUX,
    "windows": Platform.WINDOWS,
    "win": Platform.WINDOWS,
    "win32": Platform.WINDOWS,
    "win64": Platform.WINDOWS,
    "osx": Platform.OSX,
    "macos": Platform.OSX,
    "mac": Platform.OSX,
    "darwin": Platform.OSX,
}

KNOWN_CHANNELS = frozenset(("stable", "beta", "alpha", "dev", "preview"))


def normalize_platform(token: str) -> Platform:
    """平台标记 → 规范平台；先精确匹配，再按子串启发式"""
    t = token.strip().lower()
    if t in _EXACT_TOKENS:
        return _EXACT_TOKENS[t]
    if "linux" in t or "ubuntu" in t:
        return Platform.LINUX
    # darwin 含 "win"，须先于 windows 判断
    if "darwin" in t or "mac" in t or "osx" in t:
        return Platform.OSX
    if "win" in t:
        return Platform.WINDOWS
    return Platform.UNKNOWN


def current_platform() -> Platform:
    if sys.platform == "win32":
        return Platform.WINDOWS
    if sys.platform == "darwin":
        return Platform.OSX
    if sys.platform.startswith("linux"):
        return Platform.LINUX
    return Platform.UNKNOWN


def make_version_id(version: str, platform: str) -> str:
    return f"{ARTIFACT_PREFIX}{version}-{platform}"


def infer_channel(version: str, marker: str | None = None) -> str:
    """渠道推断: 已知渠道标记优先，否则按预发布标签（无 → stable）"""
    if marker and marker.lower() in KNOWN_CHANNELS:
        return marker.lower()
    label = prerelease_label(version)
    if not label:
        return "stable"
    if label in KNOWN_CHANNELS:
        return label
    return "beta"


@dataclass(frozen=True)
class ParsedFilename:
    version: str
    platform: Platform
    arch: str | None = None
    channel_marker: str | None = None
    scheme: str = ""

    @property
    def version_id(self) -> str:
        return make_version_id(self.version, self.platform.value)


def _strip_extension(filename: str) -> str | None:
    for ext in ARTIFACT_EXTENSIONS:
        if filename.lower().endswith(ext):
            return filename[: -len(ext)]
    return None


class FilenameParser:
    """解析策略基类，子类实现 parse_stem"""

    name = "base"

    def parse(self, filename: str) -> ParsedFilename | None:
        stem = _strip_extension(filename)
        if stem is None:
            return None
        return self.parse_stem(stem)

    def parse_stem(self, stem: str) -> ParsedFilename | None:
        raise NotImplementedError


class SimpleParser(FilenameParser):
    name = "simple"
    _RE = re.compile(rf"^hagicode-({_VERSION})-(linux|windows|osx)$")

    def parse_stem(self, stem: str) -> ParsedFilename | None:
        m = self._RE.match(stem)
        if not m:
            return None
        return ParsedFilename(m.group(1), Platform(m.group(2)), scheme=self.name)


class ArchSuffixParser(FilenameParser):
    name = "arch-suffix"
    _RE = re.compile(
        rf"^hagicode-({_VERSION})-([a-zA-Z]+)-(x64|x86|arm64|amd64)(?:-([a-zA-Z]+))?$"
    )

    def parse_stem(self, stem: str) -> ParsedFilename | None:
        m = self._RE.match(stem)
        if not m:
            return None
        platform = normalize_platform(m.group(2))
        if platform is Platform.UNKNOWN:
            return None
        return ParsedFilename(
            m.group(1), platform, arch=m.group(3),
            channel_marker=m.group(4), scheme=self.name,
        )


class FreeFormParser(FilenameParser):
    """版本号后的剩余部分任意切分为 预发布标签 + 平台标记，取最长预发布标签"""

    name = "free-form"
    _RE = re.compile(r"^hagicode-(\d+\.\d+\.\d+)-([a-zA-Z0-9.\-]+)$")

    def parse_stem(self, stem: str) -> ParsedFilename | None:
        m = self._RE.match(stem)
        if not m:
            return None
        base, segments = m.group(1), m.group(2).split("-")
        for i in range(len(segments) - 1, -1, -1):
            token = "-".join(segments[i:])
            platform = normalize_platform(token)
            if platform is Platform.UNKNOWN:
                continue
            pre = "-".join(segments[:i])
            version = f"{base}-{pre}" if pre else base
            return ParsedFilename(version, platform, scheme=self.name)
        return None


class LastSegmentParser(FilenameParser):
    name = "last-segment"

    def parse_stem(self, stem: str) -> ParsedFilename | None:
        if not stem.startswith(ARTIFACT_PREFIX):
            return None
        m = _CORE_VERSION_RE.search(stem)
        if not m:
            return None
        platform = normalize_platform(stem.split("-")[-1])
        if platform is Platform.UNKNOWN:
            return None
        return ParsedFilename(m.group(0), platform, scheme=self.name)


PARSERS: tuple[FilenameParser, ...] = (
    SimpleParser(),
    ArchSuffixParser(),
    FreeFormParser(),
    LastSegmentParser(),
)


def parse_filename(filename: str) -> ParsedFilename | None:
    """按顺序尝试各策略，全部失败返回 None"""
    for parser in PARSERS:
        parsed = parser.parse(filename)
        if parsed is not None:
            return parsed
    return None


def is_artifact_name(filename: str) -> bool:
    return filename.startswith(ARTIFACT_PREFIX) and _strip_extension(filename) is not None
