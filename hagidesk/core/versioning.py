"""语义化版本比较（含预发布标签）

规则:
  - 主/次/修订号逐段数值比较，缺省段视为 0
  - 正式版高于同号的预发布版（1.2.0 > 1.2.0-beta.1）
  - 预发布标签按 "." 分段比较，两段都为数字时按数值比较
"""

from __future__ import annotations

import functools
import re

from hagidesk.core.models import VersionConstraint

_VERSION_TOKEN_RE = re.compile(r"v?(\d+(?:\.\d+){0,3}(?:-[0-9A-Za-z.\-]+)?)")


def _split(version: str) -> tuple[list[int], str]:
    v = version.strip().lstrip("vV")
    core, _, pre = v.partition("-")
    nums: list[int] = []
    for part in core.split("."):
        digits = re.match(r"\d+", part)
        nums.append(int(digits.group()) if digits else 0)
    while len(nums) < 3:
        nums.append(0)
    return nums, pre


def _compare_prerelease(a: str, b: str) -> int:
    pa, pb = a.split("."), b.split(".")
    for x, y in zip(pa, pb):
        if x == y:
            continue
        if x.isdigit() and y.isdigit():
            return -1 if int(x) < int(y) else 1
        # 数字段低于字母段
        if x.isdigit():
            return -1
        if y.isdigit():
            return 1
        return -1 if x < y else 1
    return (len(pa) > len(pb)) - (len(pa) < len(pb))


def compare_versions(a: str, b: str) -> int:
    """返回 -1 / 0 / 1"""
    na, pre_a = _split(a)
    nb, pre_b = _split(b)
    if na != nb:
        return -1 if na < nb else 1
    if pre_a == pre_b:
        return 0
    if not pre_a:
        return 1
    if not pre_b:
        return -1
    return _compare_prerelease(pre_a, pre_b)


def sort_newest_first(versions: list, attr: str = "version") -> list:
    """按版本号降序排序对象列表"""
    key = functools.cmp_to_key(compare_versions)
    return sorted(versions, key=lambda v: key(getattr(v, attr)), reverse=True)


def prerelease_label(version: str) -> str:
    """预发布标签首段（1.2.0-beta.1 → beta），正式版返回空串"""
    _, pre = _split(version)
    return pre.split(".")[0].lower() if pre else ""


def extract_version(output: str) -> str | None:
    """从命令输出中提取首个版本号（v18.17.0 → 18.17.0）"""
    m = _VERSION_TOKEN_RE.search(output or "")
    return m.group(1) if m else None


def check_constraint(version: str | None, constraint: VersionConstraint) -> bool:
    """版本是否满足约束；未检测到版本时不判定为不匹配"""
    if version is None or constraint.is_empty():
        return True
    if constraint.exact:
        return compare_versions(version, constraint.exact) == 0
    if constraint.min and compare_versions(version, constraint.min) < 0:
        return False
    if constraint.max and compare_versions(version, constraint.max) > 0:
        return False
    return True
