from __future__ import annotations

import re
from collections.abc import Iterable

from packaging.version import InvalidVersion, Version

from chartup.models import CheckStatus

# 前缀匹配：可选 v，随后 1~3 段数字；其后的内容（-rc1 等）不参与分类
_VERSION_RE = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def version_key(tag: str) -> tuple[int, int, int] | None:
    """
    将标签解析为 (major, minor, patch) 三元组；缺失的段按 0 处理，不匹配时返回 None。
    """
    m = _VERSION_RE.match(tag)
    if m is None:
        return None
    major, minor, patch = (int(g) if g else 0 for g in m.groups())
    return major, minor, patch


def compare_versions(a: str, b: str) -> int:
    """
    按数字三元组比较两个标签；任一方不是版本号时退化为字符串比较。
    """
    key_a = version_key(a)
    key_b = version_key(b)
    if key_a is None or key_b is None:
        return (a > b) - (a < b)
    return (key_a > key_b) - (key_a < key_b)


def filter_release_tags(tags: Iterable[str]) -> list[str]:
    """
    只保留形如版本号且不带连字符后缀（-rc1、-alpha 等）的标签。
    """
    return [t for t in tags if version_key(t) is not None and "-" not in t]


def _highest(tags: list[str]) -> str:
    """
    返回数值最大的标签；并列时保留输入中靠前的那个。
    """
    return max(tags, key=lambda t: version_key(t) or (0, 0, 0))


def select_latest_tag(tags: Iterable[str], current: str) -> str:
    """
    从上游标签列表中挑选相对当前标签的“最新”标签。

    当前标签不是版本号（latest、stable 等）时，取最大的正式版本标签，
    没有则回退为列表第一个元素；否则只在与当前标签 v 前缀风格一致的
    标签中比较，没有可比较的标签时原样返回当前标签。
    """
    candidates = list(tags)
    if not candidates:
        return ""

    if version_key(current) is None:
        releases = filter_release_tags(candidates)
        if releases:
            return _highest(releases)
        return candidates[0]

    has_v_prefix = current.startswith("v")
    matching = [
        t for t in candidates if version_key(t) is not None and t.startswith("v") == has_v_prefix
    ]
    if not matching:
        return current
    # 这里不过滤预发布后缀，与非版本号分支的行为并不对称
    return _highest(matching)


def determine_status(current: str, latest: str) -> CheckStatus:
    """
    根据当前版本与最新版本得出检查状态。
    """
    if current == latest:
        return CheckStatus.UP_TO_DATE
    if not latest:
        return CheckStatus.UNKNOWN
    return CheckStatus.UPDATE_AVAILABLE


def _parse_version(v: str) -> Version | None:
    """
    解析版本字符串（允许前导 v），失败返回 None。
    """
    try:
        return Version(v.removeprefix("v"))
    except InvalidVersion:
        return None


def classify_update(current: str, latest: str) -> str:
    """
    对升级幅度分类：major / minor / patch / up-to-date / unknown。
    """
    cur = _parse_version(current)
    lat = _parse_version(latest)
    if cur is None or lat is None:
        return "unknown"
    if lat <= cur:
        return "up-to-date"
    if lat.major > cur.major:
        return "major"
    if lat.minor > cur.minor:
        return "minor"
    return "patch"
