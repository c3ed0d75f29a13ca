from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any


@dataclass(frozen=True, slots=True)
class UpstreamRule:
    """
    主 chart 的上游识别规则：name 与 path_contains 同时给出时需都满足。
    """

    upstream: str
    name: str | None = None
    path_contains: str | None = None

    def matches(self, chart_name: str, path: str) -> bool:
        """
        判断规则是否命中（名称精确匹配、路径子串匹配，均不区分大小写）。
        """
        if self.name is None and self.path_contains is None:
            return False
        if self.name is not None and chart_name.lower() != self.name.lower():
            return False
        if self.path_contains is not None and self.path_contains.lower() not in path.lower():
            return False
        return True


@dataclass(frozen=True, slots=True)
class DependencyRule:
    """
    依赖 chart 的上游识别规则：按 repository URL 子串匹配。
    """

    upstream: str
    repository_contains: str


DEFAULT_UPSTREAM_RULES: tuple[UpstreamRule, ...] = (
    UpstreamRule(upstream="trinodb", name="trino"),
    UpstreamRule(upstream="bitnami", name="postgresql", path_contains="bitnami"),
    UpstreamRule(upstream="bitnami", name="common", path_contains="bitnami"),
    UpstreamRule(upstream="bitnami", path_contains="/charts/postgresql"),
    UpstreamRule(upstream="bitnami", path_contains="/charts/common"),
)

DEFAULT_DEPENDENCY_RULES: tuple[DependencyRule, ...] = (
    DependencyRule(upstream="bitnami", repository_contains="bitnami"),
)

# 上游标识 -> ArtifactHub 仓库名；未列出的原样使用
DEFAULT_UPSTREAM_REPOS: dict[str, str] = {
    "bitnami": "bitnami",
    "trinodb": "trino",
}


def detect_upstream(name: str, path: str | PurePath, rules: Iterable[UpstreamRule] = DEFAULT_UPSTREAM_RULES) -> str:
    """
    按顺序匹配规则，返回第一个命中的上游标识；无命中返回空字符串（本地 chart）。
    """
    posix_path = PurePath(path).as_posix()
    for rule in rules:
        if rule.matches(name, posix_path):
            return rule.upstream
    return ""


def detect_dependency_upstream(
    repository: str, rules: Iterable[DependencyRule] = DEFAULT_DEPENDENCY_RULES
) -> str:
    """
    根据依赖声明的 repository URL 识别上游。
    """
    for rule in rules:
        if rule.repository_contains and rule.repository_contains in repository:
            return rule.upstream
    return ""


def map_upstream_to_repo(upstream: str, repos: Mapping[str, str] = DEFAULT_UPSTREAM_REPOS) -> str:
    """
    将上游标识映射为 ArtifactHub 上的仓库名。
    """
    return repos.get(upstream, upstream)


def upstream_rules_from_config(raw: Any) -> tuple[UpstreamRule, ...] | None:
    """
    从配置文件的列表结构构造 UpstreamRule；格式不合法时返回 None。
    """
    if not isinstance(raw, list):
        return None
    rules: list[UpstreamRule] = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("upstream"):
            continue
        name = item.get("name")
        path_contains = item.get("path_contains")
        rules.append(
            UpstreamRule(
                upstream=str(item["upstream"]),
                name=str(name) if name else None,
                path_contains=str(path_contains) if path_contains else None,
            )
        )
    return tuple(rules)


def dependency_rules_from_config(raw: Any) -> tuple[DependencyRule, ...] | None:
    """
    从配置文件的列表结构构造 DependencyRule；格式不合法时返回 None。
    """
    if not isinstance(raw, list):
        return None
    rules: list[DependencyRule] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        upstream = item.get("upstream")
        contains = item.get("repository_contains")
        if upstream and contains:
            rules.append(DependencyRule(upstream=str(upstream), repository_contains=str(contains)))
    return tuple(rules)
