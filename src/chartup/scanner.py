from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import yaml

from chartup.models import DEFAULT_REGISTRY, ChartReference, ImageReference, ScanResults
from chartup.upstreams import (
    DEFAULT_DEPENDENCY_RULES,
    DEFAULT_UPSTREAM_RULES,
    DependencyRule,
    UpstreamRule,
    detect_dependency_upstream,
    detect_upstream,
)
from chartup.yaml_nodes import YamlMapping, YamlScalar, YamlSequence, compose_document, walk_entries

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_ORGS: tuple[str, ...] = ("thinkportgmbh",)

_ARG_RE = re.compile(r"^\s*ARG\s+(\w+)(?:=(.*))?$", re.IGNORECASE)
_FROM_RE = re.compile(r"^\s*FROM\s+(?:--\S+\s+)*(\S+)(?:\s+AS\s+([\w.-]+))?", re.IGNORECASE)
_VAR_RE = re.compile(r"\$\{?(\w+)(?::-([^}]*))?\}?")


@dataclass(frozen=True, slots=True)
class ScanSettings:
    """
    扫描阶段使用的可配置数据（排除的组织、上游识别规则）。
    """

    excluded_orgs: tuple[str, ...] = DEFAULT_EXCLUDED_ORGS
    upstream_rules: tuple[UpstreamRule, ...] = DEFAULT_UPSTREAM_RULES
    dependency_rules: tuple[DependencyRule, ...] = DEFAULT_DEPENDENCY_RULES


def parse_image_string(
    text: str,
    path: str,
    line: int,
    *,
    excluded_orgs: tuple[str, ...] = DEFAULT_EXCLUDED_ORGS,
) -> ImageReference | None:
    """
    将镜像字符串解析为 ImageReference；明显不是镜像的值返回 None。
    """
    image = text.strip()
    if not image or image == "latest":
        return None
    if image.startswith(("/", ".")):
        return None
    if "/" not in image and ":" not in image:
        return None

    registry = DEFAULT_REGISTRY
    remainder = image
    head, sep, rest = image.partition("/")
    if sep and ("." in head or ":" in head):
        registry = head
        remainder = rest

    repository, sep, tag = remainder.rpartition(":")
    if not sep:
        repository, tag = remainder, "latest"

    skipped = any(org and org in repository for org in excluded_orgs)
    return ImageReference(
        registry=registry,
        repository=repository,
        tag=tag,
        full_image=image,
        path=path,
        line=line,
        skipped=skipped,
    )


def is_dockerfile(filename: str) -> bool:
    """
    判断文件名是否为 Dockerfile（Dockerfile、*.dockerfile、Dockerfile.*，不区分大小写）。
    """
    lower = filename.lower()
    return lower == "dockerfile" or lower.endswith(".dockerfile") or lower.startswith("dockerfile.")


def resolve_dockerfile_vars(ref: str, args: dict[str, str]) -> str:
    """
    替换 $VAR、${VAR}、${VAR:-default}；无法解析的占位符原样保留。
    """

    def replace(m: re.Match[str]) -> str:
        value = args.get(m.group(1))
        if value:
            return value
        if m.group(2):
            return m.group(2)
        return m.group(0)

    return _VAR_RE.sub(replace, ref)


def parse_dockerfile(path: Path, *, settings: ScanSettings = ScanSettings()) -> list[ImageReference]:
    """
    从 Dockerfile 的 FROM 指令中提取镜像，支持 ARG 默认值替换并跳过构建阶段别名。
    """
    text = path.read_text(encoding="utf-8", errors="replace")
    images: list[ImageReference] = []
    args: dict[str, str] = {}
    aliases: set[str] = set()

    for line_no, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        arg = _ARG_RE.match(line)
        if arg:
            value = (arg.group(2) or "").strip().strip("\"'")
            if value:
                args[arg.group(1)] = value
            continue

        stage = _FROM_RE.match(line)
        if stage is None:
            continue

        resolved = resolve_dockerfile_vars(stage.group(1), args)
        alias = stage.group(2)
        if "$" not in resolved and resolved.lower() != "scratch" and resolved.lower() not in aliases:
            img = parse_image_string(resolved, str(path), line_no, excluded_orgs=settings.excluded_orgs)
            if img is not None:
                images.append(img)
        if alias:
            aliases.add(alias.lower())

    return images


def parse_chart_yaml(path: Path, *, settings: ScanSettings = ScanSettings()) -> list[ChartReference]:
    """
    解析 Chart.yaml：返回 chart 自身以及其每个依赖。
    """
    doc = compose_document(path.read_text(encoding="utf-8"))
    if not isinstance(doc, YamlMapping):
        return []

    charts: list[ChartReference] = []
    name_node = doc.get("name")
    name = doc.scalar("name")
    charts.append(
        ChartReference(
            name=name,
            version=doc.scalar("version"),
            app_version=doc.scalar("appVersion"),
            path=str(path),
            line=name_node.line if isinstance(name_node, YamlScalar) else 0,
            upstream=detect_upstream(name, path, settings.upstream_rules),
        )
    )

    deps = doc.get("dependencies")
    if isinstance(deps, YamlSequence):
        for dep in deps.items:
            if not isinstance(dep, YamlMapping) or not dep.scalar("name"):
                continue
            dep_name_node = dep.get("name")
            charts.append(
                ChartReference(
                    name=dep.scalar("name"),
                    version=dep.scalar("version"),
                    path=str(path),
                    line=dep_name_node.line if isinstance(dep_name_node, YamlScalar) else 0,
                    upstream=detect_dependency_upstream(dep.scalar("repository"), settings.dependency_rules),
                )
            )
    return charts


def parse_values_yaml(path: Path, *, settings: ScanSettings = ScanSettings()) -> list[ImageReference]:
    """
    遍历 values.yaml 的所有映射，提取 repository(+tag) 与 image 形式的镜像并保留行号。
    """
    doc = compose_document(path.read_text(encoding="utf-8"))
    images: list[ImageReference] = []

    for mapping, key, value in walk_entries(doc):
        if not isinstance(value, YamlScalar):
            continue

        candidate: str | None = None
        if key == "repository" and value.value.strip():
            tag = mapping.scalar("tag") or "latest"
            candidate = f"{value.value}:{tag}"
        elif key == "image":
            candidate = value.value

        if candidate is None:
            continue
        img = parse_image_string(candidate, str(path), value.line, excluded_orgs=settings.excluded_orgs)
        if img is not None:
            images.append(img)

    return images


def _iter_files(root: Path) -> Iterator[Path]:
    """
    按字典序递归遍历目录；无法访问的目录记录日志后跳过。
    """
    try:
        entries = sorted(os.scandir(root), key=lambda e: e.name)
    except OSError as exc:
        logger.debug("skipping unreadable directory %s: %s", root, exc)
        return

    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                yield from _iter_files(Path(entry.path))
            elif entry.is_file():
                yield Path(entry.path)
        except OSError as exc:
            logger.debug("skipping %s: %s", entry.path, exc)


def scan(root: str | Path, *, settings: ScanSettings = ScanSettings()) -> ScanResults:
    """
    递归扫描目录中的 Chart.yaml、values.yaml 与 Dockerfile，返回去重后的引用列表。
    """
    results = ScanResults()
    seen_images: set[str] = set()
    seen_charts: set[str] = set()

    for path in _iter_files(Path(root)):
        filename = path.name
        try:
            if filename == "Chart.yaml":
                for chart in parse_chart_yaml(path, settings=settings):
                    if chart.key not in seen_charts:
                        seen_charts.add(chart.key)
                        results.charts.append(chart)
                continue

            if filename == "values.yaml":
                images = parse_values_yaml(path, settings=settings)
            elif is_dockerfile(filename):
                images = parse_dockerfile(path, settings=settings)
            else:
                continue
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
            logger.debug("failed to parse %s: %s", path, exc)
            continue

        for img in images:
            if img.full_image not in seen_images:
                seen_images.add(img.full_image)
                results.images.append(img)

    logger.debug("scan of %s found %d images, %d charts", root, len(results.images), len(results.charts))
    return results
