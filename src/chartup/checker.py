from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

import httpx

from chartup.artifacthub import get_latest_chart_version
from chartup.cache import ResultCache
from chartup.exceptions import RateLimitError, RegistryError
from chartup.models import ChartReference, ImageReference, ScanResults
from chartup.registry_client import get_latest_tag
from chartup.report import RATE_LIMIT_EXCEEDED, RATE_LIMIT_HIT, ChartResult, ImageResult, Results
from chartup.upstreams import DEFAULT_UPSTREAM_REPOS

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _RunState:
    """
    单次运行内的可变状态：限流停止标志与统计。
    """

    halted: bool = False
    cache_hits: int = 0
    fetched: int = 0


def image_cache_key(img: ImageReference) -> str:
    return f"{img.registry}/{img.repository}"


def chart_cache_key(chart: ChartReference) -> str:
    return f"{chart.upstream}/{chart.name}"


async def _check_image(
    img: ImageReference,
    *,
    cache: ResultCache,
    client: httpx.AsyncClient,
    state: _RunState,
) -> ImageResult:
    """
    检查单个镜像：跳过 -> 缓存 -> 仓库查询；遇到限流时设置停止标志。
    """
    base = dict(registry=img.registry, repository=img.repository, current=img.tag, path=img.path, line=img.line)
    if img.skipped:
        return ImageResult(**base, skipped=True)

    key = image_cache_key(img)
    entry = cache.get_image(key)
    if entry is not None:
        state.cache_hits += 1
        return ImageResult(**base, latest=entry.latest)

    state.fetched += 1
    try:
        lookup = await get_latest_tag(img.registry, img.repository, img.tag, client=client)
    except RateLimitError:
        logger.warning("rate limit hit while checking %s", img.full_image)
        state.halted = True
        return ImageResult(**base, error=RATE_LIMIT_EXCEEDED)
    except RegistryError as exc:
        logger.debug("lookup failed for %s: %s", img.full_image, exc)
        return ImageResult(**base, error=str(exc))

    cache.set_image(key, lookup.latest, lookup.all_tags)
    return ImageResult(**base, latest=lookup.latest)


async def _check_chart(
    chart: ChartReference,
    *,
    cache: ResultCache,
    client: httpx.AsyncClient,
    repo_map: Mapping[str, str],
    state: _RunState,
) -> ChartResult:
    """
    检查单个 chart：无上游 -> 跳过；否则缓存 -> ArtifactHub 查询。
    """
    base = dict(name=chart.name, current=chart.version, upstream=chart.upstream, path=chart.path, line=chart.line)
    if not chart.upstream:
        return ChartResult(**base)

    key = chart_cache_key(chart)
    entry = cache.get_chart(key)
    if entry is not None:
        state.cache_hits += 1
        return ChartResult(**base, latest=entry.latest)

    state.fetched += 1
    try:
        lookup = await get_latest_chart_version(chart.name, chart.upstream, client=client, repo_map=repo_map)
    except RateLimitError:
        logger.warning("rate limit hit while checking chart %s", chart.name)
        state.halted = True
        return ChartResult(**base, error=RATE_LIMIT_EXCEEDED)
    except RegistryError as exc:
        logger.debug("lookup failed for chart %s: %s", chart.name, exc)
        return ChartResult(**base, error=str(exc))

    cache.set_chart(key, lookup.latest_version)
    return ChartResult(**base, latest=lookup.latest_version)


async def check_all(
    scan: ScanResults,
    *,
    cache: ResultCache,
    client: httpx.AsyncClient,
    repo_map: Mapping[str, str] = DEFAULT_UPSTREAM_REPOS,
) -> tuple[Results, RateLimitError | None]:
    """
    依次检查所有镜像与 chart（严格串行）。

    任一上游返回 429 后，本次运行不再访问缓存或网络，剩余条目全部记为
    “rate limit hit” 错误；此时返回值的第二项为 RateLimitError。
    """
    state = _RunState()
    results = Results()

    for img in scan.images:
        if state.halted:
            results.images.append(
                ImageResult(
                    registry=img.registry,
                    repository=img.repository,
                    current=img.tag,
                    error=RATE_LIMIT_HIT,
                    path=img.path,
                    line=img.line,
                )
            )
            continue
        results.images.append(await _check_image(img, cache=cache, client=client, state=state))

    for chart in scan.charts:
        if state.halted:
            results.charts.append(
                ChartResult(
                    name=chart.name,
                    current=chart.version,
                    upstream=chart.upstream,
                    error=RATE_LIMIT_HIT,
                    path=chart.path,
                    line=chart.line,
                )
            )
            continue
        results.charts.append(
            await _check_chart(chart, cache=cache, client=client, repo_map=repo_map, state=state)
        )

    results.cache_hits = state.cache_hits
    results.fetched = state.fetched
    return results, (RateLimitError() if state.halted else None)
