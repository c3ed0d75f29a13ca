from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from chartup.cache import ResultCache
from chartup.checker import check_all
from chartup.config import AppConfig
from chartup.exceptions import CacheError, ConfigurationError
from chartup.models import ScanResults
from chartup.registry_client import RegistrySettings, create_async_client
from chartup.report import Results
from chartup.scanner import scan

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CheckRun:
    """
    一次完整运行的产出：检查结果、是否触发限流、以及非致命警告。
    """

    results: Results
    rate_limited: bool = False
    warnings: list[str] = field(default_factory=list)


def _validate_root(root: Path) -> Path:
    if not root.exists():
        raise ConfigurationError(f"directory does not exist: {root}")
    if not root.is_dir():
        raise ConfigurationError(f"not a directory: {root}")
    return root


async def check_scan(scan_results: ScanResults, *, config: AppConfig, cache: ResultCache) -> tuple[Results, bool]:
    """
    针对扫描结果查询上游（共享一个 AsyncClient）。
    """
    async with create_async_client(RegistrySettings(timeout_s=config.timeout_s)) as client:
        results, rate_limit = await check_all(
            scan_results,
            cache=cache,
            client=client,
            repo_map=config.upstream_repos,
        )
    return results, rate_limit is not None


def run_check(root: str | Path, *, config: AppConfig) -> CheckRun:
    """
    同步入口：扫描目录并检查所有镜像与 chart（内部使用 asyncio）。

    缓存读写失败只产生警告，不中断检查。
    """
    root_path = _validate_root(Path(root))
    warnings: list[str] = []

    cache = ResultCache(
        config.cache_file,
        config.cache_ttl_s,
        config.refresh,
        disabled=not config.use_cache,
    )
    try:
        cache.load()
    except CacheError as exc:
        logger.warning("%s", exc)
        warnings.append(f"failed to load cache: {exc}")

    scan_results = scan(root_path, settings=config.scan_settings)
    logger.info("found %d images and %d charts", len(scan_results.images), len(scan_results.charts))

    results, rate_limited = asyncio.run(check_scan(scan_results, config=config, cache=cache))

    try:
        cache.save()
    except CacheError as exc:
        logger.warning("%s", exc)
        warnings.append(f"failed to save cache: {exc}")

    return CheckRun(results=results, rate_limited=rate_limited, warnings=warnings)
