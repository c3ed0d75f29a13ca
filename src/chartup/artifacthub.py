from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from chartup.exceptions import ChartNotFoundError, RegistryDecodeError, RegistryError, RegistryHTTPError
from chartup.registry_client import request_json
from chartup.upstreams import DEFAULT_UPSTREAM_REPOS, map_upstream_to_repo

ARTIFACTHUB_API = "https://artifacthub.io/api/v1"
_HOST = "ArtifactHub"


@dataclass(frozen=True, slots=True)
class ChartLookup:
    """
    ArtifactHub 上某个 chart 的最新版本信息。
    """

    name: str
    latest_version: str
    app_version: str = ""


def _match_search_results(data: Any, chart_name: str, repo_name: str) -> ChartLookup | None:
    """
    在搜索结果中优先寻找“名称 + 仓库”都匹配的包，其次仅名称匹配。
    """
    packages = data.get("packages") if isinstance(data, dict) else None
    if not isinstance(packages, list):
        return None
    packages = [p for p in packages if isinstance(p, dict) and p.get("name") == chart_name]

    for pkg in packages:
        repo = pkg.get("repository")
        if isinstance(repo, dict) and repo.get("name") == repo_name:
            return ChartLookup(name=chart_name, latest_version=str(pkg.get("version") or ""))
    if packages:
        return ChartLookup(name=chart_name, latest_version=str(packages[0].get("version") or ""))
    return None


async def _search_chart(client: httpx.AsyncClient, chart_name: str, repo_name: str) -> ChartLookup:
    """
    使用全文搜索接口查找 chart（直接查询失败时的回退路径）。
    """
    url = f"{ARTIFACTHUB_API}/packages/search"
    params = {"ts_query_web": chart_name, "kind": "0", "limit": "10"}
    data = await request_json(client, url, host=_HOST, params=params)
    found = _match_search_results(data, chart_name, repo_name)
    if found is None:
        raise ChartNotFoundError(f"chart {chart_name} not found on ArtifactHub")
    return found


async def get_latest_chart_version(
    chart_name: str,
    upstream: str,
    *,
    client: httpx.AsyncClient,
    repo_map: Mapping[str, str] = DEFAULT_UPSTREAM_REPOS,
) -> ChartLookup:
    """
    从 ArtifactHub 查询 chart 最新版本：先按 (仓库, 名称) 直接查询，失败时回退到搜索。
    """
    if not upstream:
        raise RegistryError(f"no upstream configured for chart {chart_name}")

    repo_name = map_upstream_to_repo(upstream, repo_map)
    url = f"{ARTIFACTHUB_API}/packages/helm/{repo_name}/{chart_name}"
    try:
        data = await request_json(client, url, host=_HOST)
    except RegistryHTTPError:
        return await _search_chart(client, chart_name, repo_name)

    if not isinstance(data, dict):
        raise RegistryDecodeError("unexpected ArtifactHub response")
    return ChartLookup(
        name=chart_name,
        latest_version=str(data.get("version") or ""),
        app_version=str(data.get("app_version") or ""),
    )
