from __future__ import annotations

import httpx
import pytest

from chartup.artifacthub import get_latest_chart_version
from chartup.exceptions import ChartNotFoundError, RateLimitError, RegistryError


@pytest.mark.asyncio
async def test_direct_lookup_uses_mapped_repository() -> None:
    """
    直接查询使用映射后的仓库名（trinodb -> trino）。
    """
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"name": "trino", "version": "0.30.0", "app_version": "465"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        res = await get_latest_chart_version("trino", "trinodb", client=client)
    assert paths == ["/api/v1/packages/helm/trino/trino"]
    assert res.latest_version == "0.30.0"
    assert res.app_version == "465"


@pytest.mark.asyncio
async def test_fallback_search_prefers_repository_match() -> None:
    """
    直接查询非 200 时回退到搜索，并优先选择仓库名匹配的包。
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/packages/search"):
            assert request.url.params["ts_query_web"] == "postgresql"
            return httpx.Response(
                200,
                json={
                    "packages": [
                        {"name": "postgresql-ha", "version": "9.9.9", "repository": {"name": "bitnami"}},
                        {"name": "postgresql", "version": "1.0.0", "repository": {"name": "other"}},
                        {"name": "postgresql", "version": "15.5.0", "repository": {"name": "bitnami"}},
                    ]
                },
            )
        return httpx.Response(500)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        res = await get_latest_chart_version("postgresql", "bitnami", client=client)
    assert res.latest_version == "15.5.0"


@pytest.mark.asyncio
async def test_fallback_search_name_only_match() -> None:
    """
    没有仓库匹配时取第一个名称匹配的结果。
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/packages/search"):
            return httpx.Response(
                200,
                json={"packages": [{"name": "common", "version": "2.1.0", "repository": {"name": "mirror"}}]},
            )
        return httpx.Response(404)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        res = await get_latest_chart_version("common", "bitnami", client=client)
    assert res.latest_version == "2.1.0"


@pytest.mark.asyncio
async def test_chart_not_found() -> None:
    """
    搜索结果中没有同名包时抛出 ChartNotFoundError。
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/packages/search"):
            return httpx.Response(200, json={"packages": []})
        return httpx.Response(404)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ChartNotFoundError, match="chart nothing not found on ArtifactHub"):
            await get_latest_chart_version("nothing", "bitnami", client=client)


@pytest.mark.asyncio
async def test_rate_limit_short_circuits_without_search() -> None:
    """
    直接查询返回 429 时立即抛出 RateLimitError，不再调用搜索。
    """
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(429)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(RateLimitError):
            await get_latest_chart_version("redis", "bitnami", client=client)
    assert calls == 1


@pytest.mark.asyncio
async def test_empty_upstream_is_an_error() -> None:
    """
    未配置上游的 chart 不发起请求。
    """

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(RegistryError):
            await get_latest_chart_version("app", "", client=client)


@pytest.mark.asyncio
async def test_invalid_chart_name_maps_to_registry_error() -> None:
    """
    chart 名含控制字符时包装为 RegistryError，不回退到搜索。
    """

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(RegistryError, match="ArtifactHub"):
            await get_latest_chart_version("bad\x01name", "bitnami", client=client)
