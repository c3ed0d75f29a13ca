from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from chartup import __version__
from chartup.exceptions import (
    RateLimitError,
    RegistryDecodeError,
    RegistryError,
    RegistryHTTPError,
    UnsupportedRegistryError,
)
from chartup.models import DEFAULT_REGISTRY
from chartup.versions import select_latest_tag

logger = logging.getLogger(__name__)

DOCKER_HUB_API = "https://hub.docker.com/v2/repositories"
QUAY_API = "https://quay.io/api/v1/repository"


@dataclass(frozen=True, slots=True)
class RegistrySettings:
    """
    上游查询配置。
    """

    timeout_s: float = 10.0


class RegistryKind(str, Enum):
    """
    镜像仓库的协议族。
    """

    DOCKER_HUB = "docker_hub"
    QUAY = "quay"
    OCI = "oci"


@dataclass(frozen=True, slots=True)
class RegistryTarget:
    """
    classify_registry 的结果：协议族 + 实际请求的主机名。
    """

    kind: RegistryKind
    host: str


@dataclass(frozen=True, slots=True)
class TagLookup:
    """
    一次标签查询的结果。
    """

    repository: str
    latest: str
    all_tags: list[str] = field(default_factory=list)


# (主机子串, 协议族, 规范主机名)；按子串长度从长到短排列，先命中者优先
_REGISTRY_FAMILIES: tuple[tuple[str, RegistryKind, str], ...] = (
    ("registry-1.docker.io", RegistryKind.DOCKER_HUB, DEFAULT_REGISTRY),
    ("index.docker.io", RegistryKind.DOCKER_HUB, DEFAULT_REGISTRY),
    ("registry.k8s.io", RegistryKind.OCI, "registry.k8s.io"),
    ("docker.io", RegistryKind.DOCKER_HUB, DEFAULT_REGISTRY),
    ("quay.io", RegistryKind.QUAY, "quay.io"),
    ("ghcr.io", RegistryKind.OCI, "ghcr.io"),
    ("gcr.io", RegistryKind.OCI, "gcr.io"),
)

# 需要先获取匿名 token 的 OCI 仓库
_OCI_TOKEN_URLS: dict[str, str] = {
    "ghcr.io": "https://ghcr.io/token?scope=repository:{repository}:pull",
    "gcr.io": "https://gcr.io/v2/token?scope=repository:{repository}:pull",
}


def classify_registry(host: str) -> RegistryTarget:
    """
    将镜像的仓库主机名归类到已支持的协议族；不支持时抛出 UnsupportedRegistryError。
    """
    normalized = host.strip().lower()
    if not normalized:
        return RegistryTarget(kind=RegistryKind.DOCKER_HUB, host=DEFAULT_REGISTRY)
    for pattern, kind, canonical in _REGISTRY_FAMILIES:
        if pattern in normalized:
            return RegistryTarget(kind=kind, host=canonical)
    raise UnsupportedRegistryError(host)


async def request_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    host: str,
    headers: dict[str, str] | None = None,
    params: dict[str, str] | None = None,
) -> Any:
    """
    发起单次 GET 并解析 JSON；429 -> RateLimitError，其余非 2xx -> RegistryHTTPError。

    URL 非法（如含控制字符）与网络错误一样转换为 RegistryError。
    """
    try:
        resp = await client.get(url, headers=headers, params=params)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise RegistryError(f"{host}: {exc}") from exc

    if resp.status_code == 429:
        raise RateLimitError()
    if not resp.is_success:
        raise RegistryHTTPError(host, resp.status_code)
    try:
        return resp.json()
    except ValueError as exc:
        raise RegistryDecodeError(f"invalid json from {host}: {exc}") from exc


def _names_from(items: Any) -> list[str]:
    """
    从 [{"name": ...}, ...] 结构中提取标签名。
    """
    if not isinstance(items, list):
        return []
    return [str(i["name"]) for i in items if isinstance(i, dict) and i.get("name")]


async def _docker_hub_tags(client: httpx.AsyncClient, repository: str) -> tuple[str, list[str]]:
    """
    查询 Docker Hub 的标签列表；官方镜像（无命名空间）改写为 library/<name>。
    """
    if "/" not in repository:
        repository = f"library/{repository}"
    url = f"{DOCKER_HUB_API}/{repository}/tags?page_size=100"
    data = await request_json(client, url, host="Docker Hub")
    if not isinstance(data, dict):
        raise RegistryDecodeError("unexpected Docker Hub response")
    return repository, _names_from(data.get("results"))


async def _quay_tags(client: httpx.AsyncClient, repository: str) -> list[str]:
    """
    查询 Quay.io 的标签列表。
    """
    url = f"{QUAY_API}/{repository}/tag/?limit=100"
    data = await request_json(client, url, host="Quay.io")
    if not isinstance(data, dict):
        raise RegistryDecodeError("unexpected Quay.io response")
    return _names_from(data.get("tags"))


async def _oci_token(client: httpx.AsyncClient, host: str, repository: str) -> str | None:
    """
    获取匿名拉取 token；除 429 外的任何失败都返回 None（继续无 token 请求）。
    """
    template = _OCI_TOKEN_URLS.get(host)
    if template is None:
        return None
    try:
        data = await request_json(client, template.format(repository=repository), host=host)
    except RateLimitError:
        raise
    except RegistryError as exc:
        logger.debug("token request to %s failed, continuing anonymously: %s", host, exc)
        return None
    if isinstance(data, dict) and data.get("token"):
        return str(data["token"])
    return None


async def _oci_tags(client: httpx.AsyncClient, host: str, repository: str) -> list[str]:
    """
    通过 OCI Distribution API（/v2/<repo>/tags/list）查询标签列表。
    """
    token = await _oci_token(client, host, repository)
    headers = {"Authorization": f"Bearer {token}"} if token else None
    try:
        data = await request_json(
            client, f"https://{host}/v2/{repository}/tags/list", host=host, headers=headers
        )
    except RegistryHTTPError as exc:
        if exc.status_code == 401:
            raise RegistryError(f"{host} requires authentication") from exc
        raise
    if not isinstance(data, dict):
        raise RegistryDecodeError(f"unexpected {host} response")
    tags = data.get("tags") or []
    if not isinstance(tags, list):
        raise RegistryDecodeError(f"unexpected {host} response")
    return [str(t) for t in tags]


async def get_latest_tag(
    registry: str,
    repository: str,
    current_tag: str,
    *,
    client: httpx.AsyncClient,
) -> TagLookup:
    """
    查询镜像所在仓库的全部标签，并挑选相对 current_tag 的最新标签。
    """
    target = classify_registry(registry)
    if target.kind is RegistryKind.DOCKER_HUB:
        name, tags = await _docker_hub_tags(client, repository)
    elif target.kind is RegistryKind.QUAY:
        name, tags = repository, await _quay_tags(client, repository)
    else:
        name, tags = repository, await _oci_tags(client, target.host, repository)

    return TagLookup(repository=name, latest=select_latest_tag(tags, current_tag), all_tags=tags)


def create_async_client(settings: RegistrySettings) -> httpx.AsyncClient:
    """
    创建用于访问镜像仓库与 ArtifactHub 的 AsyncClient。
    """
    headers = {"Accept": "application/json", "User-Agent": f"chartup/{__version__}"}
    timeout = httpx.Timeout(settings.timeout_s)
    return httpx.AsyncClient(headers=headers, timeout=timeout, follow_redirects=True)
