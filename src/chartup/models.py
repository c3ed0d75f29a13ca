from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

DEFAULT_REGISTRY = "docker.io"


class CheckStatus(str, Enum):
    """
    单个镜像 / chart 的检查状态。
    """

    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    SKIPPED = "skipped"
    UNKNOWN = "unknown"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ImageReference:
    """
    扫描得到的一条镜像引用（保留原始字符串与所在位置）。
    """

    registry: str
    repository: str
    tag: str
    full_image: str
    path: str
    line: int
    skipped: bool = False


@dataclass(frozen=True, slots=True)
class ChartReference:
    """
    扫描得到的一条 Helm chart 声明；upstream 为空表示本地 chart，不做查询。
    """

    name: str
    version: str
    path: str
    app_version: str = ""
    line: int = 0
    upstream: str = ""

    @property
    def key(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass(slots=True)
class ScanResults:
    """
    一次目录扫描的全部结果。
    """

    images: list[ImageReference] = field(default_factory=list)
    charts: list[ChartReference] = field(default_factory=list)
