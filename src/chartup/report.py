from __future__ import annotations

from dataclasses import dataclass, field

from chartup.models import DEFAULT_REGISTRY, CheckStatus
from chartup.versions import determine_status

RATE_LIMIT_EXCEEDED = "rate limit exceeded"
RATE_LIMIT_HIT = "rate limit hit"


def result_status(*, current: str, latest: str, skipped: bool, error: str | None) -> CheckStatus:
    """
    由 (当前版本, 最新版本, 是否跳过, 是否出错) 推导检查状态。
    """
    if skipped:
        return CheckStatus.SKIPPED
    if error:
        return CheckStatus.ERROR
    return determine_status(current, latest)


@dataclass(frozen=True, slots=True)
class ImageResult:
    """
    单个镜像的检查结果。
    """

    registry: str
    repository: str
    current: str
    latest: str = ""
    skipped: bool = False
    error: str | None = None
    path: str = ""
    line: int = 0

    @property
    def status(self) -> CheckStatus:
        return result_status(current=self.current, latest=self.latest, skipped=self.skipped, error=self.error)

    @property
    def display_name(self) -> str:
        if self.registry and self.registry != DEFAULT_REGISTRY:
            return f"{self.registry}/{self.repository}"
        return self.repository


@dataclass(frozen=True, slots=True)
class ChartResult:
    """
    单个 chart 的检查结果；upstream 为空的本地 chart 视为跳过。
    """

    name: str
    current: str
    upstream: str = ""
    latest: str = ""
    error: str | None = None
    path: str = ""
    line: int = 0

    @property
    def skipped(self) -> bool:
        return not self.upstream and not self.error

    @property
    def status(self) -> CheckStatus:
        return result_status(current=self.current, latest=self.latest, skipped=self.skipped, error=self.error)


@dataclass(slots=True)
class Results:
    """
    一次检查的完整结果（交给输出层只读使用）。
    """

    images: list[ImageResult] = field(default_factory=list)
    charts: list[ChartResult] = field(default_factory=list)
    cache_hits: int = 0
    fetched: int = 0

    def count(self, status: CheckStatus) -> int:
        """
        统计某一状态的条目数（镜像 + chart）。
        """
        return sum(1 for r in [*self.images, *self.charts] if r.status == status)
