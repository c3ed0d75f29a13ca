from __future__ import annotations


class ChartupError(Exception):
    """
    chartup 所有异常的基类。
    """


class ConfigurationError(ChartupError):
    """
    配置或输入校验失败（例如扫描根目录不存在）。
    """


class CacheError(ChartupError):
    """
    缓存文件读取或写入失败。
    """


class RegistryError(ChartupError):
    """
    上游（镜像仓库 / Chart 目录）查询失败。
    """


class RateLimitError(RegistryError):
    """
    上游返回 HTTP 429；调用方需要停止本次运行中的后续查询。
    """

    def __init__(self, message: str = "rate limit exceeded") -> None:
        super().__init__(message)


class RegistryHTTPError(RegistryError):
    """
    上游返回非 2xx 状态码（429 除外）。
    """

    def __init__(self, host: str, status_code: int) -> None:
        super().__init__(f"{host} API returned status {status_code}")
        self.host = host
        self.status_code = status_code


class RegistryDecodeError(RegistryError):
    """
    上游响应无法解析为预期的 JSON。
    """


class UnsupportedRegistryError(RegistryError):
    """
    镜像所在的仓库不在支持列表中。
    """

    def __init__(self, host: str) -> None:
        super().__init__(f"unsupported registry: {host}")
        self.host = host


class ChartNotFoundError(RegistryError):
    """
    在 Chart 目录中找不到对应的 chart。
    """
