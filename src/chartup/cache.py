from __future__ import annotations

import json
import logging
import os
import re
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from chartup.exceptions import CacheError

logger = logging.getLogger(__name__)

IMAGES = "images"
CHARTS = "charts"
_NAMESPACES = (IMAGES, CHARTS)

_TIMESTAMP_RE = re.compile(r"^(?P<base>.*T\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<tz>.*)$")


def default_cache_path() -> Path:
    """
    返回默认缓存文件路径（用户目录下全局共用）。
    """
    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA")
        if base:
            return Path(base) / "chartup" / "cache.json"
        return Path.home() / "AppData" / "Local" / "chartup" / "cache.json"

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / "chartup" / "cache.json"

    xdg_cache_home = os.environ.get("XDG_CACHE_HOME")
    if xdg_cache_home:
        return Path(xdg_cache_home) / "chartup" / "cache.json"

    return Path.home() / ".cache" / "chartup" / "cache.json"


def format_timestamp(ts: datetime) -> str:
    """
    将时间格式化为 RFC 3339 字符串。
    """
    return ts.isoformat()


def parse_timestamp(raw: str) -> datetime:
    """
    解析 RFC 3339 时间戳；兼容 Z 后缀与纳秒精度的小数部分。
    """
    text = raw.strip()
    m = _TIMESTAMP_RE.match(text)
    if m is None:
        raise ValueError(f"invalid timestamp: {raw!r}")
    tz = m.group("tz")
    if tz in {"Z", "z"}:
        tz = "+00:00"
    frac = m.group("frac")
    normalized = m.group("base") + (f".{frac[:6].ljust(6, '0')}" if frac else "") + tz
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """
    单个镜像 / chart 在缓存中的记录。
    """

    latest: str
    checked_at: datetime
    all_tags: list[str] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"latest": self.latest, "checked_at": format_timestamp(self.checked_at)}
        if self.all_tags:
            data["all_tags"] = list(self.all_tags)
        return data

    @classmethod
    def from_json(cls, data: Any) -> CacheEntry:
        if not isinstance(data, dict):
            raise ValueError("cache entry must be an object")
        all_tags = data.get("all_tags") or []
        if not isinstance(all_tags, list):
            raise ValueError("all_tags must be a list")
        return cls(
            latest=str(data.get("latest") or ""),
            checked_at=parse_timestamp(str(data.get("checked_at") or "")),
            all_tags=[str(t) for t in all_tags],
        )


class ResultCache:
    """
    JSON 文件缓存：images / charts 两个命名空间，按 TTL 惰性过期。

    skip_reads=True 时读取总是未命中但仍会写盘（强制刷新）；
    disabled=True 时读取总是未命中且 save 不产生任何文件。
    """

    def __init__(self, path: Path, ttl_s: int, skip_reads: bool = False, *, disabled: bool = False) -> None:
        self._path = Path(path)
        self._ttl_s = ttl_s
        self._skip_reads = skip_reads
        self._disabled = disabled
        self._data: dict[str, dict[str, CacheEntry]] = {ns: {} for ns in _NAMESPACES}

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """
        从磁盘读取缓存；文件不存在视为空缓存，格式错误抛出 CacheError（内存缓存保持为空）。
        """
        if self._disabled:
            return
        try:
            data = self._path.read_bytes()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise CacheError(f"could not read cache {self._path}: {exc}") from exc

        try:
            raw = json.loads(data.decode("utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("top-level value must be an object")
            loaded: dict[str, dict[str, CacheEntry]] = {}
            for ns in _NAMESPACES:
                section = raw.get(ns) or {}
                if not isinstance(section, dict):
                    raise ValueError(f"{ns} must be an object")
                loaded[ns] = {str(k): CacheEntry.from_json(v) for k, v in section.items()}
        except ValueError as exc:
            raise CacheError(f"malformed cache {self._path}: {exc}") from exc

        self._data = loaded
        logger.info("loaded cache %s (%d images, %d charts)", self._path, len(loaded[IMAGES]), len(loaded[CHARTS]))

    def save(self) -> None:
        """
        将内存中的完整缓存覆盖写入磁盘。
        """
        if self._disabled:
            return
        payload = {ns: {k: e.to_json() for k, e in self._data[ns].items()} for ns in _NAMESPACES}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        except OSError as exc:
            raise CacheError(f"could not write cache {self._path}: {exc}") from exc
        logger.info("saved cache %s", self._path)

    def get(self, namespace: str, key: str) -> CacheEntry | None:
        """
        获取缓存记录；跳过读取、已过期或不存在时返回 None。
        """
        if self._disabled or self._skip_reads:
            return None
        entry = self._data[namespace].get(key)
        if entry is None:
            return None
        age = time.time() - entry.checked_at.timestamp()
        if age > self._ttl_s:
            return None
        return entry

    def set(self, namespace: str, key: str, latest: str, all_tags: list[str] | None = None) -> None:
        """
        写入缓存记录（整条替换，不合并）。
        """
        self._data[namespace][key] = CacheEntry(
            latest=latest,
            checked_at=datetime.fromtimestamp(time.time(), tz=timezone.utc),
            all_tags=list(all_tags or []),
        )

    def get_image(self, key: str) -> CacheEntry | None:
        return self.get(IMAGES, key)

    def set_image(self, key: str, latest: str, all_tags: list[str] | None = None) -> None:
        self.set(IMAGES, key, latest, all_tags)

    def get_chart(self, key: str) -> CacheEntry | None:
        return self.get(CHARTS, key)

    def set_chart(self, key: str, latest: str) -> None:
        self.set(CHARTS, key, latest)
