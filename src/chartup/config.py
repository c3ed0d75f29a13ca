from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib

from chartup.cache import default_cache_path
from chartup.exceptions import ConfigurationError
from chartup.scanner import DEFAULT_EXCLUDED_ORGS, ScanSettings
from chartup.upstreams import (
    DEFAULT_DEPENDENCY_RULES,
    DEFAULT_UPSTREAM_REPOS,
    DEFAULT_UPSTREAM_RULES,
    DependencyRule,
    UpstreamRule,
    dependency_rules_from_config,
    upstream_rules_from_config,
)


@dataclass(frozen=True, slots=True)
class AppConfig:
    """
    chartup 的运行配置（可来自配置文件、环境变量与 CLI 参数合并）。
    """

    cache_file: Path = field(default_factory=default_cache_path)
    cache_ttl_s: int = 60 * 60
    use_cache: bool = True
    refresh: bool = False
    timeout_s: float = 10.0
    exclude_orgs: tuple[str, ...] = DEFAULT_EXCLUDED_ORGS
    upstream_rules: tuple[UpstreamRule, ...] = DEFAULT_UPSTREAM_RULES
    dependency_rules: tuple[DependencyRule, ...] = DEFAULT_DEPENDENCY_RULES
    upstream_repos: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_UPSTREAM_REPOS))

    @property
    def scan_settings(self) -> ScanSettings:
        return ScanSettings(
            excluded_orgs=self.exclude_orgs,
            upstream_rules=self.upstream_rules,
            dependency_rules=self.dependency_rules,
        )


def _find_default_config_file(cwd: Path) -> Path | None:
    """
    在当前目录查找默认配置文件路径。
    """
    candidates = [
        ".chartup.toml",
        ".chartup.yaml",
        ".chartup.yml",
        "chartup.toml",
        "chartup.yaml",
        "chartup.yml",
    ]
    for name in candidates:
        p = cwd / name
        if p.exists() and p.is_file():
            return p
    return None


def _load_yaml(path: Path) -> dict[str, Any]:
    """
    读取 YAML 配置文件。
    """
    import yaml

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return {}
    return data


def _load_config_file(path: Path) -> dict[str, Any]:
    """
    读取 .toml 或 .yaml 配置文件，返回配置字典；读取或解析失败抛出 ConfigurationError。
    """
    import yaml

    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            data = tomllib.loads(path.read_text(encoding="utf-8"))
            return data if isinstance(data, dict) else {}
        if suffix in {".yaml", ".yml"}:
            return _load_yaml(path)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"invalid config file {path}: {exc}") from exc
    return {}


def _env_list(key: str) -> list[str]:
    """
    从环境变量读取列表（逗号分隔）。
    """
    value = os.environ.get(key)
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _exclude_orgs_from_config(raw: Any) -> tuple[str, ...]:
    """
    解析配置中的 exclude_orgs：未设置用默认值，单个字符串视为一项，空列表表示不排除。
    """
    if raw is None:
        return DEFAULT_EXCLUDED_ORGS
    if isinstance(raw, str):
        return (raw,) if raw.strip() else ()
    if not isinstance(raw, (list, tuple)):
        raise ConfigurationError(f"exclude_orgs must be a string or a list, got {type(raw).__name__}")
    return tuple(str(v) for v in raw if str(v).strip())


def load_config(config_path: str | None) -> AppConfig:
    """
    从配置文件与环境变量加载 AppConfig。
    """
    config_data: dict[str, Any] = {}
    if config_path:
        config_data = _load_config_file(Path(config_path))
    else:
        default = _find_default_config_file(Path.cwd())
        if default:
            config_data = _load_config_file(default)

    tool_cfg = config_data.get("chartup") if isinstance(config_data, dict) else {}
    if not isinstance(tool_cfg, dict):
        tool_cfg = {}

    cache_file_raw = os.environ.get("CHARTUP_CACHE_FILE") or str(tool_cfg.get("cache_file") or "")
    cache_file = Path(cache_file_raw).expanduser() if cache_file_raw else default_cache_path()

    ttl_env = os.environ.get("CHARTUP_CACHE_TTL")
    raw_ttl = tool_cfg.get("cache_ttl_s")
    raw_timeout = tool_cfg.get("timeout_s")
    try:
        if ttl_env:
            cache_ttl_s = int(ttl_env)
        else:
            cache_ttl_s = 60 * 60 if raw_ttl is None else int(raw_ttl)
        timeout_s = 10.0 if raw_timeout is None else float(raw_timeout)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"invalid numeric setting: {exc}") from exc
    use_cache = bool(tool_cfg.get("use_cache") if "use_cache" in tool_cfg else True)
    refresh = bool(tool_cfg.get("refresh") or False)

    exclude_orgs = tuple(_env_list("CHARTUP_EXCLUDE_ORGS")) or _exclude_orgs_from_config(tool_cfg.get("exclude_orgs"))

    upstream_rules = upstream_rules_from_config(tool_cfg.get("upstream_rules"))
    dependency_rules = dependency_rules_from_config(tool_cfg.get("dependency_rules"))

    upstream_repos = dict(DEFAULT_UPSTREAM_REPOS)
    repos_cfg = tool_cfg.get("upstream_repos")
    if isinstance(repos_cfg, dict):
        upstream_repos.update({str(k): str(v) for k, v in repos_cfg.items()})

    return AppConfig(
        cache_file=cache_file,
        cache_ttl_s=cache_ttl_s,
        use_cache=use_cache,
        refresh=refresh,
        timeout_s=timeout_s,
        exclude_orgs=exclude_orgs,
        upstream_rules=DEFAULT_UPSTREAM_RULES if upstream_rules is None else upstream_rules,
        dependency_rules=DEFAULT_DEPENDENCY_RULES if dependency_rules is None else dependency_rules,
        upstream_repos=upstream_repos,
    )
