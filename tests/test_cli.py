from __future__ import annotations

import json
from pathlib import Path

import pytest

from chartup import __version__
from chartup.app import CheckRun
from chartup.cli import _merge_cli_overrides, build_parser, main
from chartup.config import AppConfig
from chartup.report import ImageResult, Results


@pytest.fixture(autouse=True)
def _isolated_cwd(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    在空目录中运行，避免读取到仓库中的配置文件或环境变量。
    """
    monkeypatch.chdir(tmp_path)
    for key in ("CHARTUP_CACHE_FILE", "CHARTUP_CACHE_TTL", "CHARTUP_EXCLUDE_ORGS"):
        monkeypatch.delenv(key, raising=False)


def _make_run(*, rate_limited: bool = False, warnings: list[str] | None = None) -> CheckRun:
    """
    构造一个最小可用的 CheckRun，供 CLI 测试复用。
    """
    results = Results(
        images=[ImageResult(registry="docker.io", repository="nginx", current="1.25", latest="1.27.0", path="values.yaml", line=2)],
        fetched=1,
    )
    return CheckRun(results=results, rate_limited=rate_limited, warnings=list(warnings or []))


def test_cli_version_flag_prints_version(capsys: pytest.CaptureFixture[str]) -> None:
    """
    --version 应输出版本号并以 0 退出。
    """
    rc = main(["--version"])
    out = capsys.readouterr().out.strip()
    assert rc == 0
    assert out == f"chartup {__version__}"


def test_cli_invalid_directory_returns_1(capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    """
    扫描目录不存在时返回 1 并输出错误。
    """
    rc = main([str(tmp_path / "missing"), "--no-cache"])
    err = capsys.readouterr().err
    assert rc == 1
    assert "directory does not exist" in err


def test_cli_bad_config_returns_1(capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    """
    配置文件无法解析时返回 1。
    """
    bad = tmp_path / "bad.toml"
    bad.write_text("[chartup\n", encoding="utf-8")
    rc = main(["--config", str(bad)])
    assert rc == 1
    assert "读取配置失败" in capsys.readouterr().err


def test_cli_usage_error_exits_2() -> None:
    """
    参数错误由 argparse 处理，退出码为 2。
    """
    with pytest.raises(SystemExit) as excinfo:
        main(["--format", "xml"])
    assert excinfo.value.code == 2


def test_cli_rate_limit_prints_banner_and_exits_0(
    capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    """
    触发限流时仍输出结果、在 stderr 打印提示，并以 0 退出。
    """
    monkeypatch.setattr("chartup.app.run_check", lambda root, *, config: _make_run(rate_limited=True))
    rc = main([".", "--format", "json"])
    captured = capsys.readouterr()
    assert rc == 0
    assert "rate limit" in captured.err
    assert json.loads(captured.out)["images"][0]["latest"] == "1.27.0"


def test_cli_writes_output_file_and_warnings(
    capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """
    --output 写入文件；缓存警告输出到 stderr。
    """
    monkeypatch.setattr(
        "chartup.app.run_check", lambda root, *, config: _make_run(warnings=["failed to load cache: bad"])
    )
    out_file = tmp_path / "report.md"
    rc = main([".", "--format", "md", "--output", str(out_file)])
    assert rc == 0
    assert "chartup 报告" in out_file.read_text(encoding="utf-8")
    assert "failed to load cache: bad" in capsys.readouterr().err


def test_cli_table_output_to_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    表格格式同样支持 --output。
    """
    monkeypatch.setattr("chartup.app.run_check", lambda root, *, config: _make_run())
    out_file = tmp_path / "report.txt"
    rc = main([".", "--output", str(out_file), "--editor", "none"])
    assert rc == 0
    text = out_file.read_text(encoding="utf-8")
    assert "DOCKER IMAGES" in text
    assert "SUMMARY" in text


def test_merge_cli_overrides_flags(tmp_path: Path) -> None:
    """
    CLI 参数应覆盖配置：缓存文件、TTL、no-cache 与 refresh。
    """
    args = build_parser().parse_args(
        ["--no-cache", "--refresh", "--cache-ttl", "0", "--cache-file", str(tmp_path / "c.json")]
    )
    cfg = _merge_cli_overrides(AppConfig(cache_file=tmp_path / "default.json", cache_ttl_s=3600), args)
    assert cfg.cache_file == tmp_path / "c.json"
    assert cfg.cache_ttl_s == 0
    assert cfg.use_cache is False
    assert cfg.refresh is True

    untouched = _merge_cli_overrides(AppConfig(cache_file=tmp_path / "default.json"), build_parser().parse_args([]))
    assert untouched.cache_file == tmp_path / "default.json"
    assert untouched.cache_ttl_s == 3600
    assert untouched.use_cache is True
