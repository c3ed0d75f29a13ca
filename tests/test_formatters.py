from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from chartup.formatters import (
    ReportOptions,
    detect_editor,
    editor_link,
    print_table,
    relative_path,
    render_json,
    render_markdown,
    results_to_json_obj,
)
from chartup.report import ChartResult, ImageResult, Results


def _make_results(base: Path) -> Results:
    """
    构造一份用于 formatter 测试的最小结果集。
    """
    values = str(base / "charts" / "app" / "values.yaml")
    chart = str(base / "charts" / "app" / "Chart.yaml")
    return Results(
        images=[
            ImageResult(registry="docker.io", repository="nginx", current="1.25", latest="1.27.0", path=values, line=9),
            ImageResult(registry="quay.io", repository="minio/minio", current="1.0", latest="1.0", path=values, line=3),
            ImageResult(
                registry="docker.io",
                repository="thinkportgmbh/workshops",
                current="jupyter",
                skipped=True,
                path=values,
                line=12,
            ),
        ],
        charts=[
            ChartResult(name="redis", current="18.0.0", upstream="bitnami", latest="19.0.1", path=chart, line=5),
            ChartResult(name="app", current="1.0.0", path=chart, line=1),
            ChartResult(name="trino", current="0.1.0", upstream="trinodb", error="rate limit hit", path=chart, line=8),
        ],
        cache_hits=1,
        fetched=2,
    )


def test_results_to_json_obj_contains_status_and_summary(tmp_path: Path) -> None:
    """
    JSON 对象应可序列化：状态转为字符串，附带汇总与升级幅度。
    """
    obj = results_to_json_obj(_make_results(tmp_path))
    images = obj["images"]
    assert [i["line"] for i in images] == [3, 9, 12]
    assert images[1]["status"] == "update_available"
    assert images[1]["update"] == "minor"
    assert obj["charts"][0]["status"] == "skipped"
    assert obj["summary"] == {
        "updates_available": 2,
        "up_to_date": 1,
        "skipped": 2,
        "errors": 1,
        "cache_hits": 1,
        "fetched": 2,
    }
    assert json.loads(render_json(_make_results(tmp_path))) == obj


def test_render_markdown_contains_stats_and_rows(tmp_path: Path) -> None:
    """
    Markdown 渲染应包含统计信息与表格内容，路径相对于 base_dir。
    """
    md = render_markdown(_make_results(tmp_path), ReportOptions(base_dir=tmp_path))
    assert "chartup 报告" in md
    assert "缓存命中：1" in md
    assert "| quay.io/minio/minio | 1.0 | 1.0 | up_to_date |" in md
    assert "| thinkportgmbh/workshops | jupyter | - | skipped |" in md
    assert "| app | (local) | 1.0.0 | - | skipped |" in md
    assert "charts/app/values.yaml:9" in md


def test_print_table_hides_up_to_date_unless_verbose(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    非 verbose 模式只显示可更新与出错的条目；verbose 显示全部。
    """
    monkeypatch.setenv("COLUMNS", "240")
    buf = io.StringIO()
    print_table(_make_results(tmp_path), ReportOptions(base_dir=tmp_path), file=buf)
    out = buf.getvalue()
    assert "DOCKER IMAGES" in out
    assert "nginx" in out
    assert "minio" not in out
    assert "thinkportgmbh" not in out
    assert "redis" in out
    assert "trino" in out
    assert "SUMMARY" in out

    buf = io.StringIO()
    print_table(_make_results(tmp_path), ReportOptions(base_dir=tmp_path, verbose=True), file=buf)
    out = buf.getvalue()
    assert "minio" in out
    assert "(local)" in out


def test_print_table_empty_results() -> None:
    """
    没有任何条目时输出提示文字。
    """
    buf = io.StringIO()
    print_table(Results(), file=buf)
    out = buf.getvalue()
    assert "No Docker images found." in out
    assert "No Helm charts found." in out


def test_relative_path(tmp_path: Path) -> None:
    """
    base_dir 下的路径显示为相对路径，空路径显示为 -。
    """
    assert relative_path(str(tmp_path / "a" / "values.yaml"), tmp_path) == str(Path("a") / "values.yaml")
    assert relative_path("", tmp_path) == "-"


def test_editor_links(tmp_path: Path) -> None:
    """
    各编辑器的链接格式；none 不生成链接。
    """
    path = str(tmp_path / "values.yaml")
    assert editor_link("vscode", path, 3) == f"vscode://file{path}:3"
    assert editor_link("cursor", path, 3) == f"cursor://file{path}:3"
    assert editor_link("idea", path, 3) == f"idea://open?file={path}&line=3"
    assert editor_link("sublime", path, 0) == f"subl://open?url=file://{path}&line=1"
    assert editor_link("zed", path, 3) == f"zed://file{path}:3"
    assert editor_link("none", path, 3) is None


def test_detect_editor_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    根据终端环境变量识别编辑器。
    """
    for key in ("CURSOR_TRACE_ID", "TERM_PROGRAM", "TERMINAL_EMULATOR"):
        monkeypatch.delenv(key, raising=False)
    assert detect_editor() == "none"
    monkeypatch.setenv("TERM_PROGRAM", "vscode")
    assert detect_editor() == "vscode"
    monkeypatch.setenv("CURSOR_TRACE_ID", "x")
    assert detect_editor() == "cursor"
