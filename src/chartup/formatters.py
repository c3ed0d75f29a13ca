from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, TextIO
from urllib.parse import quote

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from chartup.models import CheckStatus
from chartup.report import ChartResult, ImageResult, Results
from chartup.versions import classify_update

EDITORS = ("vscode", "cursor", "idea", "sublime", "zed", "none")

_STATUS_LABELS = {
    CheckStatus.UP_TO_DATE: "[green]✓ OK[/green]",
    CheckStatus.UPDATE_AVAILABLE: "[yellow]⚠ UPDATE[/yellow]",
    CheckStatus.SKIPPED: "[dim]⏭ SKIP[/dim]",
    CheckStatus.ERROR: "[red]✗ ERROR[/red]",
    CheckStatus.UNKNOWN: "? UNKNOWN",
}


@dataclass(frozen=True, slots=True)
class ReportOptions:
    """
    输出选项：相对路径基准目录、可点击链接使用的编辑器、是否显示全部条目。
    """

    base_dir: Path | None = None
    editor: str = "none"
    verbose: bool = False


def detect_editor() -> str:
    """
    根据终端环境变量猜测当前编辑器（无法判断时返回 none）。
    """
    if os.environ.get("CURSOR_TRACE_ID"):
        return "cursor"
    term_program = (os.environ.get("TERM_PROGRAM") or "").lower()
    if term_program == "vscode":
        return "vscode"
    if term_program == "zed":
        return "zed"
    if "jetbrains" in (os.environ.get("TERMINAL_EMULATOR") or "").lower():
        return "idea"
    return "none"


def editor_link(editor: str, path: str, line: int) -> str | None:
    """
    生成在编辑器中打开文件（并定位到行）的 URL；editor 为 none 或未知时返回 None。
    """
    if not path:
        return None
    abs_path = os.path.abspath(path)
    line = max(line, 1)
    if editor == "vscode":
        return f"vscode://file{quote(abs_path)}:{line}"
    if editor == "cursor":
        return f"cursor://file{quote(abs_path)}:{line}"
    if editor == "idea":
        return f"idea://open?file={quote(abs_path)}&line={line}"
    if editor == "sublime":
        return f"subl://open?url=file://{quote(abs_path)}&line={line}"
    if editor == "zed":
        return f"zed://file{quote(abs_path)}:{line}"
    return None


def relative_path(path: str, base_dir: Path | None) -> str:
    """
    将路径转换为相对 base_dir 的形式；不在其下时尝试用 ~ 缩写用户目录。
    """
    if not path:
        return "-"
    abs_path = os.path.abspath(path)
    if base_dir is not None:
        rel = os.path.relpath(abs_path, os.path.abspath(base_dir))
        if not rel.startswith(".."):
            return rel
    home = str(Path.home())
    if abs_path.startswith(home + os.sep):
        return "~" + abs_path[len(home) :]
    return path


def _sorted_rows(rows: list[Any]) -> list[Any]:
    return sorted(rows, key=lambda r: (r.path, r.line))


def _visible(rows: list[Any], verbose: bool) -> list[Any]:
    if verbose:
        return rows
    return [r for r in rows if r.status not in (CheckStatus.UP_TO_DATE, CheckStatus.SKIPPED)]


def _update_kind(current: str, latest: str, status: CheckStatus) -> str:
    if status is not CheckStatus.UPDATE_AVAILABLE:
        return "-"
    return classify_update(current, latest)


def _file_cell(path: str, line: int, options: ReportOptions) -> str:
    display = escape(relative_path(path, options.base_dir))
    link = editor_link(options.editor, path, line)
    if link is None:
        return display
    return f"[link={link}]{display}[/link]"


def _status_cell(status: CheckStatus, error: str | None) -> str:
    label = _STATUS_LABELS[status]
    if status is CheckStatus.ERROR and error:
        return f"{label} {escape(error)}"
    return label


def _images_table(images: list[ImageResult], options: ReportOptions) -> Table:
    table = Table(title="DOCKER IMAGES")
    table.add_column("Repository", max_width=40)
    table.add_column("Current", max_width=20)
    table.add_column("Latest", max_width=20)
    table.add_column("Update", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Line", justify="right")
    table.add_column("File", max_width=55)

    last_file = ""
    for img in images:
        rel = relative_path(img.path, options.base_dir)
        if last_file and rel != last_file:
            table.add_section()
        last_file = rel
        latest = "-" if img.skipped else (img.latest or "-")
        table.add_row(
            escape(img.display_name),
            escape(img.current),
            escape(latest),
            _update_kind(img.current, img.latest, img.status),
            _status_cell(img.status, img.error),
            str(img.line) if img.line > 0 else "",
            _file_cell(img.path, img.line, options),
        )
    return table


def _charts_table(charts: list[ChartResult], options: ReportOptions) -> Table:
    table = Table(title="HELM CHARTS")
    table.add_column("Chart", max_width=25)
    table.add_column("Upstream", max_width=15)
    table.add_column("Current", max_width=15)
    table.add_column("Latest", max_width=15)
    table.add_column("Update", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("File", max_width=55)

    last_file = ""
    for chart in charts:
        rel = relative_path(chart.path, options.base_dir)
        if last_file and rel != last_file:
            table.add_section()
        last_file = rel
        latest = "-" if chart.status is CheckStatus.SKIPPED else (chart.latest or "-")
        table.add_row(
            escape(chart.name),
            escape(chart.upstream or "(local)"),
            escape(chart.current),
            escape(latest),
            _update_kind(chart.current, chart.latest, chart.status),
            _status_cell(chart.status, chart.error),
            _file_cell(chart.path, chart.line, options),
        )
    return table


def _summary_table(results: Results) -> Table:
    table = Table(title="SUMMARY", show_header=False)
    table.add_column("")
    table.add_column("", justify="right")
    table.add_row("Updates available", str(results.count(CheckStatus.UPDATE_AVAILABLE)))
    table.add_row("Up to date", str(results.count(CheckStatus.UP_TO_DATE)))
    table.add_row("Skipped", str(results.count(CheckStatus.SKIPPED)))
    errors = results.count(CheckStatus.ERROR)
    if errors:
        table.add_row("Errors", str(errors))
    table.add_row("Cache hits", str(results.cache_hits))
    table.add_row("Fetched", str(results.fetched))
    return table


def print_table(results: Results, options: ReportOptions | None = None, *, file: TextIO | None = None) -> None:
    """
    以控制台表格形式输出镜像、chart 与汇总三张表。
    """
    options = options or ReportOptions()
    console = Console(file=file)

    images = _visible(_sorted_rows(results.images), options.verbose)
    charts = _visible(_sorted_rows(results.charts), options.verbose)

    if not results.images:
        console.print("No Docker images found.")
    elif images:
        console.print(_images_table(images, options))
    else:
        console.print("All Docker images are up to date.")
    console.print()

    if not results.charts:
        console.print("No Helm charts found.")
    elif charts:
        console.print(_charts_table(charts, options))
    else:
        console.print("All Helm charts are up to date.")
    console.print()

    console.print(_summary_table(results))


def _row_to_json(row: ImageResult | ChartResult) -> dict[str, Any]:
    data = asdict(row)
    data["status"] = row.status.value
    if isinstance(row, ChartResult):
        data["skipped"] = row.skipped
    if row.status is CheckStatus.UPDATE_AVAILABLE:
        data["update"] = classify_update(row.current, row.latest)
    return data


def results_to_json_obj(results: Results) -> dict[str, Any]:
    """
    将检查结果转换为可 JSON 序列化的字典结构。
    """
    return {
        "images": [_row_to_json(r) for r in _sorted_rows(results.images)],
        "charts": [_row_to_json(r) for r in _sorted_rows(results.charts)],
        "summary": {
            "updates_available": results.count(CheckStatus.UPDATE_AVAILABLE),
            "up_to_date": results.count(CheckStatus.UP_TO_DATE),
            "skipped": results.count(CheckStatus.SKIPPED),
            "errors": results.count(CheckStatus.ERROR),
            "cache_hits": results.cache_hits,
            "fetched": results.fetched,
        },
    }


def render_json(results: Results) -> str:
    """
    渲染 JSON 输出。
    """
    return json.dumps(results_to_json_obj(results), ensure_ascii=False, indent=2)


def _md(text: str) -> str:
    return text.replace("|", "\\|") if text else "-"


def render_markdown(results: Results, options: ReportOptions | None = None) -> str:
    """
    渲染 Markdown 报告（镜像表、chart 表 + 简要统计）。
    """
    options = options or ReportOptions()
    lines: list[str] = ["# chartup 报告", ""]
    lines.append(f"- 可更新：{results.count(CheckStatus.UPDATE_AVAILABLE)}")
    lines.append(f"- 已是最新：{results.count(CheckStatus.UP_TO_DATE)}")
    lines.append(f"- 跳过：{results.count(CheckStatus.SKIPPED)}")
    lines.append(f"- 错误：{results.count(CheckStatus.ERROR)}")
    lines.append(f"- 缓存命中：{results.cache_hits}")
    lines.append(f"- 发起查询：{results.fetched}")
    lines.append("")

    lines.append("## Docker images")
    lines.append("")
    lines.append("| 镜像 | 当前 | 最新 | 状态 | 文件 | 错误 |")
    lines.append("|---|---|---|---|---|---|")
    for img in _sorted_rows(results.images):
        latest = "-" if img.skipped else img.latest
        location = f"{relative_path(img.path, options.base_dir)}:{img.line}"
        lines.append(
            f"| {_md(img.display_name)} | {_md(img.current)} | {_md(latest)} | {img.status.value} "
            f"| {_md(location)} | {_md(img.error or '')} |"
        )
    lines.append("")

    lines.append("## Helm charts")
    lines.append("")
    lines.append("| Chart | 上游 | 当前 | 最新 | 状态 | 文件 | 错误 |")
    lines.append("|---|---|---|---|---|---|---|")
    for chart in _sorted_rows(results.charts):
        latest = "-" if chart.status is CheckStatus.SKIPPED else chart.latest
        location = relative_path(chart.path, options.base_dir)
        lines.append(
            f"| {_md(chart.name)} | {_md(chart.upstream or '(local)')} | {_md(chart.current)} | {_md(latest)} "
            f"| {chart.status.value} | {_md(location)} | {_md(chart.error or '')} |"
        )
    return "\n".join(lines) + "\n"
