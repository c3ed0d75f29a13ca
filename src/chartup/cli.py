from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from chartup.config import AppConfig, load_config
from chartup.exceptions import ChartupError
from chartup.formatters import EDITORS, ReportOptions, detect_editor
from chartup.logging_config import setup_logging

_EPILOG = """\
示例：
  chartup .                      扫描当前目录
  chartup /path/to/charts        扫描指定目录
  chartup --refresh .            强制重新查询并更新缓存
  chartup --editor idea .        使用 IntelliJ IDEA 生成文件链接

支持的镜像仓库：Docker Hub, Quay.io, ghcr.io, gcr.io, registry.k8s.io
"""


def build_parser() -> argparse.ArgumentParser:
    """
    构建 chartup 的命令行参数解析器。
    """
    parser = argparse.ArgumentParser(
        prog="chartup",
        description="检查 Helm chart 与 Docker 镜像是否有新版本",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("directory", nargs="?", default=".", help="要扫描的目录（默认：当前目录）")
    parser.add_argument("--version", action="store_true", help="输出版本号并退出")
    parser.add_argument("--verbose", action="store_true", help="显示全部条目（默认只显示可更新与出错的条目）")
    parser.add_argument("--refresh", action="store_true", help="忽略缓存读取并强制重新查询（结果仍写入缓存）")
    parser.add_argument("--no-cache", action="store_true", help="禁用本地缓存")
    parser.add_argument("--cache-file", help="缓存文件路径")
    parser.add_argument("--cache-ttl", type=int, help="缓存 TTL 秒数（0 表示每次都重新查询）")
    parser.add_argument("--editor", choices=list(EDITORS), help="可点击文件链接使用的编辑器（默认自动检测）")
    parser.add_argument("--format", choices=["table", "json", "md"], default="table", help="输出格式")
    parser.add_argument("--output", help="输出到文件（默认 stdout）")
    parser.add_argument("--config", help="配置文件路径（.toml 或 .yaml）")
    parser.add_argument("--debug", action="store_true", help="输出调试日志到 stderr")
    return parser


def _merge_cli_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    """
    将 CLI 参数覆盖合并到 AppConfig。
    """
    cache_file = Path(args.cache_file).expanduser() if args.cache_file else cfg.cache_file
    cache_ttl_s = cfg.cache_ttl_s if args.cache_ttl is None else int(args.cache_ttl)
    return replace(
        cfg,
        cache_file=cache_file,
        cache_ttl_s=cache_ttl_s,
        use_cache=cfg.use_cache and not bool(args.no_cache),
        refresh=cfg.refresh or bool(args.refresh),
    )


def _print_rate_limit_banner() -> None:
    print("\nchartup: 触发上游限流（rate limit），以下仅为部分结果。", file=sys.stderr)
    print("chartup: 请稍后重试；已查询到的结果会写入缓存。\n", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """
    chartup 命令行入口。
    """
    args = build_parser().parse_args(argv)

    if args.version:
        from chartup import __version__

        print(f"chartup {__version__}")
        return 0

    setup_logging(logging.DEBUG if args.debug else logging.WARNING)

    try:
        cfg = _merge_cli_overrides(load_config(args.config), args)
    except ChartupError as exc:
        print(f"chartup: 读取配置失败：{exc}", file=sys.stderr)
        return 1

    from chartup.app import run_check
    from chartup.formatters import print_table, render_json, render_markdown

    root = Path(args.directory)
    print(f"Scanning {root} for Helm charts...", file=sys.stderr)
    try:
        run = run_check(root, config=cfg)
    except ChartupError as exc:
        print(f"chartup: {exc}", file=sys.stderr)
        return 1

    for warning in run.warnings:
        print(f"chartup: 警告：{warning}", file=sys.stderr)
    if run.rate_limited:
        _print_rate_limit_banner()

    options = ReportOptions(
        base_dir=root.resolve(),
        editor=args.editor or detect_editor(),
        verbose=bool(args.verbose),
    )
    output_path = args.output
    if args.format == "table":
        if output_path:
            with open(output_path, "w", encoding="utf-8") as f:
                print_table(run.results, options, file=f)
        else:
            print_table(run.results, options)
        return 0

    text = render_json(run.results) if args.format == "json" else render_markdown(run.results, options)
    if output_path:
        Path(output_path).write_text(text, encoding="utf-8")
    else:
        print(text)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
