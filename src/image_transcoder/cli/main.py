"""命令行入口。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from image_transcoder.core.config import MEBIBYTE, ProgressConfig, TranscodeSettings
from image_transcoder.core.exceptions import DirectoryAccessError, InvalidConfigurationError
from image_transcoder.core.models import BatchSummary, ImageJob
from image_transcoder.core.progress import ConsoleProgressReporter, ProgressLogHandler
from image_transcoder.core.scanner import count_entries, discover
from image_transcoder.processing.pipeline import run_batch
from image_transcoder.utils.logging import setup_logging

LEGACY_SOURCE_DIR = "ToConvert"
LEGACY_OUTPUT_DIR = "Converted"

EXIT_DIRECTORY_ERROR = 2
EXIT_UNEXPECTED_ERROR = 1

app = typer.Typer(help="批量把图片转换为体积与尺寸受限的 JPEG。")
console = Console()
# 进度条、穿插消息与日志共用 stderr 上的同一个 console
err_console = Console(stderr=True)
progress_defaults = ProgressConfig()

LOGGER = logging.getLogger(__name__)


def resolve_directories(source: Optional[Path], output: Optional[Path]) -> Tuple[Path, Path, bool]:
    """确定 (源目录, 输出根目录, 是否为旧版目录模式)。"""

    if source is None:
        cwd = Path.cwd()
        return cwd / LEGACY_SOURCE_DIR, (output or cwd / LEGACY_OUTPUT_DIR).expanduser().resolve(), True

    source_dir = source.expanduser().resolve()
    output_root = (output or source_dir / LEGACY_OUTPUT_DIR).expanduser().resolve()
    return source_dir, output_root, False


def _bootstrap_legacy_source(source_dir: Path) -> None:
    """首次运行：源目录不存在时询问是否创建。"""

    console.print(f"'{source_dir.name}' 目录不存在：{source_dir}")
    if typer.confirm(f"是否创建 '{source_dir.name}' 目录？", default=True):
        source_dir.mkdir(parents=True, exist_ok=True)
        console.print(f"已创建 {source_dir}，请放入需要转换的图片后重新运行。")


def _print_discovery(source_dir: Path, jobs: list[ImageJob]) -> None:
    console.print(f"目录内容（共 {count_entries(source_dir)} 个文件）：")
    for job in jobs:
        console.print(f"- {job.name}", markup=False)


def _print_summary(summary: BatchSummary) -> None:
    table = Table(title="转换结果")
    table.add_column("成功", justify="right", style="green")
    table.add_column("其中体积未达标", justify="right", style="yellow")
    table.add_column("失败", justify="right", style="red")
    table.add_column("输出目录")
    table.add_row(
        str(summary.succeeded),
        str(len(summary.warnings)),
        str(summary.failed),
        str(summary.output_dir) if summary.output_dir else "-",
    )
    console.print(table)


@app.command("run")
def run_cli(  # noqa: PLR0913
    source: Optional[Path] = typer.Argument(None, help="源图片目录；省略时使用当前目录下的 ToConvert"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="输出根目录，每次运行会在其中新建时间戳子目录"),
    max_size_mb: float = typer.Option(7.5, "--max-size-mb", help="单个输出文件的体积上限 (MB)"),
    max_dimension: int = typer.Option(7500, "--max-dimension", help="输出图片宽高上限 (像素)"),
    min_quality: int = typer.Option(50, "--min-quality", help="允许的最低 JPEG 质量"),
    max_workers: int = typer.Option(0, "--workers", "-w", help="并发进程数量，0 表示 CPU 核数"),
    report: Optional[str] = typer.Option(None, "--report", help="在输出目录写入 CSV 报告的文件名"),
    verify: bool = typer.Option(False, "--verify", help="写出后重新读取并计算 pHash 距离与 SSIM"),
    bar_width: int = typer.Option(progress_defaults.width, "--bar-width", help="进度条宽度"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出详细日志"),
) -> None:
    """执行批量转换。"""

    reporter = ConsoleProgressReporter(err_console, width=bar_width, frame_interval=progress_defaults.frame_interval)
    setup_logging(logging.INFO if verbose else logging.WARNING, handler=ProgressLogHandler(reporter))
    LOGGER.debug("CLI 参数解析完成")

    settings = TranscodeSettings(
        max_bytes=int(max_size_mb * MEBIBYTE),
        max_dimension=max_dimension,
        min_quality=min_quality,
        max_workers=max_workers,
        verify=verify,
        report_filename=report,
    )
    try:
        settings.validate()
    except InvalidConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    source_dir, output_root, legacy = resolve_directories(source, output)

    if not source_dir.is_dir():
        if legacy:
            _bootstrap_legacy_source(source_dir)
        else:
            console.print(f"源目录不存在：{source_dir}，没有需要处理的图片。")
        return

    try:
        jobs = discover(source_dir)
        _print_discovery(source_dir, jobs)
        if not jobs:
            console.print(f"'{source_dir.name}' 目录中没有找到图片文件。")
            return

        console.print("正在转换...")
        summary = run_batch(jobs, output_root, settings, reporter)
    except DirectoryAccessError as exc:
        console.print(f"[bold red]目录访问失败：[/]{escape(str(exc))}")
        raise typer.Exit(code=EXIT_DIRECTORY_ERROR) from exc
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("批处理异常终止")
        console.print(f"[bold red]批处理异常终止：[/]{escape(str(exc))}")
        raise typer.Exit(code=EXIT_UNEXPECTED_ERROR) from exc

    _print_summary(summary)


if __name__ == "__main__":
    app()
