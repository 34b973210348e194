"""处理流水线：扫描、并发转码、计数汇总与进度上报。"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from concurrent.futures.process import BrokenProcessPool
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Sequence

from image_transcoder.core.config import TranscodeSettings
from image_transcoder.core.models import (
    BatchCounters,
    BatchSummary,
    CounterSnapshot,
    ImageJob,
    OutcomeStatus,
    TranscodeOutcome,
)
from image_transcoder.core.output_manager import OutputManager, discard_partial
from image_transcoder.core.progress import ConsoleProgressReporter, ProgressUpdate
from image_transcoder.core.report import write_csv_report
from image_transcoder.core.scanner import discover
from image_transcoder.processing.transcoder import transcode

LOGGER = logging.getLogger(__name__)


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]


def scan_and_run(
    source_dir: Path,
    output_root: Path,
    settings: TranscodeSettings,
    reporter: Optional[ConsoleProgressReporter] = None,
    progress_callback: ProgressCallback = None,
) -> BatchSummary:
    """扫描源目录后执行批处理。"""

    LOGGER.info("开始扫描输入路径 %s", source_dir)
    jobs = discover(source_dir)
    return run_batch(jobs, output_root, settings, reporter, progress_callback=progress_callback)


def run_batch(
    jobs: Sequence[ImageJob],
    output_root: Path,
    settings: TranscodeSettings,
    reporter: Optional[ConsoleProgressReporter] = None,
    *,
    progress_callback: ProgressCallback = None,
    started_at: Optional[datetime] = None,
) -> BatchSummary:
    """并发转码全部任务；单个任务的异常只会变成该任务的 Failure。"""

    settings.validate()
    total = len(jobs)

    if total == 0:
        LOGGER.info("没有需要处理的图片")
        _emit_progress(progress_callback, completed=0, total=0, message="没有需要处理的图片")
        return BatchSummary(total=0, processed=0, succeeded=0, failed=0, output_dir=None)

    output_manager = OutputManager(output_root, started_at)
    session_dir = output_manager.prepare()
    bound_jobs = output_manager.assign(list(jobs))

    counters = BatchCounters(total=total)
    outcomes: list[TranscodeOutcome] = []

    def on_complete(outcome: TranscodeOutcome) -> None:
        outcomes.append(outcome)
        snapshot = counters.record(outcome)
        _report(outcome, snapshot, reporter, progress_callback)

    if reporter is not None:
        reporter.update(0, total)

    if settings.max_workers <= 1:
        for job in bound_jobs:
            on_complete(_run_isolated(job, settings))
    else:
        unfinished = _run_pool(bound_jobs, settings, on_complete)
        if unfinished:
            # 进程池已损坏：剩余任务各自在独立进程中执行，崩溃只影响引起它的任务
            LOGGER.warning("工作进程异常退出，%d 个任务改为逐个隔离执行", len(unfinished))
            _run_each_in_own_process(unfinished, settings, on_complete)

    final = counters.snapshot()
    summary = BatchSummary(
        total=final.total,
        processed=final.processed,
        succeeded=final.succeeded,
        failed=final.failed,
        output_dir=session_dir,
        outcomes=outcomes,
    )
    if settings.report_filename:
        _write_report(summary, session_dir, settings.report_filename)
    LOGGER.info("处理完成：成功 %d，失败 %d", summary.succeeded, summary.failed)
    return summary


def _run_pool(
    jobs: list[ImageJob],
    settings: TranscodeSettings,
    on_complete: Callable[[TranscodeOutcome], None],
) -> list[ImageJob]:
    """在共享进程池中执行任务，返回因进程池损坏而没有结果的任务。"""

    missing: set[ImageJob] = set()
    with ProcessPoolExecutor(max_workers=settings.max_workers) as executor:
        future_map = {}
        for index, job in enumerate(jobs):
            try:
                future_map[executor.submit(transcode, job, settings)] = job
            except BrokenProcessPool:
                missing.update(jobs[index:])
                break
        for future in as_completed(future_map):
            job = future_map[future]
            try:
                outcome = future.result()
            except BrokenProcessPool:
                missing.add(job)
                continue
            except Exception as exc:  # noqa: BLE001
                outcome = _worker_failure(job, exc)
            on_complete(outcome)
    return [job for job in jobs if job in missing]


def _run_each_in_own_process(
    jobs: list[ImageJob],
    settings: TranscodeSettings,
    on_complete: Callable[[TranscodeOutcome], None],
) -> None:
    with ThreadPoolExecutor(max_workers=settings.max_workers) as threads:
        futures = [threads.submit(_run_in_own_process, job, settings) for job in jobs]
        for future in as_completed(futures):
            on_complete(future.result())


def _run_in_own_process(job: ImageJob, settings: TranscodeSettings) -> TranscodeOutcome:
    with ProcessPoolExecutor(max_workers=1) as executor:
        future = executor.submit(transcode, job, settings)
        try:
            return future.result()
        except Exception as exc:  # noqa: BLE001
            return _worker_failure(job, exc)


def _run_isolated(job: ImageJob, settings: TranscodeSettings) -> TranscodeOutcome:
    try:
        return transcode(job, settings)
    except Exception as exc:  # noqa: BLE001
        return _worker_failure(job, exc)


def _worker_failure(job: ImageJob, exc: BaseException) -> TranscodeOutcome:
    """任务在 transcode 之外失败（如工作进程崩溃）；目标文件只经原子替换产生，只需清理临时文件。"""

    LOGGER.debug("任务执行异常：%s", job.source_path, exc_info=exc)
    discard_partial(job.staging_path)
    return TranscodeOutcome.failure(job, str(exc) or exc.__class__.__name__)


def _report(
    outcome: TranscodeOutcome,
    snapshot: CounterSnapshot,
    reporter: Optional[ConsoleProgressReporter],
    progress_callback: ProgressCallback,
) -> None:
    """计数之后更新进度，并输出该任务的警告或错误。"""

    # 有进度条时消息由进度条输出，日志只保留调试记录
    shown = reporter is not None
    if outcome.status is OutcomeStatus.FAILURE:
        LOGGER.log(logging.DEBUG if shown else logging.ERROR, "转换失败：%s", outcome.message)
        text = f"错误：{outcome.message}"
    elif outcome.status is OutcomeStatus.SUCCESS_WITH_WARNING:
        LOGGER.log(logging.DEBUG if shown else logging.WARNING, "体积未达标：%s", outcome.message)
        text = f"警告：{outcome.message}"
    else:
        text = None

    messages = [text] if text else []
    if outcome.verify_error:
        LOGGER.log(logging.DEBUG if shown else logging.WARNING, "%s", outcome.verify_error)
        messages.append(f"警告：{outcome.verify_error}")

    if reporter is not None:
        with reporter.lock:
            for message in messages:
                reporter.emit(message)
            reporter.update(snapshot.processed, snapshot.total)

    _emit_progress(progress_callback, snapshot.processed, snapshot.total, text or f"完成 {outcome.source_path.name}")


def _emit_progress(
    callback: ProgressCallback,
    completed: int,
    total: int,
    message: Optional[str] = None,
) -> None:
    if not callback:
        return
    callback(ProgressUpdate(total=total, completed=completed, message=message))


def _write_report(summary: BatchSummary, session_dir: Path, filename: str) -> None:
    try:
        write_csv_report(summary.outcomes, session_dir, filename)
    except OSError as exc:
        LOGGER.error("写入报告失败：%s", exc)
