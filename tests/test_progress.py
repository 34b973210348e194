"""环节四：测试进度条渲染与并发计数。"""

from __future__ import annotations

import io
import logging
import threading
from pathlib import Path

import pytest
from rich.console import Console

from image_transcoder.core.models import BatchCounters, OutcomeStatus, TranscodeOutcome
from image_transcoder.core.progress import ConsoleProgressReporter, ProgressLogHandler


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def make_reporter(width: int = 10, interval: float = 0.125):
    stream = io.StringIO()
    clock = FakeClock()
    reporter = ConsoleProgressReporter(Console(file=stream), width=width, frame_interval=interval, clock=clock)
    return reporter, stream, clock


def test_update_renders_bar_and_percentage() -> None:
    reporter, stream, _ = make_reporter()

    reporter.update(5, 10, "转换中")

    assert stream.getvalue() == "\r[#####-----]  50% / 转换中"
    assert reporter.current_line == "[#####-----]  50% / 转换中"


def test_shorter_line_is_padded_with_spaces() -> None:
    reporter, stream, _ = make_reporter()

    reporter.update(1, 10, "a long status message")
    first = reporter.current_line
    reporter.update(2, 10)
    second = reporter.current_line

    assert stream.getvalue().endswith("\r" + second + " " * (len(first) - len(second)))


def test_animation_is_time_gated() -> None:
    reporter, _, clock = make_reporter(interval=0.125)

    glyphs = []
    for _ in range(5):
        reporter.update(1, 10)
        glyphs.append(reporter.current_line[-1])
    assert glyphs == ["/"] * 5

    clock.now = 0.1
    reporter.update(1, 10)
    assert reporter.current_line[-1] == "/"

    clock.now = 0.2
    reporter.update(1, 10)
    assert reporter.current_line[-1] == "-"


def test_completion_finalises_line() -> None:
    reporter, stream, _ = make_reporter()

    reporter.update(2, 3)
    reporter.update(3, 3)

    assert stream.getvalue().endswith("[##########] 100% /\n")
    assert reporter.current_line == ""


def test_out_of_range_values_are_clamped() -> None:
    reporter, stream, _ = make_reporter()

    reporter.update(-4, 10)
    assert reporter.current_line.startswith("[----------]   0%")

    reporter.update(0, 0)
    assert reporter.current_line.startswith("[----------]   0%")

    reporter.update(12, 10)
    assert stream.getvalue().endswith("100% /\n")


def test_emit_writes_message_on_its_own_line_and_redraws() -> None:
    reporter, stream, _ = make_reporter()
    reporter.update(1, 4)
    line = reporter.current_line
    stream.seek(0)
    stream.truncate()

    reporter.emit("错误：bad.png: 无法加载图像")

    assert stream.getvalue() == "\r" + " " * len(line) + "\r" + "错误：bad.png: 无法加载图像\n" + line
    assert reporter.current_line == line


def test_emit_does_not_wrap_or_interpret_markup() -> None:
    reporter, stream, _ = make_reporter()
    message = "警告：[bold]" + "x" * 200 + ".png"

    reporter.emit(message)

    assert stream.getvalue() == message + "\n"


def test_log_records_share_the_progress_line_discipline() -> None:
    reporter, stream, _ = make_reporter()
    reporter.update(1, 4)
    line = reporter.current_line
    logger = logging.getLogger("image_transcoder.progress_test")
    handler = ProgressLogHandler(reporter)
    logger.addHandler(handler)
    logger.propagate = False
    try:
        logger.warning("工作进程异常退出")
    finally:
        logger.removeHandler(handler)
        logger.propagate = True

    output = stream.getvalue()
    assert "\r" + " " * len(line) + "\r" in output
    assert "工作进程异常退出" in output
    assert output.endswith("\n" + line)
    assert reporter.current_line == line


def test_finish_writes_full_bar() -> None:
    reporter, stream, _ = make_reporter()
    reporter.update(1, 4)

    reporter.finish("Done!")

    assert "[##########] 100% " in stream.getvalue()
    assert stream.getvalue().endswith("Done!\n")
    assert reporter.current_line == ""


def test_concurrent_writers_do_not_interleave() -> None:
    reporter, stream, _ = make_reporter(width=20)
    total = 200
    messages = [f"消息-{idx:03d}" for idx in range(total)]
    counter = iter(range(1, total + 1))
    counter_lock = threading.Lock()

    def worker(message: str) -> None:
        with reporter.lock:
            with counter_lock:
                processed = next(counter)
            reporter.emit(message)
            reporter.update(processed, total)

    threads = [threading.Thread(target=worker, args=(msg,)) for msg in messages]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    lines = [segment for chunk in stream.getvalue().split("\n") for segment in chunk.split("\r")]
    emitted = [segment for segment in lines if segment.startswith("消息-")]
    assert sorted(emitted) == messages
    assert reporter.current_line == ""


def test_batch_counters_stay_consistent_under_threads(tmp_path: Path) -> None:
    total = 400
    counters = BatchCounters(total=total)
    ok = TranscodeOutcome(source_path=tmp_path / "ok.png", status=OutcomeStatus.SUCCESS)
    warn = TranscodeOutcome(source_path=tmp_path / "w.png", status=OutcomeStatus.SUCCESS_WITH_WARNING, message="w")
    bad = TranscodeOutcome(source_path=tmp_path / "bad.png", status=OutcomeStatus.FAILURE, message="x")
    outcomes = [(ok, warn, bad)[idx % 3] for idx in range(total)]
    snapshots = []

    def record(outcome: TranscodeOutcome) -> None:
        snapshots.append(counters.record(outcome))

    threads = [threading.Thread(target=record, args=(o,)) for o in outcomes]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    final = counters.snapshot()
    assert final.processed == total
    assert final.failed == sum(1 for o in outcomes if o is bad)
    assert final.succeeded + final.failed == final.processed
    assert all(s.processed == s.succeeded + s.failed <= total for s in snapshots)
    assert sorted(s.processed for s in snapshots) == list(range(1, total + 1))

    with pytest.raises(RuntimeError):
        counters.record(ok)
