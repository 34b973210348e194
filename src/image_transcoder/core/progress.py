"""进度更新的数据模型与单行控制台进度条。"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, TextIO

from rich.console import Console
from rich.logging import RichHandler

ANIMATION = "|/-\\"


@dataclass(slots=True)
class ProgressUpdate:
    """批处理过程中的进度信息。"""

    total: int
    completed: int
    message: Optional[str] = None
    status: str = "running"


class ConsoleProgressReporter:
    """在同一行原地刷新的进度条。

    进度行直接写入 console 的底层流（rich 没有原地覆盖单行的接口），
    穿插的消息与日志经由 console 输出。所有写入都在同一把锁下完成，
    多个线程同时调用也不会把输出搅在一起。动画字符按时间推进，
    与调用频率无关。
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        *,
        width: int = 30,
        frame_interval: float = 1.0 / 8,
        lock: Optional[threading.RLock] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.console = console if console is not None else Console(stderr=True)
        self.width = max(1, width)
        self.frame_interval = frame_interval
        self._lock = lock if lock is not None else threading.RLock()
        self._clock = clock
        # ProgressState：只在持有锁时修改
        self._current_line = ""
        self._animation_index = 0
        self._next_frame_at = float("-inf")

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def stream(self) -> TextIO:
        return self.console.file

    @property
    def current_line(self) -> str:
        with self._lock:
            return self._current_line

    def update(self, processed: int, total: int, status_text: str = "") -> None:
        with self._lock:
            if total <= 0:
                total = 1
            processed = min(max(processed, 0), total)

            line = self._render(processed, total, status_text)
            self._write_line(line)

            if processed == total:
                self.stream.write("\n")
                self._reset()
            self.stream.flush()

    @contextmanager
    def interleave(self) -> Iterator[None]:
        """持锁擦除进度行，块内输出完成后重绘。"""

        with self._lock:
            previous = self._current_line
            if previous:
                self.stream.write("\r" + " " * len(previous) + "\r")
            try:
                yield
            finally:
                if previous:
                    self.stream.write(previous)
                self.stream.flush()

    def emit(self, message: str) -> None:
        """输出一条独立的消息，随后重绘进度行。"""

        with self.interleave():
            self.console.print(message, markup=False, highlight=False, emoji=False, soft_wrap=True)

    def finish(self, text: str = "完成") -> None:
        with self._lock:
            line = self._render(self.width, self.width, text)
            self._write_line(line)
            self.stream.write("\n")
            self._reset()
            self.stream.flush()

    def _render(self, processed: int, total: int, status_text: str) -> str:
        fraction = processed / total
        blocks = int(fraction * self.width)

        now = self._clock()
        if now >= self._next_frame_at:
            self._animation_index = (self._animation_index + 1) % len(ANIMATION)
            self._next_frame_at = now + self.frame_interval

        line = f"[{'#' * blocks}{'-' * (self.width - blocks)}] {int(fraction * 100):3d}% {ANIMATION[self._animation_index]}"
        if status_text.strip():
            line = f"{line} {status_text}"
        return line

    def _write_line(self, line: str) -> None:
        padding = max(0, len(self._current_line) - len(line))
        self.stream.write("\r" + line + " " * padding)
        self._current_line = line

    def _reset(self) -> None:
        self._current_line = ""
        self._animation_index = 0
        self._next_frame_at = float("-inf")


class ProgressLogHandler(RichHandler):
    """与进度条共用 console 和锁的日志处理器。"""

    def __init__(self, reporter: ConsoleProgressReporter, level: int = logging.NOTSET) -> None:
        super().__init__(level=level, console=reporter.console, show_path=False, markup=False)
        self.reporter = reporter

    def emit(self, record: logging.LogRecord) -> None:
        with self.reporter.interleave():
            super().emit(record)
