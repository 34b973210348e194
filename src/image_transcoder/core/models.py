"""核心数据模型定义。"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional

OUTPUT_SUFFIX = ".jpg"


@dataclass(frozen=True)
class ImageJob:
    """扫描阶段得到的单个待转码文件。"""

    source_path: Path
    extension: str
    destination: Optional[Path] = None

    @classmethod
    def from_path(cls, path: Path) -> "ImageJob":
        resolved = path.resolve()
        return cls(source_path=resolved, extension=resolved.suffix.lower())

    @property
    def name(self) -> str:
        return self.source_path.name

    @property
    def staging_path(self) -> Optional[Path]:
        """写入过程中使用的临时文件，按源文件名区分，同名冲突的任务互不干扰。"""

        if self.destination is None:
            return None
        return self.destination.with_name(f".{self.source_path.name}.part")

    def bind(self, session_dir: Path) -> "ImageJob":
        """返回目标路径落在会话目录中的新任务。"""

        return replace(self, destination=session_dir / f"{self.source_path.stem}{OUTPUT_SUFFIX}")


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    SUCCESS_WITH_WARNING = "warning"
    FAILURE = "failure"


@dataclass(slots=True)
class TranscodeOutcome:
    """记录单个文件的处理结果（用于汇总/报告）。"""

    source_path: Path
    status: OutcomeStatus
    output_path: Optional[Path] = None
    message: Optional[str] = None
    quality: Optional[int] = None
    size_bytes: Optional[int] = None
    copied: bool = False
    phash_distance: Optional[int] = None
    ssim: Optional[float] = None
    verify_error: Optional[str] = None

    @classmethod
    def success(cls, job: ImageJob, **details) -> "TranscodeOutcome":
        return cls(source_path=job.source_path, status=OutcomeStatus.SUCCESS, output_path=job.destination, **details)

    @classmethod
    def warning(cls, job: ImageJob, message: str, **details) -> "TranscodeOutcome":
        return cls(
            source_path=job.source_path,
            status=OutcomeStatus.SUCCESS_WITH_WARNING,
            output_path=job.destination,
            message=message,
            **details,
        )

    @classmethod
    def failure(cls, job: ImageJob, error: str) -> "TranscodeOutcome":
        return cls(
            source_path=job.source_path,
            status=OutcomeStatus.FAILURE,
            message=f"{job.name}: {error}",
        )

    @property
    def succeeded(self) -> bool:
        return self.status is not OutcomeStatus.FAILURE


@dataclass(frozen=True, slots=True)
class CounterSnapshot:
    total: int
    processed: int
    succeeded: int
    failed: int


@dataclass(slots=True)
class BatchCounters:
    """批次内共享的计数器，所有字段在同一把锁下更新。"""

    total: int
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, outcome: TranscodeOutcome) -> CounterSnapshot:
        """登记一个已完成的任务并返回更新后的快照。"""

        with self._lock:
            if self.processed >= self.total:
                raise RuntimeError(f"已处理数量超出总数: {self.processed}/{self.total}")
            self.processed += 1
            if outcome.succeeded:
                self.succeeded += 1
            else:
                self.failed += 1
            return self._snapshot()

    def snapshot(self) -> CounterSnapshot:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> CounterSnapshot:
        return CounterSnapshot(
            total=self.total,
            processed=self.processed,
            succeeded=self.succeeded,
            failed=self.failed,
        )


@dataclass(slots=True)
class BatchSummary:
    """批处理的最终结果。"""

    total: int
    processed: int
    succeeded: int
    failed: int
    output_dir: Optional[Path]
    outcomes: list[TranscodeOutcome] = field(default_factory=list)

    @property
    def warnings(self) -> list[TranscodeOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.SUCCESS_WITH_WARNING]

    @property
    def failures(self) -> list[TranscodeOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.FAILURE]
