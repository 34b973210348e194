"""会话输出目录与文件写入模块。"""

from __future__ import annotations

import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional

from image_transcoder.core.exceptions import DirectoryAccessError, ImageEncodeError
from image_transcoder.core.models import ImageJob

LOGGER = logging.getLogger(__name__)

SESSION_DIR_FORMAT = "%Y-%m-%d_%H-%M-%S"


class OutputManager:
    """负责会话输出目录：以批次开始时间命名，只创建一次。"""

    def __init__(self, output_root: Path, started_at: Optional[datetime] = None) -> None:
        self.output_root = Path(output_root).resolve()
        self.started_at = started_at or datetime.now()
        self.session_dir = self.output_root / self.started_at.strftime(SESSION_DIR_FORMAT)

    def prepare(self) -> Path:
        """创建会话目录；无法创建时整个批次终止。"""

        try:
            self.session_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DirectoryAccessError(f"无法创建输出目录: {self.session_dir} ({exc})") from exc
        LOGGER.info("输出目录：%s", self.session_dir)
        return self.session_dir

    def assign(self, jobs: list[ImageJob]) -> list[ImageJob]:
        """为每个任务绑定会话目录中的目标路径。"""

        bound = [job.bind(self.session_dir) for job in jobs]
        seen: dict[Path, str] = {}
        for job in bound:
            if job.destination is None:
                raise ValueError(f"任务未绑定输出路径: {job.source_path}")
            previous = seen.setdefault(job.destination, job.name)
            if previous != job.name:
                # 同名不同扩展名：后写入者覆盖先写入者。
                LOGGER.warning("输出文件名冲突：%s 与 %s 都将写入 %s", previous, job.name, job.destination.name)
        return bound


def write_payload(payload: bytes, destination: Path, staging: Path) -> None:
    """先写入临时文件，再整体替换目标文件。"""

    try:
        staging.write_bytes(payload)
        os.replace(staging, destination)
    except OSError as exc:
        discard_partial(staging)
        raise ImageEncodeError(f"写入文件失败: {destination} ({exc})") from exc


def copy_original(source: Path, destination: Path, staging: Path) -> None:
    """逐字节复制源文件，同样经由临时文件落盘。"""

    try:
        shutil.copyfile(source, staging)
        os.replace(staging, destination)
    except OSError as exc:
        discard_partial(staging)
        raise ImageEncodeError(f"复制文件失败: {source} -> {destination} ({exc})") from exc


def discard_partial(path: Optional[Path]) -> None:
    """删除失败任务留下的文件；删除本身失败时只记录日志。"""

    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        LOGGER.debug("清理输出失败 %s: %s", path, exc)
