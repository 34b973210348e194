"""文件扫描与筛选逻辑。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Collection, Iterator

from image_transcoder.core.exceptions import DirectoryAccessError
from image_transcoder.core.models import ImageJob

LOGGER = logging.getLogger(__name__)

RAW_EXTENSIONS = frozenset(
    {
        ".3fr", ".ari", ".arw", ".bay", ".crw", ".cr2", ".cr3", ".cap", ".dcs", ".dcr",
        ".dng", ".drf", ".eip", ".erf", ".fff", ".gpr", ".iiq", ".k25", ".kdc", ".mdc",
        ".mef", ".mos", ".mrw", ".nef", ".nrw", ".obm", ".orf", ".pef", ".ptx", ".pxn",
        ".r3d", ".raf", ".raw", ".rwl", ".rw2", ".rwz", ".sr2", ".srf", ".srw", ".x3f",
    }
)  # fmt: skip

IMAGE_EXTENSIONS = frozenset(
    {
        ".tif", ".tiff", ".jpg", ".jpeg", ".png", ".bmp", ".gif", ".webp",
        ".heic", ".heif", ".psd", ".psb", ".svg",
    }
) | RAW_EXTENSIONS  # fmt: skip


def _iter_top_level_files(directory: Path) -> Iterator[Path]:
    """只遍历目录第一层的文件。"""

    try:
        entries = list(directory.iterdir())
    except PermissionError as exc:
        raise DirectoryAccessError(f"无法读取源目录: {directory}") from exc

    for candidate in entries:
        if candidate.is_file():
            yield candidate


def discover(directory: Path, extensions: Collection[str] = IMAGE_EXTENSIONS) -> list[ImageJob]:
    """扫描源目录，返回扩展名在白名单中的图片任务。

    目录不存在时返回空列表；结果按文件名排序，保证同一目录快照下顺序稳定。
    """

    directory = Path(directory)
    if not directory.is_dir():
        LOGGER.warning("源目录不存在: %s", directory)
        return []

    allowed = {ext.lower() for ext in extensions}
    jobs = [
        ImageJob.from_path(candidate)
        for candidate in _iter_top_level_files(directory)
        if candidate.suffix.lower() in allowed
    ]
    jobs.sort(key=lambda job: (job.name.lower(), job.name))
    LOGGER.info("发现 %d 个候选图片文件", len(jobs))
    return jobs


def count_entries(directory: Path) -> int:
    """递归统计目录下的全部文件数量（仅用于展示）。"""

    directory = Path(directory)
    if not directory.is_dir():
        return 0
    return sum(1 for candidate in directory.rglob("*") if candidate.is_file())
