"""转码任务的配置模型。"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from image_transcoder.core.exceptions import InvalidConfigurationError

MEBIBYTE = 1024 * 1024
DEFAULT_MAX_BYTES = int(7.5 * MEBIBYTE)
DEFAULT_MAX_DIMENSION = 7500
DEFAULT_MIN_QUALITY = 50
DEFAULT_MAX_QUALITY = 100


def default_worker_count() -> int:
    """默认并发数：主机可用的 CPU 数量。"""

    return os.cpu_count() or 1


@dataclass(slots=True)
class TranscodeSettings:
    """单次批处理的尺寸、体积与并发配置。"""

    max_bytes: int = DEFAULT_MAX_BYTES
    max_dimension: int = DEFAULT_MAX_DIMENSION
    min_quality: int = DEFAULT_MIN_QUALITY
    max_quality: int = DEFAULT_MAX_QUALITY
    max_workers: int = 0  # 0 表示使用 default_worker_count()
    verify: bool = False
    report_filename: Optional[str] = None

    def __post_init__(self) -> None:
        if self.max_workers <= 0:
            self.max_workers = default_worker_count()

    def validate(self) -> None:
        """检查配置取值，不合法时抛出 InvalidConfigurationError。"""

        if self.max_bytes <= 0:
            raise InvalidConfigurationError("max_bytes 必须大于 0")
        if self.max_dimension <= 0:
            raise InvalidConfigurationError("max_dimension 必须大于 0")
        if not 1 <= self.min_quality <= self.max_quality <= 100:
            raise InvalidConfigurationError(
                f"质量范围不合法: min={self.min_quality}, max={self.max_quality}（需满足 1 <= min <= max <= 100）"
            )


@dataclass(slots=True)
class ProgressConfig:
    """进度条显示配置。"""

    width: int = 30
    frame_interval: float = 1.0 / 8
