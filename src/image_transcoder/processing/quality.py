"""JPEG 质量搜索：找出满足体积上限的最高质量。"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image

from image_transcoder.core.config import DEFAULT_MAX_QUALITY, DEFAULT_MIN_QUALITY
from image_transcoder.core.exceptions import ImageEncodeError, InvalidConfigurationError

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class QualityResult:
    """搜索结果；payload 即为该质量下实际编码出的字节。"""

    quality: int
    size_bytes: int
    met_budget: bool
    payload: bytes


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    """以指定质量把图片编码为内存中的 JPEG。"""

    buffer = io.BytesIO()
    try:
        image.save(buffer, format="JPEG", quality=quality)
    except (OSError, ValueError) as exc:
        raise ImageEncodeError(f"JPEG 编码失败 (quality={quality}): {exc}") from exc
    return buffer.getvalue()


def search_quality(
    image: Image.Image,
    max_bytes: int,
    min_quality: int = DEFAULT_MIN_QUALITY,
    max_quality: int = DEFAULT_MAX_QUALITY,
) -> QualityResult:
    """从 max_quality 开始逐级递减，返回第一个体积不超过 max_bytes 的质量。

    质量与体积的关系只是近似单调，所以这里做线性扫描而不是二分，
    以保证得到的是满足上限的最高质量。扫描到 min_quality 仍超限时
    停止，返回 min_quality 及其体积，met_budget 为 False。
    """

    if max_bytes <= 0:
        raise InvalidConfigurationError("max_bytes 必须大于 0")
    if not 1 <= min_quality <= max_quality <= 100:
        raise InvalidConfigurationError(f"质量范围不合法: {min_quality}..{max_quality}")

    quality = max_quality
    while True:
        payload = encode_jpeg(image, quality)
        size = len(payload)
        if size <= max_bytes:
            LOGGER.debug("quality=%d size=%d 满足上限 %d", quality, size, max_bytes)
            return QualityResult(quality=quality, size_bytes=size, met_budget=True, payload=payload)
        if quality <= min_quality:
            LOGGER.debug("已到最低质量 %d，size=%d 仍超过上限 %d", quality, size, max_bytes)
            return QualityResult(quality=quality, size_bytes=size, met_budget=False, payload=payload)
        quality -= 1
