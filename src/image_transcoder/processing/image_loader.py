"""图片解码、方向校正与颜色模式归一化。"""

from __future__ import annotations

import logging
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from image_transcoder.core.exceptions import ImageDecodeError

LOGGER = logging.getLogger(__name__)

register_heif_opener()

JPEG_COMPATIBLE_MODES = {"RGB", "L"}


def load_image(path: Path) -> Image.Image:
    """完整解码单张图片。

    返回值为新的 Image 对象，调用者负责关闭。
    """

    try:
        with Image.open(path) as img:
            img.load()
            return img.copy()
    except Image.DecompressionBombError as exc:
        # 保留 Pillow 的像素上限，超大图片只让当前任务失败
        raise ImageDecodeError(f"图像像素过多，拒绝解码: {exc}") from exc
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        LOGGER.debug("无法识别图像文件 %s: %s", path, exc)
        raise ImageDecodeError(f"无法加载图像: {exc}") from exc


def auto_orient(image: Image.Image) -> Image.Image:
    """按 EXIF Orientation 旋转图片，使宽高与视觉方向一致。"""

    return ImageOps.exif_transpose(image)


def to_jpeg_mode(img: Image.Image) -> Image.Image:
    """将任意模式图像转换为 JPEG 可写入的模式。"""

    if img.mode in {"RGBA", "LA"} or (img.mode == "P" and "transparency" in img.info):
        # 去掉 Alpha，通过白色背景混合生成 RGB。
        rgba = img.convert("RGBA")
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        return background

    if img.mode in JPEG_COMPATIBLE_MODES:
        return img

    return img.convert("RGB")
