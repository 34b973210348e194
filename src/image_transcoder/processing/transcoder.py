"""单个文件的转码流程（在工作进程中执行）。"""

from __future__ import annotations

import logging
from typing import Optional

from PIL import Image

from image_transcoder.core.config import TranscodeSettings
from image_transcoder.core.models import ImageJob, TranscodeOutcome
from image_transcoder.core.output_manager import copy_original, discard_partial, write_payload
from image_transcoder.processing.image_loader import auto_orient, load_image, to_jpeg_mode
from image_transcoder.processing.quality import search_quality
from image_transcoder.processing.validation import verify_output

LOGGER = logging.getLogger(__name__)

_RESAMPLING = getattr(Image, "Resampling", Image)

JPEG_EXTENSIONS = {".jpg", ".jpeg"}


def transcode(job: ImageJob, settings: TranscodeSettings) -> TranscodeOutcome:
    """转码单个文件；任何异常都转换为 Failure 并清理本任务写出的文件。

    工作进程内不输出警告日志，需要提示的内容都放在返回的结果里，
    由协调线程统一输出。
    """

    if job.destination is None or job.staging_path is None:
        raise ValueError(f"任务未绑定输出路径: {job.source_path}")

    image: Optional[Image.Image] = None
    # 目标文件可能属于同名的另一个任务，只有本任务写过才允许删除
    written = False
    try:
        image = load_image(job.source_path)
        image = _replace(image, auto_orient(image))

        if _can_copy_verbatim(job, image, settings):
            copy_original(job.source_path, job.destination, job.staging_path)
            written = True
            LOGGER.debug("原样复制：%s", job.name)
            return TranscodeOutcome.success(job, copied=True, size_bytes=job.source_path.stat().st_size)

        image = _replace(image, to_jpeg_mode(image))

        if image.width > settings.max_dimension or image.height > settings.max_dimension:
            # thumbnail 自身保持宽高比，两边上限都取 max_dimension
            image.thumbnail((settings.max_dimension, settings.max_dimension), _RESAMPLING.LANCZOS)

        result = search_quality(image, settings.max_bytes, settings.min_quality, settings.max_quality)
        write_payload(result.payload, job.destination, job.staging_path)
        written = True

        details = {"quality": result.quality, "size_bytes": result.size_bytes}
        if settings.verify:
            details.update(_verify(image, job))

        if result.met_budget:
            return TranscodeOutcome.success(job, **details)

        message = (
            f"{job.name}: 最低质量 {result.quality} 下仍超出体积上限 "
            f"{format_size(settings.max_bytes)}（实际 {format_size(result.size_bytes)}）"
        )
        return TranscodeOutcome.warning(job, message, **details)
    except Exception as exc:  # noqa: BLE001
        discard_partial(job.staging_path)
        if written:
            discard_partial(job.destination)
        LOGGER.debug("转码失败 %s", job.source_path, exc_info=exc)
        return TranscodeOutcome.failure(job, str(exc) or exc.__class__.__name__)
    finally:
        if image is not None:
            image.close()


def format_size(num_bytes: int) -> str:
    return f"{num_bytes / (1024 * 1024):.2f} MB"


def _can_copy_verbatim(job: ImageJob, image: Image.Image, settings: TranscodeSettings) -> bool:
    """源文件已是 JPEG 且体积、尺寸都达标时无需重新编码。"""

    if job.extension not in JPEG_EXTENSIONS:
        return False
    if job.source_path.stat().st_size > settings.max_bytes:
        return False
    return image.width <= settings.max_dimension and image.height <= settings.max_dimension


def _replace(current: Image.Image, new: Image.Image) -> Image.Image:
    if new is not current:
        current.close()
    return new


def _verify(image: Image.Image, job: ImageJob) -> dict:
    """校验只是附加信息：出错时保留已写出的文件，只记录原因。"""

    if job.destination is None:
        raise ValueError(f"任务未绑定输出路径: {job.source_path}")
    try:
        verification = verify_output(image, job.destination)
    except Exception as exc:  # noqa: BLE001
        LOGGER.debug("校验输出失败 %s", job.destination, exc_info=exc)
        return {"verify_error": f"{job.name}: 校验失败 ({str(exc) or exc.__class__.__name__})"}
    return {"phash_distance": verification.phash_distance, "ssim": verification.ssim}
