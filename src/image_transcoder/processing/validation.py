"""输出校验指标：比较编码前的图像与写入磁盘的 JPEG。"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np
from PIL import Image

# SSIM 常数，对应 8 位灰度的动态范围
_C1 = (0.01 * 255) ** 2
_C2 = (0.03 * 255) ** 2
_WINDOW = (11, 11)
_SIGMA = 1.5

HASH_SIZE = 8
_DCT_SIZE = 32


@dataclass(slots=True)
class VerificationResult:
    phash_distance: int
    ssim: float


def verify_output(reference: Image.Image, written: Path) -> VerificationResult:
    """重新读取写出的文件，与编码前的图像比较。"""

    with Image.open(written) as output:
        decoded = _gray(output)
    expected = _gray(reference)
    if expected.shape != decoded.shape:
        expected = cv2.resize(expected, (decoded.shape[1], decoded.shape[0]), interpolation=cv2.INTER_AREA)

    return VerificationResult(
        phash_distance=int(np.count_nonzero(perceptual_hash(expected) != perceptual_hash(decoded))),
        ssim=structural_similarity(expected, decoded),
    )


def structural_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """高斯窗口下的平均 SSIM。"""

    if a.size == 0:
        return 0.0

    mu_a, mu_b = _blur(a), _blur(b)
    var_a = _blur(a * a) - mu_a * mu_a
    var_b = _blur(b * b) - mu_b * mu_b
    cov = _blur(a * b) - mu_a * mu_b

    ssim_map = ((2 * mu_a * mu_b + _C1) * (2 * cov + _C2)) / ((mu_a**2 + mu_b**2 + _C1) * (var_a + var_b + _C2))
    return float(np.clip(ssim_map.mean(), -1.0, 1.0))


def perceptual_hash(gray: np.ndarray) -> np.ndarray:
    """DCT 低频系数与其中位数比较得到的 64 位指纹。"""

    small = cv2.resize(gray, (_DCT_SIZE, _DCT_SIZE), interpolation=cv2.INTER_AREA)
    low = cv2.dct(small)[:HASH_SIZE, :HASH_SIZE]
    # 直流分量只反映整体亮度，不参与中位数
    return (low > np.median(low.flatten()[1:])).flatten()


def _gray(image: Image.Image) -> np.ndarray:
    return np.asarray(image.convert("L"), dtype=np.float64)


def _blur(array: np.ndarray) -> np.ndarray:
    return cv2.GaussianBlur(array, _WINDOW, _SIGMA)
