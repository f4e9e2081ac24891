"""转换前后图像相似度指标。"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np
from PIL import Image


@dataclass(slots=True)
class FidelityMetrics:
    """原图与 JPEG 输出之间的 pHash 距离与 SSIM。"""

    phash_distance: float
    ssim: float

    def describe(self) -> str:
        return f"validation: phash={int(round(self.phash_distance))}, ssim={self.ssim:.4f}"


def measure_fidelity(original: Image.Image, output_path: Path) -> FidelityMetrics:
    """重新读取写入的 JPEG，与内存中的原图比较。"""

    with Image.open(output_path) as converted:
        converted.load()
        return FidelityMetrics(
            phash_distance=compute_phash_distance(original, converted),
            ssim=compute_ssim(original, converted),
        )


def compute_phash_distance(original: Image.Image, converted: Image.Image) -> float:
    """两张图片 64 位感知哈希的汉明距离。"""

    return float(np.count_nonzero(_phash(original) != _phash(converted)))


def compute_ssim(original: Image.Image, converted: Image.Image) -> float:
    """全局（单窗口）结构相似度，结果限制在 [-1, 1]。"""

    size = converted.size
    if size[0] <= 0 or size[1] <= 0:
        return 0.0

    a = _gray(original, size)
    b = _gray(converted, size)

    mu_a, mu_b = a.mean(), b.mean()
    var_a = ((a - mu_a) ** 2).mean()
    var_b = ((b - mu_b) ** 2).mean()
    cov = ((a - mu_a) * (b - mu_b)).mean()

    c1 = (0.01 * 255) ** 2
    c2 = (0.03 * 255) ** 2

    denominator = (mu_a**2 + mu_b**2 + c1) * (var_a + var_b + c2)
    if denominator == 0:
        return 0.0
    value = (2 * mu_a * mu_b + c1) * (2 * cov + c2) / denominator
    return float(np.clip(value, -1.0, 1.0))


def _phash(image: Image.Image) -> np.ndarray:
    low_freq = cv2.dct(_gray(image, (32, 32)))[:8, :8]
    return low_freq > np.median(low_freq[1:, 1:])


def _gray(image: Image.Image, size: tuple[int, int]) -> np.ndarray:
    resized = image.convert("L").resize(size, Image.Resampling.LANCZOS)
    return np.asarray(resized, dtype=np.float32)
