"""文件扫描与分类逻辑。"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator

from jpeg_converter.core.exceptions import TraversalError
from jpeg_converter.core.models import SourceImage
from jpeg_converter.processing.sniffing import classify_image

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".webp")


def is_image_name(name: str) -> bool:
    """按扩展名（忽略大小写）判断是否为候选图片。"""

    return name.lower().endswith(IMAGE_EXTENSIONS)


def _raise_traversal_error(exc: OSError) -> None:
    raise TraversalError(f"无法访问路径: {exc.filename}: {exc.strerror or exc}") from exc


def iter_image_files(root: Path) -> Iterator[Path]:
    """深度优先遍历 root，逐个产出扩展名匹配的文件。

    任何访问错误都会以 TraversalError 中止遍历。
    """

    if not root.is_dir():
        raise TraversalError(f"输入目录不存在或不是文件夹: {root}")

    for dirpath, _dirnames, filenames in os.walk(root, onerror=_raise_traversal_error):
        for name in filenames:
            if is_image_name(name):
                yield Path(dirpath) / name


def collect_source_images(root: Path) -> list[SourceImage]:
    """扫描目录并返回带内容分类的候选图片列表。

    遍历失败时不返回部分结果，直接抛出 TraversalError。
    """

    resolved_root = root.resolve()
    collected: list[SourceImage] = []

    for candidate in iter_image_files(resolved_root):
        try:
            classification = classify_image(candidate)
        except OSError as exc:
            raise TraversalError(f"无法读取文件: {candidate}") from exc

        collected.append(
            SourceImage(
                source_path=candidate,
                root=resolved_root,
                relative_path=candidate.relative_to(resolved_root),
                classification=classification,
            )
        )

    collected.sort(key=lambda x: str(x.source_path).lower())
    LOGGER.debug("扫描 %s 完成，共 %d 个候选文件", resolved_root, len(collected))
    return collected
