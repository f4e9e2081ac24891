"""基于文件内容的格式嗅探。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from PIL import Image

from jpeg_converter.core.config import SUPPORTED_FORMATS
from jpeg_converter.core.models import ImageClassification

LOGGER = logging.getLogger(__name__)

# Pillow 的格式名与项目内格式名不完全一致。
_FORMAT_ALIASES = {
    "mpo": "jpeg",
}

# Pillow 无法打开但可以按签名识别的格式。
_KNOWN_SIGNATURES = (
    (0, b"RIFF", 8, b"WEBP", "webp"),
    (4, b"ftypheic", None, None, "heic"),
    (4, b"ftypheix", None, None, "heic"),
    (4, b"ftypavif", None, None, "avif"),
    (0, b"8BPS", None, None, "psd"),
)


def normalize_format(pil_format: Optional[str]) -> Optional[str]:
    """将 Pillow 报告的格式名统一为小写项目格式名。"""

    if not pil_format:
        return None
    lowered = pil_format.lower()
    return _FORMAT_ALIASES.get(lowered, lowered)


def sniff_signature(header: bytes) -> Optional[str]:
    """根据文件头签名识别少数 Pillow 未注册解码器的格式。"""

    for offset, magic, second_offset, second_magic, name in _KNOWN_SIGNATURES:
        if header[offset : offset + len(magic)] != magic:
            continue
        if second_magic is not None and header[second_offset : second_offset + len(second_magic)] != second_magic:
            continue
        return name
    return None


def classify_format(image_format: Optional[str]) -> ImageClassification:
    if image_format is None:
        return ImageClassification.not_an_image()
    if image_format in SUPPORTED_FORMATS:
        return ImageClassification.supported(image_format)
    return ImageClassification.unsupported(image_format)


def classify_image(path: Path) -> ImageClassification:
    """只读取文件头判断图片格式，不做完整解码。

    打开或读取文件失败（权限、I/O）时原样抛出 OSError，由调用方决定如何处理；
    文件头损坏只影响分类结果，交由转换阶段按单个文件报告。
    """

    with path.open("rb") as handle:
        header = handle.read(16)
        handle.seek(0)
        try:
            with Image.open(handle) as img:
                return classify_format(normalize_format(img.format))
        except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
            LOGGER.debug("Pillow 无法识别 %s: %s", path, exc)

    detected = sniff_signature(header)
    LOGGER.debug("签名识别结果 %s: %s", path, detected)
    if detected is None:
        return ImageClassification.not_an_image()
    return ImageClassification.unsupported(detected)
