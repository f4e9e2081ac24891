"""单张图片的 JPEG 转换引擎：解码、格式校验、编码、原子替换与删除原图。"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image, ImageColor, UnidentifiedImageError

from jpeg_converter.core.config import JPEG_QUALITY, SUPPORTED_FORMATS
from jpeg_converter.core.exceptions import (
    DecodeError,
    DeleteError,
    EncodeError,
    ImageOpenError,
    OutputWriteError,
    UnsupportedFormatError,
)
from jpeg_converter.processing.sniffing import normalize_format, sniff_signature

LOGGER = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"

Color = Union[str, Tuple[int, int, int]]


@dataclass(slots=True)
class DecodedImage:
    """解码后的像素数据及其检测到的格式，仅在一次转换内存活。"""

    image: Image.Image
    image_format: str

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size

    def close(self) -> None:
        self.image.close()


def ensure_output_dir(path: Path) -> Path:
    """创建输出目录（已存在时不做任何修改）。"""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputWriteError(f"无法创建输出目录: {path}", path) from exc
    return path


def output_path_for(source: Path, output_dir: Path) -> Path:
    """输出文件名为原文件名去掉扩展名后加 .jpg。"""

    return output_dir / f"{source.stem}.jpg"


def decode_image(path: Path) -> DecodedImage:
    """按内容嗅探格式并完整解码图片。

    返回值中的 Image 为独立副本，调用者负责关闭。
    """

    try:
        handle = path.open("rb")
    except OSError as exc:
        raise ImageOpenError(f"无法打开文件: {path}", path) from exc

    with handle:
        try:
            img = Image.open(handle)
        except UnidentifiedImageError as exc:
            handle.seek(0)
            detected = sniff_signature(handle.read(16))
            if detected is not None:
                raise UnsupportedFormatError(f"不支持的图片格式: {detected}", path, detected) from exc
            raise DecodeError(f"无法识别图像文件: {path}", path) from exc
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise DecodeError(f"无法解码图像文件: {path}", path) from exc

        with img:
            image_format = normalize_format(img.format)
            if image_format not in SUPPORTED_FORMATS:
                raise UnsupportedFormatError(f"不支持的图片格式: {image_format}", path, image_format)

            try:
                # 多帧图片（GIF/TIFF）只取第一帧。
                img.seek(0)
                img.load()
                decoded = img.copy()
            except (OSError, ValueError, EOFError, SyntaxError) as exc:
                LOGGER.debug("解码失败 %s: %s", path, exc)
                raise DecodeError(f"无法解码图像文件: {path}: {exc}", path) from exc

    return DecodedImage(image=decoded, image_format=image_format)


def prepare_for_jpeg(image: Image.Image, background: Color = "#FFFFFF") -> Image.Image:
    """将任意模式图像转换为 JPEG 可写入的模式。

    带透明通道的图像与背景色混合；灰度图保持 L 模式。
    """

    if image.mode in {"RGB", "L"}:
        return image

    if image.mode == "P" and "transparency" in image.info:
        image = image.convert("RGBA")

    if image.mode in {"RGBA", "LA", "PA"}:
        fill = ImageColor.getrgb(background) if isinstance(background, str) else background
        canvas = Image.new("RGB", image.size, fill[:3])
        rgba = image.convert("RGBA")
        canvas.paste(rgba, mask=rgba.split()[-1])
        return canvas

    if image.mode in {"I;16", "I;16B", "I;16L", "I"}:
        # 16 位灰度先缩放到 8 位，避免直接截断。
        return image.convert("I").point(lambda value: value * (1 / 256)).convert("L")

    return image.convert("RGB")


def write_jpeg(image: Image.Image, destination: Path, source: Optional[Path] = None) -> Path:
    """先写入 <destination>.tmp，成功后原子替换为目标文件。"""

    owner = source or destination
    temp_path = destination.with_name(destination.name + TEMP_SUFFIX)

    try:
        handle = temp_path.open("wb")
    except OSError as exc:
        raise OutputWriteError(f"无法创建输出文件: {temp_path}", owner) from exc

    try:
        with handle:
            image.save(handle, format="JPEG", quality=JPEG_QUALITY)
    except (OSError, ValueError) as exc:
        _discard(temp_path)
        raise EncodeError(f"JPEG 编码失败: {destination}: {exc}", owner) from exc

    try:
        os.replace(temp_path, destination)
    except OSError as exc:
        _discard(temp_path)
        raise OutputWriteError(f"无法写入输出文件: {destination}", owner) from exc

    return destination


def remove_source(source: Path, output_path: Path) -> None:
    """删除原图；失败时输出文件保留，可单独重试本步骤。"""

    if _same_file(source, output_path):
        # 输出已经原子替换了原文件，再删除会丢失结果。
        return
    try:
        source.unlink()
    except OSError as exc:
        raise DeleteError(f"无法删除原文件: {source}", source, output_path) from exc


def convert_to_jpeg(
    source: Path,
    output_dir: Path,
    destination: Optional[Path] = None,
    background: Color = "#FFFFFF",
) -> Path:
    """将单个文件转换为 JPEG 并删除原文件，返回输出路径。"""

    destination = destination or output_path_for(source, output_dir)
    decoded = decode_image(source)
    try:
        prepared = prepare_for_jpeg(decoded.image, background)
        write_jpeg(prepared, destination, source=source)
    finally:
        decoded.close()

    remove_source(source, destination)
    LOGGER.debug("已转换 %s -> %s", source, destination)
    return destination


def _same_file(a: Path, b: Path) -> bool:
    try:
        return a.resolve() == b.resolve()
    except OSError:
        return False


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        LOGGER.warning("无法清理临时文件 %s: %s", path, exc)
