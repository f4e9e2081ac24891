"""项目内使用的自定义异常定义。"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class JpegConverterError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(JpegConverterError):
    """配置不合法时抛出。"""


class TraversalError(JpegConverterError):
    """扫描目录时访问失败，整个任务随之终止。"""


class ConversionError(JpegConverterError):
    """单个文件转换失败，批处理会继续处理下一个文件。"""

    status = "error"

    def __init__(self, message: str, path: Path) -> None:
        super().__init__(message)
        self.path = path


class ImageOpenError(ConversionError):
    status = "error-open"


class DecodeError(ConversionError):
    status = "error-decode"


class UnsupportedFormatError(ConversionError):
    status = "error-format"

    def __init__(self, message: str, path: Path, image_format: Optional[str]) -> None:
        super().__init__(message, path)
        self.image_format = image_format


class OutputWriteError(ConversionError):
    status = "error-output"


class EncodeError(ConversionError):
    status = "error-encode"


class DeleteError(ConversionError):
    """原图删除失败，输出文件已保留，只需重试删除。"""

    status = "error-delete"

    def __init__(self, message: str, path: Path, output_path: Path) -> None:
        super().__init__(message, path)
        self.output_path = output_path


class AssetDownloadError(JpegConverterError):
    """远程素材下载失败。"""
