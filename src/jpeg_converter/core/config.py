"""转换任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from PIL import ImageColor

from jpeg_converter.core.exceptions import InvalidConfigurationError

# 输出质量固定，不对外开放配置。
JPEG_QUALITY = 90

SUPPORTED_FORMATS = ("jpeg", "png", "gif", "bmp", "tiff")
CONFLICT_STRATEGIES = ("overwrite", "skip", "rename")


@dataclass(slots=True)
class OutputConfig:
    """输出目录与冲突策略配置。"""

    output_dir: Path = Path("./converted")
    conflict_strategy: str = "overwrite"  # overwrite | skip | rename


@dataclass(slots=True)
class ValidationConfig:
    """转换后相似度校验配置。"""

    enabled: bool = False


@dataclass(slots=True)
class CloudinaryConfig:
    """Cloudinary 账号与分页参数。"""

    cloud_name: str
    api_key: str
    api_secret: str
    page_size: int = 5
    max_assets: int = 200
    timeout: float = 15.0


@dataclass(slots=True)
class RemoteConfig:
    """远程素材下载配置，默认关闭。"""

    enabled: bool = False
    cloudinary: Optional[CloudinaryConfig] = None
    download_dir: Optional[Path] = None


@dataclass(slots=True)
class JobConfig:
    """单次批量转换任务的配置集合。

    启动时构造一次，之后显式传递给扫描、转换与远程下载模块。
    """

    root_folder: Path
    output: OutputConfig = field(default_factory=OutputConfig)
    input_subdir: str = "subidas"
    convert_formats: Sequence[str] = ("png",)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    max_workers: int = 1
    flatten_background: str = "#FFFFFF"
    report_filename: str = "report.csv"

    @property
    def input_dir(self) -> Path:
        return self.root_folder / self.input_subdir

    @property
    def asset_dir(self) -> Path:
        """远程素材的落盘目录，未指定时与原始工具一致，使用根目录。"""

        return self.remote.download_dir or self.root_folder

    def validate(self) -> None:
        """检查配置组合是否合法。"""

        if self.output.conflict_strategy not in CONFLICT_STRATEGIES:
            raise InvalidConfigurationError(f"未知的冲突策略: {self.output.conflict_strategy}")
        if self.max_workers < 1:
            raise InvalidConfigurationError(f"并发数量必须大于 0: {self.max_workers}")
        if not self.convert_formats:
            raise InvalidConfigurationError("至少需要指定一种待转换格式")
        for fmt in self.convert_formats:
            if fmt.lower() not in SUPPORTED_FORMATS:
                raise InvalidConfigurationError(f"不支持的待转换格式: {fmt}")
        try:
            ImageColor.getrgb(self.flatten_background)
        except ValueError as exc:
            raise InvalidConfigurationError(f"无法解析颜色值: {self.flatten_background}") from exc
        if self.remote.enabled and not _has_credentials(self.remote.cloudinary):
            raise InvalidConfigurationError("已启用远程下载，但缺少 Cloudinary 凭据")


def _has_credentials(config: Optional[CloudinaryConfig]) -> bool:
    if config is None:
        return False
    return bool(config.cloud_name and config.api_key and config.api_secret)
