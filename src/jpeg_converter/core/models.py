"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

SUPPORTED = "supported"
UNSUPPORTED = "unsupported"
NOT_AN_IMAGE = "not-image"


@dataclass(frozen=True, slots=True)
class ImageClassification:
    """按文件内容嗅探得到的分类：supported / unsupported / not-image。"""

    kind: str
    image_format: Optional[str] = None

    @classmethod
    def supported(cls, image_format: str) -> "ImageClassification":
        return cls(SUPPORTED, image_format)

    @classmethod
    def unsupported(cls, image_format: Optional[str]) -> "ImageClassification":
        return cls(UNSUPPORTED, image_format)

    @classmethod
    def not_an_image(cls) -> "ImageClassification":
        return cls(NOT_AN_IMAGE)

    @property
    def is_supported(self) -> bool:
        return self.kind == SUPPORTED


@dataclass(slots=True)
class SourceImage:
    """扫描阶段得到的候选图片信息。"""

    source_path: Path
    root: Path
    relative_path: Path
    classification: ImageClassification


@dataclass(slots=True)
class FileOutcome:
    """记录单个文件的处理结果（用于报告/日志）。"""

    source_path: Path
    status: str
    output_path: Optional[Path] = None
    source_format: Optional[str] = None
    message: Optional[str] = None
    phash_distance: Optional[float] = None
    ssim: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.status.startswith("converted")


@dataclass(slots=True)
class BatchResult:
    """批处理的汇总结果。"""

    succeeded: list[FileOutcome]
    skipped: list[FileOutcome]
    failed: list[FileOutcome]

    def all_outcomes(self) -> list[FileOutcome]:
        """返回所有结果记录，方便生成报告。"""

        return [*self.succeeded, *self.skipped, *self.failed]

    def counts(self) -> dict[str, int]:
        return {
            "succeeded": len(self.succeeded),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
        }
