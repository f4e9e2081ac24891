"""输出目录与命名冲突处理模块。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import count
from pathlib import Path
from typing import Optional, Set

from jpeg_converter.core.config import OutputConfig
from jpeg_converter.core.exceptions import InvalidConfigurationError
from jpeg_converter.core.models import SourceImage
from jpeg_converter.processing.converter import ensure_output_dir, output_path_for

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DestinationDecision:
    """封装输出文件决策。"""

    destination: Optional[Path]
    action: str  # write | overwrite | skip | rename
    note: Optional[str] = None


class OutputManager:
    """负责输出目录的创建与输出路径的冲突决策。

    目录只在构造时创建一次，之后所有工作进程共享该目录。
    """

    def __init__(self, config: OutputConfig) -> None:
        self.config = config
        self.output_dir = ensure_output_dir(config.output_dir).resolve()

    def decide_destination(
        self,
        source: SourceImage,
        reserved_paths: Optional[Set[Path]] = None,
    ) -> DestinationDecision:
        """根据冲突策略确定输出路径。

        reserved_paths 记录本批次中已分配给其他输入的输出路径。
        """

        reserved = reserved_paths if reserved_paths is not None else set()
        destination = output_path_for(source.source_path, self.output_dir)
        taken_by_batch = destination in reserved
        exists_on_disk = destination.exists() and not self._is_own_source(source, destination)

        if not taken_by_batch and not exists_on_disk:
            reserved.add(destination)
            return DestinationDecision(destination=destination, action="write")

        strategy = self.config.conflict_strategy
        existing_msg = f"目标已存在: {destination.name}"

        if strategy == "overwrite":
            reserved.add(destination)
            return DestinationDecision(destination=destination, action="overwrite", note=existing_msg)
        if strategy == "skip":
            return DestinationDecision(destination=destination, action="skip", note=existing_msg)
        if strategy == "rename":
            new_destination = self._generate_renamed_path(destination, reserved)
            reserved.add(new_destination)
            return DestinationDecision(
                destination=new_destination,
                action="rename",
                note=f"{existing_msg} -> 重命名为 {new_destination.name}",
            )

        raise InvalidConfigurationError(f"未知的冲突策略: {strategy}")

    @staticmethod
    def _is_own_source(source: SourceImage, destination: Path) -> bool:
        # 输入已经是输出目录中的 <stem>.jpg 时，转换结果会原地替换它。
        return source.source_path.resolve() == destination.resolve()

    @staticmethod
    def _generate_renamed_path(destination: Path, reserved: Set[Path]) -> Path:
        stem = destination.stem
        suffix = destination.suffix

        for idx in count(1):
            candidate = destination.with_name(f"{stem}_{idx}{suffix}")
            if candidate not in reserved and not candidate.exists():
                return candidate

        # 理论上不会执行到此处
        return destination
