"""并发处理的工作单元。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from PIL import Image

from jpeg_converter.core.exceptions import ConversionError, DeleteError
from jpeg_converter.core.models import FileOutcome
from jpeg_converter.processing.converter import decode_image, prepare_for_jpeg, remove_source, write_jpeg
from jpeg_converter.processing.validation import FidelityMetrics, measure_fidelity

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ProcessingTask:
    """描述单个文件的转换任务。"""

    source_path: Path
    dest_path: Path
    decision_action: str
    decision_note: Optional[str]
    source_format: Optional[str]
    background: str = "#FFFFFF"
    validate: bool = False


def run_task(task: ProcessingTask) -> FileOutcome:
    """在工作进程中执行解码、编码、校验与删除原图。"""

    metrics: Optional[FidelityMetrics] = None
    try:
        decoded = decode_image(task.source_path)
        try:
            write_jpeg(prepare_for_jpeg(decoded.image, task.background), task.dest_path, source=task.source_path)
            if task.validate:
                metrics = _measure(decoded.image, task.dest_path)
        finally:
            decoded.close()
        remove_source(task.source_path, task.dest_path)
    except DeleteError as exc:
        LOGGER.error("删除原文件失败（输出已保留）：%s", exc)
        return FileOutcome(
            source_path=task.source_path,
            status=exc.status,
            output_path=exc.output_path,
            source_format=task.source_format,
            message=str(exc),
        )
    except ConversionError as exc:
        LOGGER.error("转换失败：%s", exc)
        return FileOutcome(
            source_path=task.source_path,
            status=exc.status,
            source_format=getattr(exc, "image_format", None) or task.source_format,
            message=str(exc),
        )

    status = "converted"
    if task.decision_action == "overwrite":
        status = "converted-overwrite"
    elif task.decision_action == "rename":
        status = "converted-rename"

    LOGGER.info("已转换：%s -> %s", task.source_path, task.dest_path)
    return FileOutcome(
        source_path=task.source_path,
        status=status,
        output_path=task.dest_path,
        source_format=decoded.image_format,
        message=_compose_note(task.decision_note, metrics),
        phash_distance=metrics.phash_distance if metrics else None,
        ssim=metrics.ssim if metrics else None,
    )


def run_task_group(tasks: Sequence[ProcessingTask]) -> list[FileOutcome]:
    """按顺序执行共享同一输出路径的一组任务，保证不会并发写同一文件。"""

    return [run_task(task) for task in tasks]


def _measure(original: Image.Image, dest_path: Path) -> Optional[FidelityMetrics]:
    try:
        return measure_fidelity(original, dest_path)
    except OSError as exc:
        LOGGER.warning("相似度校验失败 %s: %s", dest_path, exc)
        return None


def _compose_note(decision_note: Optional[str], metrics: Optional[FidelityMetrics]) -> Optional[str]:
    parts: list[str] = []
    if decision_note:
        parts.append(decision_note)
    if metrics is not None:
        parts.append(metrics.describe())
    if not parts:
        return None
    return "; ".join(parts)
