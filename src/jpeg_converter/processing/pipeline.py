"""处理流水线：扫描、筛选、规划输出并（可并发）执行 JPEG 转换。"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Optional, Sequence

from jpeg_converter.core.config import JobConfig
from jpeg_converter.core.models import BatchResult, FileOutcome, SourceImage
from jpeg_converter.core.output_manager import OutputManager
from jpeg_converter.core.progress import ProgressUpdate
from jpeg_converter.core.report import write_csv_report
from jpeg_converter.core.scanner import collect_source_images
from jpeg_converter.processing.worker import ProcessingTask, run_task_group

LOGGER = logging.getLogger(__name__)

FORMAT_EXTENSIONS = {
    "jpeg": (".jpg", ".jpeg"),
    "png": (".png",),
    "gif": (".gif",),
    "bmp": (".bmp",),
    "tiff": (".tiff",),
}

ProgressCallback = Optional[Callable[[ProgressUpdate], None]]
CancelCheck = Optional[Callable[[], bool]]


def is_selected(source: SourceImage, convert_formats: Sequence[str]) -> bool:
    """扩展名或嗅探到的格式属于待转换格式时选中该文件。

    扩展名匹配但内容损坏的文件仍会进入转换并报告错误，而不是被静默忽略。
    """

    wanted = {fmt.lower() for fmt in convert_formats}
    suffixes = tuple(ext for fmt in wanted for ext in FORMAT_EXTENSIONS.get(fmt, ()))
    if source.source_path.name.lower().endswith(suffixes):
        return True
    classification = source.classification
    return classification.is_supported and classification.image_format in wanted


def process_batch(
    config: JobConfig,
    progress_callback: ProgressCallback = None,
    should_cancel: CancelCheck = None,
) -> BatchResult:
    """批量转换入口：扫描、筛选、转换、删除原图并写出报告。

    扫描失败（TraversalError）直接向上抛出；单个文件的失败只记录在结果中。
    """

    config.validate()
    output_manager = OutputManager(config.output)

    LOGGER.info("开始扫描输入目录 %s", config.input_dir)
    sources = collect_source_images(config.input_dir)
    total = len(sources)
    LOGGER.info("发现 %d 个候选图片文件", total)

    successes: list[FileOutcome] = []
    skipped: list[FileOutcome] = []
    failed: list[FileOutcome] = []

    if total == 0:
        _emit_progress(progress_callback, completed=0, total=0, message="没有需要处理的图片", status="done")
        result = BatchResult(succeeded=successes, skipped=skipped, failed=failed)
        _write_report(config, output_manager, result)
        return result

    reserved_paths: set[Path] = set()
    groups: dict[Path, list[ProcessingTask]] = {}
    completed = 0

    for source in sources:
        source_format = source.classification.image_format
        if not is_selected(source, config.convert_formats):
            LOGGER.debug("跳过（非待转换格式）：%s", source.source_path)
            skipped.append(
                FileOutcome(
                    source_path=source.source_path,
                    status="skip-filtered",
                    source_format=source_format,
                    message=f"分类: {source.classification.kind}",
                )
            )
            completed += 1
            continue

        decision = output_manager.decide_destination(source, reserved_paths=reserved_paths)
        if decision.action == "skip":
            LOGGER.info("跳过输出（已存在）：%s", decision.destination)
            skipped.append(
                FileOutcome(
                    source_path=source.source_path,
                    status="skip-existing",
                    output_path=decision.destination,
                    source_format=source_format,
                    message=decision.note,
                )
            )
            completed += 1
            continue

        assert decision.destination is not None
        groups.setdefault(decision.destination, []).append(
            ProcessingTask(
                source_path=source.source_path,
                dest_path=decision.destination,
                decision_action=decision.action,
                decision_note=decision.note,
                source_format=source_format,
                background=config.flatten_background,
                validate=config.validation.enabled,
            )
        )

    _emit_progress(progress_callback, completed, total, "开始执行转换任务")

    if groups and config.max_workers <= 1:
        pending = list(groups.values())
        while pending:
            if _cancel_requested(should_cancel):
                for group in pending:
                    _record_outcomes([_cancelled_outcome(task) for task in group], successes, skipped, failed)
                    completed += len(group)
                break
            group = pending.pop(0)
            _record_outcomes(run_task_group(group), successes, skipped, failed)
            completed += len(group)
            last = group[-1].source_path
            _emit_progress(progress_callback, completed, total, f"完成 {last.name}", last)
    elif groups:
        completed = _run_in_pool(
            config, groups, should_cancel, progress_callback, completed, total, successes, skipped, failed
        )

    result = BatchResult(succeeded=successes, skipped=skipped, failed=failed)
    _write_report(config, output_manager, result)
    counts = result.counts()
    LOGGER.info(
        "处理完成：成功 %d，跳过 %d，失败 %d", counts["succeeded"], counts["skipped"], counts["failed"]
    )
    if any(outcome.status == "skip-cancelled" for outcome in skipped):
        _emit_progress(progress_callback, total, total, "任务已取消", status="cancelled")
    else:
        _emit_progress(progress_callback, total, total, "处理完成", status="done")
    return result


def _run_in_pool(  # noqa: PLR0913
    config: JobConfig,
    groups: dict[Path, list[ProcessingTask]],
    should_cancel: CancelCheck,
    progress_callback: ProgressCallback,
    completed: int,
    total: int,
    successes: list[FileOutcome],
    skipped: list[FileOutcome],
    failed: list[FileOutcome],
) -> int:
    cancelling = _cancel_requested(should_cancel)
    with ProcessPoolExecutor(max_workers=config.max_workers) as executor:
        future_map = {}
        for group in groups.values():
            if cancelling:
                _record_outcomes([_cancelled_outcome(task) for task in group], successes, skipped, failed)
                completed += len(group)
                continue
            future_map[executor.submit(run_task_group, group)] = group

        for future in as_completed(future_map):
            group = future_map[future]
            if future.cancelled():
                outcomes = [_cancelled_outcome(task) for task in group]
            else:
                try:
                    outcomes = future.result()
                except Exception as exc:  # noqa: BLE001
                    LOGGER.exception("任务执行异常：%s", exc)
                    outcomes = [
                        FileOutcome(
                            source_path=task.source_path,
                            status="error-worker",
                            source_format=task.source_format,
                            message=str(exc),
                        )
                        for task in group
                    ]
            _record_outcomes(outcomes, successes, skipped, failed)
            completed += len(group)
            last = group[-1].source_path
            _emit_progress(progress_callback, completed, total, f"完成 {last.name}", last)

            if not cancelling and _cancel_requested(should_cancel):
                cancelling = True
                LOGGER.warning("收到取消请求，等待正在执行的文件完成")
                for pending in future_map:
                    pending.cancel()
    return completed


def _record_outcomes(
    outcomes: Sequence[FileOutcome],
    successes: list[FileOutcome],
    skipped: list[FileOutcome],
    failed: list[FileOutcome],
) -> None:
    for outcome in outcomes:
        if outcome.succeeded:
            successes.append(outcome)
        elif outcome.status.startswith("skip"):
            skipped.append(outcome)
        else:
            failed.append(outcome)


def _cancelled_outcome(task: ProcessingTask) -> FileOutcome:
    return FileOutcome(
        source_path=task.source_path,
        status="skip-cancelled",
        source_format=task.source_format,
        message="任务已取消，文件未处理",
    )


def _cancel_requested(should_cancel: CancelCheck) -> bool:
    return bool(should_cancel and should_cancel())


def _emit_progress(
    callback: ProgressCallback,
    completed: int,
    total: int,
    message: Optional[str] = None,
    current: Optional[Path] = None,
    status: str = "running",
) -> None:
    if not callback:
        return
    callback(ProgressUpdate(total=total, completed=completed, message=message, current=current, status=status))


def _write_report(config: JobConfig, output_manager: OutputManager, result: BatchResult) -> None:
    try:
        write_csv_report(result.all_outcomes(), output_manager.output_dir, config.report_filename)
    except OSError as exc:
        LOGGER.error("写入报告失败：%s", exc)
