"""命令行入口。"""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import List, Optional

import typer
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from jpeg_converter.core.config import (
    CloudinaryConfig,
    JobConfig,
    OutputConfig,
    RemoteConfig,
    ValidationConfig,
)
from jpeg_converter.core.exceptions import AssetDownloadError, JpegConverterError
from jpeg_converter.core.progress import ProgressUpdate
from jpeg_converter.processing.pipeline import process_batch
from jpeg_converter.remote.assets import CloudinaryAssetStore, DownloadResult, download_assets
from jpeg_converter.utils.logging import setup_logging

app = typer.Typer(help="批量将图片转换为 JPEG 并删除原图。")

LOGGER = logging.getLogger(__name__)


def _build_progress_callback(progress: Progress):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("转换图片", total=update.total)
        progress.update(task_id, completed=update.completed)
        if update.message and update.finished:
            progress.log(update.message)

    return callback


def _build_remote_config(
    enabled: bool,
    cloud_name: Optional[str],
    api_key: Optional[str],
    api_secret: Optional[str],
    download_dir: Optional[Path],
) -> RemoteConfig:
    cloudinary = None
    if cloud_name or api_key or api_secret:
        cloudinary = CloudinaryConfig(
            cloud_name=cloud_name or "",
            api_key=api_key or "",
            api_secret=api_secret or "",
        )
    return RemoteConfig(
        enabled=enabled,
        cloudinary=cloudinary,
        download_dir=download_dir.expanduser().resolve() if download_dir else None,
    )


def _run_download(job: JobConfig) -> DownloadResult:
    cloudinary = job.remote.cloudinary
    assert cloudinary is not None
    store = CloudinaryAssetStore(cloudinary)
    return download_assets(
        store,
        job.asset_dir,
        page_size=cloudinary.page_size,
        max_assets=cloudinary.max_assets,
    )


class _CancelOnInterrupt:
    """Ctrl-C 时设置取消标记，已开始的文件继续完成。"""

    def __init__(self) -> None:
        self.event = threading.Event()
        self._previous = None

    def __enter__(self) -> threading.Event:
        self._previous = signal.signal(signal.SIGINT, self._handle)
        return self.event

    def __exit__(self, *exc_info: object) -> None:
        signal.signal(signal.SIGINT, self._previous)

    def _handle(self, signum, frame) -> None:  # noqa: ARG002
        if self.event.is_set():
            raise KeyboardInterrupt
        LOGGER.warning("收到中断信号，当前文件完成后停止（再次按下立即退出）")
        self.event.set()


@app.command("run")
def run_cli(  # noqa: PLR0913
    root: Path = typer.Option(..., "--root", envvar="APP_FOLDER", help="根目录，扫描其下的输入子目录"),
    input_subdir: str = typer.Option("subidas", "--input-subdir", help="根目录下待扫描的子目录"),
    output: Path = typer.Option(Path("./converted"), "--output", "-o", help="输出目录"),
    formats: List[str] = typer.Option(["png"], "--format", "-f", help="待转换的源格式，可指定多个"),
    max_workers: int = typer.Option(1, "--workers", "-w", help="并发进程数量，1 表示顺序执行"),
    conflict_strategy: str = typer.Option("overwrite", "--on-conflict", help="文件名冲突策略 overwrite/skip/rename"),
    background: str = typer.Option("#FFFFFF", "--background", help="透明区域的填充色"),
    auto_validate: bool = typer.Option(False, "--auto-validate", help="转换后计算与原图的相似度指标"),
    download: bool = typer.Option(
        False, "--download/--no-download", envvar="APP_DOWNLOAD_ENABLED", help="转换前先从 Cloudinary 下载素材"
    ),
    download_dir: Optional[Path] = typer.Option(None, "--download-dir", help="素材下载目录，默认为根目录"),
    cloud_name: Optional[str] = typer.Option(None, "--cloud-name", envvar="APP_CLOUDINARY", help="Cloudinary 云名称"),
    api_key: Optional[str] = typer.Option(None, "--api-key", envvar="APP_CLOUDINARY_KEY", help="Cloudinary API Key"),
    api_secret: Optional[str] = typer.Option(
        None, "--api-secret", envvar="APP_CLOUDINARY_SECRET", help="Cloudinary API Secret"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """扫描输入目录并将匹配的图片转换为 JPEG。"""

    setup_logging(verbose=verbose)

    output_dir = output.expanduser().resolve()
    job = JobConfig(
        root_folder=root.expanduser().resolve(),
        output=OutputConfig(output_dir=output_dir, conflict_strategy=conflict_strategy),
        input_subdir=input_subdir,
        convert_formats=tuple(fmt.lower() for fmt in formats),
        validation=ValidationConfig(enabled=auto_validate),
        remote=_build_remote_config(download, cloud_name, api_key, api_secret, download_dir),
        max_workers=max_workers,
        flatten_background=background,
    )

    try:
        job.validate()
        if job.remote.enabled:
            downloaded = _run_download(job)
            typer.echo(f"素材下载：新增 {len(downloaded.downloaded)} 个，跳过 {len(downloaded.skipped)} 个。")

        progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
        )
        with _CancelOnInterrupt() as cancel_event, progress:
            result = process_batch(
                job,
                progress_callback=_build_progress_callback(progress),
                should_cancel=cancel_event.is_set,
            )
    except AssetDownloadError as exc:
        typer.echo(f"素材下载失败：{exc}", err=True)
        raise typer.Exit(code=1) from exc
    except JpegConverterError as exc:
        typer.echo(f"任务失败：{exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(
        f"处理完成：成功 {len(result.succeeded)} 张，跳过 {len(result.skipped)} 张，失败 {len(result.failed)} 张。"
    )
    typer.echo(f"报告文件：{output_dir / job.report_filename}")


@app.command("download")
def download_cli(
    root: Path = typer.Option(..., "--root", envvar="APP_FOLDER", help="根目录，素材默认下载到此处"),
    download_dir: Optional[Path] = typer.Option(None, "--download-dir", help="素材下载目录，默认为根目录"),
    cloud_name: Optional[str] = typer.Option(None, "--cloud-name", envvar="APP_CLOUDINARY", help="Cloudinary 云名称"),
    api_key: Optional[str] = typer.Option(None, "--api-key", envvar="APP_CLOUDINARY_KEY", help="Cloudinary API Key"),
    api_secret: Optional[str] = typer.Option(
        None, "--api-secret", envvar="APP_CLOUDINARY_SECRET", help="Cloudinary API Secret"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """只从 Cloudinary 下载素材，不执行转换。"""

    setup_logging(verbose=verbose)

    job = JobConfig(
        root_folder=root.expanduser().resolve(),
        remote=_build_remote_config(True, cloud_name, api_key, api_secret, download_dir),
    )
    try:
        job.validate()
        result = _run_download(job)
    except JpegConverterError as exc:
        typer.echo(f"素材下载失败：{exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"素材下载：新增 {len(result.downloaded)} 个，跳过 {len(result.skipped)} 个。")


if __name__ == "__main__":
    app()
