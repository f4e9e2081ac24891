"""命令行入口测试。"""

from __future__ import annotations

from pathlib import Path

from PIL import Image
from typer.testing import CliRunner

from jpeg_converter.cli import main as cli_main
from jpeg_converter.remote.assets import DownloadResult

runner = CliRunner()


def _prepare_root(tmp_path: Path) -> Path:
    root = tmp_path / "app"
    (root / "subidas").mkdir(parents=True)
    Image.new("RGB", (20, 20), "blue").save(root / "subidas" / "photo.png")
    return root


def test_run_converts_and_prints_summary(tmp_path: Path) -> None:
    root = _prepare_root(tmp_path)
    output = tmp_path / "converted"

    result = runner.invoke(cli_main.app, ["run", "--root", str(root), "--output", str(output)])

    assert result.exit_code == 0, result.output
    assert "成功 1 张" in result.output
    assert (output / "photo.jpg").exists()
    assert (output / "report.csv").exists()


def test_root_can_come_from_environment(tmp_path: Path) -> None:
    root = _prepare_root(tmp_path)
    output = tmp_path / "converted"

    result = runner.invoke(cli_main.app, ["run", "--output", str(output)], env={"APP_FOLDER": str(root)})

    assert result.exit_code == 0, result.output
    assert (output / "photo.jpg").exists()


def test_missing_input_dir_exits_with_error(tmp_path: Path) -> None:
    result = runner.invoke(
        cli_main.app, ["run", "--root", str(tmp_path / "nowhere"), "--output", str(tmp_path / "out")]
    )

    assert result.exit_code == 1


def test_download_requires_credentials(tmp_path: Path) -> None:
    root = _prepare_root(tmp_path)

    result = runner.invoke(
        cli_main.app,
        ["run", "--root", str(root), "--output", str(tmp_path / "out"), "--download"],
        env={"APP_CLOUDINARY": "", "APP_CLOUDINARY_KEY": "", "APP_CLOUDINARY_SECRET": ""},
    )

    assert result.exit_code == 1
    assert (root / "subidas" / "photo.png").exists()


def test_download_runs_before_conversion(tmp_path: Path, monkeypatch) -> None:
    root = _prepare_root(tmp_path)
    calls: list[Path] = []

    def fake_download(job):
        calls.append(job.asset_dir)
        return DownloadResult()

    monkeypatch.setattr(cli_main, "_run_download", fake_download)

    result = runner.invoke(
        cli_main.app,
        ["run", "--root", str(root), "--output", str(tmp_path / "out"), "--download"],
        env={"APP_CLOUDINARY": "demo", "APP_CLOUDINARY_KEY": "key", "APP_CLOUDINARY_SECRET": "secret"},
    )

    assert result.exit_code == 0, result.output
    assert calls == [root.resolve()]
    assert "素材下载" in result.output
