"""文件扫描与内容分类测试。"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from PIL import Image, features

from jpeg_converter.core import scanner
from jpeg_converter.core.exceptions import TraversalError
from jpeg_converter.core.models import NOT_AN_IMAGE, SUPPORTED, UNSUPPORTED
from jpeg_converter.core.scanner import collect_source_images, is_image_name
from jpeg_converter.processing.sniffing import classify_image, sniff_signature


def _save(path: Path, fmt: str = "PNG", size: tuple[int, int] = (16, 16)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, "blue").save(path, format=fmt)
    return path


def test_collects_nested_images_only(tmp_path: Path) -> None:
    _save(tmp_path / "a.png")
    _save(tmp_path / "sub" / "b.jpg", "JPEG")
    (tmp_path / "sub" / "sub2").mkdir()
    (tmp_path / "sub" / "sub2" / "c.txt").write_text("hello")

    found = {item.relative_path.as_posix() for item in collect_source_images(tmp_path)}

    assert found == {"a.png", "sub/b.jpg"}


def test_extension_match_is_case_insensitive() -> None:
    assert is_image_name("PHOTO.PNG")
    assert is_image_name("scan.Tiff")
    assert is_image_name("clip.webp")
    assert not is_image_name("notes.txt")
    assert not is_image_name("png")


def test_directories_with_image_names_are_not_collected(tmp_path: Path) -> None:
    (tmp_path / "folder.png").mkdir()
    _save(tmp_path / "folder.png" / "inner.png")

    found = [item.relative_path.as_posix() for item in collect_source_images(tmp_path)]

    assert found == ["folder.png/inner.png"]


def test_classification_is_content_based(tmp_path: Path) -> None:
    _save(tmp_path / "real.png")
    _save(tmp_path / "png_backup.jpg", "JPEG")
    (tmp_path / "fake.gif").write_text("not an image")

    by_name = {item.source_path.name: item.classification for item in collect_source_images(tmp_path)}

    assert by_name["real.png"].kind == SUPPORTED
    assert by_name["real.png"].image_format == "png"
    assert by_name["png_backup.jpg"].image_format == "jpeg"
    assert by_name["fake.gif"].kind == NOT_AN_IMAGE


@pytest.mark.skipif(not features.check("webp"), reason="Pillow 未编译 WebP 支持")
def test_webp_is_classified_unsupported(tmp_path: Path) -> None:
    path = _save(tmp_path / "clip.webp", "WEBP")

    classification = classify_image(path)

    assert classification.kind == UNSUPPORTED
    assert classification.image_format == "webp"


def test_signature_fallback_recognizes_webp_header() -> None:
    header = b"RIFF\x24\x00\x00\x00WEBPVP8 "

    assert sniff_signature(header) == "webp"
    assert sniff_signature(b"\x00\x00\x00\x18ftypavif") == "avif"
    assert sniff_signature(b"hello world") is None


def test_missing_root_raises_traversal_error(tmp_path: Path) -> None:
    with pytest.raises(TraversalError):
        collect_source_images(tmp_path / "missing")


def test_access_error_aborts_traversal(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _save(tmp_path / "a.png")

    def broken_walk(top, onerror=None):
        yield str(top), ["locked"], ["a.png"]
        onerror(PermissionError(13, "Permission denied", os.path.join(str(top), "locked")))

    monkeypatch.setattr(scanner.os, "walk", broken_walk)

    with pytest.raises(TraversalError, match="locked"):
        collect_source_images(tmp_path)


def test_unreadable_file_aborts_traversal(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _save(tmp_path / "a.png")

    def unreadable(path: Path):
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(scanner, "classify_image", unreadable)

    with pytest.raises(TraversalError):
        collect_source_images(tmp_path)


def test_corrupt_header_is_classified_not_fatal(tmp_path: Path) -> None:
    valid = _save(tmp_path / "good.png").read_bytes()
    (tmp_path / "short.png").write_bytes(valid[:20])

    by_name = {item.source_path.name: item.classification for item in collect_source_images(tmp_path)}

    assert by_name["good.png"].kind == SUPPORTED
    assert by_name["short.png"].kind == NOT_AN_IMAGE
