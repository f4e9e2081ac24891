"""远程素材分页下载测试（使用假仓库与假 HTTP 会话）。"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Optional

import pytest
import requests

from jpeg_converter.core.config import CloudinaryConfig
from jpeg_converter.core.exceptions import AssetDownloadError
from jpeg_converter.remote.assets import Asset, AssetPage, CloudinaryAssetStore, download_assets


class FakeStore:
    def __init__(self, pages: dict[Optional[str], AssetPage], broken: frozenset[str] = frozenset()) -> None:
        self.pages = pages
        self.broken = broken
        self.cursors: list[Optional[str]] = []
        self.fetched: list[str] = []

    def list_assets(self, cursor: Optional[str], page_size: int) -> AssetPage:
        self.cursors.append(cursor)
        return self.pages[cursor]

    def fetch(self, url: str) -> Iterator[bytes]:
        self.fetched.append(url)
        yield b"chunk-1"
        if url in self.broken:
            raise AssetDownloadError(f"下载素材失败: {url}")
        yield b"chunk-2"


def _asset(name: str) -> Asset:
    return Asset(public_id=name, format="png", url=f"https://example.test/{name}.png")


def test_download_paginates_until_cursor_is_exhausted(tmp_path: Path) -> None:
    store = FakeStore(
        {
            None: AssetPage([_asset("a"), _asset("b")], next_cursor="page-2"),
            "page-2": AssetPage([_asset("c")], next_cursor=None),
        }
    )

    result = download_assets(store, tmp_path, page_size=2)

    assert store.cursors == [None, "page-2"]
    assert [p.name for p in result.downloaded] == ["a.png", "b.png", "c.png"]
    assert (tmp_path / "a.png").read_bytes() == b"chunk-1chunk-2"


def test_existing_files_are_skipped(tmp_path: Path) -> None:
    (tmp_path / "a.png").write_bytes(b"local")
    store = FakeStore({None: AssetPage([_asset("a"), _asset("b")])})

    result = download_assets(store, tmp_path)

    assert [p.name for p in result.skipped] == ["a.png"]
    assert [p.name for p in result.downloaded] == ["b.png"]
    assert (tmp_path / "a.png").read_bytes() == b"local"
    assert store.fetched == ["https://example.test/b.png"]


def test_download_stops_at_cap(tmp_path: Path) -> None:
    store = FakeStore(
        {
            None: AssetPage([_asset("a"), _asset("b"), _asset("c")], next_cursor="next"),
            "next": AssetPage([_asset("d")], next_cursor=None),
        }
    )

    result = download_assets(store, tmp_path, page_size=3, max_assets=2)

    assert len(result.downloaded) == 2
    assert store.cursors == [None]
    assert not (tmp_path / "c.png").exists()


def test_nested_public_id_creates_folders(tmp_path: Path) -> None:
    store = FakeStore({None: AssetPage([_asset("folder/inner")])})

    download_assets(store, tmp_path)

    assert (tmp_path / "folder" / "inner.png").exists()


def test_failed_download_aborts_and_leaves_no_partial_file(tmp_path: Path) -> None:
    store = FakeStore(
        {None: AssetPage([_asset("a"), _asset("b")])},
        broken=frozenset({"https://example.test/a.png"}),
    )

    with pytest.raises(AssetDownloadError):
        download_assets(store, tmp_path)

    assert list(tmp_path.iterdir()) == []


class FakeResponse:
    def __init__(self, payload=None, chunks=(), status_code: int = 200) -> None:
        self.payload = payload
        self.chunks = chunks
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload

    def iter_content(self, chunk_size: int = 1):
        yield from self.chunks

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        return None


class FakeSession:
    def __init__(self, responses: list[FakeResponse]) -> None:
        self.responses = responses
        self.requests: list[tuple[str, dict]] = []
        self.auth = None

    def get(self, url: str, **kwargs) -> FakeResponse:
        self.requests.append((url, kwargs))
        return self.responses.pop(0)


def _cloudinary() -> CloudinaryConfig:
    return CloudinaryConfig(cloud_name="demo", api_key="key", api_secret="secret")


def test_cloudinary_store_lists_assets_with_cursor() -> None:
    session = FakeSession(
        [
            FakeResponse(
                {
                    "resources": [
                        {"public_id": "cat", "format": "png", "secure_url": "https://res.test/cat.png"},
                        {"public_id": "dog", "format": "jpg", "url": "http://res.test/dog.jpg"},
                    ],
                    "next_cursor": "abc",
                }
            )
        ]
    )
    store = CloudinaryAssetStore(_cloudinary(), session=session)

    page = store.list_assets("prev", 5)

    url, kwargs = session.requests[0]
    assert url == "https://api.cloudinary.com/v1_1/demo/resources/image"
    assert kwargs["params"] == {"max_results": 5, "next_cursor": "prev"}
    assert session.auth == ("key", "secret")
    assert page.next_cursor == "abc"
    assert [a.filename for a in page.assets] == ["cat.png", "dog.jpg"]
    assert page.assets[1].url == "http://res.test/dog.jpg"


def test_cloudinary_store_wraps_http_errors() -> None:
    store = CloudinaryAssetStore(_cloudinary(), session=FakeSession([FakeResponse({}, status_code=401)]))

    with pytest.raises(AssetDownloadError):
        store.list_assets(None, 5)


def test_cloudinary_store_streams_bytes() -> None:
    session = FakeSession([FakeResponse(chunks=[b"ab", b"", b"cd"])])
    store = CloudinaryAssetStore(_cloudinary(), session=session)

    assert b"".join(store.fetch("https://res.test/cat.png")) == b"abcd"
    assert session.requests[0][1]["stream"] is True


def test_public_id_escaping_destination_is_rejected(tmp_path: Path) -> None:
    destination = tmp_path / "assets"
    destination.mkdir()
    store = FakeStore({None: AssetPage([_asset("../outside")])})

    with pytest.raises(AssetDownloadError):
        download_assets(store, destination)

    assert not (tmp_path / "outside.png").exists()
    assert store.fetched == []
