"""可选的远程素材下载：分页列出 Cloudinary 资源并下载到本地。

默认关闭，只有在配置中显式启用时才会被调用。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Protocol

import requests

from jpeg_converter.core.config import CloudinaryConfig
from jpeg_converter.core.exceptions import AssetDownloadError

LOGGER = logging.getLogger(__name__)

API_BASE_URL = "https://api.cloudinary.com/v1_1"
CHUNK_SIZE = 8192


@dataclass(frozen=True, slots=True)
class Asset:
    public_id: str
    format: str
    url: str

    @property
    def filename(self) -> str:
        return f"{self.public_id}.{self.format}"


@dataclass(slots=True)
class AssetPage:
    assets: list[Asset]
    next_cursor: Optional[str] = None


@dataclass(slots=True)
class DownloadResult:
    """下载汇总：新下载的文件与已存在而跳过的文件。"""

    downloaded: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)


class AssetStore(Protocol):
    """远程素材仓库接口。"""

    def list_assets(self, cursor: Optional[str], page_size: int) -> AssetPage:
        """根据游标获取下一页素材。"""
        ...

    def fetch(self, url: str) -> Iterator[bytes]:
        """以数据块形式返回单个素材的原始字节。"""
        ...


class CloudinaryAssetStore:
    """基于 Cloudinary Admin API 的素材仓库实现。"""

    def __init__(self, config: CloudinaryConfig, session: Optional[requests.Session] = None) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.session.auth = (config.api_key, config.api_secret)

    @property
    def resources_url(self) -> str:
        return f"{API_BASE_URL}/{self.config.cloud_name}/resources/image"

    def list_assets(self, cursor: Optional[str], page_size: int) -> AssetPage:
        params = {"max_results": page_size}
        if cursor:
            params["next_cursor"] = cursor
        try:
            resp = self.session.get(self.resources_url, params=params, timeout=self.config.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise AssetDownloadError(f"获取素材列表失败: {exc}") from exc

        assets = [
            Asset(
                public_id=item["public_id"],
                format=item.get("format", "jpg"),
                url=item.get("secure_url") or item["url"],
            )
            for item in payload.get("resources", [])
        ]
        return AssetPage(assets=assets, next_cursor=payload.get("next_cursor") or None)

    def fetch(self, url: str) -> Iterator[bytes]:
        try:
            resp = self.session.get(url, stream=True, timeout=self.config.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise AssetDownloadError(f"下载素材失败: {url}: {exc}") from exc

        with resp:
            try:
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        yield chunk
            except requests.RequestException as exc:
                raise AssetDownloadError(f"读取素材数据失败: {url}: {exc}") from exc


def download_assets(
    store: AssetStore,
    destination: Path,
    page_size: int = 5,
    max_assets: int = 200,
) -> DownloadResult:
    """逐页下载素材到 destination，已存在的文件跳过。

    新下载数量达到 max_assets 或仓库不再返回游标时停止。任何失败都会中止下载。
    """

    result = DownloadResult()
    cursor: Optional[str] = None

    while len(result.downloaded) < max_assets:
        page = store.list_assets(cursor, page_size)
        for asset in page.assets:
            if len(result.downloaded) >= max_assets:
                break
            target = _safe_target(destination, asset)
            if target.exists():
                LOGGER.info("文件已存在，跳过下载：%s", target)
                result.skipped.append(target)
                continue

            LOGGER.info("下载素材：%s", target)
            _stream_to_file(store.fetch(asset.url), target)
            result.downloaded.append(target)

        cursor = page.next_cursor
        if not cursor:
            break

    LOGGER.info("素材下载完成：新增 %d，跳过 %d", len(result.downloaded), len(result.skipped))
    return result


def _safe_target(destination: Path, asset: Asset) -> Path:
    """public_id 来自服务端，解析后必须仍位于下载目录内。"""

    root = destination.resolve()
    target = (root / asset.filename).resolve()
    if not target.is_relative_to(root) or target == root:
        raise AssetDownloadError(f"素材路径越出下载目录: {asset.public_id}")
    return target


def _stream_to_file(chunks: Iterator[bytes], target: Path) -> None:
    partial = target.with_name(target.name + ".part")
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with partial.open("wb") as handle:
            for chunk in chunks:
                handle.write(chunk)
        os.replace(partial, target)
    except OSError as exc:
        partial.unlink(missing_ok=True)
        raise AssetDownloadError(f"写入素材文件失败: {target}: {exc}") from exc
    except AssetDownloadError:
        partial.unlink(missing_ok=True)
        raise
