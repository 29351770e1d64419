"""Offline stand-ins for the search surface and image hosts."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import openpyxl
import requests

from image_harvest.config import HarvestConfig
from image_harvest.models import FetchedAsset, Hit, Miss
from image_harvest.pipeline import Harvester
from image_harvest.store import ArtifactStore

IMAGE_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 2048


def make_response(
    status_code: int = 200,
    content: bytes = b"",
    content_type: Optional[str] = None,
    url: str = "https://example.test/",
) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status_code
    resp._content = content  # pylint: disable=protected-access
    resp.encoding = "utf-8"
    resp.url = url
    if content_type is not None:
        resp.headers["Content-Type"] = content_type
    return resp


class FakeSession:
    """Minimal ``requests.Session`` replacement keyed by URL."""

    def __init__(self, responses: Optional[Dict[str, object]] = None, default: object = None) -> None:
        self.responses = responses or {}
        self.default = default
        self.calls: List[Dict[str, object]] = []
        self.max_redirects = 30

    def get(self, url: str, **kwargs) -> requests.Response:
        self.calls.append({"url": url, **kwargs})
        result = self.responses.get(url, self.default)
        if isinstance(result, Exception):
            raise result
        if result is None:
            raise requests.ConnectionError(f"no route to {url}")
        return result


class StubResolver:
    def __init__(self, mapping: Dict[str, Sequence[str]]) -> None:
        self.mapping = mapping
        self.phrases: List[str] = []

    def resolve(self, phrase: str) -> List[str]:
        self.phrases.append(phrase)
        return list(self.mapping.get(phrase, []))


class StubFetcher:
    """Serve fixed payloads; unknown URLs miss."""

    def __init__(self, assets: Dict[str, FetchedAsset]) -> None:
        self.assets = assets
        self.urls: List[str] = []

    def fetch(self, url: str):
        self.urls.append(url)
        asset = self.assets.get(url)
        if asset is None:
            return Miss("unreachable")
        return Hit(asset)


def build_workbook(rows: Sequence[Sequence[object]], header: Sequence[str] = ("id", "image_name")) -> bytes:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    if header:
        sheet.append(list(header))
    for row in rows:
        sheet.append(list(row))
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def make_harvester(tmp: Path, resolver, fetcher, workers: int = 1) -> Harvester:
    config = HarvestConfig(
        artifact_root=tmp / "artifacts",
        work_root=tmp / "work",
        row_pause=0.0,
        workers=workers,
    )
    return Harvester(config, resolver, fetcher, ArtifactStore(config.artifact_root, ttl=config.artifact_ttl))


def scenario_harvester(tmp: Path, workers: int = 1) -> Harvester:
    """Three-row scenario: the middle phrase resolves to nothing."""
    resolver = StubResolver(
        {
            "Laptop": ["https://img.test/laptop-broken.jpg", "https://img.test/laptop.png"],
            "Mouse": ["https://img.test/mouse.jpg"],
        }
    )
    fetcher = StubFetcher(
        {
            "https://img.test/laptop.png": FetchedAsset(IMAGE_BYTES, ".png"),
            "https://img.test/mouse.jpg": FetchedAsset(IMAGE_BYTES, ".jpg"),
        }
    )
    return make_harvester(tmp, resolver, fetcher, workers=workers)


SCENARIO_ROWS = [(1, "Laptop"), (2, "zzqqxx-nonexistent-phrase"), (3, "Mouse")]
