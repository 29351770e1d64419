"""Image downloading and validation utilities."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from .config import HarvestConfig
from .models import FetchedAsset, FetchResult, Hit, Miss

logger = logging.getLogger("image_harvest")

DEFAULT_EXTENSION = ".jpg"
ALLOWED_EXTENSIONS = {".jpg", ".png", ".gif", ".webp"}


def infer_image_extension(content_type: Optional[str]) -> str:
    """Map a declared Content-Type onto one of the supported extensions."""
    if not content_type:
        return DEFAULT_EXTENSION
    content_type = content_type.lower()
    if "png" in content_type:
        return ".png"
    if "gif" in content_type:
        return ".gif"
    if "webp" in content_type:
        return ".webp"
    return DEFAULT_EXTENSION


class ImageFetcher:
    """Download a single candidate URL; never raises, returns ``Hit`` or ``Miss``."""

    def __init__(
        self,
        config: HarvestConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.session.max_redirects = config.max_redirects

    def fetch(self, url: str) -> FetchResult:
        try:
            resp = self.session.get(
                url,
                headers={"User-Agent": self.config.user_agent, "Accept": "image/*"},
                timeout=self.config.fetch_timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Failed to fetch image %s: %s", url, exc)
            return Miss(f"request failed: {exc}")

        data = resp.content
        if len(data) < self.config.min_image_bytes:
            logger.warning("Skipping %s: response too small (%d bytes)", url, len(data))
            return Miss("response too small")

        extension = infer_image_extension(resp.headers.get("Content-Type"))
        return Hit(FetchedAsset(data=data, extension=extension))
