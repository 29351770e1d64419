"""Configuration objects and constants for the image harvester."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Tuple

logger = logging.getLogger("image_harvest")

DEFAULT_SEARCH_URL = "https://www.bing.com/images/search"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
ENV_PREFIX = "IMAGE_HARVEST_"


def _default_artifact_root() -> Path:
    return Path(tempfile.gettempdir()) / "image-downloader-zips"


def _default_work_root() -> Path:
    return Path(tempfile.gettempdir())


@dataclass
class HarvestConfig:
    """Top-level settings that control searching, downloading and packaging."""

    artifact_root: Path = field(default_factory=_default_artifact_root)
    work_root: Path = field(default_factory=_default_work_root)
    search_url: str = DEFAULT_SEARCH_URL
    search_timeout: float = 10.0
    fetch_timeout: float = 15.0
    max_redirects: int = 5
    min_image_bytes: int = 1000
    max_candidates: int = 5
    row_pause: float = 0.5
    workers: int = 1
    artifact_ttl: float = 3600.0
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HarvestConfig":
        """Build a config from defaults overlaid with ``IMAGE_HARVEST_*`` variables."""
        environ = os.environ if environ is None else environ
        overrides: Dict[str, object] = {}
        for name, (attr, convert) in _ENV_FIELDS.items():
            raw = environ.get(ENV_PREFIX + name)
            if raw is None or raw == "":
                continue
            try:
                overrides[attr] = convert(raw)
            except ValueError:
                logger.warning(
                    "Ignoring %s%s=%r: not a valid value", ENV_PREFIX, name, raw
                )
        return cls(**overrides)

    def with_overrides(self, **changes: object) -> "HarvestConfig":
        """Return a copy with every non-``None`` keyword applied."""
        applied = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **applied)


_ENV_FIELDS: Dict[str, Tuple[str, Callable[[str], object]]] = {
    "ARTIFACT_ROOT": ("artifact_root", lambda raw: Path(raw).expanduser()),
    "WORK_ROOT": ("work_root", lambda raw: Path(raw).expanduser()),
    "SEARCH_URL": ("search_url", str),
    "SEARCH_TIMEOUT": ("search_timeout", float),
    "FETCH_TIMEOUT": ("fetch_timeout", float),
    "ROW_PAUSE": ("row_pause", float),
    "WORKERS": ("workers", int),
    "ARTIFACT_TTL": ("artifact_ttl", float),
}
