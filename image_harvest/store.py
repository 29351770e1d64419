"""Single-use storage for finished archives."""

from __future__ import annotations

import logging
import secrets
import shutil
import time
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urlparse

from .errors import NotFound
from .utils import sanitize_identifier

logger = logging.getLogger("image_harvest")

ARTIFACT_PREFIX = "images-"
ARTIFACT_SUFFIX = ".zip"
DOWNLOAD_ROUTE = "/api/download"


def artifact_id_from_url(download_url: str) -> str:
    """Extract the ``id`` query parameter from a download URL."""
    values = parse_qs(urlparse(download_url).query).get("id")
    if not values:
        raise NotFound(f"No artifact identifier in {download_url!r}")
    return values[0]


class ArtifactStore:
    """Archives keyed by an opaque, creation-time derived identifier.

    Every artifact can be read once; ``get`` deletes it afterwards. Artifacts
    older than ``ttl`` seconds are swept whenever a new one is stored.
    """

    def __init__(self, root: Path, ttl: Optional[float] = 3600.0) -> None:
        self.root = Path(root)
        self.ttl = ttl

    def new_identifier(self) -> str:
        return f"{time.time_ns()}{secrets.token_hex(4)}"

    def path_for(self, artifact_id: str) -> Path:
        safe_id = sanitize_identifier(artifact_id)
        if not safe_id:
            raise NotFound("Missing or invalid artifact identifier")
        root = self.root.resolve()
        path = (root / f"{ARTIFACT_PREFIX}{safe_id}{ARTIFACT_SUFFIX}").resolve()
        if path.parent != root:
            raise NotFound("Invalid artifact identifier")
        return path

    def download_url(self, artifact_id: str) -> str:
        return f"{DOWNLOAD_ROUTE}?id={artifact_id}"

    def put_file(self, source: Path) -> str:
        """Move an archive into the store and return its identifier."""
        self.root.mkdir(parents=True, exist_ok=True)
        self.sweep()
        artifact_id = self.new_identifier()
        shutil.move(str(source), str(self.path_for(artifact_id)))
        logger.info("Stored artifact %s", artifact_id)
        return artifact_id

    def put(self, data: bytes) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        self.sweep()
        artifact_id = self.new_identifier()
        self.path_for(artifact_id).write_bytes(data)
        logger.info("Stored artifact %s", artifact_id)
        return artifact_id

    def get(self, artifact_id: str) -> bytes:
        """Read an artifact and delete it; raises ``NotFound`` if absent."""
        path = self.path_for(artifact_id)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            logger.info("Artifact %s not found (claimed or expired)", path.name)
            raise NotFound("File not found. It may have expired.") from None
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("Failed to delete artifact %s: %s", path, exc)
        return data

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove artifacts older than the TTL; returns how many were removed."""
        if not self.ttl or not self.root.is_dir():
            return 0
        cutoff = (time.time() if now is None else now) - self.ttl
        removed = 0
        for path in self.root.glob(f"{ARTIFACT_PREFIX}*{ARTIFACT_SUFFIX}"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError as exc:
                logger.debug("Skipping sweep of %s: %s", path, exc)
        if removed:
            logger.info("Swept %d expired artifacts from %s", removed, self.root)
        return removed
