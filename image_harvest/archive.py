"""ZIP packaging of a job's working directory."""

from __future__ import annotations

import logging
import shutil
import zipfile
from pathlib import Path

from .errors import ArchiveError

logger = logging.getLogger("image_harvest")


def build_archive(source_dir: Path, destination: Path) -> Path:
    """Compress every file in ``source_dir`` into ``destination``.

    Entries are stored under their bare file name. An empty directory still
    produces a valid, empty archive.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    files = sorted(path for path in source_dir.iterdir() if path.is_file())
    try:
        with zipfile.ZipFile(
            destination, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
        ) as archive:
            for path in files:
                archive.write(path, arcname=path.name)
    except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
        raise ArchiveError(f"Failed to create ZIP file: {exc}") from exc

    if not destination.is_file() or destination.stat().st_size == 0:
        raise ArchiveError("Failed to create ZIP file")
    logger.info(
        "ZIP created: %s (%d entries, %d bytes)",
        destination,
        len(files),
        destination.stat().st_size,
    )
    return destination


def remove_tree(path: Path) -> None:
    """Best-effort recursive removal; failures are logged, never raised."""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning("Failed to remove %s: %s", path, exc)
