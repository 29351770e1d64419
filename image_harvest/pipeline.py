"""High-level orchestration: rows in, progress frames and one archive out."""

from __future__ import annotations

import json
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence

from .archive import build_archive, remove_tree
from .config import HarvestConfig
from .errors import ArchiveError, ValidationError
from .images import ImageFetcher
from .ingest import parse_table
from .models import Record
from .processor import BatchProcessor, Fetcher, Resolver
from .progress import (
    COMPLETE,
    ERROR,
    PROGRESS,
    Frame,
    ProgressChannel,
    complete_frame,
    error_frame,
    progress_frame,
)
from .search import ImageSearchResolver
from .store import ArtifactStore, artifact_id_from_url

logger = logging.getLogger("image_harvest")


@dataclass
class HarvestSummary:
    """Outcome of a local (non-HTTP) harvesting run."""

    source_path: Path
    output_path: Optional[Path]
    succeeded: int
    failed: int
    error: Optional[str] = None


class Harvester:
    """Bundle of resolver, fetcher and artifact store sharing one config."""

    def __init__(
        self,
        config: HarvestConfig,
        resolver: Resolver,
        fetcher: Fetcher,
        store: ArtifactStore,
    ) -> None:
        self.config = config
        self.resolver = resolver
        self.fetcher = fetcher
        self.store = store

    @classmethod
    def from_config(cls, config: HarvestConfig) -> "Harvester":
        return cls(
            config,
            resolver=ImageSearchResolver(config),
            fetcher=ImageFetcher(config),
            store=ArtifactStore(config.artifact_root, ttl=config.artifact_ttl),
        )

    def stream(self, records: Sequence[Record]) -> Iterator[Frame]:
        """Yield progress frames for ``records`` followed by one terminal frame.

        The working directory is removed on every exit path, including the
        consumer closing the iterator early, in which case no archive is built.
        """
        self.config.work_root.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix="image-harvest-", dir=self.config.work_root))
        partial = self.config.artifact_root / f".{work_dir.name}.zip.partial"
        processor = BatchProcessor(
            self.resolver,
            self.fetcher,
            row_pause=self.config.row_pause,
            workers=self.config.workers,
        )
        logger.info("Processing %d rows in %s", len(records), work_dir)

        rows = processor.run(records, work_dir)
        terminal: Optional[Frame] = None
        try:
            for snapshot in rows:
                yield progress_frame(snapshot)
            try:
                build_archive(work_dir, partial)
                artifact_id = self.store.put_file(partial)
            except ArchiveError as exc:
                logger.error("Archive creation failed: %s", exc)
                terminal = error_frame(str(exc))
            except OSError as exc:
                logger.error("Could not store archive: %s", exc)
                terminal = error_frame(f"Failed to store ZIP file: {exc}")
            else:
                terminal = complete_frame(self.store.download_url(artifact_id))
        finally:
            rows.close()
            remove_tree(work_dir)
            if partial.exists():
                try:
                    partial.unlink()
                except OSError as exc:
                    logger.warning("Failed to remove %s: %s", partial, exc)
        if terminal is not None:
            yield terminal

    def stream_upload(self, data: bytes, filename: Optional[str] = None) -> Iterator[Frame]:
        """Like ``stream`` but starting from raw table bytes; bad input yields one error frame."""
        try:
            records = parse_table(data, filename)
        except ValidationError as exc:
            logger.warning("Rejected upload %s: %s", filename or "", exc)
            yield error_frame(str(exc))
            return
        yield from self.stream(records)


def harvest_file(
    source: Path,
    output: Path,
    harvester: Harvester,
    on_line: Optional[Callable[[str], None]] = None,
) -> HarvestSummary:
    """Run the whole pipeline over a local spreadsheet and save the archive to ``output``."""
    channel = ProgressChannel(harvester.stream_upload(source.read_bytes(), source.name))
    last_items: List[dict] = []
    download_url: Optional[str] = None
    error: Optional[str] = None
    for line in channel:
        if on_line is not None:
            on_line(line)
        frame: Frame = json.loads(line)
        if frame["type"] == PROGRESS:
            last_items = frame["items"]
        elif frame["type"] == COMPLETE:
            download_url = frame["downloadUrl"]
        elif frame["type"] == ERROR:
            error = frame["message"]

    output_path: Optional[Path] = None
    if download_url is not None:
        data = harvester.store.get(artifact_id_from_url(download_url))
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(data)
        output_path = output
        logger.info("Saved archive to %s", output)

    succeeded = sum(1 for item in last_items if item["status"] == "success")
    return HarvestSummary(
        source_path=source,
        output_path=output_path,
        succeeded=succeeded,
        failed=len(last_items) - succeeded,
        error=error,
    )
