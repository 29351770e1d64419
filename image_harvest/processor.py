"""Per-row download state machine and the ordered batch loop."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Protocol, Sequence

from .models import FetchResult, Hit, Record, RowOutcome, RowState, RowStatus
from .utils import record_filename, search_phrase

logger = logging.getLogger("image_harvest")

NO_IMAGES_FOUND = "No images found"
DOWNLOAD_FAILED = "Failed to download image"
UNKNOWN_ERROR = "Unknown error"


class Resolver(Protocol):
    def resolve(self, phrase: str) -> List[str]:
        ...


class Fetcher(Protocol):
    def fetch(self, url: str) -> FetchResult:
        ...


def _write_replacing(path: Path, data: bytes) -> None:
    """Write via a temporary sibling so concurrent writers never interleave bytes."""
    fd, tmp_name = tempfile.mkstemp(prefix=".", suffix=".part", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def process_record(
    record: Record,
    work_dir: Path,
    resolver: Resolver,
    fetcher: Fetcher,
) -> RowOutcome:
    """Resolve a record's phrase and save the first candidate that downloads.

    Never raises: anything unexpected becomes a failed outcome carrying the
    exception message.
    """
    try:
        candidates = resolver.resolve(search_phrase(record.phrase))
        if not candidates:
            return RowOutcome.failed(NO_IMAGES_FOUND)

        for url in candidates:
            result = fetcher.fetch(url)
            if isinstance(result, Hit):
                filename = record_filename(record.id, result.asset.extension)
                _write_replacing(work_dir / filename, result.asset.data)
                return RowOutcome.success(filename)
            logger.debug("Candidate %s for row %s missed: %s", url, record.id, result.reason)
        return RowOutcome.failed(DOWNLOAD_FAILED)
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Unexpected error while processing row %s", record.id)
        return RowOutcome.failed(str(exc) or UNKNOWN_ERROR)


def _snapshot(statuses: Sequence[RowStatus]) -> List[RowStatus]:
    return [replace(status) for status in statuses]


class BatchProcessor:
    """Drive every record through resolve and fetch, reporting in input order.

    Up to ``workers`` rows are processed concurrently, but statuses are
    mutated and snapshots yielded only from the iterating thread, so the
    emitted sequence is identical to a sequential run. Closing the iterator
    early stops scheduling further rows.
    """

    def __init__(
        self,
        resolver: Resolver,
        fetcher: Fetcher,
        row_pause: float = 0.5,
        workers: int = 1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.resolver = resolver
        self.fetcher = fetcher
        self.row_pause = row_pause
        self.workers = max(1, workers)
        self._sleep = sleep

    def run(self, records: Sequence[Record], work_dir: Path) -> Iterator[List[RowStatus]]:
        statuses = [RowStatus.for_record(record) for record in records]
        yield _snapshot(statuses)
        if not records:
            return

        executor = ThreadPoolExecutor(
            max_workers=self.workers, thread_name_prefix="image-harvest"
        )
        in_flight: Dict[int, "Future[RowOutcome]"] = {}
        next_index = 0

        def schedule(limit: int) -> None:
            nonlocal next_index
            while next_index < min(limit, len(records)):
                in_flight[next_index] = executor.submit(
                    process_record,
                    records[next_index],
                    work_dir,
                    self.resolver,
                    self.fetcher,
                )
                next_index += 1

        finished = False
        try:
            schedule(self.workers)
            for index, status in enumerate(statuses):
                status.status = RowState.DOWNLOADING
                yield _snapshot(statuses)

                outcome = in_flight.pop(index).result()
                status.status = outcome.state
                status.error = outcome.error
                if outcome.state is RowState.SUCCESS:
                    logger.info("Row %s saved as %s", status.id, outcome.filename)
                else:
                    logger.info("Row %s failed: %s", status.id, outcome.error)
                yield _snapshot(statuses)

                if self.row_pause > 0:
                    self._sleep(self.row_pause)
                schedule(index + 1 + self.workers)
            finished = True
        finally:
            if not finished:
                logger.warning(
                    "Batch stopped early; %d of %d rows were not started",
                    len(records) - next_index,
                    len(records),
                )
                for future in in_flight.values():
                    future.cancel()
            executor.shutdown(wait=True)
