"""Newline-delimited JSON frames streamed back to the caller."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Iterable, Iterator, Optional, Sequence

from .models import RowStatus

logger = logging.getLogger("image_harvest")

Frame = Dict[str, Any]

PROGRESS = "progress"
COMPLETE = "complete"
ERROR = "error"
TERMINAL_TYPES = {COMPLETE, ERROR}


def progress_frame(statuses: Sequence[RowStatus]) -> Frame:
    return {"type": PROGRESS, "items": [status.to_dict() for status in statuses]}


def complete_frame(download_url: str) -> Frame:
    return {"type": COMPLETE, "downloadUrl": download_url}


def error_frame(message: str) -> Frame:
    return {"type": ERROR, "message": message}


def encode_frame(frame: Frame) -> str:
    return json.dumps(frame, ensure_ascii=False, separators=(",", ":")) + "\n"


def decode_frames(text: str) -> Iterator[Frame]:
    """Parse a captured stream back into frames, ignoring blank lines."""
    for line in text.splitlines():
        if line.strip():
            yield json.loads(line)


class ProgressChannel:
    """Encode a frame source into lines and guarantee a single close.

    Iteration stops after the first terminal frame. An unexpected exception
    from the source becomes one final ``error`` frame. ``close`` may be called
    by the server when the client goes away; it closes the source exactly once.
    """

    def __init__(self, frames: Iterable[Frame]) -> None:
        self._frames = iter(frames)
        self._lock = threading.RLock()
        self._closed = False
        self.outcome: Optional[str] = None
        self.frames_sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[str]:
        try:
            for frame in self._frames:
                self.frames_sent += 1
                yield encode_frame(frame)
                if frame["type"] in TERMINAL_TYPES:
                    self.outcome = frame["type"]
                    return
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected error while streaming progress")
            self.outcome = ERROR
            self.frames_sent += 1
            yield encode_frame(error_frame(str(exc) or "An error occurred"))
        finally:
            self.close()

    def close(self) -> None:
        """Close the frame source once; a no-op after the first successful close."""
        with self._lock:
            if self._closed:
                return
            close_source = getattr(self._frames, "close", None)
            if close_source is not None:
                try:
                    close_source()
                except ValueError:
                    # Source is mid-iteration on another thread; the iterating
                    # thread closes it from its own finally block.
                    logger.debug("Frame source still running; deferring close")
                    return
            self._closed = True
        logger.info(
            "Progress stream closed after %d frames (%s)",
            self.frames_sent,
            self.outcome or "cancelled",
        )
