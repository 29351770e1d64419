"""Data models used throughout the harvesting pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class Record:
    """One input row: the identifier and the phrase to search for."""

    id: str
    phrase: str


class RowState(str, Enum):
    PENDING = "pending"
    DOWNLOADING = "downloading"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class RowStatus:
    """Mutable per-row status reported in every progress frame."""

    id: str
    image_name: str
    status: RowState = RowState.PENDING
    error: Optional[str] = None

    @classmethod
    def for_record(cls, record: Record) -> "RowStatus":
        return cls(id=record.id, image_name=record.phrase)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "image_name": self.image_name,
            "status": self.status.value,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class FetchedAsset:
    """Downloaded bytes together with the extension they should be saved under."""

    data: bytes
    extension: str


@dataclass(frozen=True)
class Hit:
    asset: FetchedAsset


@dataclass(frozen=True)
class Miss:
    reason: str


FetchResult = Union[Hit, Miss]


@dataclass(frozen=True)
class RowOutcome:
    """Terminal state for a row, produced by the row processor."""

    state: RowState
    error: Optional[str] = None
    filename: Optional[str] = None

    @classmethod
    def success(cls, filename: str) -> "RowOutcome":
        return cls(RowState.SUCCESS, filename=filename)

    @classmethod
    def failed(cls, error: str) -> "RowOutcome":
        return cls(RowState.FAILED, error=error)
