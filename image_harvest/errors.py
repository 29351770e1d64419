"""Exceptions raised by the harvesting pipeline.

Per-row misses are not exceptions: an empty candidate list or a ``Miss``
result is the normal way to report them.
"""

from __future__ import annotations


class HarvestError(Exception):
    """Base class for terminal pipeline failures."""


class ValidationError(HarvestError):
    """The uploaded table is unreadable, empty or lacks a required column."""


class ArchiveError(HarvestError):
    """The ZIP archive could not be written or verified."""


class NotFound(HarvestError):
    """No artifact exists for the requested identifier."""
