"""Utility helpers for identifier sanitising and file naming."""

from __future__ import annotations

import re

IDENTIFIER_PATTERN = re.compile(r"[^A-Za-z0-9]")
PATH_SEPARATOR_PATTERN = re.compile(r"[/\\]")


def sanitize_identifier(value: str) -> str:
    """Keep ASCII letters and digits only."""
    return IDENTIFIER_PATTERN.sub("", value or "")


def search_phrase(value: str) -> str:
    """Replace path separators with spaces so they do not leak into the query."""
    return PATH_SEPARATOR_PATTERN.sub(" ", value)


def record_filename(record_id: str, extension: str) -> str:
    """File name for a downloaded row, confined to a single path component."""
    stem = PATH_SEPARATOR_PATTERN.sub("_", record_id).strip()
    if stem in ("", ".", ".."):
        stem = "_" + stem.replace(".", "_")
    return f"{stem}{extension}"
