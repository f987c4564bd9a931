"""Naive UTC timestamps, matching what the SQLite DateTime columns store."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
