"""In-process record store for local runs and tests"""
import asyncio
import copy
import itertools
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from ..errors import RecordStoreError
from .base import BOTS, Filter, RecordStore, validate_filters

logger = logging.getLogger(__name__)

# Same constraints as the unique indexes in schema.sql (compared case-insensitively)
UNIQUE_COLUMNS: dict[str, tuple[str, ...]] = {BOTS: ("name", "wallet_address")}


def _like_to_regex(pattern: str) -> re.Pattern:
    """LIKE pattern (with backslash escapes, % / * and _ wildcards) to regex."""
    out = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            out.append(re.escape(next(chars, "\\")))
        elif ch in "%*":
            out.append(".*")
        elif ch == "_":
            out.append(".")
        else:
            out.append(re.escape(ch))
    return re.compile("".join(out), re.IGNORECASE | re.DOTALL)


def _matches(row: dict, column: str, op: str, value: Any) -> bool:
    actual = row.get(column)
    if op == "eq":
        return actual is not None and str(actual) == str(value)
    if op == "neq":
        return actual is None or str(actual) != str(value)
    if op == "ilike":
        return actual is not None and _like_to_regex(str(value)).fullmatch(str(actual)) is not None
    if actual is None:
        return False
    if op == "gte":
        return actual >= value
    if op == "lte":
        return actual <= value
    raise ValueError(f"Unsupported filter op {op!r}")


class MemoryRecordStore(RecordStore):
    """
    Record store kept in a dict of lists.

    Values are compared the way PostgREST compares query-string values for
    ``eq``/``neq`` (as text), so ids may be passed as int or str.
    """

    def __init__(self, seed: Optional[dict[str, list[dict]]] = None):
        self._collections: dict[str, list[dict]] = {}
        self._ids = itertools.count(1)
        self._sequences: dict[str, int] = {}
        self._sequence_lock = asyncio.Lock()
        for collection, rows in (seed or {}).items():
            for row in rows:
                self._insert_sync(collection, row)

    def _insert_sync(self, collection: str, row: dict) -> dict:
        for column in UNIQUE_COLUMNS.get(collection, ()):
            value = row.get(column)
            if value is None:
                continue
            for existing in self._collections.get(collection, []):
                if str(existing.get(column, "")).lower() == str(value).lower():
                    raise RecordStoreError(f"duplicate key value violates unique constraint on {collection}.{column}")
        stored = copy.deepcopy(row)
        stored.setdefault("id", next(self._ids))
        stored.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self._collections.setdefault(collection, []).append(stored)
        return copy.deepcopy(stored)

    def rows(self, collection: str) -> list[dict]:
        """Direct view of a collection (for tests and debugging)."""
        return self._collections.setdefault(collection, [])

    async def select(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        columns: Optional[Sequence[str]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
        privileged: bool = False,
    ) -> list[dict]:
        validate_filters(filters)
        rows = [
            row for row in self._collections.get(collection, [])
            if all(_matches(row, c, op, v) for c, op, v in filters)
        ]
        if order:
            column, _, direction = order.partition(".")
            present = [r for r in rows if r.get(column) is not None]
            missing = [r for r in rows if r.get(column) is None]
            present.sort(key=lambda r: r[column], reverse=direction == "desc")
            rows = present + missing
        if limit is not None:
            rows = rows[:limit]
        if columns and "*" not in columns:
            rows = [{c: row.get(c) for c in columns} for row in rows]
        return copy.deepcopy(rows)

    async def insert(self, collection: str, row: dict, privileged: bool = True) -> dict:
        return self._insert_sync(collection, row)

    async def patch(
        self,
        collection: str,
        filters: Sequence[Filter],
        values: dict,
        privileged: bool = True,
    ) -> list[dict]:
        if not filters:
            raise ValueError("Refusing to patch a whole collection")
        validate_filters(filters)
        updated = []
        for row in self._collections.get(collection, []):
            if all(_matches(row, c, op, v) for c, op, v in filters):
                row.update(copy.deepcopy(values))
                updated.append(copy.deepcopy(row))
        return updated

    async def count(self, collection: str) -> int:
        return len(self._collections.get(collection, []))

    async def reserve_sequence(self, name: str) -> int:
        async with self._sequence_lock:
            value = self._sequences.get(name, 0) + 1
            self._sequences[name] = value
            return value
