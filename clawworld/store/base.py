"""Record store interface shared by the PostgREST and in-memory adapters"""
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

# (column, op, value) with op in FILTER_OPS
Filter = tuple[str, str, Any]

FILTER_OPS = ("eq", "neq", "ilike", "gte", "lte")

BOTS = "bots"
MESSAGES = "messages"
STRUCTURES = "structures"
TRANSACTIONS = "transactions"

# Counter used to hand out bot sequence numbers atomically
BOT_SEQUENCE = "bot_sequence"


class RecordStore(ABC):
    """
    Filtered read/insert/patch access to named collections.

    ``privileged`` selects elevated credentials; it is required for writes
    and for reads that return wallet secrets.
    """

    async def connect(self):
        pass

    async def disconnect(self):
        pass

    @abstractmethod
    async def select(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        columns: Optional[Sequence[str]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
        privileged: bool = False,
    ) -> list[dict]:
        """Rows matching all filters. ``order`` is "column.asc" or "column.desc"."""

    @abstractmethod
    async def insert(self, collection: str, row: dict, privileged: bool = True) -> dict:
        """Insert a row and return it as stored (with generated id)."""

    @abstractmethod
    async def patch(
        self,
        collection: str,
        filters: Sequence[Filter],
        values: dict,
        privileged: bool = True,
    ) -> list[dict]:
        """Update matching rows, returning them."""

    @abstractmethod
    async def count(self, collection: str) -> int:
        """Number of rows in a collection."""

    @abstractmethod
    async def reserve_sequence(self, name: str) -> int:
        """Atomically increment counter ``name`` and return the new value (1-based)."""

    async def select_one(
        self,
        collection: str,
        filters: Sequence[Filter],
        columns: Optional[Sequence[str]] = None,
        privileged: bool = False,
    ) -> Optional[dict]:
        rows = await self.select(collection, filters, columns=columns, limit=1, privileged=privileged)
        return rows[0] if rows else None


def validate_filters(filters: Sequence[Filter]) -> None:
    for column, op, _ in filters:
        if op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op {op!r} on {column}")


def escape_like(value: str) -> str:
    """Escape LIKE wildcards (PostgREST also treats ``*`` as ``%``) so ``ilike`` matches the literal value."""
    for ch in ("\\", "%", "_", "*"):
        value = value.replace(ch, "\\" + ch)
    return value
