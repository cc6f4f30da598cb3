"""Record store adapters (bots, messages, structures, transactions)"""
from .base import (
    RecordStore,
    Filter,
    BOTS,
    MESSAGES,
    STRUCTURES,
    TRANSACTIONS,
    BOT_SEQUENCE,
    escape_like,
)
from .memory import MemoryRecordStore
from .postgrest import PostgrestRecordStore

__all__ = [
    "RecordStore",
    "Filter",
    "BOTS",
    "MESSAGES",
    "STRUCTURES",
    "TRANSACTIONS",
    "BOT_SEQUENCE",
    "escape_like",
    "MemoryRecordStore",
    "PostgrestRecordStore",
]
