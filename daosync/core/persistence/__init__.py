from __future__ import annotations

from .hint_store import (
    LAST_ADDRESS,
    WAS_CONNECTED,
    HintStore,
    MemoryHintStore,
    SQLiteHintStore,
)

__all__ = [
    "LAST_ADDRESS",
    "WAS_CONNECTED",
    "HintStore",
    "MemoryHintStore",
    "SQLiteHintStore",
]
