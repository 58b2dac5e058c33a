"""Kept/excluded sender ledgers.

Usage:
    from mailtriage.ledger import LedgerStore

    store = LedgerStore("data")
    book = store.load()
"""

from mailtriage.ledger.store import (
    EXCLUDED,
    KEPT,
    Ledger,
    LedgerBook,
    LedgerEntry,
    LedgerStore,
    MergeResult,
    merge_candidates,
    parse_ledger,
    render_ledger,
)

__all__ = [
    "EXCLUDED",
    "KEPT",
    "Ledger",
    "LedgerBook",
    "LedgerEntry",
    "LedgerStore",
    "MergeResult",
    "merge_candidates",
    "parse_ledger",
    "render_ledger",
]
