"""FastAPI dependency injection helpers.

Extracts shared dependencies from app.state for use in route handlers.
All of them are created during the FastAPI lifespan.

Usage:
    from mailtriage.web.dependencies import get_ledger_store

    @router.get("/data")
    async def read_data(store: LedgerStore = Depends(get_ledger_store)):
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import HTTPException, Request

if TYPE_CHECKING:
    from mailtriage.jmap.messages import MessageManager
    from mailtriage.ledger.store import LedgerStore
    from mailtriage.web.lock import LockCoordinator


def get_ledger_store(request: Request) -> LedgerStore:
    """Get the shared LedgerStore from app state."""
    store = request.app.state.ledger_store
    if store is None:
        raise HTTPException(status_code=503, detail="Ledger store not configured")
    return store


def get_lock(request: Request) -> LockCoordinator:
    """Get the editor LockCoordinator from app state."""
    return request.app.state.lock


def get_message_manager(request: Request) -> MessageManager | None:
    """Get the MessageManager from app state (None when JMAP is unavailable)."""
    return request.app.state.message_manager
