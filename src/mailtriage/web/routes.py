"""Web routes for the ledger editor.

All endpoints live on `api_router` under /api and speak JSON. Every data
read or lock query first lets the lock lapse if its timeout has passed;
every data-saving write (re)acquires it.

Validation failures return 400, unexpected failures 500; either way the
server keeps serving.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from mailtriage.core.errors import InvalidRequestError, LedgerError, RemoteCallError
from mailtriage.core.logging import get_logger
from mailtriage.jmap.messages import MessageManager
from mailtriage.ledger.store import LedgerStore, normalize_kind
from mailtriage.web.dependencies import get_ledger_store, get_lock, get_message_manager
from mailtriage.web.lock import LockCoordinator

logger = get_logger(__name__)

api_router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Pydantic models for API input
# ---------------------------------------------------------------------------


class SaveDataRequest(BaseModel):
    """Request body for replacing a ledger file."""

    type: str | None = None
    content: str | None = None


class MoveSenderRequest(BaseModel):
    """Request body for moving a sender between ledgers."""

    sender: str | None = None
    to: str | None = None
    label: str | None = None


# ---------------------------------------------------------------------------
# Ledger data
# ---------------------------------------------------------------------------


@api_router.get("/data")
async def read_data(
    type: str | None = None,
    store: LedgerStore = Depends(get_ledger_store),
    lock: LockCoordinator = Depends(get_lock),
):
    """Return a ledger's raw text plus the lock flag."""
    locked = lock.is_locked()
    kind = normalize_kind(type)

    try:
        content = store.read_text(kind)
    except LedgerError as e:
        logger.error("ledger_read_failed", kind=kind, error=str(e))
        raise HTTPException(status_code=500, detail=str(e)) from None

    return {"content": content, "locked": locked}


@api_router.post("/data")
async def save_data(
    body: SaveDataRequest,
    store: LedgerStore = Depends(get_ledger_store),
    lock: LockCoordinator = Depends(get_lock),
):
    """Replace a ledger's text and take the editor lock."""
    lock.state()
    kind = normalize_kind(body.type)
    if body.content is None:
        raise InvalidRequestError("Missing content")

    try:
        store.write_text(kind, body.content)
    except LedgerError as e:
        logger.error("ledger_save_failed", kind=kind, error=str(e))
        raise HTTPException(status_code=500, detail=str(e)) from None

    logger.info("ledger_saved", kind=kind, size=len(body.content))
    state = lock.acquire()
    return {"success": True, "locked": state.held}


@api_router.post("/move")
async def move_sender(
    body: MoveSenderRequest,
    store: LedgerStore = Depends(get_ledger_store),
    lock: LockCoordinator = Depends(get_lock),
):
    """Move a sender's entries from one ledger to the other."""
    lock.state()
    if not body.sender or not body.sender.strip():
        raise InvalidRequestError("Missing sender")
    target = normalize_kind(body.to)

    try:
        moved = store.move_sender(body.sender, target, label=body.label or None)
    except LedgerError as e:
        logger.error("ledger_move_failed", target=target, error=str(e))
        raise HTTPException(status_code=500, detail=str(e)) from None

    if moved == 0:
        raise HTTPException(status_code=404, detail=f"Sender not found in the other ledger: {body.sender}")

    state = lock.acquire()
    return {"success": True, "moved": moved, "locked": state.held}


# ---------------------------------------------------------------------------
# Lock
# ---------------------------------------------------------------------------


@api_router.post("/release-lock")
async def release_lock(lock: LockCoordinator = Depends(get_lock)):
    lock.release()
    return {"success": True}


@api_router.get("/lock-status")
async def lock_status(lock: LockCoordinator = Depends(get_lock)):
    state = lock.state()
    return {
        "locked": state.held,
        "acquiredAt": state.acquired_at,
        "expiresAt": state.expires_at,
    }


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@api_router.get("/message/{message_id}")
async def get_message(
    message_id: str,
    message_manager: MessageManager | None = Depends(get_message_manager),
):
    """Fetch one message from the mail store for display."""
    if not message_id.strip():
        raise InvalidRequestError("Missing messageId")
    if message_manager is None:
        raise HTTPException(status_code=503, detail="Mail store connection not configured")

    try:
        message = message_manager.fetch_full_message(message_id)
    except RemoteCallError as e:
        logger.error("message_fetch_failed", message_id=message_id, error=str(e))
        raise HTTPException(status_code=502, detail=str(e)) from None

    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return message


@api_router.get("/health")
async def health_check(
    lock: LockCoordinator = Depends(get_lock),
    message_manager: MessageManager | None = Depends(get_message_manager),
):
    return {
        "status": "ok",
        "locked": lock.is_locked(),
        "jmap": "configured" if message_manager is not None else "unavailable",
    }
