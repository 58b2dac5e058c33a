"""FastAPI application for the ledger editor.

Creates the FastAPI app with:
- Lifespan context manager for dependency initialization and scheduler
- JSON API router
- Static file serving for the front-end bundle (when the directory exists),
  falling back to index.html for client-side routes

When `schedule.interval_minutes` is set, scans also run in-process via
APScheduler's BackgroundScheduler. A scheduled scan is skipped while the
editor lock is held.

Usage:
    from mailtriage.web.app import create_app

    app = create_app()
    # Run with: uvicorn.run(app, host="127.0.0.1", port=3456)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from mailtriage.core.errors import InvalidRequestError
from mailtriage.core.logging import get_logger
from mailtriage.web.lock import LockCoordinator

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize dependencies on startup, clean up on shutdown.

    On startup:
    1. Load config and the API token (ConfigError aborts startup)
    2. Create the ledger store and editor lock
    3. Connect the JMAP managers
    4. Start APScheduler if a scan interval is configured
    """
    from mailtriage.config import get_config, load_api_token
    from mailtriage.core.errors import ConfigError
    from mailtriage.jmap.client import JMAPClient
    from mailtriage.jmap.mailboxes import MailboxManager
    from mailtriage.jmap.messages import MessageManager
    from mailtriage.ledger.store import LedgerStore

    app.state.scheduler = None

    # 1. Load config (a bad config or missing token stops startup)
    try:
        config = get_config()
        token = load_api_token(config)
    except ConfigError as e:
        logger.error("startup_failed", error=str(e))
        raise

    app.state.config = config

    # 2. Ledgers and lock
    app.state.ledger_store = LedgerStore(
        config.ledger.directory,
        kept_file=config.ledger.kept_file,
        excluded_file=config.ledger.excluded_file,
    )
    app.state.lock = LockCoordinator(timeout_seconds=config.lock.timeout_seconds)

    # 3. JMAP
    client = JMAPClient(
        token,
        session_url=config.jmap.session_url,
        api_url=config.jmap.api_url,
        timeout=config.jmap.request_timeout_seconds,
    )
    message_manager = MessageManager(client)
    mailbox_manager = MailboxManager(client)
    app.state.message_manager = message_manager

    # 4. Scheduled scans
    if config.schedule.interval_minutes:
        app.state.scheduler = _start_scheduler(app, mailbox_manager, message_manager)

    yield

    if app.state.scheduler:
        app.state.scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")


def _start_scheduler(app: FastAPI, mailbox_manager, message_manager):
    """Run ScanEngine every interval unless the editor holds the lock."""
    from datetime import datetime, timedelta

    from apscheduler.schedulers.background import BackgroundScheduler

    from mailtriage.engine.scan import ScanEngine

    config = app.state.config
    engine = ScanEngine(config, mailbox_manager, message_manager, app.state.ledger_store)
    lock: LockCoordinator = app.state.lock

    def _run_scan() -> None:
        if lock.is_locked():
            logger.info("scheduled_scan_skipped", reason="editor_lock_held")
            return
        try:
            engine.run()
        except Exception as e:
            logger.error("scheduled_scan_failed", error=str(e), error_type=type(e).__name__)

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        _run_scan,
        "interval",
        minutes=config.schedule.interval_minutes,
        id="scan_run",
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now() + timedelta(seconds=60),
    )
    scheduler.start()
    logger.info("scheduler_started", interval_minutes=config.schedule.interval_minutes)
    return scheduler


class SPAStaticFiles(StaticFiles):
    """Static front-end files with a fallback to index.html.

    Unknown paths outside /api return the app shell so client-side routes
    survive a reload or a deep link.
    """

    async def get_response(self, path: str, scope):
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            if exc.status_code != 404 or path == "api" or path.startswith("api/"):
                raise
            return await super().get_response("index.html", scope)


async def _invalid_request_handler(request: Request, exc: InvalidRequestError) -> JSONResponse:
    logger.info("invalid_request", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in exc.errors()
    ]
    logger.info("invalid_request", path=request.url.path, error="; ".join(errors))
    return JSONResponse(status_code=400, content={"detail": "; ".join(errors)})


def create_app(static_dir: str | Path | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        static_dir: Front-end asset directory; mounted at / when it exists

    Returns:
        Configured FastAPI instance
    """
    from mailtriage.web.routes import api_router

    app = FastAPI(
        title="Mail Triage Editor",
        description="Ledger editor and lock API for mail triage runs",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Defaults so routes work before (or without) the lifespan running
    app.state.config = None
    app.state.ledger_store = None
    app.state.message_manager = None
    app.state.lock = LockCoordinator()
    app.state.scheduler = None

    app.add_exception_handler(InvalidRequestError, _invalid_request_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(api_router)

    if static_dir is not None and Path(static_dir).is_dir():
        app.mount("/", SPAStaticFiles(directory=str(static_dir), html=True), name="static")

    return app
