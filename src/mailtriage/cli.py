"""Command-line interface for mail triage.

Usage:
    python -m mailtriage validate-config
    python -m mailtriage run
    python -m mailtriage serve --port 3456
    python -m mailtriage ledger-check
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.table import Table

from mailtriage.config import validate_config_file
from mailtriage.core.logging import configure_logging, get_logger

if TYPE_CHECKING:
    from mailtriage.config_schema import AppConfig
    from mailtriage.engine.scan import ScanResult
    from mailtriage.jmap.mailboxes import MailboxManager
    from mailtriage.jmap.messages import MessageManager
    from mailtriage.ledger.store import LedgerStore

console = Console()
logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CLIDeps:
    """Shared dependencies initialized by _init_cli_deps()."""

    config: AppConfig
    mailbox_manager: MailboxManager
    message_manager: MessageManager
    ledger_store: LedgerStore


def _load_config_or_exit(config_path: Path | None) -> AppConfig:
    from mailtriage.config import get_config, load_config
    from mailtriage.core.errors import ConfigError

    try:
        return load_config(config_path) if config_path else get_config()
    except ConfigError as e:
        console.print(
            f"[red]Config error:[/red] {e}\n\n"
            "Run [cyan]python -m mailtriage validate-config[/cyan] for details."
        )
        sys.exit(1)


def _init_cli_deps(config_path: Path | None = None) -> CLIDeps:
    """Load config and build the JMAP managers and ledger store.

    Prints an actionable error and exits 1 on missing config or token.
    """
    from mailtriage.config import load_api_token
    from mailtriage.core.errors import ConfigError
    from mailtriage.jmap.client import JMAPClient
    from mailtriage.jmap.mailboxes import MailboxManager
    from mailtriage.jmap.messages import MessageManager
    from mailtriage.ledger.store import LedgerStore

    config = _load_config_or_exit(config_path)

    try:
        token = load_api_token(config)
    except ConfigError as e:
        console.print(f"[red]Credential error:[/red] {e}")
        sys.exit(1)

    client = JMAPClient(
        token,
        session_url=config.jmap.session_url,
        api_url=config.jmap.api_url,
        timeout=config.jmap.request_timeout_seconds,
    )

    return CLIDeps(
        config=config,
        mailbox_manager=MailboxManager(client),
        message_manager=MessageManager(client),
        ledger_store=LedgerStore(
            config.ledger.directory,
            kept_file=config.ledger.kept_file,
            excluded_file=config.ledger.excluded_file,
        ),
    )


def _print_scan_summary(result: ScanResult) -> None:
    console.print(
        f"\nScan of [cyan]{result.scan_folder}[/cyan] finished in "
        f"{result.duration_ms / 1000:.1f} secs, {result.messages_scanned} processed"
    )

    if result.folders_created:
        console.print(f"Created folders: {', '.join(result.folders_created)}")

    if result.labels_added or result.labels_removed:
        table = Table(title="Label changes")
        table.add_column("Label", style="cyan")
        table.add_column("Added", justify="right")
        table.add_column("Removed", justify="right")
        for label in sorted(set(result.labels_added) | set(result.labels_removed)):
            table.add_row(
                label,
                str(result.labels_added.get(label, 0)),
                str(result.labels_removed.get(label, 0)),
            )
        console.print(table)

    if result.unresolved_labels:
        console.print(
            f"[yellow]Unknown labels (no such folder):[/yellow] "
            f"{', '.join(result.unresolved_labels)}"
        )
    if result.messages_not_updated:
        console.print(
            f"[yellow]{result.messages_not_updated} messages were rejected by the server[/yellow]"
        )
    console.print(
        f"Ledger: {result.ledger_accepted} new senders, {result.ledger_skipped} already known"
    )


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def cli(debug: bool) -> None:
    """Mail triage - rule-based labelling for Fastmail."""
    log_level = "DEBUG" if debug else "INFO"
    configure_logging(log_level=log_level, json_output=False)


_config_option = click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/config.yaml)",
)


@cli.command("validate-config")
@_config_option
def validate_config(config_path: Path | None) -> None:
    """Validate the configuration file.

    Checks that config.yaml exists and passes schema validation, including
    every rule's regex.
    """
    shown = config_path or "config/config.yaml"
    console.print(f"Validating config: [cyan]{shown}[/cyan]")

    is_valid, message = validate_config_file(config_path)

    if is_valid:
        console.print(f"\n[green]✓[/green] {message}")
        sys.exit(0)
    else:
        console.print(f"\n[red]✗[/red] {message}")
        sys.exit(1)


@cli.command("run")
@_config_option
def run(config_path: Path | None) -> None:
    """Run one triage scan over the configured folder."""
    from mailtriage.core.errors import NotFoundError, RemoteCallError
    from mailtriage.engine.scan import ScanEngine

    deps = _init_cli_deps(config_path)
    if deps.config.logging.file:
        configure_logging(
            log_level=logging.getLevelName(logging.getLogger().level),
            json_output=False,
            log_file=deps.config.logging.file,
        )
    engine = ScanEngine(
        deps.config,
        deps.mailbox_manager,
        deps.message_manager,
        deps.ledger_store,
    )

    try:
        result = engine.run()
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(130)
    except NotFoundError as e:
        console.print(f"\n[red]Not found:[/red] {e}")
        sys.exit(1)
    except RemoteCallError as e:
        console.print(f"\n[red]Mail store error:[/red] {e}")
        sys.exit(1)
    except Exception as e:
        logger.exception("scan_failed", error=str(e))
        console.print(f"\n[red]Error:[/red] {e}")
        sys.exit(1)

    _print_scan_summary(result)


@cli.command("serve")
@_config_option
@click.option(
    "--host",
    default="127.0.0.1",
    help="Host to bind to (default: localhost only)",
)
@click.option("--port", default=3456, type=int, help="Port to bind to")
def serve(config_path: Path | None, host: str, port: int) -> None:
    """Start the ledger editor API (and scheduled scans, if configured)."""
    import os

    import uvicorn

    from mailtriage.web.app import create_app

    if config_path:
        os.environ["MAILTRIAGE_CONFIG_PATH"] = str(config_path)

    if host == "0.0.0.0":  # noqa: S104
        console.print(
            "[yellow]Warning:[/yellow] Binding to 0.0.0.0 exposes the editor to the network.\n"
            "It has no authentication. Use 127.0.0.1 for local-only access."
        )

    from mailtriage.config import load_api_token
    from mailtriage.core.errors import ConfigError

    config = _load_config_or_exit(config_path)
    configure_logging(log_level="INFO", json_output=True, log_file=config.logging.file)

    try:
        load_api_token(config)
    except ConfigError as e:
        console.print(f"[red]Credential error:[/red] {e}")
        sys.exit(1)

    app = create_app(static_dir=config.web.static_dir)
    console.print(f"Starting server on [cyan]http://{host}:{port}[/cyan]")
    uvicorn.run(app, host=host, port=port, log_level="info")


@cli.command("ledger-check")
@_config_option
def ledger_check(config_path: Path | None) -> None:
    """Report senders listed in both the kept and excluded ledgers."""
    from mailtriage.core.errors import LedgerError
    from mailtriage.ledger.store import LedgerStore

    config = _load_config_or_exit(config_path)
    store = LedgerStore(
        config.ledger.directory,
        kept_file=config.ledger.kept_file,
        excluded_file=config.ledger.excluded_file,
    )

    try:
        book = store.load()
        duplicates = store.cross_duplicates()
    except LedgerError as e:
        console.print(f"[red]Ledger error:[/red] {e}")
        sys.exit(1)

    console.print(
        f"kept: {book.kept.entry_count()} entries in {len(book.kept.sections)} labels, "
        f"excluded: {book.excluded.entry_count()} entries in {len(book.excluded.sections)} labels"
    )
    if not duplicates:
        console.print("[green]✓[/green] No sender appears in both ledgers")
        return

    console.print(f"[yellow]{len(duplicates)} senders appear in both ledgers:[/yellow]")
    for sender in duplicates:
        console.print(f"  - {sender}")
    sys.exit(1)


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
