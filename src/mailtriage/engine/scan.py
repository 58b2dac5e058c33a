"""Scan engine: one linear triage pass over the configured folder.

Steps per run:
1. Discover the account and list mailboxes
2. Create any missing required folders
3. Resolve the scan folder (NotFoundError aborts before any processing)
4. Query the newest messages and fetch their properties
5. Evaluate the rule set per message
6. Send all label changes in one Email/set call
7. Merge ledger candidates into the kept ledger

Any exception aborts the remainder of the run. The label mutation and the
ledger write are independent: a ledger failure after a successful mutation
leaves the mailbox changes in place.

Usage:
    from mailtriage.engine.scan import ScanEngine

    engine = ScanEngine(config, mailbox_manager, message_manager, ledger_store)
    result = engine.run()
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from mailtriage.core.logging import get_logger, set_correlation_id
from mailtriage.engine.labels import LabelSynchronizer
from mailtriage.rules.engine import RuleEngine, build_mailbox_index
from mailtriage.rules.models import RuleSet

if TYPE_CHECKING:
    from mailtriage.config_schema import AppConfig
    from mailtriage.jmap.mailboxes import MailboxManager
    from mailtriage.jmap.messages import MessageManager
    from mailtriage.ledger.store import LedgerStore

logger = get_logger(__name__)


@dataclass
class ScanResult:
    """Summary of a single scan run."""

    run_id: str
    scan_folder: str
    duration_ms: int = 0
    messages_scanned: int = 0
    messages_updated: int = 0
    messages_not_updated: int = 0
    labels_added: dict[str, int] = field(default_factory=dict)
    labels_removed: dict[str, int] = field(default_factory=dict)
    unresolved_labels: list[str] = field(default_factory=list)
    folders_created: list[str] = field(default_factory=list)
    ledger_accepted: int = 0
    ledger_skipped: int = 0


class ScanEngine:
    """Runs the rule set over the scan folder and records the results.

    Attributes:
        _config: Application configuration
        _mailboxes: MailboxManager for folder listing/creation
        _messages: MessageManager for query/get/set
        _ledger: LedgerStore, or None to skip ledger recording
    """

    def __init__(
        self,
        config: AppConfig,
        mailbox_manager: MailboxManager,
        message_manager: MessageManager,
        ledger_store: LedgerStore | None = None,
    ):
        self._config = config
        self._mailboxes = mailbox_manager
        self._messages = message_manager
        self._ledger = ledger_store
        self._rules = RuleSet.from_config(config.rules)

    def run(self) -> ScanResult:
        """Execute one scan run.

        Raises:
            NotFoundError: If the scan folder does not exist
            RemoteCallError: If any JMAP call fails
            LedgerError: If the kept ledger cannot be rewritten
        """
        run_id = str(uuid.uuid4())
        set_correlation_id(run_id)
        start = time.monotonic()
        scan = self._config.scan
        result = ScanResult(run_id=run_id, scan_folder=scan.folder)

        logger.info(
            "scan_started",
            scan_folder=scan.folder,
            first_message=scan.first_message,
            max_messages=scan.max_messages,
            rules=len(self._rules),
        )

        try:
            mailboxes = self._mailboxes.list_mailboxes()
            existing = {mb["name"] for mb in mailboxes}
            mailboxes = self._mailboxes.ensure_folders(self._config.required_folders, mailboxes)
            result.folders_created = [mb["name"] for mb in mailboxes if mb["name"] not in existing]

            scan_mailbox = self._mailboxes.find_by_name(scan.folder, mailboxes)

            ids = self._messages.query_ids(
                scan_mailbox["id"],
                position=scan.first_message,
                limit=scan.max_messages,
            )
            messages = self._messages.get_messages(ids)
            result.messages_scanned = len(messages)

            if messages:
                self._process(messages, build_mailbox_index(mailboxes), result)
        finally:
            result.duration_ms = int((time.monotonic() - start) * 1000)
            set_correlation_id(None)

        logger.info(
            "scan_finished",
            run_id=run_id,
            duration_ms=result.duration_ms,
            processed=result.messages_scanned,
            updated=result.messages_updated,
            ledger_accepted=result.ledger_accepted,
        )
        return result

    def _process(self, messages, mailbox_ids: dict[str, str], result: ScanResult) -> None:
        engine = RuleEngine(self._rules, mailbox_ids)
        outcome = engine.evaluate_all(messages)

        result.labels_added = dict(outcome.labels_added)
        result.labels_removed = dict(outcome.labels_removed)
        result.unresolved_labels = sorted(outcome.unresolved_labels)

        synchronizer = LabelSynchronizer(
            self._messages,
            keyword_cleanup=self._config.sync.keyword_cleanup,
        )
        sync = synchronizer.synchronize(outcome.evaluations)
        result.messages_updated = sync.requested - len(sync.not_updated)
        result.messages_not_updated = len(sync.not_updated)

        for label, count in result.labels_added.items():
            logger.info("label_added", label=label, messages=count)
        for label, count in result.labels_removed.items():
            logger.info("label_removed", label=label, messages=count)

        if self._ledger is not None and self._config.ledger.record_matches:
            candidates = outcome.candidates
            if candidates:
                merged = self._ledger.merge_and_persist(candidates)
                result.ledger_accepted = len(merged.accepted)
                result.ledger_skipped = len(merged.skipped)
