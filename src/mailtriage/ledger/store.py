"""Ledger store for the kept/excluded sender files.

Each ledger is a UTF-8 text file of label sections:

    ======= Receipts =======
    ACME Billing | Invoice #123 due | M1a2b3c
    Jane Doe | Your receipt

    ======= Social =======

Sections are written in alphabetical order, entries inside a section are
sorted by sender (case-insensitive), sections are never dropped once they
exist, and a sender that appears in either ledger is never added again.

All merge logic works on the in-memory `LedgerBook`; text only exists at
the load/persist boundary. Files are rewritten whole (temp file + rename),
never appended to.

Usage:
    from mailtriage.ledger.store import LedgerStore

    store = LedgerStore("data")
    result = store.merge_and_persist(candidates)
    print(len(result.accepted), "new senders recorded")
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import regex

from mailtriage.core.errors import InvalidRequestError, LedgerError
from mailtriage.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from mailtriage.rules.engine import LedgerCandidate

logger = get_logger(__name__)

KEPT = "kept"
EXCLUDED = "excluded"
LEDGER_KINDS = (KEPT, EXCLUDED)

# Names used by the first version of the editor
LEGACY_KIND_ALIASES = {"subjects": KEPT, "exclusions": EXCLUDED}

HEADER_MARKER = "======="
HEADER_PATTERN = regex.compile(r"^=+\s*(.*?)\s*=+$")
ENTRY_SEPARATOR = " | "

# Section for entry lines that appear before any header
UNLABELED = "Unlabeled"

_WHITESPACE = regex.compile(r"\s+")

# Seconds allowed per regex operation on a ledger line
REGEX_TIMEOUT = 1.0


def normalize_kind(kind: str | None) -> str:
    """Map a ledger type from a request onto KEPT/EXCLUDED.

    Raises:
        InvalidRequestError: If the type is missing or unknown
    """
    if not kind:
        raise InvalidRequestError("Missing type parameter")
    kind = kind.strip().lower()
    kind = LEGACY_KIND_ALIASES.get(kind, kind)
    if kind not in LEDGER_KINDS:
        raise InvalidRequestError(f"Invalid type parameter: {kind!r}")
    return kind


def other_kind(kind: str) -> str:
    return EXCLUDED if kind == KEPT else KEPT


def sender_key(sender: str) -> str:
    """Identity used for deduplication: whitespace-collapsed, casefolded."""
    return _WHITESPACE.sub(" ", sender, timeout=REGEX_TIMEOUT).strip().casefold()


def _clean_field(value: str) -> str:
    # One entry per line, fields split on '|'
    return _WHITESPACE.sub(" ", value, timeout=REGEX_TIMEOUT).replace("|", "/").strip()


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """One recorded sender line."""

    sender: str
    subject: str = ""
    message_id: str | None = None

    @property
    def key(self) -> str:
        return sender_key(self.sender)

    def render(self) -> str:
        parts = [self.sender, self.subject]
        if self.message_id:
            parts.append(self.message_id)
        return ENTRY_SEPARATOR.join(parts).rstrip()

    @classmethod
    def parse(cls, line: str) -> LedgerEntry:
        parts = [p.strip() for p in line.split("|")]
        if len(parts) == 1:
            return cls(sender=parts[0])
        if len(parts) == 2:
            return cls(sender=parts[0], subject=parts[1])
        return cls(
            sender=parts[0],
            subject=ENTRY_SEPARATOR.join(parts[1:-1]),
            message_id=parts[-1] or None,
        )


@dataclass
class Ledger:
    """Label -> entries. Ordering is applied when rendering."""

    sections: dict[str, list[LedgerEntry]] = field(default_factory=dict)

    def ensure_section(self, label: str) -> list[LedgerEntry]:
        return self.sections.setdefault(label, [])

    def add(self, label: str, entry: LedgerEntry) -> bool:
        """Add an entry unless the section already holds that sender."""
        section = self.ensure_section(label)
        if any(e.key == entry.key for e in section):
            return False
        section.append(entry)
        return True

    def senders(self) -> set[str]:
        return {e.key for entries in self.sections.values() for e in entries}

    def remove_sender(self, sender: str) -> list[tuple[str, LedgerEntry]]:
        """Remove every entry of a sender; emptied sections stay."""
        key = sender_key(sender)
        removed: list[tuple[str, LedgerEntry]] = []
        for label, entries in self.sections.items():
            keep = []
            for entry in entries:
                if entry.key == key:
                    removed.append((label, entry))
                else:
                    keep.append(entry)
            entries[:] = keep
        return removed

    def sorted_sections(self) -> list[tuple[str, list[LedgerEntry]]]:
        """Sections by label name, entries by sender, both case-insensitive."""
        return [
            (label, sorted(self.sections[label], key=lambda e: (e.sender.casefold(), e.sender)))
            for label in sorted(self.sections, key=lambda name: (name.casefold(), name))
        ]

    def entry_count(self) -> int:
        return sum(len(entries) for entries in self.sections.values())


@dataclass
class LedgerBook:
    """Both ledgers, loaded together so dedup can see every sender."""

    kept: Ledger = field(default_factory=Ledger)
    excluded: Ledger = field(default_factory=Ledger)

    def get(self, kind: str) -> Ledger:
        return self.kept if kind == KEPT else self.excluded

    def known_senders(self) -> set[str]:
        return self.kept.senders() | self.excluded.senders()


@dataclass
class MergeResult:
    """Candidates accepted into the destination ledger vs skipped as known."""

    accepted: list[LedgerCandidate] = field(default_factory=list)
    skipped: list[LedgerCandidate] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Text format
# ---------------------------------------------------------------------------


def parse_ledger(text: str) -> Ledger:
    """Parse ledger text into a Ledger.

    Blank lines are ignored; a repeated sender within one section keeps its
    first line.
    """
    ledger = Ledger()
    current: str | None = None

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        header = HEADER_PATTERN.match(line, timeout=REGEX_TIMEOUT)
        if header:
            if header.group(1):
                current = header.group(1)
                ledger.ensure_section(current)
            continue

        entry = LedgerEntry.parse(line)
        if not entry.sender:
            continue
        ledger.add(current if current is not None else UNLABELED, entry)

    return ledger


def render_header(label: str) -> str:
    return f"{HEADER_MARKER} {label} {HEADER_MARKER}"


def render_ledger(ledger: Ledger) -> str:
    """Render a Ledger to text, one blank line between sections."""
    blocks = []
    for label, entries in ledger.sorted_sections():
        lines = [render_header(label)] + [entry.render() for entry in entries]
        blocks.append("\n".join(lines))
    if not blocks:
        return ""
    return "\n\n".join(blocks) + "\n"


def merge_candidates(
    book: LedgerBook,
    candidates: Iterable[LedgerCandidate],
    destination: str = KEPT,
) -> MergeResult:
    """Merge new candidates into `book` in place.

    A candidate is skipped when its sender already appears in either
    ledger, including senders accepted earlier in the same batch.
    """
    known = book.known_senders()
    target = book.get(destination)
    result = MergeResult()

    for candidate in candidates:
        sender = _clean_field(candidate.sender)
        key = sender_key(sender)
        if not key or key in known:
            result.skipped.append(candidate)
            continue

        known.add(key)
        target.add(
            _clean_field(candidate.label) or UNLABELED,
            LedgerEntry(
                sender=sender,
                subject=_clean_field(candidate.subject),
                message_id=candidate.message_id,
            ),
        )
        result.accepted.append(candidate)

    return result


# ---------------------------------------------------------------------------
# File-backed store
# ---------------------------------------------------------------------------


class LedgerStore:
    """Reads and rewrites the two ledger files.

    Attributes:
        directory: Directory holding both files
        kept_file: File name of the kept ledger
        excluded_file: File name of the excluded ledger
    """

    def __init__(
        self,
        directory: str | Path = ".",
        kept_file: str = "subjects.txt",
        excluded_file: str = "exclusions.txt",
    ):
        self.directory = Path(directory)
        self.kept_file = kept_file
        self.excluded_file = excluded_file

    def path(self, kind: str) -> Path:
        kind = normalize_kind(kind)
        return self.directory / (self.kept_file if kind == KEPT else self.excluded_file)

    # -- raw text -----------------------------------------------------------

    def read_text(self, kind: str) -> str:
        """Return the file content, or "" if the ledger does not exist yet."""
        path = self.path(kind)
        if not path.exists():
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise LedgerError(f"Failed to read ledger {path}: {e}") from e

    def write_text(self, kind: str, content: str) -> None:
        """Replace a ledger file with `content` atomically.

        Raises:
            InvalidRequestError: If `content` cannot be encoded as UTF-8
            LedgerError: If the file cannot be written
        """
        path = self.path(kind)
        try:
            data = content.encode("utf-8")
        except UnicodeEncodeError as e:
            raise InvalidRequestError(f"Ledger content is not valid UTF-8 text: {e.reason}") from e

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        except OSError as e:
            raise LedgerError(f"Failed to write ledger {path}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, path)
        except BaseException as e:
            # Never leave a partial temp file next to the ledger
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            if isinstance(e, OSError):
                raise LedgerError(f"Failed to write ledger {path}: {e}") from e
            raise
        logger.debug("ledger_written", path=str(path), size=len(content))

    # -- structured ---------------------------------------------------------

    def load(self) -> LedgerBook:
        """Parse both ledgers; missing files load as empty."""
        return LedgerBook(
            kept=parse_ledger(self.read_text(KEPT)),
            excluded=parse_ledger(self.read_text(EXCLUDED)),
        )

    def merge(self, book: LedgerBook, candidates: Iterable[LedgerCandidate]) -> MergeResult:
        return merge_candidates(book, candidates, destination=KEPT)

    def persist(self, book: LedgerBook, kinds: Iterable[str] = LEDGER_KINDS) -> None:
        for kind in kinds:
            self.write_text(kind, render_ledger(book.get(kind)))

    def merge_and_persist(self, candidates: Iterable[LedgerCandidate]) -> MergeResult:
        """Load both ledgers, merge candidates into the kept one, rewrite it."""
        book = self.load()
        result = self.merge(book, candidates)
        self.persist(book, kinds=(KEPT,))
        logger.info(
            "ledger_merged",
            accepted=len(result.accepted),
            skipped=len(result.skipped),
            kept_entries=book.kept.entry_count(),
        )
        return result

    def move_sender(self, sender: str, target: str, label: str | None = None) -> int:
        """Move every entry of `sender` into the `target` ledger.

        Entries keep their label unless `label` is given. Emptied sections
        in the source ledger remain as bare headers.

        Returns:
            Number of entries moved (0 if the sender is not in the other ledger)
        """
        target = normalize_kind(target)
        if not sender_key(sender):
            raise InvalidRequestError("Missing sender")

        book = self.load()
        removed = book.get(other_kind(target)).remove_sender(sender)
        if not removed:
            return 0

        destination = book.get(target)
        for section_label, entry in removed:
            destination.add(label or section_label, entry)

        self.persist(book)
        logger.info(
            "ledger_sender_moved",
            target=target,
            entries=len(removed),
            label=label,
        )
        return len(removed)

    def cross_duplicates(self) -> list[str]:
        """Senders present in both ledgers (possible after manual edits)."""
        book = self.load()
        shared = book.kept.senders() & book.excluded.senders()
        return sorted(shared)
