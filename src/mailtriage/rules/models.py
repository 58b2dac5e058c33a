"""Rule and message models used by the rule engine.

A rule is a field selector, a tuple of condition variants and a tuple of
actions. Conditions are small frozen dataclasses so the evaluator can
dispatch on type instead of probing a dict for optional keys.

Messages are read-only snapshots built from JMAP ``Email/get`` results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mailtriage.config_schema import RuleConfig


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EmailAddress:
    """A JMAP EmailAddress (display name is optional)."""

    email: str
    name: str | None = None

    @classmethod
    def from_jmap(cls, data: dict[str, Any]) -> EmailAddress:
        return cls(email=data.get("email") or "", name=data.get("name") or None)


@dataclass(frozen=True, slots=True)
class Header:
    """A raw header name/value pair."""

    name: str
    value: str


@dataclass(frozen=True)
class Message:
    """Read-only view of a message as fetched from the mail store.

    Attributes:
        id: JMAP Email id
        subject: Subject line ("" when absent)
        sender: From addresses (usually one)
        recipients: To addresses
        headers: Raw headers in message order
        keywords: Current keyword set ($seen, $flagged, custom keywords)
        mailbox_ids: Mailboxes the message currently belongs to
        text_body: Decoded value of the first text/plain body part
        received_at: receivedAt as sent by the server (UTC date string)
    """

    id: str
    subject: str = ""
    sender: tuple[EmailAddress, ...] = ()
    recipients: tuple[EmailAddress, ...] = ()
    headers: tuple[Header, ...] = ()
    keywords: frozenset[str] = frozenset()
    mailbox_ids: frozenset[str] = frozenset()
    text_body: str | None = None
    received_at: str | None = None

    @classmethod
    def from_jmap(cls, data: dict[str, Any]) -> Message:
        """Build a Message from an Email/get list entry."""
        body_values = data.get("bodyValues") or {}
        text_body = None
        text_parts = data.get("textBody") or []
        if text_parts:
            part_id = text_parts[0].get("partId")
            if part_id is not None and part_id in body_values:
                text_body = body_values[part_id].get("value")

        return cls(
            id=data["id"],
            subject=data.get("subject") or "",
            sender=tuple(EmailAddress.from_jmap(a) for a in data.get("from") or ()),
            recipients=tuple(EmailAddress.from_jmap(a) for a in data.get("to") or ()),
            headers=tuple(
                Header(name=h.get("name", ""), value=h.get("value", ""))
                for h in data.get("headers") or ()
            ),
            keywords=frozenset(k for k, v in (data.get("keywords") or {}).items() if v),
            mailbox_ids=frozenset(
                m for m, v in (data.get("mailboxIds") or {}).items() if v
            ),
            text_body=text_body,
            received_at=data.get("receivedAt"),
        )

    def header(self, name: str) -> str | None:
        """Return the first header value matching `name` case-insensitively."""
        wanted = name.lower()
        for h in self.headers:
            if h.name.lower() == wanted:
                return h.value
        return None

    @property
    def sender_identity(self) -> str | None:
        """Display name of the first sender, falling back to the address."""
        if not self.sender:
            return None
        first = self.sender[0]
        return (first.name or first.email or "").strip() or None


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Empty:
    """`empty: true` requires an empty text, `empty: false` a non-empty one."""

    expected: bool


@dataclass(frozen=True, slots=True)
class NotEmpty:
    expected: bool


@dataclass(frozen=True, slots=True)
class Exact:
    value: str


@dataclass(frozen=True, slots=True)
class NotExact:
    value: str


@dataclass(frozen=True, slots=True)
class Regex:
    pattern: str


@dataclass(frozen=True, slots=True)
class Contains:
    """Substring test; several values are ORed."""

    values: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class OneOf:
    values: tuple[str, ...]


Condition = Empty | NotEmpty | Exact | NotExact | Regex | Contains | OneOf

# Evaluation order of condition kinds
CONDITION_ORDER: tuple[type, ...] = (Empty, NotEmpty, Exact, NotExact, Regex, Contains, OneOf)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AddLabel:
    label: str


@dataclass(frozen=True, slots=True)
class RemoveLabel:
    label: str


@dataclass(frozen=True, slots=True)
class Stop:
    pass


Action = AddLabel | RemoveLabel | Stop


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FieldSelector:
    """Which message fields make up the text a rule is tested against."""

    header: str | None = None
    sender: bool = False
    recipients: bool = False
    subject: bool = False
    body: bool = False


@dataclass(frozen=True)
class Rule:
    """One compiled rule.

    Attributes:
        selector: Fields composed into the tested text
        conditions: Conditions in evaluation order (all must pass)
        actions: Actions applied on match, Stop last
        name: Optional display name for logs
    """

    selector: FieldSelector
    conditions: tuple[Condition, ...] = ()
    actions: tuple[Action, ...] = ()
    name: str | None = None

    @property
    def stops(self) -> bool:
        return any(isinstance(a, Stop) for a in self.actions)

    @property
    def label(self) -> str:
        """Name used in log entries."""
        return self.name or ",".join(
            a.label for a in self.actions if isinstance(a, AddLabel | RemoveLabel)
        ) or "unnamed"

    @classmethod
    def from_config(cls, config: RuleConfig) -> Rule:
        """Compile a validated RuleConfig into a Rule."""
        conditions: list[Condition] = []
        if config.empty is not None:
            conditions.append(Empty(config.empty))
        if config.not_empty is not None:
            conditions.append(NotEmpty(config.not_empty))
        if config.exact is not None:
            conditions.append(Exact(config.exact))
        if config.not_exact is not None:
            conditions.append(NotExact(config.not_exact))
        if config.pattern is not None:
            conditions.append(Regex(config.pattern))
        if config.contains is not None:
            values = config.contains if isinstance(config.contains, list) else [config.contains]
            conditions.append(Contains(tuple(values)))
        if config.one_of is not None:
            conditions.append(OneOf(tuple(config.one_of)))

        actions: list[Action] = []
        if config.add_label:
            actions.append(AddLabel(config.add_label))
        if config.remove_label:
            actions.append(RemoveLabel(config.remove_label))
        if config.stop:
            actions.append(Stop())

        return cls(
            selector=FieldSelector(
                header=config.header,
                sender=config.from_,
                recipients=config.to,
                subject=config.subject,
                body=config.body,
            ),
            conditions=tuple(conditions),
            actions=tuple(actions),
            name=config.name,
        )


@dataclass(frozen=True)
class RuleSet:
    """Ordered rules, evaluated top to bottom for every message."""

    rules: tuple[Rule, ...] = field(default_factory=tuple)

    def __iter__(self):
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    @classmethod
    def from_config(cls, configs: list[RuleConfig]) -> RuleSet:
        return cls(rules=tuple(Rule.from_config(c) for c in configs))
