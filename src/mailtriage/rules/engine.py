"""Rule engine: runs the ordered rule set over each message.

For every message the rules are evaluated top to bottom. A matching rule
contributes its add/remove label actions (resolved to mailbox ids through
the live mailbox list) and, when it carries `stop`, ends evaluation for that
message only. Matched add-label actions also produce ledger candidates.

Usage:
    from mailtriage.rules.engine import RuleEngine

    engine = RuleEngine(rule_set, mailbox_ids={"Receipts": "M1"})
    outcome = engine.evaluate_all(messages)
    outcome.evaluations  # only messages with at least one resolved action
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from mailtriage.core.logging import get_logger
from mailtriage.rules.models import AddLabel, Message, RemoveLabel, Rule, RuleSet
from mailtriage.rules.predicates import compose_text, matches

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LabelAction:
    """A resolved mailbox mutation for one message."""

    label: str
    mailbox_id: str
    add: bool


@dataclass(frozen=True, slots=True)
class LedgerCandidate:
    """A sender observed under a label, waiting to be merged into a ledger."""

    label: str
    sender: str
    subject: str
    message_id: str | None = None


@dataclass
class MessageEvaluation:
    """Accumulated result of evaluating the rule set against one message."""

    message: Message
    actions: list[LabelAction] = field(default_factory=list)
    candidates: list[LedgerCandidate] = field(default_factory=list)
    matched_rules: list[str] = field(default_factory=list)
    stopped: bool = False


@dataclass
class EngineOutcome:
    """Result of evaluating a batch of messages."""

    evaluations: list[MessageEvaluation] = field(default_factory=list)
    labels_added: Counter = field(default_factory=Counter)
    labels_removed: Counter = field(default_factory=Counter)
    unresolved_labels: set[str] = field(default_factory=set)
    messages_evaluated: int = 0

    @property
    def candidates(self) -> list[LedgerCandidate]:
        return [c for ev in self.evaluations for c in ev.candidates]


def build_mailbox_index(mailboxes: list[dict]) -> dict[str, str]:
    """Map mailbox names (exact and lowercase) to their ids.

    Exact names are inserted last so they win over a lowercase alias that
    happens to collide with another mailbox's exact name.
    """
    index: dict[str, str] = {}
    for mb in mailboxes:
        index[mb["name"].lower()] = mb["id"]
    for mb in mailboxes:
        index[mb["name"]] = mb["id"]
    return index


class RuleEngine:
    """Evaluates a RuleSet against messages and accumulates label actions.

    Attributes:
        rules: Ordered rules
        mailbox_ids: Label name -> mailbox id (see build_mailbox_index)
    """

    def __init__(self, rules: RuleSet, mailbox_ids: dict[str, str]):
        self.rules = rules
        self.mailbox_ids = mailbox_ids

    def resolve(self, label: str) -> str | None:
        """Resolve a label name to a mailbox id: exact name, then lowercase."""
        return self.mailbox_ids.get(label) or self.mailbox_ids.get(label.lower())

    def evaluate(self, message: Message, outcome: EngineOutcome | None = None) -> MessageEvaluation:
        """Run every rule against one message until done or stopped."""
        evaluation = MessageEvaluation(message=message)

        for rule in self.rules:
            text = compose_text(message, rule)
            if not matches(text, rule):
                continue

            evaluation.matched_rules.append(rule.label)
            self._apply(rule, evaluation, outcome)

            if rule.stops:
                evaluation.stopped = True
                logger.debug("rule_stop", message_id=message.id, rule=rule.label)
                break

        return evaluation

    def evaluate_all(self, messages: list[Message]) -> EngineOutcome:
        """Evaluate a batch; messages without resolved actions are left out."""
        outcome = EngineOutcome()
        for message in messages:
            outcome.messages_evaluated += 1
            evaluation = self.evaluate(message, outcome)
            if evaluation.actions:
                outcome.evaluations.append(evaluation)
        return outcome

    def _apply(
        self,
        rule: Rule,
        evaluation: MessageEvaluation,
        outcome: EngineOutcome | None,
    ) -> None:
        message = evaluation.message
        for action in rule.actions:
            if not isinstance(action, AddLabel | RemoveLabel):
                continue

            mailbox_id = self.resolve(action.label)
            if mailbox_id is None:
                logger.warning(
                    "label_unresolved",
                    label=action.label,
                    rule=rule.label,
                    message_id=message.id,
                )
                if outcome is not None:
                    outcome.unresolved_labels.add(action.label)
                continue

            add = isinstance(action, AddLabel)
            evaluation.actions.append(LabelAction(label=action.label, mailbox_id=mailbox_id, add=add))

            if outcome is not None:
                counter = outcome.labels_added if add else outcome.labels_removed
                counter[action.label] += 1

            if add and message.sender_identity:
                evaluation.candidates.append(
                    LedgerCandidate(
                        label=action.label,
                        sender=message.sender_identity,
                        subject=message.subject,
                        message_id=message.id,
                    )
                )
