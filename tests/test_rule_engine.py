"""Tests for the rule engine.

Covers ordered evaluation, per-message stop, label resolution (exact and
lowercase fallback), unresolved labels, action accumulation and ledger
candidate generation.
"""

from typing import Any

from mailtriage.config_schema import RuleConfig
from mailtriage.rules.engine import LabelAction, LedgerCandidate, RuleEngine, build_mailbox_index
from mailtriage.rules.models import EmailAddress, Message, RuleSet

MAILBOXES = [
    {"id": "INBOX", "name": "Inbox"},
    {"id": "M1", "name": "Receipts"},
    {"id": "MA", "name": "A"},
    {"id": "MB", "name": "B"},
    {"id": "MP", "name": "Promotions"},
]


def _rules(*rules: dict[str, Any]) -> RuleSet:
    return RuleSet.from_config([RuleConfig(**r) for r in rules])


def _message(
    msg_id: str = "m-1",
    subject: str = "Invoice #123 due",
    sender_name: str | None = "ACME Billing",
    sender_email: str = "billing@acme.test",
) -> Message:
    return Message(
        id=msg_id,
        subject=subject,
        sender=(EmailAddress(email=sender_email, name=sender_name),),
        mailbox_ids=frozenset({"INBOX"}),
    )


def _engine(*rules: dict[str, Any]) -> RuleEngine:
    return RuleEngine(_rules(*rules), build_mailbox_index(MAILBOXES))


# ---------------------------------------------------------------------------
# Tests: mailbox index
# ---------------------------------------------------------------------------


def test_mailbox_index_has_exact_and_lowercase_names():
    index = build_mailbox_index(MAILBOXES)
    assert index["Receipts"] == "M1"
    assert index["receipts"] == "M1"


def test_resolve_falls_back_to_lowercase():
    engine = _engine()
    assert engine.resolve("RECEIPTS") == "M1"
    assert engine.resolve("Receipts") == "M1"
    assert engine.resolve("Unknown") is None


# ---------------------------------------------------------------------------
# Tests: evaluation
# ---------------------------------------------------------------------------


def test_invoice_rule_adds_receipts_and_records_sender():
    engine = _engine({"subject": True, "contains": "invoice", "add-label": "Receipts"})

    evaluation = engine.evaluate(_message())

    assert evaluation.actions == [LabelAction(label="Receipts", mailbox_id="M1", add=True)]
    assert evaluation.candidates == [
        LedgerCandidate(
            label="Receipts",
            sender="ACME Billing",
            subject="Invoice #123 due",
            message_id="m-1",
        )
    ]


def test_stop_skips_later_rules_for_that_message():
    engine = _engine(
        {"subject": True, "contains": "invoice", "add-label": "A", "stop": True},
        {"subject": True, "contains": "invoice", "add-label": "B"},
    )

    evaluation = engine.evaluate(_message())

    assert [a.label for a in evaluation.actions] == ["A"]
    assert evaluation.stopped is True


def test_stop_only_affects_the_matching_message():
    engine = _engine(
        {"subject": True, "contains": "invoice", "add-label": "A", "stop": True},
        {"subject": True, "not-empty": True, "add-label": "B"},
    )
    first = _message(msg_id="m-1", subject="Invoice 1")
    second = _message(msg_id="m-2", subject="Hello there")

    outcome = engine.evaluate_all([first, second])

    by_id = {ev.message.id: [a.label for a in ev.actions] for ev in outcome.evaluations}
    assert by_id == {"m-1": ["A"], "m-2": ["B"]}


def test_stop_on_non_matching_rule_does_nothing():
    engine = _engine(
        {"subject": True, "contains": "receipt", "add-label": "A", "stop": True},
        {"subject": True, "contains": "invoice", "add-label": "B"},
    )
    evaluation = engine.evaluate(_message())
    assert [a.label for a in evaluation.actions] == ["B"]
    assert evaluation.stopped is False


def test_add_and_remove_on_same_rule_both_fire():
    engine = _engine(
        {"subject": True, "contains": "invoice", "add-label": "Receipts", "remove-label": "Promotions"}
    )
    evaluation = engine.evaluate(_message())
    assert evaluation.actions == [
        LabelAction(label="Receipts", mailbox_id="M1", add=True),
        LabelAction(label="Promotions", mailbox_id="MP", add=False),
    ]
    # Only additions produce ledger candidates
    assert [c.label for c in evaluation.candidates] == ["Receipts"]


def test_unresolved_label_is_ignored_and_reported():
    engine = _engine({"subject": True, "add-label": "Nowhere"})
    outcome = engine.evaluate_all([_message()])
    assert outcome.evaluations == []
    assert outcome.unresolved_labels == {"Nowhere"}


def test_messages_without_actions_are_excluded():
    engine = _engine({"subject": True, "contains": "invoice", "add-label": "Receipts"})
    outcome = engine.evaluate_all([_message(subject="Hello"), _message(msg_id="m-2")])
    assert [ev.message.id for ev in outcome.evaluations] == ["m-2"]
    assert outcome.messages_evaluated == 2


def test_label_counters_count_messages():
    engine = _engine(
        {"subject": True, "contains": "invoice", "add-label": "Receipts"},
        {"subject": True, "contains": "promo", "remove-label": "Promotions"},
    )
    outcome = engine.evaluate_all(
        [_message(msg_id="1"), _message(msg_id="2"), _message(msg_id="3", subject="promo")]
    )
    assert outcome.labels_added == {"Receipts": 2}
    assert outcome.labels_removed == {"Promotions": 1}


def test_candidate_sender_falls_back_to_address():
    engine = _engine({"subject": True, "add-label": "Receipts"})
    evaluation = engine.evaluate(_message(sender_name=None))
    assert evaluation.candidates[0].sender == "billing@acme.test"


def test_message_without_sender_has_actions_but_no_candidate():
    engine = _engine({"subject": True, "add-label": "Receipts"})
    message = Message(id="m-9", subject="Invoice", mailbox_ids=frozenset({"INBOX"}))
    evaluation = engine.evaluate(message)
    assert len(evaluation.actions) == 1
    assert evaluation.candidates == []


def test_outcome_candidates_flatten_all_evaluations():
    engine = _engine({"subject": True, "add-label": "Receipts"})
    outcome = engine.evaluate_all(
        [_message(msg_id="1"), _message(msg_id="2", sender_name="Other")]
    )
    assert [c.sender for c in outcome.candidates] == ["ACME Billing", "Other"]
