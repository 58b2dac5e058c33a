"""Tests for the label synchronizer.

Covers patch construction (mailbox adds/removes, keyword cleanup), the
single batched Email/set call, and error propagation.
"""

from unittest.mock import MagicMock

import pytest

from mailtriage.core.errors import RemoteCallError
from mailtriage.engine.labels import LabelSynchronizer, build_message_patch
from mailtriage.rules.engine import LabelAction, MessageEvaluation
from mailtriage.rules.models import Message


def _evaluation(
    msg_id: str = "m-1",
    mailboxes: set[str] | None = None,
    keywords: set[str] | None = None,
    actions: list[LabelAction] | None = None,
) -> MessageEvaluation:
    message = Message(
        id=msg_id,
        mailbox_ids=frozenset(mailboxes if mailboxes is not None else {"INBOX"}),
        keywords=frozenset(keywords or set()),
    )
    return MessageEvaluation(message=message, actions=list(actions or []))


@pytest.fixture
def message_manager() -> MagicMock:
    mgr = MagicMock()
    mgr.set_messages = MagicMock(return_value={"updated": {"m-1": None}, "notUpdated": {}})
    return mgr


# ---------------------------------------------------------------------------
# Tests: build_message_patch
# ---------------------------------------------------------------------------


def test_patch_adds_mailbox_to_existing_membership():
    ev = _evaluation(actions=[LabelAction("Receipts", "M1", add=True)])
    patch = build_message_patch(ev, keyword_cleanup=False)
    assert patch == {"mailboxIds": {"INBOX": True, "M1": True}}


def test_patch_removes_mailbox():
    ev = _evaluation(
        mailboxes={"INBOX", "MP"},
        actions=[LabelAction("Promotions", "MP", add=False)],
    )
    patch = build_message_patch(ev, keyword_cleanup=False)
    assert patch == {"mailboxIds": {"INBOX": True}}


def test_keyword_cleanup_drops_label_keywords():
    ev = _evaluation(
        mailboxes={"INBOX", "MP"},
        keywords={"$seen", "Promotions", "promotions"},
        actions=[LabelAction("Promotions", "MP", add=False)],
    )
    patch = build_message_patch(ev, keyword_cleanup=True)
    assert patch["mailboxIds"] == {"INBOX": True}
    assert patch["keywords"] == {"$seen": True}


def test_keyword_cleanup_keeps_keywords_on_add():
    ev = _evaluation(keywords={"$seen"}, actions=[LabelAction("Receipts", "M1", add=True)])
    patch = build_message_patch(ev, keyword_cleanup=True)
    assert patch["keywords"] == {"$seen": True}


def test_later_remove_wins_over_earlier_add():
    ev = _evaluation(
        actions=[
            LabelAction("Receipts", "M1", add=True),
            LabelAction("Receipts", "M1", add=False),
        ]
    )
    patch = build_message_patch(ev, keyword_cleanup=False)
    assert "M1" not in patch["mailboxIds"]


# ---------------------------------------------------------------------------
# Tests: synchronize
# ---------------------------------------------------------------------------


def test_all_messages_go_in_one_call(message_manager: MagicMock):
    sync = LabelSynchronizer(message_manager, keyword_cleanup=False)
    evaluations = [
        _evaluation("m-1", actions=[LabelAction("A", "MA", add=True)]),
        _evaluation("m-2", actions=[LabelAction("B", "MB", add=True)]),
    ]

    result = sync.synchronize(evaluations)

    message_manager.set_messages.assert_called_once_with(
        {
            "m-1": {"mailboxIds": {"INBOX": True, "MA": True}},
            "m-2": {"mailboxIds": {"INBOX": True, "MB": True}},
        }
    )
    assert result.requested == 2


def test_no_call_when_nothing_changed(message_manager: MagicMock):
    sync = LabelSynchronizer(message_manager)
    result = sync.synchronize([_evaluation(actions=[])])
    message_manager.set_messages.assert_not_called()
    assert result.requested == 0


def test_not_updated_entries_are_reported(message_manager: MagicMock):
    message_manager.set_messages.return_value = {
        "updated": {"m-1": None},
        "notUpdated": {"m-2": {"type": "notFound"}},
    }
    sync = LabelSynchronizer(message_manager)
    result = sync.synchronize(
        [
            _evaluation("m-1", actions=[LabelAction("A", "MA", add=True)]),
            _evaluation("m-2", actions=[LabelAction("A", "MA", add=True)]),
        ]
    )
    assert result.updated == ["m-1"]
    assert result.not_updated == {"m-2": {"type": "notFound"}}


def test_rejected_call_propagates(message_manager: MagicMock):
    message_manager.set_messages.side_effect = RemoteCallError("boom", status_code=500)
    sync = LabelSynchronizer(message_manager)

    with pytest.raises(RemoteCallError):
        sync.synchronize([_evaluation(actions=[LabelAction("A", "MA", add=True)])])

    assert message_manager.set_messages.call_count == 1
