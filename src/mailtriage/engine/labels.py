"""Label synchronization: turn rule actions into one Email/set request.

Each evaluated message becomes a patch holding its full new mailboxIds set
(and keywords set when keyword cleanup is on). All patches are sent in a
single call; there is no per-message retry and a rejected call fails the
whole run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mailtriage.core.logging import get_logger

if TYPE_CHECKING:
    from mailtriage.jmap.messages import MessageManager
    from mailtriage.rules.engine import MessageEvaluation

logger = get_logger(__name__)


@dataclass
class SyncResult:
    """Outcome of the batched mutation."""

    requested: int = 0
    updated: list[str] = field(default_factory=list)
    not_updated: dict[str, Any] = field(default_factory=dict)


def build_message_patch(evaluation: MessageEvaluation, keyword_cleanup: bool = True) -> dict[str, Any]:
    """Compute the new mailbox/keyword sets for one message.

    Actions apply in order, so an add followed by a remove of the same
    mailbox leaves it removed.
    """
    message = evaluation.message
    mailbox_ids = {mb: True for mb in sorted(message.mailbox_ids)}
    keywords = {kw: True for kw in sorted(message.keywords)}

    for action in evaluation.actions:
        if action.add:
            mailbox_ids[action.mailbox_id] = True
        else:
            mailbox_ids.pop(action.mailbox_id, None)
            if keyword_cleanup:
                keywords.pop(action.label, None)
                keywords.pop(action.label.lower(), None)

    patch: dict[str, Any] = {"mailboxIds": mailbox_ids}
    if keyword_cleanup:
        patch["keywords"] = keywords
    return patch


class LabelSynchronizer:
    """Batches per-message label deltas into one mutation call.

    Attributes:
        message_manager: MessageManager used to issue Email/set
        keyword_cleanup: Mirror label removals onto the keyword set
    """

    def __init__(self, message_manager: MessageManager, keyword_cleanup: bool = True):
        self.message_manager = message_manager
        self.keyword_cleanup = keyword_cleanup

    def build_update(self, evaluations: list[MessageEvaluation]) -> dict[str, dict[str, Any]]:
        """Merge every message patch into one `update` map keyed by message id."""
        return {
            ev.message.id: build_message_patch(ev, self.keyword_cleanup)
            for ev in evaluations
            if ev.actions
        }

    def synchronize(self, evaluations: list[MessageEvaluation]) -> SyncResult:
        """Send all pending deltas in a single Email/set call.

        Raises:
            RemoteCallError: If the server rejects the call
        """
        update = self.build_update(evaluations)
        result = SyncResult(requested=len(update))
        if not update:
            logger.debug("label_sync_skipped", reason="no_changes")
            return result

        response = self.message_manager.set_messages(update)
        result.updated = list((response.get("updated") or {}).keys())
        result.not_updated = response.get("notUpdated") or {}

        for message_id, error in result.not_updated.items():
            logger.warning(
                "message_not_updated",
                message_id=message_id,
                error_type=error.get("type") if isinstance(error, dict) else None,
                description=error.get("description") if isinstance(error, dict) else None,
            )

        logger.info(
            "labels_synchronized",
            requested=result.requested,
            updated=len(result.updated),
            not_updated=len(result.not_updated),
        )
        return result
