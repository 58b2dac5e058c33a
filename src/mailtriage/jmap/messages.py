"""Email operations over JMAP.

Provides the message query/fetch used by a scan run, the single batched
Email/set mutation, and the full single-message fetch used by the editor.

Usage:
    from mailtriage.jmap.messages import MessageManager

    messages = MessageManager(client)
    ids = messages.query_ids(inbox_id, limit=50)
    batch = messages.get_messages(ids)
"""

from typing import TYPE_CHECKING, Any

from mailtriage.core.logging import get_logger
from mailtriage.rules.models import Message

if TYPE_CHECKING:
    from mailtriage.jmap.client import JMAPClient

logger = get_logger(__name__)

# Properties needed to evaluate rules and build label deltas
SCAN_PROPERTIES = [
    "id",
    "subject",
    "from",
    "to",
    "headers",
    "keywords",
    "mailboxIds",
    "textBody",
    "bodyValues",
]

# Properties for the editor's single-message view
FULL_MESSAGE_PROPERTIES = [
    "id",
    "subject",
    "from",
    "to",
    "receivedAt",
    "htmlBody",
    "textBody",
    "bodyValues",
    "headers",
]


class MessageManager:
    """Manages Email/query, Email/get and Email/set calls.

    Attributes:
        client: JMAPClient instance for API calls
    """

    def __init__(self, client: "JMAPClient"):
        self.client = client

    def query_ids(self, mailbox_id: str, position: int = 0, limit: int = 100) -> list[str]:
        """Return message ids in a mailbox, newest first.

        Args:
            mailbox_id: Mailbox to search
            position: Index of the first result (0 = newest)
            limit: Maximum number of ids returned
        """
        response = self.client.call(
            "Email/query",
            {
                "accountId": self.client.account_id,
                "filter": {"inMailbox": mailbox_id},
                "sort": [{"property": "receivedAt", "isAscending": False}],
                "position": position,
                "limit": limit,
            },
            "emailQuery",
        )
        ids = response.get("ids", [])
        logger.debug("Email query complete", mailbox_id=mailbox_id, count=len(ids))
        return ids

    def get_messages(self, ids: list[str]) -> list[Message]:
        """Fetch messages with the properties rules can test."""
        if not ids:
            return []
        response = self.client.call(
            "Email/get",
            {
                "accountId": self.client.account_id,
                "ids": ids,
                "properties": SCAN_PROPERTIES,
                "fetchTextBodyValues": True,
            },
            "emailGet",
        )
        not_found = response.get("notFound") or []
        if not_found:
            logger.warning("Messages vanished before fetch", count=len(not_found))
        return [Message.from_jmap(item) for item in response.get("list", [])]

    def set_messages(self, update: dict[str, dict[str, Any]]) -> dict[str, Any]:
        """Apply a batch of per-message patches in one Email/set call.

        Returns:
            The Email/set response arguments (updated / notUpdated maps)

        Raises:
            RemoteCallError: If the call as a whole is rejected
        """
        return self.client.call(
            "Email/set",
            {"accountId": self.client.account_id, "update": update},
            "emailUpdate",
        )

    def fetch_full_message(self, message_id: str) -> dict[str, Any] | None:
        """Fetch one message for display, preferring the HTML body.

        Returns:
            Dict with id, subject, from, to, receivedAt, bodyContent,
            bodyType ('html' or 'text') and headers, or None if not found
        """
        response = self.client.call(
            "Email/get",
            {
                "accountId": self.client.account_id,
                "ids": [message_id],
                "properties": FULL_MESSAGE_PROPERTIES,
                "fetchAllBodyValues": True,
            },
            "emailGet",
        )
        items = response.get("list") or []
        if not items:
            return None

        message = items[0]
        body_values = message.get("bodyValues") or {}
        body_content = ""
        body_type = "text"

        if message.get("htmlBody"):
            part_id = message["htmlBody"][0].get("partId")
            body_content = (body_values.get(part_id) or {}).get("value", "")
            body_type = "html"
        elif message.get("textBody"):
            part_id = message["textBody"][0].get("partId")
            body_content = (body_values.get(part_id) or {}).get("value", "")

        return {
            "id": message["id"],
            "subject": message.get("subject"),
            "from": message.get("from"),
            "to": message.get("to"),
            "receivedAt": message.get("receivedAt"),
            "bodyContent": body_content,
            "bodyType": body_type,
            "headers": message.get("headers"),
        }
