"""Mailbox operations over JMAP.

Lists mailboxes, creates missing required folders (idempotently) and looks
up the scan folder by name.

Usage:
    from mailtriage.jmap.mailboxes import MailboxManager

    mailboxes = MailboxManager(client)
    all_boxes = mailboxes.ensure_folders(["Receipts", "Social"])
    inbox = mailboxes.find_by_name("Inbox", all_boxes)
"""

from typing import TYPE_CHECKING, Any

from mailtriage.core.errors import NotFoundError, RemoteCallError
from mailtriage.core.logging import get_logger

if TYPE_CHECKING:
    from mailtriage.jmap.client import JMAPClient

logger = get_logger(__name__)


class MailboxManager:
    """Manages mailbox listing and creation.

    Attributes:
        client: JMAPClient instance for API calls
    """

    def __init__(self, client: "JMAPClient"):
        self.client = client

    def list_mailboxes(self) -> list[dict[str, Any]]:
        """Return every mailbox as ``{"id", "name", "role", "parentId"}`` dicts."""
        response = self.client.call(
            "Mailbox/get",
            {"accountId": self.client.account_id, "properties": ["id", "name", "role", "parentId"]},
            "mailboxes",
        )
        mailboxes = response.get("list", [])
        logger.debug("Mailboxes loaded", mailbox_count=len(mailboxes))
        return mailboxes

    def ensure_folders(
        self,
        required: list[str],
        mailboxes: list[dict[str, Any]] | None = None,
    ) -> list[dict[str, Any]]:
        """Create top-level folders from `required` that do not exist yet.

        Existing folders are matched by exact name, so repeated runs create
        nothing new.

        Returns:
            The mailbox list including any newly created folders

        Raises:
            RemoteCallError: If the server refuses to create a folder
        """
        if mailboxes is None:
            mailboxes = self.list_mailboxes()
        mailboxes = list(mailboxes)

        existing = {mb["name"] for mb in mailboxes}
        missing = [name for name in required if name not in existing]
        if not missing:
            return mailboxes

        create = {
            f"create{index}": {"name": name, "parentId": None, "role": None}
            for index, name in enumerate(missing)
        }
        logger.info("Creating folders", folders=missing)

        response = self.client.call(
            "Mailbox/set",
            {"accountId": self.client.account_id, "create": create},
            "mailboxCreate",
        )

        not_created = response.get("notCreated") or {}
        if not_created:
            failed = ", ".join(create[key]["name"] for key in not_created if key in create)
            raise RemoteCallError(
                f"Server refused to create folders: {failed}",
                error_type=next(iter(not_created.values())).get("type"),
            )

        for creation_id, created in (response.get("created") or {}).items():
            mailboxes.append(
                {
                    "id": created["id"],
                    "name": create[creation_id]["name"],
                    "role": None,
                    "parentId": None,
                }
            )

        return mailboxes

    @staticmethod
    def find_by_name(name: str, mailboxes: list[dict[str, Any]]) -> dict[str, Any]:
        """Find a mailbox by name, case-insensitively.

        Raises:
            NotFoundError: If no mailbox has that name
        """
        wanted = name.lower()
        for mb in mailboxes:
            if mb["name"].lower() == wanted:
                return mb
        raise NotFoundError(
            f"Folder not found: {name}. "
            f"Available folders: {', '.join(sorted(mb['name'] for mb in mailboxes))}"
        )
