"""JMAP client module.

Provides:
- Base client with session discovery and method-call batching
- Mailbox operations (list, create missing, find by name)
- Email operations (query, get, batched set, full message fetch)

Usage:
    from mailtriage.jmap import JMAPClient, MailboxManager, MessageManager

    client = JMAPClient(token)
    mailboxes = MailboxManager(client)
    messages = MessageManager(client)
"""

from mailtriage.jmap.client import JMAPClient
from mailtriage.jmap.mailboxes import MailboxManager
from mailtriage.jmap.messages import MessageManager

__all__ = [
    "JMAPClient",
    "MailboxManager",
    "MessageManager",
]
