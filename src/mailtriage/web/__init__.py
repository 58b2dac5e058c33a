"""Ledger editor API.

Provides a FastAPI app for reading and saving the ledgers, moving senders
between them, querying/releasing the advisory lock, and viewing a message.
"""

from mailtriage.web.app import create_app

__all__ = ["create_app"]
