"""Scan processing.

- Label synchronizer that batches mailbox/keyword deltas into one Email/set
- Scan engine that runs one triage pass end to end
"""

from mailtriage.engine.labels import LabelSynchronizer, SyncResult, build_message_patch
from mailtriage.engine.scan import ScanEngine, ScanResult

__all__ = [
    "LabelSynchronizer",
    "ScanEngine",
    "ScanResult",
    "SyncResult",
    "build_message_patch",
]
