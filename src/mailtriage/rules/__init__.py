"""Declarative triage rules.

This package provides:
- Rule/condition/action models and the Message snapshot
- Field composition and predicate evaluation
- The rule engine that accumulates label actions per message
"""

from mailtriage.rules.engine import (
    EngineOutcome,
    LabelAction,
    LedgerCandidate,
    MessageEvaluation,
    RuleEngine,
    build_mailbox_index,
)
from mailtriage.rules.models import Message, Rule, RuleSet
from mailtriage.rules.predicates import compose_text, matches

__all__ = [
    # Engine
    "EngineOutcome",
    "LabelAction",
    "LedgerCandidate",
    "MessageEvaluation",
    "RuleEngine",
    "build_mailbox_index",
    # Models
    "Message",
    "Rule",
    "RuleSet",
    # Predicates
    "compose_text",
    "matches",
]
