"""Field composition and condition evaluation for triage rules.

`compose_text` builds the single lowercase string a rule is tested against;
`matches` evaluates the rule's conditions on it. All comparisons are
case-insensitive.

Regex conditions run through the `regex` library with a timeout so a
pathological pattern cannot hang a run; a timeout counts as no match.
"""

from __future__ import annotations

from functools import lru_cache

import regex

from mailtriage.core.logging import get_logger
from mailtriage.rules.models import (
    CONDITION_ORDER,
    Condition,
    Contains,
    Empty,
    Exact,
    Message,
    NotEmpty,
    NotExact,
    OneOf,
    Regex,
    Rule,
)

logger = get_logger(__name__)

# Separator between composed field values
FIELD_SEPARATOR = "|"

# Seconds allowed for a single regex search
REGEX_TIMEOUT = 1.0


def compose_text(message: Message, rule: Rule) -> str:
    """Build the lowercase text a rule is tested against.

    Selected fields are appended in the order header, from, to, subject,
    body and joined with ``|``. A selected field with no value contributes
    an empty string, so the separator count depends only on the rule.

    Args:
        message: Message being triaged
        rule: Rule whose selector decides which fields are used

    Returns:
        The composed, lowercased text
    """
    selector = rule.selector
    parts: list[str] = []

    if selector.header:
        parts.append(message.header(selector.header) or "")
    if selector.sender:
        parts.append(message.sender[0].email if message.sender else "")
    if selector.recipients:
        parts.append(" ".join(a.email for a in message.recipients))
    if selector.subject:
        parts.append(message.subject or "")
    if selector.body:
        parts.append(message.text_body or "")

    return FIELD_SEPARATOR.join(parts).lower()


@lru_cache(maxsize=256)
def _compile(pattern: str) -> regex.Pattern:
    return regex.compile(pattern, regex.IGNORECASE)


def _regex_matches(text: str, pattern: str) -> bool:
    try:
        return _compile(pattern).search(text, timeout=REGEX_TIMEOUT) is not None
    except TimeoutError:
        logger.warning("regex_timeout", pattern=pattern[:80], text_length=len(text))
        return False


def _any_substring(text: str, values: tuple[str, ...]) -> bool:
    return any(v.lower() in text for v in values)


def condition_passes(text: str, condition: Condition) -> bool:
    """Evaluate a single condition against already-lowercased text."""
    if isinstance(condition, Empty):
        return (text == "") == condition.expected
    if isinstance(condition, NotEmpty):
        return (text != "") == condition.expected
    if isinstance(condition, Exact):
        return text == condition.value.lower()
    if isinstance(condition, NotExact):
        return text != condition.value.lower()
    if isinstance(condition, Regex):
        return _regex_matches(text, condition.pattern)
    if isinstance(condition, Contains | OneOf):
        return _any_substring(text, condition.values)
    raise TypeError(f"Unknown condition type: {type(condition).__name__}")


def matches(text: str, rule: Rule) -> bool:
    """Return True when every condition of `rule` passes on `text`.

    Conditions are checked in their fixed order and evaluation stops at the
    first failure. A rule without conditions always matches.
    """
    text = text.lower()
    ordered = sorted(rule.conditions, key=lambda c: CONDITION_ORDER.index(type(c)))
    return all(condition_passes(text, c) for c in ordered)
