"""Tests for field composition and condition evaluation.

Covers the composed text shape, every condition kind, case-insensitivity,
list-form contains vs one-of, and regex timeouts.
"""

from unittest.mock import patch

import pytest

from mailtriage.config_schema import RuleConfig
from mailtriage.rules.models import (
    Contains,
    EmailAddress,
    Empty,
    Exact,
    FieldSelector,
    Header,
    Message,
    NotEmpty,
    NotExact,
    OneOf,
    Regex,
    Rule,
)
from mailtriage.rules.predicates import compose_text, condition_passes, matches

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _message(**overrides) -> Message:
    fields = {
        "id": "M1",
        "subject": "Invoice #123 Due",
        "sender": (EmailAddress(email="Billing@ACME.test", name="ACME Billing"),),
        "recipients": (
            EmailAddress(email="me@example.com"),
            EmailAddress(email="Team@Example.com"),
        ),
        "headers": (
            Header(name="List-Unsubscribe", value="<mailto:unsub@acme.test>"),
            Header(name="X-Mailer", value="Acme Mailer"),
        ),
        "text_body": "Please PAY by Friday.",
    }
    fields.update(overrides)
    return Message(**fields)


def _rule(*conditions, **selector) -> Rule:
    return Rule(selector=FieldSelector(**selector), conditions=tuple(conditions))


def _config_rule(**data) -> Rule:
    return Rule.from_config(RuleConfig(**data))


# ---------------------------------------------------------------------------
# Tests: compose_text
# ---------------------------------------------------------------------------


def test_compose_single_subject_is_lowercased():
    assert compose_text(_message(), _rule(subject=True)) == "invoice #123 due"


def test_compose_joins_fields_in_fixed_order():
    rule = _rule(header="x-mailer", sender=True, recipients=True, subject=True, body=True)
    text = compose_text(_message(), rule)
    assert text == (
        "acme mailer|billing@acme.test|me@example.com team@example.com"
        "|invoice #123 due|please pay by friday."
    )


def test_compose_header_lookup_is_case_insensitive():
    rule = _rule(header="list-unsubscribe")
    assert compose_text(_message(), rule) == "<mailto:unsub@acme.test>"


def test_compose_missing_values_keep_separators():
    message = _message(sender=(), subject="", text_body=None)
    rule = _rule(header="X-Missing", sender=True, subject=True, body=True)
    assert compose_text(message, rule) == "|||"


def test_compose_from_uses_first_address_only():
    message = _message(
        sender=(EmailAddress(email="a@x.test"), EmailAddress(email="b@x.test")),
    )
    assert compose_text(message, _rule(sender=True)) == "a@x.test"


def test_compose_empty_recipients():
    assert compose_text(_message(recipients=()), _rule(recipients=True)) == ""


# ---------------------------------------------------------------------------
# Tests: matches
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("text", ["", "anything", "INVOICE|x"])
def test_rule_without_conditions_always_matches(text: str):
    assert matches(text, _rule(subject=True)) is True


def test_empty_condition():
    assert matches("", _rule(Empty(True), subject=True))
    assert not matches("x", _rule(Empty(True), subject=True))
    assert matches("x", _rule(Empty(False), subject=True))
    assert not matches("", _rule(Empty(False), subject=True))


def test_not_empty_condition():
    assert matches("x", _rule(NotEmpty(True), subject=True))
    assert not matches("", _rule(NotEmpty(True), subject=True))
    assert matches("", _rule(NotEmpty(False), subject=True))


def test_exact_is_case_insensitive_full_match():
    rule = _rule(Exact("Weekly Digest"), subject=True)
    assert matches("weekly digest", rule)
    assert not matches("weekly digest #4", rule)


def test_not_exact_is_full_string_inequality():
    rule = _rule(NotExact("Weekly Digest"), subject=True)
    assert not matches("weekly digest", rule)
    assert matches("weekly digest #4", rule)


def test_regex_is_case_insensitive_search():
    rule = _rule(Regex(r"INVOICE\s+#\d+"), subject=True)
    assert matches("invoice #123 due", rule)
    assert not matches("receipt 123", rule)


def test_contains_scalar_is_case_insensitive_substring():
    rule = _rule(Contains(("InVoIcE",)), subject=True)
    assert matches("your invoice is ready", rule)
    assert not matches("your receipt", rule)


def test_contains_list_is_or():
    rule = _rule(Contains(("invoice", "receipt")), subject=True)
    assert matches("your receipt", rule)
    assert not matches("hello", rule)


@pytest.mark.parametrize("text", ["your invoice", "a receipt", "nothing here", ""])
def test_contains_list_equivalent_to_one_of(text: str):
    values = ("Invoice", "RECEIPT")
    assert matches(text, _rule(Contains(values), subject=True)) == matches(
        text, _rule(OneOf(values), subject=True)
    )


def test_all_conditions_must_pass():
    rule = _rule(NotEmpty(True), Contains(("invoice",)), NotExact("invoice"), subject=True)
    assert matches("invoice #1", rule)
    assert not matches("invoice", rule)
    assert not matches("receipt", rule)


def test_matches_lowercases_input_text():
    assert matches("INVOICE", _rule(Exact("invoice"), subject=True))


def test_regex_timeout_counts_as_no_match():
    rule = _rule(Regex("slow"), subject=True)
    with patch("mailtriage.rules.predicates._compile") as compile_mock:
        compile_mock.return_value.search.side_effect = TimeoutError
        assert matches("slow text", rule) is False


def test_condition_passes_rejects_unknown_condition():
    with pytest.raises(TypeError):
        condition_passes("x", object())  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Tests: rules compiled from config
# ---------------------------------------------------------------------------


def test_config_rule_with_hyphenated_keys():
    rule = _config_rule(
        **{"subject": True, "not-empty": True, "one-of": ["sale", "deal"], "add-label": "Promotions"}
    )
    assert rule.conditions == (NotEmpty(True), OneOf(("sale", "deal")))
    assert matches(compose_text(_message(subject="Big SALE today"), rule), rule)


def test_config_rule_scalar_contains_becomes_single_value():
    rule = _config_rule(subject=True, contains="invoice")
    assert rule.conditions == (Contains(("invoice",)),)


def test_config_rule_from_selector_alias():
    rule = _config_rule(**{"from": True, "regex": r"@acme\.test$"})
    assert rule.selector.sender is True
    assert matches(compose_text(_message(), rule), rule)
