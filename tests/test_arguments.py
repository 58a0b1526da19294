"""
Tests for loose tool argument normalization.
"""

import pytest

from gmail_multi_inbox.aggregator import clamp_limit
from gmail_multi_inbox.arguments import (
    require_string,
    require_string_list,
    sanitize_strings,
    value_to_boolean,
    value_to_number,
    value_to_string,
    value_to_string_list,
)
from gmail_multi_inbox.exceptions import ValidationError


def test_value_to_string_falls_back_for_non_strings():
    assert value_to_string("x") == "x"
    assert value_to_string(5) == ""
    assert value_to_string(None, "dflt") == "dflt"


def test_value_to_boolean_only_accepts_bools():
    assert value_to_boolean(True) is True
    assert value_to_boolean("true") is False
    assert value_to_boolean(1, True) is True


@pytest.mark.parametrize("value,expected", [
    (10, 10),
    (2.5, 2.5),
    (True, 20),
    ("10", 20),
    (float("inf"), 20),
    (float("nan"), 20),
    (None, 20),
    (10 ** 400, 10 ** 400),
])
def test_value_to_number(value, expected):
    assert value_to_number(value, 20) == expected


@pytest.mark.parametrize("value,expected", [
    (10 ** 400, 100),
    (-(10 ** 400), 1),
    ("lots", 20),
])
def test_oversized_limits_clamp_instead_of_failing(value, expected):
    assert clamp_limit(value_to_number(value, 20)) == expected


def test_sanitize_strings_trims_and_dedupes_in_order():
    assert sanitize_strings([" a ", "b", "a", "", "  ", 3, "b"]) == ["a", "b", "3"]


def test_value_to_string_list_ignores_non_lists():
    assert value_to_string_list("a,b") == []
    assert value_to_string_list(None) == []
    assert value_to_string_list(("x", "x")) == ["x"]


def test_require_string():
    assert require_string("  hi ", "query") == "hi"
    with pytest.raises(ValidationError, match="query is required."):
        require_string("   ", "query")
    with pytest.raises(ValidationError):
        require_string(None, "query")


def test_require_string_list():
    assert require_string_list(["m1", " m1 ", "m2"], "message_ids") == ["m1", "m2"]
    with pytest.raises(ValidationError, match="message_ids must include at least one value."):
        require_string_list(["", " "], "message_ids")
