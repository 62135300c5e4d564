"""
Tests for edge condition parsing and answer keys.
"""

from surveygraph.conditions import (
    ConditionOperator,
    EdgeCondition,
    answer_key,
    condition_matches,
    parse_condition,
)


class TestParseCondition:
    """Test parse_condition."""

    def test_single_quoted(self):
        condition = parse_condition("Q1 == 'yes'")
        assert condition == EdgeCondition("Q1", ConditionOperator.EQUALS, "yes")

    def test_double_quoted(self):
        assert parse_condition('value == "no"').value == "no"

    def test_unquoted(self):
        assert parse_condition("Q1 == 3").value == "3"

    def test_value_with_spaces(self):
        """Everything after the operator is the value."""
        assert parse_condition("Q1 == 'very good'").value == "very good"

    def test_unsupported_operator(self):
        assert parse_condition("Q1 != 'yes'") is None

    def test_malformed(self):
        assert parse_condition("Q1 ==") is None
        assert parse_condition("yes") is None
        assert parse_condition("") is None
        assert parse_condition(None) is None


class TestAnswerKey:
    """Test the string form of answers."""

    def test_strings_unchanged(self):
        assert answer_key("yes") == "yes"

    def test_numbers(self):
        assert answer_key(1) == "1"
        assert answer_key(1.0) == "1"
        assert answer_key(2.5) == "2.5"

    def test_booleans(self):
        assert answer_key(True) == "true"
        assert answer_key(False) == "false"

    def test_lists(self):
        assert answer_key(["a", "b"]) == "a,b"

    def test_none(self):
        assert answer_key(None) is None


def test_condition_matches():
    condition = parse_condition("Q1 == '2'")
    assert condition_matches(condition, "2")
    assert condition_matches(condition, 2)
    assert not condition_matches(condition, "3")
    assert not condition_matches(condition, None)
