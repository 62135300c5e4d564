"""
Edge conditions for graph-level branching.

A layout edge may carry a free-text condition such as

    Q1 == 'yes'

The text is split on whitespace into field, operator and value. Only
equality is understood. Anything that does not parse is "no condition
matched" for the navigation engine, never an exception.

Answers are compared as strings. answer_key() defines that string form and
is also what branch maps are keyed by.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ConditionOperator(Enum):
    EQUALS = "=="


@dataclass(frozen=True)
class EdgeCondition:
    """
    Parsed condition.

    Properties:
        field: Name on the left of the operator (a question id, or a
            placeholder such as "value" meaning the current answer)
        operator: ConditionOperator
        value: Expected answer, quotes stripped
    """

    field: str
    operator: ConditionOperator
    value: str


def parse_condition(text: Optional[str]) -> Optional[EdgeCondition]:
    """Parse "field == 'value'". Returns None when the text does not fit that shape."""
    if not text or not isinstance(text, str):
        return None

    parts = text.strip().split(None, 2)
    if len(parts) != 3:
        return None

    field_name, operator, raw_value = parts
    if operator != ConditionOperator.EQUALS.value:
        return None

    value = raw_value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return EdgeCondition(field=field_name, operator=ConditionOperator.EQUALS, value=value)


def answer_key(answer: Any) -> Optional[str]:
    """
    String form of an answer used for branch lookup.

    Lists join their items with commas, booleans are lower-case, and
    integral floats drop their fraction, so 1.0 and 1 give the same key.
    """
    if answer is None:
        return None
    if isinstance(answer, bool):
        return "true" if answer else "false"
    if isinstance(answer, float) and answer.is_integer():
        return str(int(answer))
    if isinstance(answer, (list, tuple)):
        return ",".join(answer_key(item) or "" for item in answer)
    return str(answer)


def condition_matches(condition: EdgeCondition, answer: Any) -> bool:
    key = answer_key(answer)
    if key is None:
        return False
    return key == condition.value
