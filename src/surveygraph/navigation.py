"""
Navigation Engine: next-question resolution and answer validation.

Works on the compiled survey document only. It never looks at graph
nodes, so start/end exist here only as the "END" branch sentinel and as
layout edge targets.

get_next() priority (first match wins):
    a. string route
    b. branch map keyed by the current answer
    c. layout edges carrying "field == 'value'" conditions
    d. next question in the current section
    e. first question of the next section
    f. end of survey

Both public functions are pure: no hidden state, no mutation of inputs,
no exceptions for well-formed documents.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from numbers import Real
from typing import Any, Callable, Dict, Mapping, Optional

from surveygraph.conditions import answer_key, condition_matches, parse_condition
from surveygraph.graph import END_NODE_ID, START_NODE_ID, handle_option
from surveygraph.model import (
    AudioRule,
    ConditionalRoutes,
    Question,
    SelectionRule,
    SinglePath,
    Survey,
    TextRule,
    is_terminal_target,
)

logger = logging.getLogger(__name__)

REQUIRED_MESSAGE = "This field is required."


@dataclass(frozen=True)
class NavigationResult:
    next_question_id: Optional[str]
    end_of_survey: bool

    @classmethod
    def to(cls, question_id: str) -> NavigationResult:
        return cls(next_question_id=question_id, end_of_survey=False)

    @classmethod
    def completed(cls) -> NavigationResult:
        return cls(next_question_id=None, end_of_survey=True)


@dataclass(frozen=True)
class AnswerValidation:
    valid: bool
    error: Optional[str] = None


def _towards(target: str) -> NavigationResult:
    if is_terminal_target(target):
        return NavigationResult.completed()
    return NavigationResult.to(target)


def _by_layout_edges(survey: Survey, question: Question, answers: Mapping[str, Any]) -> Optional[NavigationResult]:
    if survey.layout is None:
        return None
    answer = answers.get(question.question_id)

    for edge in survey.layout.edges:
        if edge.source != question.question_id or edge.target == START_NODE_ID:
            continue
        if edge.condition:
            condition = parse_condition(edge.condition)
            if condition is None:
                continue
            # a field naming another answered question compares that answer
            if condition.field != question.question_id and condition.field in answers:
                subject = answers[condition.field]
            else:
                subject = answer
            if not condition_matches(condition, subject):
                continue
        elif handle_option(edge.source_handle) is not None:
            # option ports are resolved by the branch map, not taken blindly
            continue
        if edge.target == END_NODE_ID:
            return NavigationResult.completed()
        return NavigationResult.to(edge.target)
    return None


def _by_sections(survey: Survey, question: Question) -> Optional[NavigationResult]:
    section = survey.section_of(question)
    if section is None:
        return None

    ids = section.question_ids
    if question.question_id in ids:
        idx = ids.index(question.question_id)
        if idx < len(ids) - 1:
            return NavigationResult.to(ids[idx + 1])

    section_idx = survey.sections.index(section)
    if section_idx < len(survey.sections) - 1:
        next_section = survey.sections[section_idx + 1]
        if next_section.question_ids:
            return NavigationResult.to(next_section.question_ids[0])
    return None


def get_next(survey: Survey, current_question_id: str, answers: Optional[Mapping[str, Any]] = None) -> NavigationResult:
    """
    Determine where a respondent goes after current_question_id.

    Args:
        survey: Compiled survey document
        current_question_id: Question just answered
        answers: Answers so far, keyed by question id

    Returns:
        NavigationResult; end_of_survey is True when nothing follows or
        the current question is not part of the survey
    """
    answers = answers or {}
    question = survey.get_question(current_question_id)
    if question is None:
        return NavigationResult.completed()

    route = question.next_question
    if isinstance(route, SinglePath):
        return _towards(route.target)

    if isinstance(route, ConditionalRoutes):
        key = answer_key(answers.get(current_question_id))
        if key is not None:
            target = route.target_for(key)
            if target:
                return _towards(target)

    result = _by_layout_edges(survey, question, answers)
    if result is not None:
        return result

    result = _by_sections(survey, question)
    if result is not None:
        return result

    return NavigationResult.completed()


def first_question_id(survey: Survey) -> Optional[str]:
    """Entry question: first question of the first non-empty section, else the first question."""
    for section in survey.sections:
        if section.question_ids:
            return section.question_ids[0]
    if survey.questions:
        return survey.questions[0].question_id
    return None


# =========================================================================
# ANSWER VALIDATION
# =========================================================================


def is_empty_answer(answer: Any) -> bool:
    """No answer at all. Whitespace is an answer; see is_blank_answer."""
    if answer is None:
        return True
    if isinstance(answer, str):
        return answer == ""
    if isinstance(answer, (list, tuple, dict)):
        return len(answer) == 0
    return False


def is_blank_answer(answer: Any) -> bool:
    """Empty, or text with nothing but whitespace. Used for required questions."""
    if isinstance(answer, str):
        return answer.strip() == ""
    return is_empty_answer(answer)


def _check_selection(rule: SelectionRule, answer: Any) -> AnswerValidation:
    if not isinstance(answer, (list, tuple)):
        return AnswerValidation(True)
    if rule.min_selections and len(answer) < rule.min_selections:
        return AnswerValidation(False, f"Select at least {rule.min_selections} options.")
    if rule.max_selections and len(answer) > rule.max_selections:
        return AnswerValidation(False, f"Select at most {rule.max_selections} options.")
    return AnswerValidation(True)


def _check_text(rule: TextRule, answer: Any) -> AnswerValidation:
    if not isinstance(answer, str):
        return AnswerValidation(True)
    if rule.min_length and len(answer) < rule.min_length:
        return AnswerValidation(False, f"Minimum {rule.min_length} characters required.")
    if rule.max_length and len(answer) > rule.max_length:
        return AnswerValidation(False, f"Maximum {rule.max_length} characters allowed.")
    if rule.pattern:
        try:
            matched = re.search(rule.pattern, answer) is not None
        except re.error as exc:
            logger.warning("Ignoring invalid text pattern %r: %s", rule.pattern, exc)
            return AnswerValidation(True)
        if not matched:
            return AnswerValidation(False, "The answer does not match the required format.")
    return AnswerValidation(True)


def _answer_duration(answer: Any) -> Optional[float]:
    if isinstance(answer, bool):
        return None
    if isinstance(answer, Real):
        return float(answer)
    if isinstance(answer, Mapping):
        duration = answer.get("duration")
        if isinstance(duration, Real) and not isinstance(duration, bool):
            return float(duration)
    return None


def _check_audio(rule: AudioRule, answer: Any) -> AnswerValidation:
    duration = _answer_duration(answer)
    if duration is None:
        return AnswerValidation(True)
    if rule.min_duration and duration < rule.min_duration:
        return AnswerValidation(False, f"Recording must be at least {rule.min_duration:g} seconds.")
    if rule.max_duration and duration > rule.max_duration:
        return AnswerValidation(False, f"Recording must be at most {rule.max_duration:g} seconds.")
    return AnswerValidation(True)


_RULE_CHECKS: Dict[type, Callable[[Any, Any], AnswerValidation]] = {
    SelectionRule: _check_selection,
    TextRule: _check_text,
    AudioRule: _check_audio,
}


def validate_answer(question: Question, answer: Any, required_message: str = REQUIRED_MESSAGE) -> AnswerValidation:
    """
    Check one answer against a question's rule.

    A rule that does not fit the answer's shape is skipped: selection
    bounds only apply to lists, text bounds only to strings, duration
    bounds only to numbers or mappings with a "duration".
    """
    if question.required and is_blank_answer(answer):
        return AnswerValidation(False, required_message)

    rule = question.validation
    if rule is None or is_empty_answer(answer):
        return AnswerValidation(True)

    check = _RULE_CHECKS.get(type(rule))
    if check is None:
        return AnswerValidation(True)
    return check(rule, answer)
