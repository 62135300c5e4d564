"""
Tests for default question payloads.
"""

import pytest
from surveygraph.model import AudioRule, NoRoute, QuestionType, SelectionRule, TextRule
from surveygraph.templates import build_question, coerce_question_type, default_rule


class TestBuildQuestion:
    """Test palette templates."""

    def test_multiple_choice(self):
        question = build_question("Q1", QuestionType.MULTIPLE_CHOICE, "SEC1")
        assert question.title == "Multiple choice question"
        assert question.section_id == "SEC1"
        assert question.required
        assert [o.label for o in question.options] == ["Option 1", "Option 2"]
        assert question.next_question == NoRoute()

    def test_text(self):
        question = build_question("Q2", QuestionType.TEXT_OPINION)
        assert question.options is None
        assert question.placeholder
        assert isinstance(question.validation, TextRule)

    def test_voice(self):
        question = build_question("Q3", QuestionType.VOICE_OPINION)
        assert question.prompt_type == "voice_prompt"
        assert question.audio.max_recording_time == 120
        assert isinstance(question.validation, AudioRule)

    def test_templates_do_not_share_options(self):
        a = build_question("Q1", QuestionType.MULTIPLE_CHOICE)
        b = build_question("Q2", QuestionType.MULTIPLE_CHOICE)
        a.options[0].label = "Changed"
        assert b.options[0].label == "Option 1"


def test_default_rule():
    assert default_rule(QuestionType.MULTIPLE_CHOICE) == SelectionRule(1, 1)
    assert default_rule(QuestionType.TEXT_OPINION) == TextRule(0, 1000, None)
    assert default_rule(QuestionType.VOICE_OPINION) == AudioRule(5, 120)


def test_coerce_question_type():
    assert coerce_question_type("voice_opinion") == QuestionType.VOICE_OPINION
    assert coerce_question_type(QuestionType.TEXT_OPINION) == QuestionType.TEXT_OPINION
    with pytest.raises(ValueError):
        coerce_question_type("slider")
