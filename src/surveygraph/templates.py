"""
Default question payloads per question type.

Used when the editor creates a question from the palette or by inserting
one into an existing edge.
"""

from typing import Union

from surveygraph.model import (
    AudioMetadata,
    AudioRule,
    NoRoute,
    Option,
    Question,
    QuestionType,
    SelectionRule,
    TextRule,
    ValidationRule,
)


QUESTION_TYPE_LABELS = {
    QuestionType.MULTIPLE_CHOICE: "Multiple choice",
    QuestionType.TEXT_OPINION: "Text opinion",
    QuestionType.VOICE_OPINION: "Voice opinion",
}


def coerce_question_type(value: Union[str, QuestionType]) -> QuestionType:
    """Accept either the enum or its wire value. Raises ValueError otherwise."""
    if isinstance(value, QuestionType):
        return value
    return QuestionType(value)


def default_rule(question_type: QuestionType) -> ValidationRule:
    if question_type == QuestionType.MULTIPLE_CHOICE:
        return SelectionRule(min_selections=1, max_selections=1)
    if question_type == QuestionType.TEXT_OPINION:
        return TextRule(min_length=0, max_length=1000, pattern=None)
    return AudioRule(min_duration=5, max_duration=120)


def default_options() -> list:
    return [
        Option(value="1", label="Option 1", score=1),
        Option(value="2", label="Option 2", score=2),
    ]


def build_question(question_id: str, question_type: QuestionType, section_id: str = "") -> Question:
    """Create a fresh, unwired question of the given type."""
    title = f"{QUESTION_TYPE_LABELS[question_type]} question"

    if question_type == QuestionType.MULTIPLE_CHOICE:
        return Question(
            question_id=question_id,
            title=title,
            question_type=question_type,
            section_id=section_id,
            prompt_type="text_prompt",
            prompt="Enter your question.",
            importance="medium",
            required=True,
            validation=default_rule(question_type),
            options=default_options(),
            display_type="default",
            next_question=NoRoute(),
        )

    if question_type == QuestionType.TEXT_OPINION:
        return Question(
            question_id=question_id,
            title=title,
            question_type=question_type,
            section_id=section_id,
            prompt_type="text_prompt",
            prompt="Please share your opinion.",
            importance="medium",
            required=False,
            validation=default_rule(question_type),
            placeholder="Write freely.",
            next_question=NoRoute(),
        )

    return Question(
        question_id=question_id,
        title=title,
        question_type=question_type,
        section_id=section_id,
        prompt_type="voice_prompt",
        prompt="",
        importance="medium",
        required=False,
        validation=default_rule(question_type),
        audio=AudioMetadata(
            format="mp3",
            max_recording_time=120,
            has_transcript=True,
            transcript="Please tell us your opinion by voice.",
        ),
        next_question=NoRoute(),
    )
