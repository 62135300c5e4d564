"""
Example survey used by the demo and the tests.

A four-question satisfaction check with one branch point:

    Q1 (yes/no) --yes--> Q2 (text)  --> Q4 (voice) --> end
                \\--no---> Q3 (choice) --/
"""
from surveygraph.model import (
    AudioMetadata,
    AudioRule,
    ConditionalRoutes,
    NoRoute,
    Option,
    Question,
    QuestionType,
    Section,
    SelectionRule,
    SinglePath,
    Survey,
    TextRule,
)


def build_example_branching_survey() -> Survey:
    survey = Survey(
        survey_id="CS0000001",
        title="Service satisfaction",
        description="Short branching survey about our service.",
        language="en",
        supported_languages=["en"],
    )

    q1 = Question(
        question_id="Q1",
        title="Overall satisfaction",
        question_type=QuestionType.MULTIPLE_CHOICE,
        section_id="SEC1",
        prompt="Were you satisfied with the service?",
        required=True,
        validation=SelectionRule(min_selections=1, max_selections=1),
        options=[
            Option(value="yes", label="Yes", score=1),
            Option(value="no", label="No", score=0),
        ],
        display_type="default",
        next_question=ConditionalRoutes({"yes": "Q2", "no": "Q3"}),
    )
    q2 = Question(
        question_id="Q2",
        title="What went well",
        question_type=QuestionType.TEXT_OPINION,
        section_id="SEC1",
        prompt="Tell us what you liked.",
        validation=TextRule(min_length=0, max_length=500),
        placeholder="Write freely.",
        next_question=SinglePath("Q4"),
    )
    q3 = Question(
        question_id="Q3",
        title="Main problem",
        question_type=QuestionType.MULTIPLE_CHOICE,
        section_id="SEC1",
        prompt="What was the main problem?",
        required=True,
        validation=SelectionRule(min_selections=1, max_selections=1),
        options=[
            Option(value="price", label="Price", score=1),
            Option(value="quality", label="Quality", score=2),
            Option(value="support", label="Support", score=3),
        ],
        display_type="default",
        next_question=SinglePath("Q4"),
    )
    q4 = Question(
        question_id="Q4",
        title="Anything else",
        question_type=QuestionType.VOICE_OPINION,
        section_id="SEC2",
        prompt_type="voice_prompt",
        validation=AudioRule(min_duration=5, max_duration=120),
        audio=AudioMetadata(
            format="mp3",
            max_recording_time=120,
            has_transcript=True,
            transcript="Is there anything else you would like to tell us?",
        ),
        next_question=NoRoute(),
    )

    survey.questions = [q1, q2, q3, q4]
    survey.sections = [
        Section(section_id="SEC1", title="Experience", question_ids=["Q1", "Q2", "Q3"]),
        Section(section_id="SEC2", title="Closing", question_ids=["Q4"]),
    ]
    return survey
