"""
Survey Document Model

Defines the normalized, persistable survey document:
    - Options (answer choices of a multiple choice question)
    - Validation rules (one variant per question type)
    - Routes (where a question leads next)
    - Questions
    - Sections (ordered groupings used for sequential fallback)
    - Layout (graph coordinates, presentation only)
    - Survey (root container)

ARCHITECTURAL RULE:
    These objects:
        - Know nothing about nodes, ports or canvases
        - Are plain data, fully serializable
        - Treat Question.next_question as the only source of branching
"""

from abc import ABC
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union


# Branch-map value meaning "the survey ends here"
END_OF_SURVEY = "END"

# Route targets treated as survey termination when read from documents
TERMINAL_TARGETS = frozenset({END_OF_SURVEY, "end"})


class QuestionType(Enum):
    """
    Question kinds supported by the builder.

    Every type has exactly one validation rule variant, see RULE_TYPES.
    """

    MULTIPLE_CHOICE = "multiple_choice"
    TEXT_OPINION = "text_opinion"
    VOICE_OPINION = "voice_opinion"


@dataclass
class Option:
    """
    One answer choice of a multiple choice question.

    Properties:
        value: Key used by answers and by branch maps (unique per question)
        label: Text shown to the respondent
        score: Numeric weight of the choice
        category: Optional grouping tag
    """

    value: str
    label: str = ""
    score: float = 0
    category: Optional[str] = None


# =========================================================================
# VALIDATION RULES
# =========================================================================


@dataclass(frozen=True)
class SelectionRule:
    """Bounds on the number of selected options."""

    min_selections: int = 1
    max_selections: int = 1


@dataclass(frozen=True)
class TextRule:
    """Bounds on the length of a free-text answer, plus an optional regex."""

    min_length: int = 0
    max_length: int = 1000
    pattern: Optional[str] = None


@dataclass(frozen=True)
class AudioRule:
    """Bounds on the duration of a recorded answer, in seconds."""

    min_duration: float = 5
    max_duration: float = 120


ValidationRule = Union[SelectionRule, TextRule, AudioRule]

RULE_TYPES = {
    QuestionType.MULTIPLE_CHOICE: SelectionRule,
    QuestionType.TEXT_OPINION: TextRule,
    QuestionType.VOICE_OPINION: AudioRule,
}


# =========================================================================
# ROUTES
# =========================================================================


class Route(ABC):
    """
    Base class for the three shapes of Question.next_question.

    NoRoute:            no successor defined (unwired while editing,
                        end of survey once exported)
    SinglePath:         one unconditional successor
    ConditionalRoutes:  option value -> successor, multiple choice only
    """
    pass


@dataclass(frozen=True)
class NoRoute(Route):
    pass


@dataclass(frozen=True)
class SinglePath(Route):
    target: str


@dataclass(frozen=True)
class ConditionalRoutes(Route):
    """
    Branch map keyed by option value.

    A value of END_OF_SURVEY terminates the survey for that option.
    """

    branches: Dict[str, str] = field(default_factory=dict)

    def target_for(self, option_value: str) -> Optional[str]:
        return self.branches.get(option_value)


@dataclass
class AudioMetadata:
    """Reference to a prompt recording and what is known about it."""

    format: str = "mp3"
    duration: Optional[float] = None
    max_recording_time: Optional[float] = None
    has_transcript: bool = False
    transcript: Optional[str] = None
    uri: Optional[str] = None


@dataclass
class Question:
    """
    A single survey prompt.

    Properties:
        question_id:
            Stable identifier, unique in the survey, never changed after
            creation. Pattern Q<n>.

        question_type:
            QuestionType of this prompt

        validation:
            Rule variant matching question_type (or None for no rule)

        options:
            Answer choices (meaningful for multiple choice only)

        next_question:
            Route to the following question. This is the ONLY field the
            runtime consults for branching.

    The remaining fields (title, prompt, importance, placeholder, ...) are
    descriptive and carried through unchanged.
    """

    question_id: str
    title: str = ""
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    section_id: str = ""
    prompt_type: str = "text_prompt"
    prompt: str = ""
    importance: str = "medium"
    required: bool = False
    validation: Optional[ValidationRule] = None
    options: Optional[List[Option]] = None
    audio: Optional[AudioMetadata] = None
    display_type: Optional[str] = None
    placeholder: Optional[str] = None
    next_question: Route = field(default_factory=NoRoute)

    def option_values(self) -> List[str]:
        return [opt.value for opt in self.options or []]

    def get_option(self, value: str) -> Optional[Option]:
        for opt in self.options or []:
            if opt.value == value:
                return opt
        return None


def is_branching(question: Question) -> bool:
    """True when the question routes by option value."""
    return isinstance(question.next_question, ConditionalRoutes)


def is_single_path(question: Question) -> bool:
    """True when the question has one unconditional successor."""
    return isinstance(question.next_question, SinglePath)


def is_unwired(question: Question) -> bool:
    return isinstance(question.next_question, NoRoute)


def is_terminal_target(target: Optional[str]) -> bool:
    return target in TERMINAL_TARGETS


@dataclass
class Section:
    """
    Named, ordered grouping of question ids.

    Sections drive the sequential fallback when a question has no
    applicable route. They are not navigational units themselves.
    """

    section_id: str
    title: str = ""
    description: str = ""
    question_ids: List[str] = field(default_factory=list)
    required: bool = True


# =========================================================================
# METADATA
# =========================================================================


@dataclass
class Creator:
    name: str = ""
    department: str = ""
    email: str = ""


@dataclass
class OffTime:
    name: str = ""
    start: str = ""
    end: str = ""


@dataclass
class Schedule:
    date_start: str = ""
    date_end: str = ""
    time_start: str = "09:00:00"
    time_end: str = "18:00:00"
    offtime: List[OffTime] = field(default_factory=list)
    time_zone: str = "Asia/Seoul"


@dataclass
class AnalyticsSettings:
    tracking_enabled: bool = False
    collect_metadata: List[str] = field(default_factory=list)


@dataclass
class SurveySettings:
    allow_anonymous: bool = True
    allow_revision: bool = True
    estimated_duration: int = 10
    show_progress: bool = True
    randomize_questions: bool = False
    require_all_questions: bool = False
    analytics: AnalyticsSettings = field(default_factory=AnalyticsSettings)


# =========================================================================
# LAYOUT (presentation state)
# =========================================================================


@dataclass
class Position:
    """Opaque canvas coordinates. Never reinterpreted by the core."""

    x: float = 0.0
    y: float = 0.0


@dataclass
class LayoutNode:
    id: str
    type: str
    position: Position = field(default_factory=Position)


@dataclass
class LayoutEdge:
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    condition: Optional[str] = None
    label: Optional[str] = None


@dataclass
class Layout:
    """Exact node positions and edge endpoints needed to rebuild a graph."""

    nodes: List[LayoutNode] = field(default_factory=list)
    edges: List[LayoutEdge] = field(default_factory=list)


@dataclass
class Survey:
    """
    Root of the survey document.

    INVARIANTS:
        - question ids are unique
        - option values are unique within a question
        - branch map keys are a subset of the question's option values
        - layout is optional and never needed to run the survey
    """

    survey_id: str = ""
    version: str = "1.0"
    title: str = ""
    description: str = ""
    language: str = "ko"
    supported_languages: List[str] = field(default_factory=lambda: ["ko"])
    creator: Creator = field(default_factory=Creator)
    schedule: Schedule = field(default_factory=Schedule)
    settings: SurveySettings = field(default_factory=SurveySettings)
    sections: List[Section] = field(default_factory=list)
    questions: List[Question] = field(default_factory=list)
    layout: Optional[Layout] = None

    def get_question(self, question_id: str) -> Optional[Question]:
        for question in self.questions:
            if question.question_id == question_id:
                return question
        return None

    def get_section(self, section_id: str) -> Optional[Section]:
        for section in self.sections:
            if section.section_id == section_id:
                return section
        return None

    def section_of(self, question: Question) -> Optional[Section]:
        """
        Section a question belongs to.

        The question's own section_id wins; otherwise the first section
        listing the question id.
        """
        section = self.get_section(question.section_id)
        if section is not None and question.question_id in section.question_ids:
            return section
        for candidate in self.sections:
            if question.question_id in candidate.question_ids:
                return candidate
        return section

    def question_ids(self) -> List[str]:
        return [q.question_id for q in self.questions]
