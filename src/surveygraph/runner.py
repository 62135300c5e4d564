"""
Respondent session over a compiled survey document.

States:
    ACTIVE(question_id)   waiting for an answer to question_id
    COMPLETED             no question left

Answers accumulate forward. History is a stack of visited question ids;
prev() pops it without touching answers or re-validating.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from surveygraph.config import BuilderConfig
from surveygraph.model import Question, Survey
from surveygraph.navigation import NavigationResult, first_question_id, get_next, validate_answer

logger = logging.getLogger(__name__)


class RunnerState(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class SurveyRunner:
    """
    Drives one respondent through a survey.

    Args:
        survey: Compiled survey document
        config: Optional BuilderConfig (for the required-answer message)
    """

    def __init__(self, survey: Survey, config: Optional[BuilderConfig] = None) -> None:
        self.survey = survey
        self.config = config or BuilderConfig()
        self.current_question_id: Optional[str] = None
        self.answers: Dict[str, Any] = {}
        self.errors: Dict[str, str] = {}
        self.history: List[str] = []
        self.completed = False
        self.start()

    def start(self) -> Optional[str]:
        """(Re)start at the entry question, discarding answers and history."""
        self.current_question_id = first_question_id(self.survey)
        self.answers = {}
        self.errors = {}
        self.history = []
        self.completed = self.current_question_id is None
        return self.current_question_id

    reset = start

    @property
    def state(self) -> RunnerState:
        return RunnerState.COMPLETED if self.completed else RunnerState.ACTIVE

    @property
    def current_question(self) -> Optional[Question]:
        if self.current_question_id is None:
            return None
        return self.survey.get_question(self.current_question_id)

    def set_answer(self, question_id: str, value: Any) -> None:
        self.answers[question_id] = value
        self.errors.pop(question_id, None)

    def validate_current(self) -> bool:
        """Validate the current answer, recording an inline error on failure."""
        question = self.current_question
        if question is None:
            return True
        result = validate_answer(question, self.answers.get(question.question_id), self.config.required_message)
        if not result.valid:
            self.errors[question.question_id] = result.error or self.config.required_message
            return False
        self.errors.pop(question.question_id, None)
        return True

    def next(self) -> Optional[NavigationResult]:
        """
        Validate the current answer and move on.

        Returns:
            The NavigationResult taken, or None when the move was blocked
            (invalid answer, or the run is already complete)
        """
        if self.completed or self.current_question_id is None:
            return None
        if not self.validate_current():
            return None

        result = get_next(self.survey, self.current_question_id, self.answers)
        if result.end_of_survey:
            self.completed = True
            return result

        if self.survey.get_question(result.next_question_id) is None:
            logger.warning("Next question %s is not in survey %s; completing",
                           result.next_question_id, self.survey.survey_id)
            self.completed = True
            return NavigationResult.completed()

        self.history.append(self.current_question_id)
        self.current_question_id = result.next_question_id
        return result

    def prev(self) -> Optional[str]:
        """
        Step back one question.

        From COMPLETED this returns to the last answered question; otherwise
        it pops the history stack. Returns the new current id, or None when
        there is nowhere to go.
        """
        if self.completed and self.current_question_id is not None:
            self.completed = False
            return self.current_question_id
        if not self.history:
            return None
        self.current_question_id = self.history.pop()
        return self.current_question_id
