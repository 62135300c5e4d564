"""
Serialization helpers for survey documents.

Converts between Survey objects and the camelCase JSON document exchanged
with survey runners:

    {surveyId, version, title, description, language, supportedLanguages,
     creator, schedule, settings, sections, questions, layout?}

The dict form is the intermediate for both JSON and YAML. Loading is
forgiving at the question level (a broken question is skipped and logged)
and strict at the document level (DocumentFormatError).
"""
from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from surveygraph.errors import DocumentFormatError
from surveygraph.model import (
    AnalyticsSettings,
    AudioMetadata,
    AudioRule,
    ConditionalRoutes,
    Creator,
    Layout,
    LayoutEdge,
    LayoutNode,
    NoRoute,
    OffTime,
    Option,
    Position,
    Question,
    QuestionType,
    Route,
    Schedule,
    Section,
    SelectionRule,
    SinglePath,
    Survey,
    SurveySettings,
    TextRule,
    ValidationRule,
)

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = (".yaml", ".yml")


# Nested values of the wrong shape read as empty, so one bad field never
# aborts loading the rest of the document.

def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _items(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


# =========================================================================
# RULES AND ROUTES
# =========================================================================


def rule_to_dict(rule: ValidationRule | None) -> Dict[str, Any] | None:
    if rule is None:
        return None
    if isinstance(rule, SelectionRule):
        return {"type": "selection", "minSelections": rule.min_selections, "maxSelections": rule.max_selections}
    if isinstance(rule, TextRule):
        return {"type": "text", "minLength": rule.min_length, "maxLength": rule.max_length, "pattern": rule.pattern}
    if isinstance(rule, AudioRule):
        return {"type": "audio", "minDuration": rule.min_duration, "maxDuration": rule.max_duration}
    raise TypeError(f"Unsupported validation rule type: {type(rule)}")


def rule_from_dict(question_type: QuestionType, d: Any) -> ValidationRule | None:
    """
    Build the rule variant belonging to question_type.

    Both the tagged form ({"type": "text", ...}) and the older untagged
    form ({"minLength": ..., ...}) are read; the question type decides the
    variant either way.
    """
    if not isinstance(d, dict):
        return None
    if question_type == QuestionType.MULTIPLE_CHOICE:
        return SelectionRule(
            min_selections=d.get("minSelections", 1),
            max_selections=d.get("maxSelections", 1),
        )
    if question_type == QuestionType.TEXT_OPINION:
        return TextRule(
            min_length=d.get("minLength", 0),
            max_length=d.get("maxLength", 1000),
            pattern=d.get("pattern"),
        )
    return AudioRule(
        min_duration=d.get("minDuration", 5),
        max_duration=d.get("maxDuration", 120),
    )


def route_to_value(route: Route) -> Union[None, str, Dict[str, str]]:
    if isinstance(route, SinglePath):
        return route.target
    if isinstance(route, ConditionalRoutes):
        return dict(route.branches)
    return None


def route_from_value(value: Any) -> Route:
    if value is None or value == "":
        return NoRoute()
    if isinstance(value, str):
        return SinglePath(value)
    if isinstance(value, dict):
        return ConditionalRoutes({str(k): str(v) for k, v in value.items() if v is not None})
    logger.warning("Ignoring nextQuestion of unsupported type %s", type(value).__name__)
    return NoRoute()


# =========================================================================
# QUESTIONS AND SECTIONS
# =========================================================================


def option_to_dict(o: Option) -> Dict[str, Any]:
    d: Dict[str, Any] = {"value": o.value, "label": o.label, "score": o.score}
    if o.category is not None:
        d["category"] = o.category
    return d


def option_from_dict(d: Dict[str, Any]) -> Option:
    return Option(
        value=str(d["value"]),
        label=_text(d.get("label")),
        score=d.get("score", 0),
        category=d.get("category"),
    )


def audio_to_dict(a: AudioMetadata | None) -> Dict[str, Any] | None:
    if a is None:
        return None
    return {
        "format": a.format,
        "duration": a.duration,
        "maxRecordingTime": a.max_recording_time,
        "hasTranscript": a.has_transcript,
        "transcript": a.transcript,
        "uri": a.uri,
    }


def audio_from_dict(d: Any) -> AudioMetadata | None:
    if not isinstance(d, dict):
        return None
    return AudioMetadata(
        format=d.get("format", "mp3"),
        duration=d.get("duration"),
        max_recording_time=d.get("maxRecordingTime"),
        has_transcript=d.get("hasTranscript", False),
        transcript=d.get("transcript"),
        uri=d.get("uri"),
    )


def question_to_dict(q: Question) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "questionId": q.question_id,
        "title": q.title,
        "sectionId": q.section_id,
        "questionType": q.question_type.value,
        "promptType": q.prompt_type,
        "prompt": q.prompt,
        "importance": q.importance,
        "required": q.required,
        "validation": rule_to_dict(q.validation),
        "nextQuestion": route_to_value(q.next_question),
    }
    if q.options is not None:
        d["options"] = [option_to_dict(o) for o in q.options]
    if q.audio is not None:
        d["audio"] = audio_to_dict(q.audio)
    if q.display_type is not None:
        d["displayType"] = q.display_type
    if q.placeholder is not None:
        d["placeholder"] = q.placeholder
    return d


def question_from_dict(d: Dict[str, Any]) -> Question:
    """
    Raises:
        DocumentFormatError: when the question has no id, an unknown
            type, or malformed options
    """
    if not isinstance(d, dict):
        raise DocumentFormatError(f"Question must be a mapping, got {type(d).__name__}")
    question_id = d.get("questionId")
    if not question_id or not isinstance(question_id, str):
        raise DocumentFormatError("Question without a questionId")
    try:
        question_type = QuestionType(d.get("questionType", QuestionType.MULTIPLE_CHOICE.value))
    except ValueError as exc:
        raise DocumentFormatError(f"Question {question_id}: unknown questionType {d.get('questionType')!r}") from exc

    options = None
    if d.get("options") is not None:
        try:
            options = [option_from_dict(o) for o in d["options"]]
        except (KeyError, TypeError) as exc:
            raise DocumentFormatError(f"Question {question_id}: malformed options") from exc

    return Question(
        question_id=question_id,
        title=_text(d.get("title")),
        question_type=question_type,
        section_id=_text(d.get("sectionId")),
        prompt_type=_text(d.get("promptType"), "text_prompt"),
        prompt=_text(d.get("prompt")),
        importance=_text(d.get("importance"), "medium"),
        required=bool(d.get("required", False)),
        validation=rule_from_dict(question_type, d.get("validation")),
        options=options,
        audio=audio_from_dict(d.get("audio")),
        display_type=d.get("displayType"),
        placeholder=d.get("placeholder"),
        next_question=route_from_value(d.get("nextQuestion")),
    )


def section_to_dict(s: Section) -> Dict[str, Any]:
    return {
        "sectionId": s.section_id,
        "title": s.title,
        "description": s.description,
        "questionIds": list(s.question_ids),
        "required": s.required,
    }


def section_from_dict(d: Dict[str, Any]) -> Section:
    return Section(
        section_id=_text(d.get("sectionId")),
        title=_text(d.get("title")),
        description=_text(d.get("description")),
        question_ids=[str(qid) for qid in _items(d.get("questionIds"))],
        required=d.get("required", True),
    )


# =========================================================================
# METADATA
# =========================================================================


def creator_to_dict(c: Creator) -> Dict[str, Any]:
    return {"name": c.name, "department": c.department, "email": c.email}


def creator_from_dict(d: Any) -> Creator:
    d = d if isinstance(d, dict) else {}
    return Creator(name=d.get("name", ""), department=d.get("department", ""), email=d.get("email", ""))


def schedule_to_dict(s: Schedule) -> Dict[str, Any]:
    return {
        "date": {"start": s.date_start, "end": s.date_end},
        "time": {"start": s.time_start, "end": s.time_end},
        "offtime": [{"name": o.name, "start": o.start, "end": o.end} for o in s.offtime],
        "timeZone": s.time_zone,
    }


def schedule_from_dict(d: Any) -> Schedule:
    d = d if isinstance(d, dict) else {}
    date = _mapping(d.get("date"))
    time = _mapping(d.get("time"))
    return Schedule(
        date_start=date.get("start", ""),
        date_end=date.get("end", ""),
        time_start=time.get("start", "09:00:00"),
        time_end=time.get("end", "18:00:00"),
        offtime=[
            OffTime(name=o.get("name", ""), start=o.get("start", ""), end=o.get("end", ""))
            for o in _items(d.get("offtime"))
            if isinstance(o, dict)
        ],
        time_zone=d.get("timeZone", "Asia/Seoul"),
    )


def settings_to_dict(s: SurveySettings) -> Dict[str, Any]:
    return {
        "allowAnonymous": s.allow_anonymous,
        "allowRevision": s.allow_revision,
        "estimatedDuration": s.estimated_duration,
        "showProgress": s.show_progress,
        "randomizeQuestions": s.randomize_questions,
        "requireAllQuestions": s.require_all_questions,
        "analytics": {
            "trackingEnabled": s.analytics.tracking_enabled,
            "collectMetadata": list(s.analytics.collect_metadata),
        },
    }


def settings_from_dict(d: Any) -> SurveySettings:
    d = d if isinstance(d, dict) else {}
    analytics = _mapping(d.get("analytics"))
    return SurveySettings(
        allow_anonymous=d.get("allowAnonymous", True),
        allow_revision=d.get("allowRevision", True),
        estimated_duration=d.get("estimatedDuration", 10),
        show_progress=d.get("showProgress", True),
        randomize_questions=d.get("randomizeQuestions", False),
        require_all_questions=d.get("requireAllQuestions", False),
        analytics=AnalyticsSettings(
            tracking_enabled=analytics.get("trackingEnabled", False),
            collect_metadata=list(_items(analytics.get("collectMetadata"))),
        ),
    )


# =========================================================================
# LAYOUT
# =========================================================================


def _coordinate(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def layout_to_dict(layout: Layout) -> Dict[str, Any]:
    edges: List[Dict[str, Any]] = []
    for e in layout.edges:
        edge: Dict[str, Any] = {
            "id": e.id,
            "source": e.source,
            "target": e.target,
            "sourceHandle": e.source_handle,
            "targetHandle": e.target_handle,
        }
        data = {k: v for k, v in (("condition", e.condition), ("label", e.label)) if v is not None}
        if data:
            edge["data"] = data
        edges.append(edge)
    return {
        "nodes": [
            {"id": n.id, "type": n.type, "position": {"x": n.position.x, "y": n.position.y}}
            for n in layout.nodes
        ],
        "edges": edges,
    }


def layout_from_dict(d: Any) -> Layout | None:
    if not isinstance(d, dict):
        return None
    nodes: List[LayoutNode] = []
    for n in _items(d.get("nodes")):
        if not isinstance(n, dict) or not n.get("id"):
            logger.warning("Skipping layout node without an id: %r", n)
            continue
        pos = _mapping(n.get("position"))
        nodes.append(LayoutNode(
            id=str(n["id"]),
            type=n.get("type", "question"),
            position=Position(_coordinate(pos.get("x")), _coordinate(pos.get("y"))),
        ))

    edges: List[LayoutEdge] = []
    for e in _items(d.get("edges")):
        if not isinstance(e, dict) or not e.get("source") or not e.get("target"):
            logger.warning("Skipping layout edge without endpoints: %r", e)
            continue
        data = _mapping(e.get("data"))
        source, target = str(e["source"]), str(e["target"])
        edges.append(LayoutEdge(
            id=str(e.get("id") or f"{source}-{target}"),
            source=source,
            target=target,
            source_handle=e.get("sourceHandle"),
            target_handle=e.get("targetHandle"),
            # runners have read the condition both at top level and under data
            condition=e.get("condition") or data.get("condition"),
            label=e.get("label") or data.get("label"),
        ))
    return Layout(nodes=nodes, edges=edges)


# =========================================================================
# SURVEY
# =========================================================================


def survey_to_dict(s: Survey) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "surveyId": s.survey_id,
        "version": s.version,
        "title": s.title,
        "description": s.description,
        "language": s.language,
        "supportedLanguages": list(s.supported_languages),
        "creator": creator_to_dict(s.creator),
        "schedule": schedule_to_dict(s.schedule),
        "settings": settings_to_dict(s.settings),
        "sections": [section_to_dict(sec) for sec in s.sections],
        "questions": [question_to_dict(q) for q in s.questions],
    }
    if s.layout is not None:
        d["layout"] = layout_to_dict(s.layout)
    return d


def survey_from_dict(d: Any) -> Survey:
    """
    Build a Survey from its dict form.

    Raises:
        DocumentFormatError: if d is not a mapping or its sections/questions
            are not lists
    """
    if not isinstance(d, dict):
        raise DocumentFormatError(f"Survey document must be a mapping, got {type(d).__name__}")

    raw_questions = d.get("questions") or []
    raw_sections = d.get("sections") or []
    if not isinstance(raw_questions, list) or not isinstance(raw_sections, list):
        raise DocumentFormatError("'questions' and 'sections' must be lists")

    questions: List[Question] = []
    for raw in raw_questions:
        try:
            questions.append(question_from_dict(raw))
        except DocumentFormatError as exc:
            logger.warning("Skipping malformed question: %s", exc)

    return Survey(
        survey_id=str(d.get("surveyId", "")),
        version=str(d.get("version", "1.0")),
        title=_text(d.get("title")),
        description=_text(d.get("description")),
        language=_text(d.get("language"), "ko"),
        supported_languages=list(_items(d.get("supportedLanguages")) or [_text(d.get("language"), "ko")]),
        creator=creator_from_dict(d.get("creator")),
        schedule=schedule_from_dict(d.get("schedule")),
        settings=settings_from_dict(d.get("settings")),
        sections=[section_from_dict(sec) for sec in raw_sections if isinstance(sec, dict)],
        questions=questions,
        layout=layout_from_dict(d.get("layout")),
    )


def survey_to_json(s: Survey, indent: Optional[int] = 2) -> str:
    return json.dumps(survey_to_dict(s), ensure_ascii=False, indent=indent)


def survey_from_json(s: str) -> Survey:
    try:
        d = json.loads(s)
    except json.JSONDecodeError as exc:
        raise DocumentFormatError(f"Invalid JSON document: {exc}") from exc
    return survey_from_dict(d)


def survey_to_yaml(s: Survey) -> str:
    return yaml.safe_dump(survey_to_dict(s), allow_unicode=True, sort_keys=False)


def survey_from_yaml(s: str) -> Survey:
    try:
        d = yaml.safe_load(s)
    except yaml.YAMLError as exc:
        raise DocumentFormatError(f"Invalid YAML document: {exc}") from exc
    return survey_from_dict(d)


def read_survey(path: Union[str, Path]) -> Survey:
    """Load a document, choosing YAML or JSON by file suffix."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in _YAML_SUFFIXES:
        return survey_from_yaml(text)
    return survey_from_json(text)


def write_survey(survey: Survey, path: Union[str, Path]) -> None:
    """Save a document, choosing YAML or JSON by file suffix."""
    path = Path(path)
    if path.suffix.lower() in _YAML_SUFFIXES:
        text = survey_to_yaml(survey)
    else:
        text = survey_to_json(survey)
    path.write_text(text, encoding="utf-8")
    logger.debug("Wrote survey %s to %s", survey.survey_id, path)
