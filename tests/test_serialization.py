"""
Tests for serialization and deserialization of survey documents.

These tests ensure lossless JSON/YAML round-trip of the camelCase document
form, and forgiving loading of malformed questions and layouts.
"""

import pytest
from surveygraph.errors import DocumentFormatError
from surveygraph.examples import build_example_branching_survey
from surveygraph.model import (
    AudioRule,
    ConditionalRoutes,
    Layout,
    LayoutEdge,
    LayoutNode,
    NoRoute,
    Position,
    QuestionType,
    SelectionRule,
    SinglePath,
    TextRule,
)
from surveygraph.serialization import (
    question_from_dict,
    read_survey,
    route_from_value,
    route_to_value,
    rule_from_dict,
    survey_from_dict,
    survey_from_json,
    survey_from_yaml,
    survey_to_dict,
    survey_to_json,
    survey_to_yaml,
    write_survey,
)


def build_sample_survey():
    survey = build_example_branching_survey()
    survey.layout = Layout(
        nodes=[
            LayoutNode(id="start", type="start", position=Position(0, 0)),
            LayoutNode(id="Q1", type="question", position=Position(100, 50)),
        ],
        edges=[
            LayoutEdge(id="start-Q1", source="start", target="Q1",
                       source_handle="output-default", target_handle="input"),
            LayoutEdge(id="Q1-yes-Q2", source="Q1", target="Q2",
                       source_handle="output-yes", target_handle="input",
                       condition="Q1 == 'yes'"),
        ],
    )
    return survey


def test_dict_round_trip():
    survey = build_sample_survey()
    assert survey_from_dict(survey_to_dict(survey)) == survey


def test_json_round_trip():
    survey = build_sample_survey()
    assert survey_from_json(survey_to_json(survey)) == survey


def test_yaml_round_trip():
    survey = build_sample_survey()
    assert survey_from_yaml(survey_to_yaml(survey)) == survey


def test_camel_case_keys():
    d = survey_to_dict(build_sample_survey())
    assert d["surveyId"] == "CS0000001"
    assert d["supportedLanguages"] == ["en"]
    q1 = d["questions"][0]
    assert q1["questionId"] == "Q1"
    assert q1["questionType"] == "multiple_choice"
    assert q1["nextQuestion"] == {"yes": "Q2", "no": "Q3"}
    assert q1["validation"] == {"type": "selection", "minSelections": 1, "maxSelections": 1}
    assert d["questions"][3]["nextQuestion"] is None


def test_edge_condition_written_under_data():
    d = survey_to_dict(build_sample_survey())
    edge = d["layout"]["edges"][1]
    assert edge["data"] == {"condition": "Q1 == 'yes'"}
    assert "data" not in d["layout"]["edges"][0]


class TestRoutes:
    """Test route encoding."""

    def test_route_values(self):
        assert route_to_value(NoRoute()) is None
        assert route_to_value(SinglePath("Q2")) == "Q2"
        assert route_to_value(ConditionalRoutes({"a": "Q2"})) == {"a": "Q2"}

    def test_route_from_values(self):
        assert route_from_value(None) == NoRoute()
        assert route_from_value("") == NoRoute()
        assert route_from_value("Q2") == SinglePath("Q2")
        assert route_from_value({"a": "Q2", 1: "END"}) == ConditionalRoutes({"a": "Q2", "1": "END"})

    def test_unsupported_route(self):
        assert route_from_value(42) == NoRoute()


class TestRules:
    """Test rule decoding."""

    def test_question_type_decides_variant(self):
        assert rule_from_dict(QuestionType.MULTIPLE_CHOICE, {"minSelections": 2}) == SelectionRule(2, 1)
        assert rule_from_dict(QuestionType.TEXT_OPINION, {"type": "text", "pattern": "^a"}) == TextRule(0, 1000, "^a")
        assert rule_from_dict(QuestionType.VOICE_OPINION, {}) == AudioRule(5, 120)

    def test_missing_rule(self):
        assert rule_from_dict(QuestionType.TEXT_OPINION, None) is None


class TestMalformedInput:
    """Test forgiving and strict loading."""

    def test_question_without_id(self):
        with pytest.raises(DocumentFormatError):
            question_from_dict({"title": "No id"})

    def test_question_with_unknown_type(self):
        with pytest.raises(DocumentFormatError, match="unknown questionType"):
            question_from_dict({"questionId": "Q1", "questionType": "slider"})

    def test_malformed_question_is_skipped(self):
        survey = survey_from_dict({
            "surveyId": "S",
            "questions": [
                {"questionId": "Q1", "questionType": "text_opinion"},
                {"questionType": "text_opinion"},
                "garbage",
            ],
        })
        assert survey.question_ids() == ["Q1"]

    def test_document_must_be_mapping(self):
        with pytest.raises(DocumentFormatError):
            survey_from_dict(["not", "a", "survey"])

    def test_questions_must_be_list(self):
        with pytest.raises(DocumentFormatError):
            survey_from_dict({"questions": {"Q1": {}}})

    def test_invalid_json(self):
        with pytest.raises(DocumentFormatError, match="Invalid JSON"):
            survey_from_json("{not json")

    def test_invalid_yaml(self):
        with pytest.raises(DocumentFormatError, match="Invalid YAML"):
            survey_from_yaml("questions: [")

    def test_bad_coordinates_become_zero(self):
        survey = survey_from_dict({
            "layout": {
                "nodes": [{"id": "Q1", "type": "question", "position": {"x": "left", "y": None}}],
                "edges": [{"id": "broken"}],
            },
        })
        assert survey.layout.nodes[0].position == Position(0.0, 0.0)
        assert survey.layout.edges == []

    def test_top_level_edge_condition(self):
        """Conditions outside the data block are read too."""
        survey = survey_from_dict({
            "layout": {
                "nodes": [],
                "edges": [{"id": "e", "source": "Q1", "target": "Q2", "condition": "Q1 == 'a'"}],
            },
        })
        assert survey.layout.edges[0].condition == "Q1 == 'a'"

    def test_misshapen_schedule_and_settings(self):
        """Nested values that are not mappings read as defaults."""
        survey = survey_from_dict({
            "schedule": {"date": "x", "time": 3, "offtime": "lunch"},
            "settings": {"analytics": ["on"]},
        })
        assert survey.schedule.date_start == ""
        assert survey.schedule.time_start == "09:00:00"
        assert survey.schedule.offtime == []
        assert not survey.settings.analytics.tracking_enabled

    def test_misshapen_layout_entries(self):
        survey = survey_from_dict({
            "layout": {
                "nodes": [{"id": "Q1", "position": "x"}],
                "edges": [{"source": "Q1", "target": "end", "data": "Q1 == 'a'"}],
            },
        })
        assert survey.layout.nodes[0].position == Position(0.0, 0.0)
        assert survey.layout.edges[0].condition is None

    def test_layout_lists_must_be_lists(self):
        survey = survey_from_dict({"layout": {"nodes": "Q1", "edges": {"e": {}}}})
        assert survey.layout.nodes == []
        assert survey.layout.edges == []

    def test_section_question_ids_must_be_a_list(self):
        survey = survey_from_dict({"sections": [{"sectionId": "A", "questionIds": "Q1"}]})
        assert survey.sections[0].question_ids == []

    def test_text_fields_become_strings(self):
        question = question_from_dict({
            "questionId": "Q1",
            "title": 5,
            "prompt": None,
            "options": [{"value": 1, "label": 2}],
        })
        assert question.title == "5"
        assert question.prompt == ""
        assert (question.options[0].value, question.options[0].label) == ("1", "2")


class TestFiles:
    """Test reading and writing by suffix."""

    def test_json_file(self, tmp_path):
        survey = build_sample_survey()
        path = tmp_path / "survey.json"
        write_survey(survey, path)
        assert path.read_text(encoding="utf-8").lstrip().startswith("{")
        assert read_survey(path) == survey

    def test_yaml_file(self, tmp_path):
        survey = build_sample_survey()
        path = tmp_path / "survey.yml"
        write_survey(survey, path)
        assert "surveyId: CS0000001" in path.read_text(encoding="utf-8")
        assert read_survey(path) == survey
