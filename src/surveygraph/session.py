"""
Editing session: the single writer of one survey under construction.

Lifecycle:
    EditSession.create()        blank survey: start, end, one empty section
    EditSession.load(survey)    graph rebuilt from a persisted document
    session.reset()             discard everything, back to a blank survey

Every graph mutation goes through a method here and returns the graph.
Mutations that would break an invariant (self loops, edges out of end,
edges into start, deleting start/end, changing a question id) are
rejected: they are logged and leave the graph unchanged.

Mutations do not validate. The caller re-runs validate() after each
structural edit, and export() always runs the full validator first.
"""

from __future__ import annotations

import copy
import logging
import re
import time
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import TypeAdapter, ValidationError

from surveygraph.config import BuilderConfig
from surveygraph.graph import (
    DEFAULT_HANDLE,
    END_NODE_ID,
    INPUT_HANDLE,
    START_NODE_ID,
    Edge,
    Graph,
    Node,
    NodeKind,
    create_edge,
    create_end_node,
    create_question_node,
    create_start_node,
    handle_option,
)
from surveygraph.model import (
    RULE_TYPES,
    AudioMetadata,
    ConditionalRoutes,
    NoRoute,
    Option,
    Position,
    Question,
    QuestionType,
    Route,
    Section,
    SinglePath,
    Survey,
    is_terminal_target,
)
from surveygraph.templates import build_question, coerce_question_type, default_options, default_rule
from surveygraph.transform import document_to_graph, graph_to_document, route_from_edges
from surveygraph.validator import Strictness, ValidationReport, validate_graph

logger = logging.getLogger(__name__)

# Question fields that update_question() may not touch
_IMMUTABLE_FIELDS = frozenset({"question_id"})
_QUESTION_FIELDS = frozenset(f.name for f in fields(Question))

# Plain question fields, checked strictly before they are stored
_FIELD_ADAPTERS: Dict[str, TypeAdapter] = {
    "title": TypeAdapter(str),
    "section_id": TypeAdapter(str),
    "prompt_type": TypeAdapter(str),
    "prompt": TypeAdapter(str),
    "importance": TypeAdapter(str),
    "required": TypeAdapter(bool),
    "display_type": TypeAdapter(Optional[str]),
    "placeholder": TypeAdapter(Optional[str]),
}


class BranchMode(Enum):
    SINGLE = "single"
    MULTI = "multi"


@dataclass
class ExportResult:
    """Outcome of an export. document is None when errors blocked it."""

    document: Optional[Survey]
    report: ValidationReport

    @property
    def ok(self) -> bool:
        return self.document is not None


class EditSession:
    """
    One survey being edited.

    Properties:
        meta: Survey metadata (its questions/layout are ignored; the graph owns them)
        sections: Ordered sections
        graph: Current graph
        question_counter: Highest numeric question suffix handed out so far
        dirty: True after any change since create/load
        report: Diagnostics of the last validate() call
    """

    def __init__(self, config: Optional[BuilderConfig] = None) -> None:
        self.config = config or BuilderConfig()
        self.meta = Survey()
        self.sections: List[Section] = []
        self.graph = Graph()
        self.question_counter = 0
        self.dirty = False
        self.report = ValidationReport(strictness=self._strictness())

    # ==================================================================
    # Lifecycle
    # ==================================================================

    @classmethod
    def create(cls, config: Optional[BuilderConfig] = None) -> EditSession:
        session = cls(config)
        session.create_new_survey()
        return session

    @classmethod
    def load(cls, survey: Survey, config: Optional[BuilderConfig] = None) -> EditSession:
        session = cls(config)
        session.init_survey(survey)
        return session

    def create_new_survey(self) -> Graph:
        survey_id = f"CS{str(int(time.time() * 1000))[-7:]}"
        self.meta = Survey(
            survey_id=survey_id,
            title=self.config.default_title,
            language=self.config.default_language,
            supported_languages=[self.config.default_language],
        )
        self.meta.schedule.time_zone = self.config.default_time_zone
        self.sections = [Section(section_id="SEC1", title="Section 1")]
        self.graph = Graph(nodes=[
            create_start_node(Position(50, 200)),
            create_end_node(Position(400, 200)),
        ])
        self.question_counter = 0
        self.dirty = False
        self.report = ValidationReport(strictness=self._strictness())
        return self.graph

    def init_survey(self, survey: Survey) -> Graph:
        """Load a persisted document into this session."""
        self.meta = copy.deepcopy(survey)
        self.meta.questions = []
        self.meta.layout = None
        self.sections = copy.deepcopy(survey.sections)
        self.graph = document_to_graph(survey, self.config)
        self.question_counter = self._max_question_number(survey.questions)
        self.dirty = False
        self.report = ValidationReport(strictness=self._strictness())
        logger.debug("Loaded survey %s with %d questions", survey.survey_id, len(survey.questions))
        return self.graph

    def reset(self) -> Graph:
        """Drop the current survey and start a blank one."""
        return self.create_new_survey()

    def _max_question_number(self, questions: List[Question]) -> int:
        pattern = re.compile(rf"^{re.escape(self.config.question_id_prefix)}(\d+)$")
        highest = 0
        for question in questions:
            match = pattern.match(question.question_id)
            if match:
                highest = max(highest, int(match.group(1)))
        return highest

    def _strictness(self) -> Strictness:
        return Strictness(self.config.strictness)

    # ==================================================================
    # Lookups
    # ==================================================================

    def get_question(self, node_id: str) -> Optional[Question]:
        node = self.graph.get_node(node_id)
        return node.question if node is not None and node.is_question else None

    def _question_node(self, node_id: str) -> Optional[Node]:
        node = self.graph.get_node(node_id)
        if node is None or not node.is_question:
            logger.warning("No question node %r", node_id)
            return None
        return node

    # ==================================================================
    # Metadata and sections
    # ==================================================================

    def update_meta(self, changes: Mapping[str, Any]) -> None:
        for key, value in changes.items():
            if key in ("questions", "sections", "layout") or not hasattr(self.meta, key):
                logger.warning("Ignoring metadata change to %r", key)
                continue
            setattr(self.meta, key, value)
            self.dirty = True

    def add_section(self, section: Section) -> None:
        if any(s.section_id == section.section_id for s in self.sections):
            logger.warning("Section %s already exists", section.section_id)
            return
        self.sections.append(section)
        self.dirty = True

    def update_section(self, section_id: str, changes: Mapping[str, Any]) -> None:
        for section in self.sections:
            if section.section_id == section_id:
                for key, value in changes.items():
                    if key == "section_id" or not hasattr(section, key):
                        logger.warning("Ignoring section change to %r", key)
                        continue
                    setattr(section, key, value)
                self.dirty = True
                return
        logger.warning("No section %r", section_id)

    def delete_section(self, section_id: str) -> None:
        before = len(self.sections)
        self.sections = [s for s in self.sections if s.section_id != section_id]
        if len(self.sections) != before:
            self.dirty = True

    # ==================================================================
    # Nodes
    # ==================================================================

    def _next_question_id(self) -> str:
        while True:
            self.question_counter += 1
            candidate = f"{self.config.question_id_prefix}{self.question_counter}"
            if not self.graph.has_node(candidate) and self.graph.find_question_node(candidate) is None:
                return candidate

    def add_question_node(self, question_type: Union[str, QuestionType], position: Position) -> Optional[str]:
        """Create an unwired question from its type template. Returns the new question id."""
        try:
            qtype = coerce_question_type(question_type)
        except ValueError:
            logger.warning("Unknown question type %r", question_type)
            return None

        section_id = self.sections[0].section_id if self.sections else "SEC1"
        question_id = self._next_question_id()
        question = build_question(question_id, qtype, section_id)
        self.graph.nodes.append(create_question_node(question, copy.copy(position)))
        if self.sections:
            self.sections[0].question_ids.append(question_id)
        self.dirty = True
        return question_id

    def update_node_position(self, node_id: str, position: Position) -> Graph:
        node = self.graph.get_node(node_id)
        if node is None:
            logger.warning("No node %r to move", node_id)
            return self.graph
        node.position = copy.copy(position)
        return self.graph

    def update_question(self, node_id: str, changes: Mapping[str, Any]) -> Graph:
        """
        The single entry point for question edits.

        changes maps Question field names to new values. Special handling:
            question_id     rejected (ids are immutable)
            question_type   re-templates a mismatched rule; leaving multiple
                            choice drops the branch map and option edges
            options         prunes branches and edges of removed options;
                            repeated option values are rejected
            next_question   NoRoute/SinglePath switch to single-path mode
                            (SinglePath also wires its target),
                            ConditionalRoutes switches to multi-branch mode

        A value of the wrong type is logged and skipped; the other
        changes still apply.
        """
        node = self._question_node(node_id)
        if node is None:
            return self.graph
        question = node.question

        for key, value in changes.items():
            if key in _IMMUTABLE_FIELDS:
                logger.warning("Refusing to change %s of %s", key, question.question_id)
                continue
            if key not in _QUESTION_FIELDS:
                logger.warning("Ignoring unknown question field %r", key)
                continue
            rejection = self._field_rejection(question, key, value)
            if rejection:
                logger.warning("Rejected change to %s of %s: %s", key, question.question_id, rejection)
                continue

            if key == "next_question":
                self._apply_route_change(node, value)
            elif key == "question_type":
                self._apply_type_change(node, value)
            elif key == "options":
                question.options = list(value) if value is not None else None
                self._prune_stale_branches(node)
            else:
                setattr(question, key, value)
            self.dirty = True

        return self.graph

    def _field_rejection(self, question: Question, key: str, value: Any) -> Optional[str]:
        """Why value cannot be stored in question.key, or None when it can."""
        adapter = _FIELD_ADAPTERS.get(key)
        if adapter is not None:
            try:
                adapter.validate_python(value, strict=True)
            except ValidationError as exc:
                return exc.errors()[0]["msg"]
            return None

        if key == "validation":
            rule_type = RULE_TYPES[question.question_type]
            if value is not None and not isinstance(value, rule_type):
                return f"expected {rule_type.__name__} or None, got {type(value).__name__}"
        elif key == "audio":
            if value is not None and not isinstance(value, AudioMetadata):
                return f"expected AudioMetadata or None, got {type(value).__name__}"
        elif key == "options" and value is not None:
            if not isinstance(value, (list, tuple)) or not all(isinstance(o, Option) for o in value):
                return "expected a list of Option"
            if not all(isinstance(o.value, str) and isinstance(o.label, str) for o in value):
                return "option values and labels must be strings"
            values = [o.value for o in value]
            if len(set(values)) != len(values):
                return "option values must be unique"
        return None

    def _apply_type_change(self, node: Node, value: Any) -> None:
        question = node.question
        try:
            qtype = coerce_question_type(value)
        except ValueError:
            logger.warning("Unknown question type %r for %s", value, question.question_id)
            return
        question.question_type = qtype

        rule_type = RULE_TYPES[qtype]
        if question.validation is not None and not isinstance(question.validation, rule_type):
            question.validation = default_rule(qtype)
        if qtype == QuestionType.MULTIPLE_CHOICE and not question.options:
            question.options = default_options()
        if qtype != QuestionType.MULTIPLE_CHOICE:
            self._remove_edges([e for e in self.graph.outgoing(node.id) if e.option_value is not None])
            if isinstance(question.next_question, ConditionalRoutes):
                question.next_question = NoRoute()
            self._sync_route(node)

    def _apply_route_change(self, node: Node, route: Route) -> None:
        if isinstance(route, ConditionalRoutes):
            self._to_multi_branch(node)
        elif isinstance(route, SinglePath):
            self._to_single_path(node)
            target = END_NODE_ID if is_terminal_target(route.target) else route.target
            self.add_edge(node.id, target)
        elif isinstance(route, Route):
            self._to_single_path(node)
        else:
            logger.warning("Ignoring next_question of type %s", type(route).__name__)

    def _to_single_path(self, node: Node) -> None:
        # every output port is cleared; a SinglePath target is rewired by the caller
        self._remove_edges(self.graph.outgoing(node.id))
        node.question.next_question = NoRoute()

    def _to_multi_branch(self, node: Node) -> None:
        if node.question.question_type != QuestionType.MULTIPLE_CHOICE:
            logger.warning("Only multiple choice questions can branch (%s)", node.question.question_id)
            return
        self._remove_edges([e for e in self.graph.outgoing(node.id) if e.option_value is None])
        node.question.next_question = ConditionalRoutes({})
        self._sync_route(node)

    def set_branch_mode(self, node_id: str, mode: Union[str, BranchMode]) -> Graph:
        """Switch a question between single-path and per-option branching."""
        mode = BranchMode(mode)
        route: Route = ConditionalRoutes({}) if mode == BranchMode.MULTI else NoRoute()
        return self.update_question(node_id, {"next_question": route})

    def _prune_stale_branches(self, node: Node) -> None:
        values = set(node.question.option_values())
        stale = [e for e in self.graph.outgoing(node.id)
                 if e.option_value is not None and e.option_value not in values]
        self._remove_edges(stale)
        route = node.question.next_question
        if isinstance(route, ConditionalRoutes):
            node.question.next_question = ConditionalRoutes(
                {k: v for k, v in route.branches.items() if k in values}
            )
        self._sync_route(node)

    def delete_node(self, node_id: str) -> Graph:
        """Delete a question node, its edges, and its section membership."""
        if node_id in (START_NODE_ID, END_NODE_ID):
            logger.warning("The %s node cannot be deleted", node_id)
            return self.graph
        node = self.graph.get_node(node_id)
        if node is None:
            logger.warning("No node %r to delete", node_id)
            return self.graph
        if node.kind != NodeKind.QUESTION:
            logger.warning("The %s node cannot be deleted", node.kind.value)
            return self.graph

        if node.question is not None:
            question_id = node.question.question_id
            for section in self.sections:
                section.question_ids = [qid for qid in section.question_ids if qid != question_id]

        self.graph.nodes = [n for n in self.graph.nodes if n is not node]
        touching = [e for e in self.graph.edges if e.source == node_id or e.target == node_id]
        self._remove_edges(touching)
        self.dirty = True
        return self.graph

    # ==================================================================
    # Edges
    # ==================================================================

    def _edge_rejection(self, source: str, target: str, source_handle: str) -> Optional[str]:
        source_node = self.graph.get_node(source)
        target_node = self.graph.get_node(target)
        if source_node is None or target_node is None:
            return f"unknown node in {source} -> {target}"
        if source == target:
            return f"{source} cannot connect to itself"
        if source_node.kind == NodeKind.END:
            return "the end node cannot have outgoing connections"
        if target_node.kind == NodeKind.START:
            return "the start node cannot have incoming connections"

        option_value = handle_option(source_handle)
        if option_value is not None:
            question = source_node.question
            if question is None or question.question_type != QuestionType.MULTIPLE_CHOICE:
                return f"{source} has no option ports"
            if question.get_option(option_value) is None:
                return f"{source} has no option {option_value!r}"
        return None

    def add_edge(self, source: str, target: str, source_handle: Optional[str] = None,
                 target_handle: Optional[str] = None, condition: Optional[str] = None) -> Graph:
        source_handle = source_handle or DEFAULT_HANDLE
        rejection = self._edge_rejection(source, target, source_handle)
        if rejection:
            logger.warning("Connection rejected: %s", rejection)
            return self.graph

        for existing in self.graph.edges:
            if (existing.source, existing.target, existing.source_handle) == (source, target, source_handle):
                return self.graph

        edge = create_edge(source, target, source_handle, target_handle or INPUT_HANDLE, condition)
        edge.id = self._unique_edge_id(edge.id)
        self.graph.edges.append(edge)
        self.dirty = True
        self._sync_source(source)
        return self.graph

    def _unique_edge_id(self, edge_id: str) -> str:
        taken = {e.id for e in self.graph.edges}
        candidate, n = edge_id, 1
        while candidate in taken:
            n += 1
            candidate = f"{edge_id}-{n}"
        return candidate

    def delete_edge(self, edge_id: str) -> Graph:
        edge = self.graph.get_edge(edge_id)
        if edge is None:
            logger.warning("No edge %r to delete", edge_id)
            return self.graph
        self._remove_edges([edge])
        self.dirty = True
        return self.graph

    def insert_question_between(self, edge_id: str, question_type: Union[str, QuestionType]) -> Optional[str]:
        """
        Split edge A -> B into A -> new -> B.

        The edge out of A keeps its port, so a branch stays a branch.
        Returns the new question id.
        """
        edge = self.graph.get_edge(edge_id)
        if edge is None:
            logger.warning("No edge %r to insert into", edge_id)
            return None
        source = self.graph.get_node(edge.source)
        target = self.graph.get_node(edge.target)
        if source is None or target is None:
            logger.warning("Edge %s has a missing endpoint", edge_id)
            return None

        midway = Position(
            (source.position.x + target.position.x) / 2,
            (source.position.y + target.position.y) / 2,
        )
        question_id = self.add_question_node(question_type, midway)
        if question_id is None:
            return None

        source_handle = edge.source_handle
        self._remove_edges([edge])
        self.add_edge(source.id, question_id, source_handle)
        self.add_edge(question_id, target.id)
        return question_id

    def _remove_edges(self, edges: List[Edge]) -> None:
        if not edges:
            return
        doomed = {id(e) for e in edges}
        sources = {e.source for e in edges}
        self.graph.edges = [e for e in self.graph.edges if id(e) not in doomed]
        for source in sources:
            self._sync_source(source)

    def _sync_source(self, node_id: str) -> None:
        node = self.graph.get_node(node_id)
        if node is not None and node.is_question:
            self._sync_route(node)

    def _sync_route(self, node: Node) -> None:
        """Rebuild the question's next_question from its outgoing edges."""
        question = node.question
        has_option_edges = any(e.option_value is not None for e in self.graph.outgoing(node.id))
        if isinstance(question.next_question, ConditionalRoutes) or has_option_edges:
            route = route_from_edges(self.graph, node)
            if isinstance(route, ConditionalRoutes):
                question.next_question = route
            else:
                # multi-branch mode stays on until the editor switches it off
                question.next_question = ConditionalRoutes({})
            return
        question.next_question = route_from_edges(self.graph, node)

    # ==================================================================
    # Validation and export
    # ==================================================================

    def validate(self, strictness: Optional[Strictness] = None) -> ValidationReport:
        """Validate the graph and attach each node's messages to it."""
        report = validate_graph(self.graph, strictness or self._strictness())
        messages: Dict[str, List[str]] = {}
        for diagnostic in report.diagnostics:
            if diagnostic.node_id is not None:
                messages.setdefault(diagnostic.node_id, []).append(diagnostic.message)
        for node in self.graph.nodes:
            node.errors = messages.get(node.id, [])
        self.report = report
        logger.debug("Validation: %d errors, %d warnings", report.error_count, len(report.warnings))
        return report

    def clear_errors(self) -> None:
        for node in self.graph.nodes:
            node.errors = []
        self.report = ValidationReport(strictness=self._strictness())

    def to_document(self) -> Survey:
        """Compile the current graph without the export gate."""
        meta = copy.deepcopy(self.meta)
        meta.sections = copy.deepcopy(self.sections)
        return graph_to_document(self.graph, meta, self.config)

    def export(self) -> ExportResult:
        """Compile the graph if the full validator reports no errors."""
        report = self.validate(Strictness.FULL)
        if not report.is_valid:
            logger.info("Export blocked by %d errors", report.error_count)
            return ExportResult(document=None, report=report)
        document = self.to_document()
        self.dirty = False
        logger.debug("Exported survey %s", document.survey_id)
        return ExportResult(document=document, report=report)
