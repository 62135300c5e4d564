"""
Graph <-> Document transformer.

document_to_graph:  Survey -> Graph (on load)
graph_to_document:  Graph -> Survey (on export)

The two directions agree on navigation semantics:

    next_question            graph edges out of the question
    ---------------------    ------------------------------------------
    NoRoute                  output-default -> end
    SinglePath(Qn)           output-default -> Qn
    ConditionalRoutes(map)   output-<value> -> map[value] (END -> end)

Malformed input never raises here. Nodes or edges that cannot be placed
are dropped and logged.
"""

from __future__ import annotations

import copy
import logging
import time
from typing import Dict, List, Optional, Tuple

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
    option_handle,
)
from surveygraph.model import (
    END_OF_SURVEY,
    ConditionalRoutes,
    Layout,
    LayoutEdge,
    LayoutNode,
    NoRoute,
    Position,
    Question,
    QuestionType,
    Route,
    Section,
    SinglePath,
    Survey,
    is_branching,
    is_terminal_target,
)
from surveygraph.navigation import first_question_id

logger = logging.getLogger(__name__)

DEFAULT_SECTION_ID = "section-default"


# =========================================================================
# POSITIONS
# =========================================================================


def synthesize_positions(question_count: int, config: Optional[BuilderConfig] = None
                         ) -> Tuple[Position, List[Position], Position]:
    """
    Staircase placement in document order.

    Start sits at the origin, question i one step right and down per index,
    and end one step past the last question.
    """
    config = config or BuilderConfig()
    x0, y0 = config.layout_origin_x, config.layout_origin_y
    dx, dy = config.layout_step_x, config.layout_step_y

    start = Position(x0, y0)
    questions = [Position(x0 + dx * (i + 1), y0 + dy * (i + 1)) for i in range(question_count)]
    end = Position(x0 + dx * (question_count + 1), y0 + dy * (question_count + 2))
    return start, questions, end


def question_order(graph: Graph) -> List[Node]:
    """Question nodes top to bottom, then left to right. Ties keep graph order."""
    return sorted(graph.question_nodes(), key=lambda n: (n.position.y, n.position.x))


# =========================================================================
# DOCUMENT -> GRAPH
# =========================================================================


def document_to_graph(survey: Survey, config: Optional[BuilderConfig] = None) -> Graph:
    """
    Build the editable graph for a survey document.

    With a layout, positions and edges are restored as saved. Without one,
    positions are synthesized and edges derived from each question's route.
    Every question in the document becomes exactly one node.
    """
    questions = _unique_questions(survey.questions)
    if survey.layout is not None:
        return _graph_from_layout(questions, survey.layout, config)
    return _graph_from_routes(questions, first_question_id(survey), config)


def _unique_questions(questions: List[Question]) -> List[Question]:
    seen = set()
    unique: List[Question] = []
    for question in questions:
        if question.question_id in seen:
            logger.warning("Dropping duplicate question %s from document", question.question_id)
            continue
        seen.add(question.question_id)
        unique.append(copy.deepcopy(question))
    return unique


def _graph_from_routes(questions: List[Question], entry_id: Optional[str],
                       config: Optional[BuilderConfig]) -> Graph:
    start_pos, question_pos, end_pos = synthesize_positions(len(questions), config)

    nodes = [create_start_node(start_pos)]
    nodes += [create_question_node(q, pos) for q, pos in zip(questions, question_pos)]
    nodes.append(create_end_node(end_pos))
    graph = Graph(nodes=nodes)

    known = {q.question_id for q in questions}
    if entry_id not in known:
        entry_id = questions[0].question_id if questions else END_NODE_ID
    graph.edges.append(create_edge(START_NODE_ID, entry_id))

    for question in questions:
        graph.edges.extend(_edges_for_route(question, known))
    return graph


def _edges_for_route(question: Question, known: set) -> List[Edge]:
    source = question.question_id
    route = question.next_question

    if isinstance(route, ConditionalRoutes):
        edges = []
        for option_value, target_id in route.branches.items():
            target = _resolve_target(source, target_id, known)
            if target is not None:
                edges.append(create_edge(source, target, option_handle(option_value)))
        return edges

    if isinstance(route, SinglePath):
        target = _resolve_target(source, route.target, known)
        return [create_edge(source, target)] if target is not None else []

    return [create_edge(source, END_NODE_ID)]


def _resolve_target(source: str, target_id: str, known: set) -> Optional[str]:
    if is_terminal_target(target_id):
        return END_NODE_ID
    if target_id in known and target_id != source:
        return target_id
    logger.warning("Question %s routes to unknown question %r; edge dropped", source, target_id)
    return None


def _graph_from_layout(questions: List[Question], layout: Layout,
                       config: Optional[BuilderConfig]) -> Graph:
    by_id: Dict[str, Question] = {q.question_id: q for q in questions}
    graph = Graph()
    placed = set()

    for layout_node in layout.nodes:
        if layout_node.id in placed:
            logger.warning("Duplicate layout node %s ignored", layout_node.id)
            continue
        position = copy.copy(layout_node.position)
        if layout_node.type == NodeKind.START.value or layout_node.id == START_NODE_ID:
            node = create_start_node(position)
        elif layout_node.type == NodeKind.END.value or layout_node.id == END_NODE_ID:
            node = create_end_node(position)
        elif layout_node.id in by_id:
            node = create_question_node(by_id[layout_node.id], position)
        else:
            logger.warning("Layout node %s has no matching question; dropped", layout_node.id)
            continue
        if node.id in placed:
            logger.warning("Duplicate layout node %s ignored", node.id)
            continue
        graph.nodes.append(node)
        placed.add(node.id)

    # questions the layout forgot still get a node, on the synthesized staircase
    start_pos, question_pos, end_pos = synthesize_positions(len(questions), config)
    for question, position in zip(questions, question_pos):
        if question.question_id not in placed:
            logger.warning("Question %s missing from layout; placing it", question.question_id)
            graph.nodes.append(create_question_node(question, position))
            placed.add(question.question_id)
    if START_NODE_ID not in placed:
        graph.nodes.insert(0, create_start_node(start_pos))
    if END_NODE_ID not in placed:
        graph.nodes.append(create_end_node(end_pos))

    edge_ids = set()
    for layout_edge in layout.edges:
        if not graph.has_node(layout_edge.source) or not graph.has_node(layout_edge.target):
            logger.warning("Layout edge %s references a missing node; dropped", layout_edge.id)
            continue
        if layout_edge.id in edge_ids:
            logger.warning("Duplicate layout edge %s ignored", layout_edge.id)
            continue
        edge_ids.add(layout_edge.id)
        graph.edges.append(Edge(
            id=layout_edge.id,
            source=layout_edge.source,
            target=layout_edge.target,
            source_handle=layout_edge.source_handle or DEFAULT_HANDLE,
            target_handle=layout_edge.target_handle or INPUT_HANDLE,
            condition=layout_edge.condition,
            label=layout_edge.label,
        ))
    return graph


# =========================================================================
# GRAPH -> DOCUMENT
# =========================================================================


def route_from_edges(graph: Graph, node: Node) -> Route:
    """
    Rebuild a question's route from its outgoing edges.

    0 edges                       -> NoRoute, or an empty ConditionalRoutes
                                     for a multiple choice question in branch mode
    1 default-port edge           -> SinglePath, or NoRoute when it ends the survey
    option-port edges / several   -> ConditionalRoutes (END for edges into end)
    """
    outgoing = graph.outgoing(node.id)
    option_edges = [e for e in outgoing if e.option_value is not None]
    if not option_edges and _awaits_branches(node):
        return ConditionalRoutes({})
    if not outgoing:
        return NoRoute()

    if len(outgoing) == 1 and not option_edges:
        return _single_route(graph, outgoing[0])

    branches: Dict[str, str] = {}
    for edge in option_edges:
        target_id = _target_question_id(graph, edge)
        if target_id is not None:
            branches[edge.option_value] = target_id
    if branches:
        return ConditionalRoutes(branches)

    for edge in outgoing:
        if edge.option_value is None:
            return _single_route(graph, edge)
    return NoRoute()


def _awaits_branches(node: Node) -> bool:
    question = node.question
    return (question is not None and question.question_type == QuestionType.MULTIPLE_CHOICE
            and is_branching(question))


def _single_route(graph: Graph, edge: Edge) -> Route:
    target_id = _target_question_id(graph, edge)
    if target_id is None or target_id == END_OF_SURVEY:
        return NoRoute()
    return SinglePath(target_id)


def _target_question_id(graph: Graph, edge: Edge) -> Optional[str]:
    target = graph.get_node(edge.target)
    if target is None:
        return None
    if target.kind == NodeKind.END:
        return END_OF_SURVEY
    if target.is_question:
        return target.question.question_id
    return None


def graph_to_document(graph: Graph, existing: Optional[Survey] = None,
                      config: Optional[BuilderConfig] = None) -> Survey:
    """
    Compile the graph into a survey document.

    Metadata and sections come from `existing` when given; questions and
    layout always come from the graph. Without sections, one catch-all
    section lists every question in order.

    The question the start node leads to is placed first, both in the
    question list and at the head of the first section, so a runner
    enters the survey where the graph does.
    """
    config = config or BuilderConfig()
    ordered = question_order(graph)
    entry_id = find_first_question_id(graph)
    ordered.sort(key=lambda node: node.id != entry_id)

    questions: List[Question] = []
    for node in ordered:
        question = copy.deepcopy(node.question)
        question.next_question = route_from_edges(graph, node)
        questions.append(question)

    survey = copy.deepcopy(existing) if existing is not None else _new_document(config)
    survey.questions = questions
    survey.sections = _sections_for(survey.sections, questions)
    if entry_id is not None:
        _lead_with(survey, entry_id)
    survey.layout = layout_from_graph(graph)
    return survey


def _new_document(config: BuilderConfig) -> Survey:
    survey = Survey(
        survey_id=f"survey-{int(time.time() * 1000)}",
        title=config.default_title,
        language=config.default_language,
        supported_languages=[config.default_language],
    )
    survey.schedule.time_zone = config.default_time_zone
    return survey


def _sections_for(sections: List[Section], questions: List[Question]) -> List[Section]:
    question_ids = [q.question_id for q in questions]
    if not sections:
        return [Section(
            section_id=DEFAULT_SECTION_ID,
            title="Default section",
            question_ids=question_ids,
            required=True,
        )]

    known = set(question_ids)
    for section in sections:
        stale = [qid for qid in section.question_ids if qid not in known]
        if stale:
            logger.warning("Section %s lists unknown questions %s; removed", section.section_id, stale)
            section.question_ids = [qid for qid in section.question_ids if qid in known]
    return sections


def _lead_with(survey: Survey, entry_id: str) -> None:
    for section in survey.sections:
        if entry_id in section.question_ids:
            section.question_ids.remove(entry_id)
    first = survey.sections[0]
    first.question_ids.insert(0, entry_id)
    survey.get_question(entry_id).section_id = first.section_id


def layout_from_graph(graph: Graph) -> Layout:
    return Layout(
        nodes=[LayoutNode(id=n.id, type=n.kind.value, position=copy.copy(n.position)) for n in graph.nodes],
        edges=[
            LayoutEdge(
                id=e.id,
                source=e.source,
                target=e.target,
                source_handle=e.source_handle,
                target_handle=e.target_handle,
                condition=e.condition,
                label=e.label,
            )
            for e in graph.edges
        ],
    )


def find_first_question_id(graph: Graph) -> Optional[str]:
    """Question the start node leads to, if any."""
    for edge in graph.outgoing(START_NODE_ID):
        target = graph.get_node(edge.target)
        if target is not None and target.is_question:
            return target.question.question_id
    return None
