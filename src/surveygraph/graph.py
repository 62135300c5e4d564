"""
Editable Graph Model

The graph is the editing-time view of a survey:
    - exactly one START node (id "start")
    - exactly one END node (id "end")
    - one QUESTION node per question, carrying the full Question payload
    - edges leaving a port of the source node

Ports (handles):
    output-default      single path out of a node
    output-<value>      branch taken when option <value> is chosen
    input               the only port a node is entered through

IMPORTANT:
    Edges are the source of truth while editing. A question's
    next_question inside a node is kept in step with its edges by the
    editing session, and rebuilt from them on export.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from surveygraph.model import Position, Question


START_NODE_ID = "start"
END_NODE_ID = "end"

DEFAULT_HANDLE = "output-default"
INPUT_HANDLE = "input"
OPTION_HANDLE_PREFIX = "output-"

# Older documents wrote the default port as plain "output"
_DEFAULT_HANDLE_ALIASES = frozenset({DEFAULT_HANDLE, "output", ""})


class NodeKind(Enum):
    START = "start"
    END = "end"
    QUESTION = "question"


@dataclass
class Node:
    """
    A graph node.

    Properties:
        id: Node identifier ("start", "end", or the question id)
        kind: NodeKind
        position: Canvas coordinates
        question: Question payload (QUESTION nodes only)
        errors: Diagnostic messages attached by the last validation run
    """

    id: str
    kind: NodeKind
    position: Position = field(default_factory=Position)
    question: Optional[Question] = None
    errors: List[str] = field(default_factory=list)

    @property
    def is_question(self) -> bool:
        return self.kind == NodeKind.QUESTION and self.question is not None

    @property
    def has_error(self) -> bool:
        return bool(self.errors)

    @property
    def label(self) -> str:
        if self.question is not None:
            return self.question.title or self.question.question_id
        return self.id


@dataclass
class Edge:
    """
    A directed connection from one node's output port to another's input.

    Properties:
        id: Edge identifier
        source / target: Node ids
        source_handle: Output port (see module docstring)
        target_handle: Input port
        condition: Optional runtime condition text, e.g. "Q1 == 'yes'"
        label: Optional display label
    """

    id: str
    source: str
    target: str
    source_handle: Optional[str] = DEFAULT_HANDLE
    target_handle: Optional[str] = INPUT_HANDLE
    condition: Optional[str] = None
    label: Optional[str] = None

    @property
    def option_value(self) -> Optional[str]:
        """Option value encoded in the source handle, or None for the default port."""
        return handle_option(self.source_handle)


def option_handle(option_value: str) -> str:
    return f"{OPTION_HANDLE_PREFIX}{option_value}"


def handle_option(handle: Optional[str]) -> Optional[str]:
    if handle is None or handle in _DEFAULT_HANDLE_ALIASES:
        return None
    if handle.startswith(OPTION_HANDLE_PREFIX):
        return handle[len(OPTION_HANDLE_PREFIX):]
    return None


def make_edge_id(source: str, target: str, source_handle: Optional[str] = DEFAULT_HANDLE,
                 condition: Optional[str] = None) -> str:
    branch = condition or handle_option(source_handle)
    if branch:
        return f"{source}-{branch}-{target}"
    return f"{source}-{target}"


def create_edge(source: str, target: str, source_handle: Optional[str] = DEFAULT_HANDLE,
                target_handle: Optional[str] = INPUT_HANDLE,
                condition: Optional[str] = None) -> Edge:
    return Edge(
        id=make_edge_id(source, target, source_handle, condition),
        source=source,
        target=target,
        source_handle=source_handle or DEFAULT_HANDLE,
        target_handle=target_handle or INPUT_HANDLE,
        condition=condition,
    )


def create_start_node(position: Optional[Position] = None) -> Node:
    return Node(id=START_NODE_ID, kind=NodeKind.START, position=position or Position(50, 200))


def create_end_node(position: Optional[Position] = None) -> Node:
    return Node(id=END_NODE_ID, kind=NodeKind.END, position=position or Position(800, 200))


def create_question_node(question: Question, position: Optional[Position] = None) -> Node:
    return Node(
        id=question.question_id,
        kind=NodeKind.QUESTION,
        position=position or Position(),
        question=question,
    )


@dataclass
class Graph:
    """Nodes and edges of one survey under edit."""

    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def has_node(self, node_id: str) -> bool:
        return self.get_node(node_id) is not None

    def nodes_of_kind(self, kind: NodeKind) -> List[Node]:
        return [n for n in self.nodes if n.kind == kind]

    def question_nodes(self) -> List[Node]:
        return [n for n in self.nodes if n.is_question]

    def find_question_node(self, question_id: str) -> Optional[Node]:
        for node in self.question_nodes():
            if node.question.question_id == question_id:
                return node
        return None

    def outgoing(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.source == node_id]

    def incoming(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.target == node_id]

    def successors(self) -> Dict[str, List[str]]:
        """Adjacency list over known nodes. Edges with unknown endpoints are left out."""
        adjacency: Dict[str, List[str]] = {n.id: [] for n in self.nodes}
        for edge in self.edges:
            if edge.source in adjacency and edge.target in adjacency:
                adjacency[edge.source].append(edge.target)
        return adjacency

    def predecessors(self) -> Dict[str, List[str]]:
        reverse: Dict[str, List[str]] = {n.id: [] for n in self.nodes}
        for edge in self.edges:
            if edge.source in reverse and edge.target in reverse:
                reverse[edge.target].append(edge.source)
        return reverse
