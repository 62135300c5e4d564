"""
Structural Validator: diagnostics for a survey graph.

Checks, all re-run after every structural edit:
    - Invalid endpoints (unknown nodes, self loops, edges out of end / into start)
    - Duplicate ids (question ids, extra start/end nodes)
    - Forward reachability from start (orphans)
    - Backward reachability from end (dead ends)
    - Cycles (DFS with a recursion stack)
    - Port completeness (every option branch / the single path wired)
    - Question fields (titles, prompts, option lists)

One validator, two strictness levels:
    QUICK:  editing feedback; incomplete wiring is a warning
    FULL:   export gate; incomplete wiring is an error

Severity ERROR blocks export, WARNING never does.

IMPORTANT: This module only reads the graph. Attaching diagnostics to
nodes is the editing session's job.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from surveygraph.graph import END_NODE_ID, START_NODE_ID, Edge, Graph, Node, NodeKind
from surveygraph.model import QuestionType, is_branching


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


class Strictness(Enum):
    QUICK = "quick"
    FULL = "full"


class DiagnosticKind(Enum):
    ORPHAN = "orphan"
    DEAD_END = "dead_end"
    CYCLE = "cycle"
    DANGLING_PORT = "dangling_port"
    MISSING_CONNECTION = "missing_connection"
    AMBIGUOUS_CONNECTION = "ambiguous_connection"
    STALE_BRANCH = "stale_branch"
    INVALID_BRANCH = "invalid_branch"
    DUPLICATE_ID = "duplicate_id"
    INVALID_ENDPOINT = "invalid_endpoint"
    INVALID_PATH = "invalid_path"
    MISSING_START = "missing_start"
    MISSING_END = "missing_end"
    INVALID_QUESTION = "invalid_question"


# Kinds that only warn under Strictness.QUICK
_RELAXED_KINDS = frozenset({
    DiagnosticKind.ORPHAN,
    DiagnosticKind.DANGLING_PORT,
    DiagnosticKind.AMBIGUOUS_CONNECTION,
    DiagnosticKind.STALE_BRANCH,
})


@dataclass(frozen=True)
class Diagnostic:
    """One finding, optionally pinned to a node or an edge."""

    kind: DiagnosticKind
    severity: Severity
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR


@dataclass
class ValidationReport:
    """All diagnostics of one validator run."""

    strictness: Strictness = Strictness.FULL
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def add(self, kind: DiagnosticKind, message: str, node_id: Optional[str] = None,
            edge_id: Optional[str] = None, severity: Optional[Severity] = None) -> None:
        if severity is None:
            severity = severity_for(kind, self.strictness)
        self.diagnostics.append(Diagnostic(kind, severity, message, node_id, edge_id))

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def for_node(self, node_id: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.node_id == node_id]

    def of_kind(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.kind == kind]


def severity_for(kind: DiagnosticKind, strictness: Strictness) -> Severity:
    if strictness == Strictness.QUICK and kind in _RELAXED_KINDS:
        return Severity.WARNING
    return Severity.ERROR


# =========================================================================
# GRAPH TRAVERSAL
# =========================================================================


def _reachable(adjacency: Dict[str, List[str]], root: str) -> Set[str]:
    """BFS over an adjacency list, root included."""
    if root not in adjacency:
        return set()
    seen = {root}
    queue = deque([root])
    while queue:
        node_id = queue.popleft()
        for neighbor in adjacency.get(node_id, []):
            if neighbor not in seen:
                seen.add(neighbor)
                queue.append(neighbor)
    return seen


def forward_reachable(graph: Graph, root: str = START_NODE_ID) -> Set[str]:
    """Node ids reachable from root along edges."""
    return _reachable(graph.successors(), root)


def backward_reachable(graph: Graph, root: str = END_NODE_ID) -> Set[str]:
    """Node ids from which root can be reached (BFS over reversed edges)."""
    return _reachable(graph.predecessors(), root)


def _collect_cycles(adjacency: Dict[str, List[str]], root: str, visited: Set[str],
                    cycles: List[List[str]], seen: Set[frozenset]) -> None:
    """
    DFS from root recording every back edge into the current path as a cycle.

    The walk keeps its own stack of neighbour iterators, so chains of any
    length stay within the interpreter's recursion limit.
    """
    visited.add(root)
    path: List[str] = [root]
    on_path: Set[str] = {root}
    stack = [iter(adjacency.get(root, []))]

    while stack:
        neighbor = next(stack[-1], None)
        if neighbor is None:
            stack.pop()
            on_path.discard(path.pop())
            continue
        if neighbor not in visited:
            visited.add(neighbor)
            path.append(neighbor)
            on_path.add(neighbor)
            stack.append(iter(adjacency.get(neighbor, [])))
        elif neighbor in on_path:
            cycle = path[path.index(neighbor):] + [neighbor]
            key = frozenset(cycle)
            if key not in seen:
                seen.add(key)
                cycles.append(cycle)


def find_cycles(graph: Graph) -> List[List[str]]:
    """
    All structural cycles, each as a closed path (first id repeated at the end).

    Each distinct set of nodes is reported once, whichever node the DFS
    happens to enter the cycle from.
    """
    adjacency = graph.successors()
    visited: Set[str] = set()
    cycles: List[List[str]] = []
    seen: Set[frozenset] = set()
    for node in graph.nodes:
        if node.id not in visited:
            _collect_cycles(adjacency, node.id, visited, cycles, seen)
    return cycles


# =========================================================================
# CHECKS
# =========================================================================


def _check_endpoints(graph: Graph, report: ValidationReport) -> None:
    kinds = {n.id: n.kind for n in graph.nodes}
    for edge in graph.edges:
        if edge.source not in kinds:
            report.add(DiagnosticKind.INVALID_ENDPOINT,
                       f'Invalid connection: source node "{edge.source}" does not exist',
                       edge_id=edge.id)
            continue
        if edge.target not in kinds:
            report.add(DiagnosticKind.INVALID_ENDPOINT,
                       f'Invalid connection: target node "{edge.target}" does not exist',
                       node_id=edge.source, edge_id=edge.id)
            continue
        if edge.source == edge.target:
            report.add(DiagnosticKind.INVALID_ENDPOINT,
                       f'Invalid connection: "{edge.source}" connects to itself',
                       node_id=edge.source, edge_id=edge.id)
        if kinds[edge.source] == NodeKind.END:
            report.add(DiagnosticKind.INVALID_ENDPOINT,
                       "Invalid connection: the end node cannot have outgoing connections",
                       node_id=edge.source, edge_id=edge.id)
        if kinds[edge.target] == NodeKind.START:
            report.add(DiagnosticKind.INVALID_ENDPOINT,
                       "Invalid connection: the start node cannot have incoming connections",
                       node_id=edge.target, edge_id=edge.id)


def _check_duplicates(graph: Graph, report: ValidationReport) -> None:
    seen: Dict[str, str] = {}
    for node in graph.question_nodes():
        question_id = node.question.question_id
        if question_id in seen:
            report.add(DiagnosticKind.DUPLICATE_ID,
                       f'Duplicate id: "{question_id}" is used by more than one question',
                       node_id=node.id)
        else:
            seen[question_id] = node.id

    for kind in (NodeKind.START, NodeKind.END):
        extra = graph.nodes_of_kind(kind)[1:]
        for node in extra:
            report.add(DiagnosticKind.DUPLICATE_ID,
                       f"Duplicate {kind.value} node",
                       node_id=node.id)


def _check_reachability(graph: Graph, report: ValidationReport,
                        start: Optional[Node], end: Optional[Node]) -> None:
    if start is None:
        report.add(DiagnosticKind.MISSING_START, "The survey has no start node")
    if end is None:
        report.add(DiagnosticKind.MISSING_END, "The survey has no end node")
    if start is None:
        return

    forward = forward_reachable(graph, start.id)
    for node in graph.question_nodes():
        if node.id not in forward:
            report.add(DiagnosticKind.ORPHAN,
                       f'Orphan node: "{node.label}" cannot be reached from the start',
                       node_id=node.id)

    if end is None:
        return

    if end.id not in forward:
        report.add(DiagnosticKind.INVALID_PATH,
                   "The survey cannot reach the end node. Connect every path.",
                   node_id=start.id)

    backward = backward_reachable(graph, end.id)
    for node in graph.question_nodes():
        if node.id in forward and node.id not in backward:
            report.add(DiagnosticKind.DEAD_END,
                       f'Dead end: the end cannot be reached from "{node.label}"',
                       node_id=node.id)


def _check_cycles(graph: Graph, report: ValidationReport) -> None:
    for cycle in find_cycles(graph):
        report.add(DiagnosticKind.CYCLE,
                   f"Cycle detected: {' -> '.join(cycle)}",
                   node_id=cycle[0])


def _check_start_port(graph: Graph, report: ValidationReport, start: Node) -> None:
    outgoing = [e for e in graph.outgoing(start.id) if graph.has_node(e.target)]
    if not outgoing:
        report.add(DiagnosticKind.MISSING_CONNECTION,
                   "The start node must be connected to the first question",
                   node_id=start.id)
    elif len(outgoing) > 1:
        report.add(DiagnosticKind.AMBIGUOUS_CONNECTION,
                   "The start node has more than one outgoing connection",
                   node_id=start.id)


def _check_question_ports(graph: Graph, report: ValidationReport, node: Node) -> None:
    question = node.question
    outgoing: List[Edge] = [e for e in graph.outgoing(node.id) if graph.has_node(e.target)]
    option_edges = [e for e in outgoing if e.option_value is not None]
    default_edges = [e for e in outgoing if e.option_value is None]
    option_values = question.option_values()

    if not (is_branching(question) or option_edges):
        if not outgoing:
            report.add(DiagnosticKind.MISSING_CONNECTION,
                       f'Unconnected output: "{node.label}" needs a connection to the next question',
                       node_id=node.id)
        elif len(default_edges) > 1:
            report.add(DiagnosticKind.AMBIGUOUS_CONNECTION,
                       f'"{node.label}" has {len(default_edges)} default connections; keep exactly one',
                       node_id=node.id)
        return

    if question.question_type != QuestionType.MULTIPLE_CHOICE:
        report.add(DiagnosticKind.INVALID_BRANCH,
                   f'"{node.label}" branches by option but is not a multiple choice question',
                   node_id=node.id)
        return

    connected = {e.option_value for e in option_edges}
    for option in question.options or []:
        if option.value not in connected:
            report.add(DiagnosticKind.DANGLING_PORT,
                       f'Unconnected option port: option "{option.label or option.value}" of "{node.label}" has no connection',
                       node_id=node.id)

    for edge in option_edges:
        if edge.option_value not in option_values:
            report.add(DiagnosticKind.STALE_BRANCH,
                       f'Connection for removed option "{edge.option_value}" on "{node.label}"',
                       node_id=node.id, edge_id=edge.id)

    if is_branching(question):
        for key in question.next_question.branches:
            if key not in option_values:
                report.add(DiagnosticKind.STALE_BRANCH,
                           f'Branch for removed option "{key}" on "{node.label}"',
                           node_id=node.id)


def check_question_fields(node: Node) -> List[Diagnostic]:
    """Field-level checks of a single question node."""
    diagnostics: List[Diagnostic] = []
    question = node.question
    if question is None:
        return diagnostics

    def add(message: str, severity: Severity) -> None:
        diagnostics.append(Diagnostic(DiagnosticKind.INVALID_QUESTION, severity, message, node.id))

    if not question.title.strip():
        add(f"Question {question.question_id} needs a title", Severity.WARNING)
    if question.prompt_type == "text_prompt" and not question.prompt.strip():
        add(f"Question {question.question_id} needs prompt text", Severity.WARNING)

    if question.question_type == QuestionType.MULTIPLE_CHOICE:
        options = question.options or []
        if len(options) < 2:
            add(f"Multiple choice question {question.question_id} needs at least 2 options", Severity.WARNING)
        values: Set[str] = set()
        for option in options:
            if option.value in values:
                add(f'Option value "{option.value}" is duplicated in {question.question_id}', Severity.ERROR)
            values.add(option.value)
            if not option.label.strip():
                add(f"An option of {question.question_id} has no label", Severity.WARNING)

    return diagnostics


# =========================================================================
# ENTRY POINT
# =========================================================================


def validate_graph(graph: Graph, strictness: Strictness = Strictness.FULL) -> ValidationReport:
    """
    Run every structural check against the graph.

    Args:
        graph: Graph to analyze (not modified)
        strictness: QUICK for editing feedback, FULL for the export gate

    Returns:
        ValidationReport; export is allowed when report.is_valid under FULL
    """
    report = ValidationReport(strictness=strictness)

    starts = graph.nodes_of_kind(NodeKind.START)
    ends = graph.nodes_of_kind(NodeKind.END)
    start = starts[0] if starts else None
    end = ends[0] if ends else None

    _check_endpoints(graph, report)
    _check_duplicates(graph, report)
    _check_reachability(graph, report, start, end)
    _check_cycles(graph, report)

    if start is not None:
        _check_start_port(graph, report, start)
    for node in graph.question_nodes():
        _check_question_ports(graph, report, node)
        report.diagnostics.extend(check_question_fields(node))

    return report
