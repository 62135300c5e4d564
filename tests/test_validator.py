"""
Tests for the Structural Validator.

Tests verify that the validator correctly:
    - Finds orphans, dead ends and cycles
    - Checks port completeness for single-path and branching questions
    - Rejects invalid endpoints and duplicate ids
    - Applies strictness (quick vs full) to the relaxed kinds
    - Never modifies the graph
"""

import copy
import itertools

from surveygraph.graph import (
    Graph,
    create_edge,
    create_end_node,
    create_question_node,
    create_start_node,
)
from surveygraph.model import ConditionalRoutes, Option, Question, QuestionType, SinglePath
from surveygraph.validator import (
    DiagnosticKind,
    Severity,
    Strictness,
    find_cycles,
    forward_reachable,
    validate_graph,
)


def text_question(question_id: str) -> Question:
    return Question(
        question_id=question_id,
        title=f"Question {question_id}",
        question_type=QuestionType.TEXT_OPINION,
        prompt="Tell us more.",
    )


def choice_question(question_id: str, values=("yes", "no"), branches=None) -> Question:
    return Question(
        question_id=question_id,
        title=f"Question {question_id}",
        question_type=QuestionType.MULTIPLE_CHOICE,
        prompt="Pick one.",
        options=[Option(v, v.title()) for v in values],
        next_question=ConditionalRoutes(dict(branches or {})),
    )


def build_graph(questions, edges) -> Graph:
    graph = Graph(nodes=[create_start_node()] + [create_question_node(q) for q in questions] + [create_end_node()])
    graph.edges = [create_edge(*e) for e in edges]
    return graph


def kinds(report):
    return [d.kind for d in report.diagnostics]


class TestLinear:
    """Well-formed graphs."""

    def test_valid_linear_graph(self):
        graph = build_graph([text_question("Q1")], [("start", "Q1"), ("Q1", "end")])
        report = validate_graph(graph)
        assert report.is_valid
        assert report.diagnostics == []

    def test_valid_branching_graph(self):
        graph = build_graph(
            [choice_question("Q1", branches={"yes": "Q2", "no": "END"}), text_question("Q2")],
            [("start", "Q1"), ("Q1", "Q2", "output-yes"), ("Q1", "end", "output-no"), ("Q2", "end")],
        )
        assert validate_graph(graph).diagnostics == []

    def test_graph_not_modified(self):
        graph = build_graph([text_question("Q1"), text_question("Q2")], [("start", "Q1")])
        before = copy.deepcopy(graph)
        validate_graph(graph)
        assert graph == before


class TestReachability:
    """Orphans and dead ends."""

    def test_isolated_question_is_single_orphan(self):
        """Scenario: start -> Q1 -> end plus an isolated Q2."""
        graph = build_graph([text_question("Q1"), text_question("Q2")], [("start", "Q1"), ("Q1", "end")])
        report = validate_graph(graph)

        orphans = report.of_kind(DiagnosticKind.ORPHAN)
        assert len(orphans) == 1
        assert orphans[0].node_id == "Q2"
        for node_id in ("Q1", "start", "end"):
            assert [d for d in report.for_node(node_id) if d.is_error] == []

    def test_dead_end(self):
        """Q2 is reachable but cannot reach the end."""
        graph = build_graph(
            [text_question("Q1"), text_question("Q2")],
            [("start", "Q1"), ("Q1", "end"), ("Q1", "Q2")],
        )
        report = validate_graph(graph)
        dead = report.of_kind(DiagnosticKind.DEAD_END)
        assert [d.node_id for d in dead] == ["Q2"]
        assert dead[0].severity == Severity.ERROR

    def test_end_not_reachable(self):
        graph = build_graph([text_question("Q1")], [("start", "Q1")])
        report = validate_graph(graph)
        assert DiagnosticKind.INVALID_PATH in kinds(report)
        assert DiagnosticKind.DEAD_END in kinds(report)
        assert DiagnosticKind.MISSING_CONNECTION in kinds(report)

    def test_missing_end_node(self):
        graph = Graph(nodes=[create_start_node(), create_question_node(text_question("Q1"))])
        graph.edges = [create_edge("start", "Q1")]
        report = validate_graph(graph)
        assert DiagnosticKind.MISSING_END in kinds(report)
        assert not report.is_valid

    def test_missing_start_node(self):
        graph = Graph(nodes=[create_question_node(text_question("Q1")), create_end_node()])
        graph.edges = [create_edge("Q1", "end")]
        assert DiagnosticKind.MISSING_START in kinds(validate_graph(graph))

    def test_adding_edges_never_shrinks_reachability(self):
        graph = build_graph(
            [text_question("Q1"), text_question("Q2"), text_question("Q3")],
            [("start", "Q1"), ("Q1", "end")],
        )
        before = forward_reachable(graph)
        graph.edges.append(create_edge("Q1", "Q2"))
        middle = forward_reachable(graph)
        graph.edges.append(create_edge("Q2", "Q3"))
        after = forward_reachable(graph)
        assert before <= middle <= after
        assert after == {"start", "Q1", "Q2", "Q3", "end"}

    def test_deleting_edges_never_grows_reachability(self):
        graph = build_graph(
            [text_question("Q1"), text_question("Q2")],
            [("start", "Q1"), ("Q1", "Q2"), ("Q2", "end")],
        )
        reached = forward_reachable(graph)
        while graph.edges:
            graph.edges.pop(0)
            smaller = forward_reachable(graph)
            assert smaller <= reached
            reached = smaller
        assert reached == {"start"}


class TestCycles:
    """Cycle detection."""

    def test_three_node_cycle_any_order(self):
        """Q1 -> Q2 -> Q3 -> Q1 is found whatever order the nodes come in."""
        questions = [text_question("Q1"), text_question("Q2"), text_question("Q3")]
        for ordering in itertools.permutations(questions):
            graph = build_graph(
                list(ordering),
                [("start", "Q1"), ("Q1", "Q2"), ("Q2", "Q3"), ("Q3", "Q1"), ("Q3", "end")],
            )
            cycles = validate_graph(graph).of_kind(DiagnosticKind.CYCLE)
            assert len(cycles) == 1
            assert cycles[0].severity == Severity.ERROR

    def test_cycle_path_is_closed(self):
        graph = build_graph(
            [text_question("Q1"), text_question("Q2")],
            [("start", "Q1"), ("Q1", "Q2"), ("Q2", "Q1")],
        )
        cycle = find_cycles(graph)[0]
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"Q1", "Q2"}

    def test_cycle_is_error_in_quick_mode(self):
        graph = build_graph(
            [text_question("Q1"), text_question("Q2")],
            [("start", "Q1"), ("Q1", "Q2"), ("Q2", "Q1"), ("Q2", "end")],
        )
        report = validate_graph(graph, Strictness.QUICK)
        assert report.of_kind(DiagnosticKind.CYCLE)[0].is_error

    def test_acyclic(self):
        graph = build_graph([text_question("Q1")], [("start", "Q1"), ("Q1", "end")])
        assert find_cycles(graph) == []

    def test_long_chain(self):
        """A chain far deeper than the recursion limit is walked without error."""
        ids = [f"Q{i}" for i in range(1, 1201)]
        chain = ["start"] + ids + ["end"]
        graph = build_graph([text_question(q) for q in ids], list(zip(chain, chain[1:])))
        report = validate_graph(graph)
        assert report.of_kind(DiagnosticKind.CYCLE) == []
        assert report.of_kind(DiagnosticKind.ORPHAN) == []

    def test_long_cycle(self):
        ids = [f"Q{i}" for i in range(1, 1201)]
        chain = ["start"] + ids
        graph = build_graph([text_question(q) for q in ids], list(zip(chain, chain[1:])) + [("Q1200", "Q1")])
        cycles = find_cycles(graph)
        assert len(cycles) == 1
        assert len(cycles[0]) == 1201
        assert cycles[0][0] == cycles[0][-1] == "Q1"


class TestPorts:
    """Port completeness."""

    def test_dangling_option_port(self):
        graph = build_graph(
            [choice_question("Q1", branches={"yes": "END"})],
            [("start", "Q1"), ("Q1", "end", "output-yes")],
        )
        report = validate_graph(graph)
        dangling = report.of_kind(DiagnosticKind.DANGLING_PORT)
        assert len(dangling) == 1
        assert '"No"' in dangling[0].message

    def test_dangling_port_iff_option_unmapped(self):
        """Wiring every option clears the dangling diagnostics, one by one."""
        values = ("a", "b", "c")
        question = choice_question("Q1", values=values)
        graph = build_graph([question], [("start", "Q1")])
        for i, value in enumerate(values):
            assert len(validate_graph(graph).of_kind(DiagnosticKind.DANGLING_PORT)) == len(values) - i
            graph.edges.append(create_edge("Q1", "end", f"output-{value}"))
        assert validate_graph(graph).of_kind(DiagnosticKind.DANGLING_PORT) == []

    def test_missing_single_connection(self):
        graph = build_graph([text_question("Q1")], [("start", "Q1")])
        missing = validate_graph(graph).of_kind(DiagnosticKind.MISSING_CONNECTION)
        assert [d.node_id for d in missing] == ["Q1"]

    def test_two_default_connections(self):
        graph = build_graph(
            [text_question("Q1"), text_question("Q2")],
            [("start", "Q1"), ("Q1", "Q2"), ("Q1", "end"), ("Q2", "end")],
        )
        report = validate_graph(graph)
        assert report.of_kind(DiagnosticKind.AMBIGUOUS_CONNECTION)[0].node_id == "Q1"

    def test_start_must_lead_somewhere(self):
        graph = build_graph([], [])
        report = validate_graph(graph)
        assert [d.node_id for d in report.of_kind(DiagnosticKind.MISSING_CONNECTION)] == ["start"]

    def test_stale_branch_edge(self):
        graph = build_graph(
            [choice_question("Q1", values=("a",))],
            [("start", "Q1"), ("Q1", "end", "output-a"), ("Q1", "end", "output-gone")],
        )
        stale = validate_graph(graph).of_kind(DiagnosticKind.STALE_BRANCH)
        assert len(stale) == 1
        assert stale[0].edge_id == "Q1-gone-end"

    def test_stale_branch_key(self):
        graph = build_graph(
            [choice_question("Q1", values=("a",), branches={"a": "END", "b": "END"})],
            [("start", "Q1"), ("Q1", "end", "output-a")],
        )
        assert len(validate_graph(graph).of_kind(DiagnosticKind.STALE_BRANCH)) == 1

    def test_non_choice_cannot_branch(self):
        question = text_question("Q1")
        question.next_question = ConditionalRoutes({"a": "END"})
        graph = build_graph([question], [("start", "Q1"), ("Q1", "end")])
        assert DiagnosticKind.INVALID_BRANCH in kinds(validate_graph(graph))

    def test_single_path_question_is_not_branching(self):
        question = text_question("Q1")
        question.next_question = SinglePath("END")
        graph = build_graph([question], [("start", "Q1"), ("Q1", "end")])
        assert validate_graph(graph).is_valid


class TestEndpoints:
    """Invalid endpoints and duplicates."""

    def test_edge_from_end(self):
        graph = build_graph([text_question("Q1")], [("start", "Q1"), ("Q1", "end"), ("end", "Q1")])
        report = validate_graph(graph)
        assert DiagnosticKind.INVALID_ENDPOINT in kinds(report)
        assert not report.is_valid

    def test_edge_into_start(self):
        graph = build_graph([text_question("Q1")], [("start", "Q1"), ("Q1", "end"), ("Q1", "start")])
        assert DiagnosticKind.INVALID_ENDPOINT in kinds(validate_graph(graph))

    def test_edge_to_unknown_node(self):
        graph = build_graph([text_question("Q1")], [("start", "Q1"), ("Q1", "end"), ("Q1", "Q9")])
        endpoint = validate_graph(graph).of_kind(DiagnosticKind.INVALID_ENDPOINT)
        assert len(endpoint) == 1
        assert endpoint[0].edge_id == "Q1-Q9"

    def test_self_loop(self):
        graph = build_graph([text_question("Q1")], [("start", "Q1"), ("Q1", "end"), ("Q1", "Q1")])
        assert DiagnosticKind.INVALID_ENDPOINT in kinds(validate_graph(graph))

    def test_duplicate_question_ids(self):
        graph = build_graph([text_question("Q1")], [("start", "Q1"), ("Q1", "end")])
        graph.nodes.insert(2, create_question_node(text_question("Q1")))
        graph.nodes[2].id = "Q1-copy"
        assert DiagnosticKind.DUPLICATE_ID in kinds(validate_graph(graph))

    def test_duplicate_end_nodes(self):
        graph = build_graph([text_question("Q1")], [("start", "Q1"), ("Q1", "end")])
        graph.nodes.append(create_end_node())
        assert DiagnosticKind.DUPLICATE_ID in kinds(validate_graph(graph))


class TestStrictness:
    """Quick and full variants."""

    def test_orphan_severity(self):
        graph = build_graph([text_question("Q1"), text_question("Q2")], [("start", "Q1"), ("Q1", "end")])
        quick = validate_graph(graph, Strictness.QUICK).of_kind(DiagnosticKind.ORPHAN)[0]
        full = validate_graph(graph, Strictness.FULL).of_kind(DiagnosticKind.ORPHAN)[0]
        assert quick.severity == Severity.WARNING
        assert full.severity == Severity.ERROR

    def test_dangling_port_severity(self):
        graph = build_graph(
            [choice_question("Q1")],
            [("start", "Q1"), ("Q1", "end", "output-yes")],
        )
        assert validate_graph(graph, Strictness.QUICK).is_valid
        assert not validate_graph(graph, Strictness.FULL).is_valid

    def test_dead_end_always_error(self):
        graph = build_graph([text_question("Q1"), text_question("Q2")],
                            [("start", "Q1"), ("Q1", "end"), ("Q1", "Q2")])
        report = validate_graph(graph, Strictness.QUICK)
        assert report.of_kind(DiagnosticKind.DEAD_END)[0].is_error


class TestQuestionFields:
    """Field-level question checks."""

    def test_missing_title_warns(self):
        question = text_question("Q1")
        question.title = ""
        graph = build_graph([question], [("start", "Q1"), ("Q1", "end")])
        report = validate_graph(graph)
        assert report.is_valid
        assert report.warnings[0].kind == DiagnosticKind.INVALID_QUESTION

    def test_duplicate_option_values(self):
        question = choice_question("Q1", values=("a", "a"))
        graph = build_graph([question], [("start", "Q1"), ("Q1", "end", "output-a")])
        report = validate_graph(graph)
        errors = [d for d in report.of_kind(DiagnosticKind.INVALID_QUESTION) if d.is_error]
        assert len(errors) == 1

    def test_too_few_options(self):
        question = choice_question("Q1", values=("a",))
        graph = build_graph([question], [("start", "Q1"), ("Q1", "end", "output-a")])
        report = validate_graph(graph)
        assert report.is_valid
        assert "at least 2 options" in report.warnings[0].message
