#!/usr/bin/env python3
"""
Builder Demo: Document → Graph → Edit → Validate → Export → Run

Shows the full workflow:
1. Load the example survey into an editing session
2. Validate it (quick and full)
3. Break and repair a connection
4. Export and save the document
5. Walk a respondent through it
"""

import logging

from surveygraph.examples import build_example_branching_survey
from surveygraph.model import Position, QuestionType
from surveygraph.runner import SurveyRunner
from surveygraph.serialization import write_survey
from surveygraph.session import EditSession
from surveygraph.validator import Strictness


def print_report(report):
    print(f"   ✓ Errors: {report.error_count}, warnings: {len(report.warnings)}")
    for diagnostic in report.diagnostics[:5]:
        print(f"      - [{diagnostic.severity.value}] {diagnostic.message}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 80)
    print("BUILDER DEMO: Document → Graph → Edit → Export → Run")
    print("=" * 80)

    # =========================================================================
    # STEP 1: Load
    # =========================================================================
    print("\n1. LOADING EXAMPLE SURVEY...")
    session = EditSession.load(build_example_branching_survey())
    print(f"   ✓ Nodes: {len(session.graph.nodes)}")
    print(f"   ✓ Edges: {len(session.graph.edges)}")

    # =========================================================================
    # STEP 2: Validate
    # =========================================================================
    print("\n2. VALIDATING...")
    print_report(session.validate(Strictness.FULL))

    # =========================================================================
    # STEP 3: Edit
    # =========================================================================
    print("\n3. ADDING AN UNCONNECTED QUESTION...")
    new_id = session.add_question_node(QuestionType.TEXT_OPINION, Position(600, 500))
    print(f"   ✓ Added {new_id}")
    print("   Quick validation:")
    print_report(session.validate(Strictness.QUICK))
    print("   Full validation:")
    print_report(session.validate(Strictness.FULL))

    print("\n   Export attempt:")
    result = session.export()
    print(f"   ✓ Export allowed: {result.ok}")

    print("\n   Removing it again...")
    session.delete_node(new_id)
    print_report(session.validate(Strictness.FULL))

    # =========================================================================
    # STEP 4: Export
    # =========================================================================
    print("\n4. EXPORTING...")
    result = session.export()
    print(f"   ✓ Export allowed: {result.ok}")
    write_survey(result.document, "example_survey.json")
    print("   ✓ Saved example_survey.json")

    # =========================================================================
    # STEP 5: Run
    # =========================================================================
    print("\n5. RUNNING A RESPONDENT...")
    runner = SurveyRunner(result.document)
    script = {"Q1": "no", "Q3": "price", "Q4": {"duration": 12}}
    while not runner.completed:
        question_id = runner.current_question_id
        runner.set_answer(question_id, script.get(question_id))
        step = runner.next()
        if step is None:
            print(f"   ✗ {question_id}: {runner.errors.get(question_id)}")
            break
        print(f"   ✓ {question_id} → {step.next_question_id or 'END'}")

    print("\n" + "=" * 80)
    print("DEMO COMPLETE")
    print("=" * 80)


if __name__ == "__main__":
    main()
