"""Unit tests for the tolerant free-text parsers."""

from __future__ import annotations

from sleuth.research.parsing import (
    estimate_steps,
    extract_objectives,
    parse_evaluation,
    parse_plan,
    parse_tasks,
)


class TestObjectives:
    def test_matches_objective_and_goal_case_insensitively(self):
        text = "Intro\nObjective: measure COP\nthe GOAL is cost\nunrelated line"
        assert extract_objectives(text) == ["Objective: measure COP", "the GOAL is cost"]

    def test_capped_at_five(self):
        text = "\n".join(f"objective {i}" for i in range(8))
        assert len(extract_objectives(text)) == 5

    def test_lines_are_stripped(self):
        assert extract_objectives("   - goal: x   ") == ["- goal: x"]


class TestSteps:
    def test_counts_lines_not_occurrences(self):
        text = "Step 1: task A\nStep 2\nPhase three\nnothing here\nstep 4"
        assert estimate_steps(text) == 4

    def test_floor_of_three(self):
        assert estimate_steps("") == 3
        assert estimate_steps("one step") == 3

    def test_floor_can_be_lowered(self):
        assert estimate_steps("no matching lines", floor=0) == 0
        assert estimate_steps("Step 1\nStep 2", floor=0) == 2


class TestPlan:
    def test_structured_plan_is_not_ambiguous(self):
        outline = parse_plan("Objective: a\nStep 1\nStep 2\nStep 3\nStep 4")
        assert outline.objectives == ("Objective: a",)
        assert outline.estimated_steps == 4
        assert not outline.ambiguous

    def test_prose_plan_is_ambiguous(self):
        outline = parse_plan("We will look around and see what turns up.")
        assert outline.objectives == ()
        assert outline.estimated_steps == 3
        assert outline.ambiguous


class TestTasks:
    def test_enumerated_and_bulleted_lines(self):
        text = (
            "Here is the breakdown:\n"
            "1. first\n"
            "2) second\n"
            "- third\n"
            "* fourth\n"
            "• fifth\n"
            "  3. indented sixth\n"
            "closing remarks"
        )
        lines = parse_tasks(text, limit=10)
        assert lines.descriptions == ("first", "second", "third", "fourth", "fifth", "indented sixth")
        assert not lines.ambiguous

    def test_limit_applies(self):
        text = "\n".join(f"{i}. task {i}" for i in range(1, 9))
        assert len(parse_tasks(text, limit=5).descriptions) == 5

    def test_empty_reply_yields_nothing(self):
        lines = parse_tasks("", limit=5)
        assert lines.descriptions == ()
        assert not lines.ambiguous

    def test_prose_reply_is_ambiguous(self):
        lines = parse_tasks("Just search the web for it.", limit=5)
        assert lines.descriptions == ()
        assert lines.ambiguous

    def test_bare_marker_is_not_a_task(self):
        assert parse_tasks("-\n1.\n", limit=5).descriptions == ()


class TestEvaluation:
    def test_complete_verdict(self):
        report = parse_evaluation("The findings are sufficient.")
        assert report.is_complete
        assert report.gaps == ()
        assert not report.ambiguous

    def test_gaps_capped_at_three(self):
        text = "\n".join(["Gap: costs", "Missing: winter data", "gap: maintenance", "missing: noise"])
        report = parse_evaluation(text)
        assert report.gaps == ("Gap: costs", "Missing: winter data", "gap: maintenance")
        assert not report.is_complete

    def test_negated_verdict_is_flagged(self):
        report = parse_evaluation("The research is incomplete.")
        assert report.is_complete  # keyword match
        assert report.ambiguous
