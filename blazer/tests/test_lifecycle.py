"""Tests for the pure venture state machine, commitment rules, guards and decision planning."""
from __future__ import annotations

import itertools
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from blazer import lifecycle
from blazer.lifecycle import DecisionAction, VentureError, VentureState

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)

FULL_COMMITMENT = {
    "commitment_window_days": 30,
    "commitment_start_at": NOW,
    "commitment_end_at": NOW + timedelta(days=30),
    "success_metric": "  5 design partners  ",
}

EXPECTED_EDGES = {
    ("inactive", "committed"),
    ("committed", "executing"),
    ("executing", "reviewed"),
    ("reviewed", "executing"),
    ("reviewed", "inactive"),
    ("reviewed", "killed"),
}


def _venture(state: str, window: int | None = 14, metric: str | None = "10 paying customers"):
    return SimpleNamespace(venture_state=state, commitment_window_days=window, success_metric=metric)


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------


class TestTransitionTable:
    def test_only_listed_edges_are_allowed(self):
        states = [s.value for s in VentureState]
        for current, target in itertools.product(states, states):
            expected = (current, target) in EXPECTED_EDGES
            assert lifecycle.can_transition_to(current, target) is expected, (current, target)

    def test_killed_is_terminal(self):
        assert lifecycle.is_terminal_state("killed")
        assert not lifecycle.VALID_STATE_TRANSITIONS[VentureState.KILLED]

    def test_unknown_states_are_rejected(self):
        assert not lifecycle.can_transition_to("paused", "executing")
        assert not lifecycle.can_transition_to("inactive", "launched")

    def test_active_states(self):
        assert {s for s in VentureState if lifecycle.is_active_state(s)} == {
            VentureState.COMMITTED, VentureState.EXECUTING, VentureState.REVIEWED,
        }
        assert not lifecycle.is_active_state(None)


# ---------------------------------------------------------------------------
# Commitment validation
# ---------------------------------------------------------------------------


class TestCommitment:
    def test_full_commitment_valid(self):
        assert lifecycle.is_valid_commitment_full(FULL_COMMITMENT)

    @pytest.mark.parametrize("missing", lifecycle.COMMITMENT_FIELDS)
    def test_full_commitment_requires_every_field(self, missing):
        data = {**FULL_COMMITMENT, missing: None}
        assert not lifecycle.is_valid_commitment_full(data)

    def test_blank_metric_is_invalid(self):
        assert not lifecycle.is_valid_commitment_draft({"commitment_window_days": 14, "success_metric": "   "})

    def test_window_must_be_an_offered_option(self):
        assert not lifecycle.is_valid_commitment_draft({"commitment_window_days": 7, "success_metric": "x"})
        assert lifecycle.is_valid_commitment_draft({"commitment_window_days": 90, "success_metric": "x"})

    def test_entering_executing_without_commitment_fails(self):
        with pytest.raises(VentureError) as exc_info:
            lifecycle.validate_transition("committed", "executing", None)
        assert exc_info.value.code == lifecycle.VALIDATION_ERROR
        assert exc_info.value.status == 400

    def test_entering_executing_with_partial_commitment_fails(self):
        partial = {**FULL_COMMITMENT, "commitment_end_at": None}
        with pytest.raises(VentureError) as exc_info:
            lifecycle.validate_transition("committed", "executing", partial)
        assert exc_info.value.code == lifecycle.VALIDATION_ERROR

    def test_entering_executing_copies_commitment(self):
        updates = lifecycle.validate_transition("committed", "executing", FULL_COMMITMENT)
        assert updates["venture_state"] == "executing"
        assert updates["commitment_window_days"] == 30
        assert updates["commitment_start_at"] == NOW
        assert updates["success_metric"] == "5 design partners"

    def test_committing_with_draft_stores_plan(self):
        updates = lifecycle.validate_transition(
            "inactive", "committed", {"commitment_window_days": 14, "success_metric": "ship beta"},
        )
        assert updates == {
            "venture_state": "committed", "commitment_window_days": 14, "success_metric": "ship beta",
        }

    def test_committing_without_draft_only_changes_state(self):
        assert lifecycle.validate_transition("inactive", "committed") == {"venture_state": "committed"}

    def test_illegal_edge_raises_transition_error(self):
        with pytest.raises(VentureError) as exc_info:
            lifecycle.validate_transition("inactive", "executing", FULL_COMMITMENT)
        assert exc_info.value.code == lifecycle.STATE_TRANSITION_ERROR
        assert exc_info.value.status == 409
        assert "inactive -> executing" in exc_info.value.message


# ---------------------------------------------------------------------------
# Permissions and guards
# ---------------------------------------------------------------------------


class TestGuards:
    def test_no_active_venture(self):
        assert lifecycle.guard_task_generation(None) == "You need to commit to a venture before generating tasks."
        assert lifecycle.guard_execution_advice(None).startswith("You need to commit")
        assert lifecycle.guard_idea_edit(None) is None
        assert lifecycle.guard_ideation_access(None) is None

    def test_executing_allows_tasks_and_locks_ideation(self):
        assert lifecycle.guard_task_generation("executing") is None
        assert lifecycle.guard_execution_advice("executing") is None
        assert lifecycle.guard_ideation_access("executing") == (
            "Ideation tools are locked while you're actively executing a venture."
        )
        assert lifecycle.guard_idea_edit("executing") == (
            'Cannot edit idea fundamentals while venture is in "executing" state.'
        )

    def test_reviewed_blocks_task_generation(self):
        assert lifecycle.guard_task_generation("reviewed") == (
            'Cannot generate tasks while venture is in "reviewed" state.'
        )
        assert lifecycle.guard_ideation_access("reviewed") is None

    def test_committed_freezes_idea_fundamentals(self):
        assert lifecycle.guard_idea_edit("committed") is not None
        assert lifecycle.guard_task_generation("committed") is not None

    def test_permissions_match_guards(self):
        for state in (None, "committed", "executing", "reviewed"):
            perms = lifecycle.permissions(state)
            found = lifecycle.guards(state)
            assert perms["can_generate_tasks"] is (found["task_generation"] is None)
            assert perms["can_generate_execution_advice"] is (found["execution_advice"] is None)
            assert perms["can_edit_idea_fundamentals"] is (found["idea_edit"] is None)
            assert perms["can_access_ideation_tools"] is (found["ideation_access"] is None)


# ---------------------------------------------------------------------------
# Review decisions
# ---------------------------------------------------------------------------


class TestDecisionRequest:
    @pytest.mark.parametrize("action", ["pivot", "kill"])
    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, action, reason):
        with pytest.raises(VentureError) as exc_info:
            lifecycle.validate_decision_request(action, reason)
        assert exc_info.value.code == lifecycle.VALIDATION_ERROR

    def test_reason_too_long(self):
        with pytest.raises(VentureError) as exc_info:
            lifecycle.validate_decision_request("kill", "x" * 201)
        assert "200 characters" in exc_info.value.message

    def test_reason_at_limit_is_accepted(self):
        action, reason = lifecycle.validate_decision_request("kill", "x" * 200)
        assert action is DecisionAction.KILL
        assert len(reason) == 200

    def test_unknown_action(self):
        with pytest.raises(VentureError) as exc_info:
            lifecycle.validate_decision_request("pause", None)
        assert exc_info.value.message == "Invalid action"

    def test_continue_needs_no_reason(self):
        assert lifecycle.validate_decision_request("continue", None) == (DecisionAction.CONTINUE, None)


class TestPlanReviewDecision:
    def test_continue_from_executing_opens_new_window(self):
        plan = lifecycle.plan_review_decision(_venture("executing", window=30), {}, "continue", None, NOW)
        assert plan.target_state is VentureState.EXECUTING
        assert plan.updates["commitment_start_at"] == NOW
        assert plan.updates["commitment_end_at"] == NOW + timedelta(days=30)
        assert plan.updates["metadata"]["review"]["last_decision"] == "continue"
        assert plan.updates["metadata"]["review"]["decided_at"] == NOW.isoformat()

    def test_continue_defaults_window_and_metric(self):
        plan = lifecycle.plan_review_decision(_venture("committed", window=None, metric=None), {}, "continue", None, NOW)
        assert plan.updates["commitment_window_days"] == 14
        assert plan.updates["commitment_end_at"] - plan.updates["commitment_start_at"] == timedelta(days=14)
        assert plan.updates["success_metric"] == "Continue making progress"

    def test_pivot_clears_window_and_keeps_existing_metadata(self):
        existing = {"source": "import", "review": {"last_decision": "continue"}}
        plan = lifecycle.plan_review_decision(_venture("reviewed"), existing, "pivot", " wrong segment ", NOW)
        assert plan.target_state is VentureState.INACTIVE
        assert plan.updates["commitment_start_at"] is None
        assert plan.updates["commitment_end_at"] is None
        assert plan.updates["metadata"]["source"] == "import"
        assert plan.updates["metadata"]["review"]["pivot_reason"] == "wrong segment"
        assert plan.updates["metadata"]["review"]["last_decision"] == "pivot"
        assert existing["review"] == {"last_decision": "continue"}

    def test_kill_from_committed(self):
        plan = lifecycle.plan_review_decision(_venture("committed"), None, "kill", "market too small", NOW)
        assert plan.target_state is VentureState.KILLED
        assert plan.from_state is VentureState.COMMITTED
        assert plan.updates["metadata"]["review"]["kill_reason"] == "market too small"

    @pytest.mark.parametrize("state", ["inactive", "killed"])
    def test_rejects_states_outside_decision_set(self, state):
        with pytest.raises(VentureError) as exc_info:
            lifecycle.plan_review_decision(_venture(state), {}, "continue", None, NOW)
        assert exc_info.value.code == lifecycle.INVALID_STATE
        assert exc_info.value.status == 400
