"""Venture lifecycle: state machine, commitment rules, and feature guards.

States
------
A venture moves through five states::

    inactive -> committed -> executing -> reviewed -> executing  (continue)
                                                   -> inactive   (pivot)
                                                   -> killed     (kill)

``killed`` is terminal.  ``committed``, ``executing`` and ``reviewed`` are the
*active* states; a user may hold at most one venture in an active state.

Everything in this module is pure: no database access and no clock reads
(callers pass ``now``).  ``blazer.services`` applies what this module decides.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any


class VentureState(StrEnum):
    INACTIVE = "inactive"
    COMMITTED = "committed"
    EXECUTING = "executing"
    REVIEWED = "reviewed"
    KILLED = "killed"


class DecisionAction(StrEnum):
    CONTINUE = "continue"
    PIVOT = "pivot"
    KILL = "kill"


# Error codes shared by the HTTP, MCP and client surfaces
AUTH_SESSION_MISSING = "AUTH_SESSION_MISSING"
VALIDATION_ERROR = "VALIDATION_ERROR"
NOT_FOUND = "NOT_FOUND"
INVALID_STATE = "INVALID_STATE"
STATE_TRANSITION_ERROR = "STATE_TRANSITION_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"


class VentureError(Exception):
    """A lifecycle rule rejected the request."""
    def __init__(self, message: str, code: str = VALIDATION_ERROR, status: int = 400):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message, "code": self.code}


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

VALID_STATE_TRANSITIONS: dict[VentureState, frozenset[VentureState]] = {
    VentureState.INACTIVE: frozenset({VentureState.COMMITTED}),
    VentureState.COMMITTED: frozenset({VentureState.EXECUTING}),
    VentureState.EXECUTING: frozenset({VentureState.REVIEWED}),
    VentureState.REVIEWED: frozenset({
        VentureState.EXECUTING, VentureState.INACTIVE, VentureState.KILLED,
    }),
    VentureState.KILLED: frozenset(),
}

ACTIVE_STATES = frozenset({VentureState.COMMITTED, VentureState.EXECUTING, VentureState.REVIEWED})

# States from which a review decision may be taken
DECISION_STATES = frozenset({VentureState.EXECUTING, VentureState.REVIEWED, VentureState.COMMITTED})

COMMITMENT_WINDOW_OPTIONS = (14, 30, 90)
DEFAULT_COMMITMENT_WINDOW_DAYS = 14
DEFAULT_SUCCESS_METRIC = "Continue making progress"
MAX_REASON_LENGTH = 200

COMMITMENT_FIELDS = (
    "commitment_window_days", "commitment_start_at", "commitment_end_at", "success_metric",
)


def coerce_state(value: str | VentureState | None) -> VentureState:
    """Parse a stored or requested state, rejecting unknown values."""
    try:
        return VentureState(value)
    except ValueError:
        raise VentureError(f"Unknown venture state: {value}", VALIDATION_ERROR, 400) from None


def can_transition_to(current: str | VentureState, target: str | VentureState) -> bool:
    try:
        return VentureState(target) in VALID_STATE_TRANSITIONS[VentureState(current)]
    except ValueError:
        return False


def is_active_state(state: str | VentureState | None) -> bool:
    return state in ACTIVE_STATES


def is_terminal_state(state: str | VentureState | None) -> bool:
    return state == VentureState.KILLED


# ---------------------------------------------------------------------------
# Feature permissions
# ---------------------------------------------------------------------------


def can_generate_tasks(state: str | VentureState | None) -> bool:
    return state == VentureState.EXECUTING


def can_generate_execution_advice(state: str | VentureState | None) -> bool:
    return state == VentureState.EXECUTING


def can_edit_idea_fundamentals(state: str | VentureState | None) -> bool:
    # Fundamentals are frozen once the founder has committed
    return state == VentureState.INACTIVE


def can_access_ideation_tools(state: str | VentureState | None) -> bool:
    return state != VentureState.EXECUTING


def permissions(active_state: str | VentureState | None) -> dict[str, bool]:
    """Permission flags for the state of the user's active venture.

    *active_state* is ``None`` when the user has no venture in an active state.
    """
    has_active = is_active_state(active_state)
    return {
        "can_generate_tasks": has_active and can_generate_tasks(active_state),
        "can_generate_execution_advice": has_active and can_generate_execution_advice(active_state),
        "can_edit_idea_fundamentals": not has_active or can_edit_idea_fundamentals(active_state),
        "can_access_ideation_tools": not has_active or can_access_ideation_tools(active_state),
    }


# ---------------------------------------------------------------------------
# Guards: a human-readable blocking reason, or None when the action is allowed
# ---------------------------------------------------------------------------


def guard_task_generation(active_state: str | VentureState | None) -> str | None:
    if not is_active_state(active_state):
        return "You need to commit to a venture before generating tasks."
    if active_state != VentureState.EXECUTING:
        return f'Cannot generate tasks while venture is in "{active_state}" state.'
    return None


def guard_execution_advice(active_state: str | VentureState | None) -> str | None:
    if not is_active_state(active_state):
        return "You need to commit to a venture before getting execution advice."
    if active_state != VentureState.EXECUTING:
        return f'Cannot get execution advice while venture is in "{active_state}" state.'
    return None


def guard_idea_edit(active_state: str | VentureState | None) -> str | None:
    if is_active_state(active_state) and not can_edit_idea_fundamentals(active_state):
        return f'Cannot edit idea fundamentals while venture is in "{active_state}" state.'
    return None


def guard_ideation_access(active_state: str | VentureState | None) -> str | None:
    if is_active_state(active_state) and not can_access_ideation_tools(active_state):
        return "Ideation tools are locked while you're actively executing a venture."
    return None


def guards(active_state: str | VentureState | None) -> dict[str, str | None]:
    return {
        "task_generation": guard_task_generation(active_state),
        "execution_advice": guard_execution_advice(active_state),
        "idea_edit": guard_idea_edit(active_state),
        "ideation_access": guard_ideation_access(active_state),
    }


# ---------------------------------------------------------------------------
# Commitment validation
# ---------------------------------------------------------------------------


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def is_valid_commitment_draft(data: Mapping[str, Any] | None) -> bool:
    """Planning fields only: window length and success metric."""
    if not data:
        return False
    return (
        data.get("commitment_window_days") in COMMITMENT_WINDOW_OPTIONS
        and _present(data.get("success_metric"))
    )


def is_valid_commitment_full(data: Mapping[str, Any] | None) -> bool:
    """Draft fields plus the start/end timestamps needed to enter ``executing``."""
    return (
        is_valid_commitment_draft(data)
        and _present(data.get("commitment_start_at"))  # type: ignore[union-attr]
        and _present(data.get("commitment_end_at"))  # type: ignore[union-attr]
    )


def validate_transition(
    current: str | VentureState,
    target: str | VentureState,
    commitment: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Check a requested transition and return the column updates to apply.

    Raises VentureError before anything is written when the edge is not in
    the table or the commitment payload is incomplete.
    """
    current = coerce_state(current)
    target = coerce_state(target)
    if not can_transition_to(current, target):
        raise VentureError(
            f"Invalid state transition: {current} -> {target}", STATE_TRANSITION_ERROR, 409,
        )

    updates: dict[str, Any] = {"venture_state": target.value}
    if target == VentureState.EXECUTING:
        if not is_valid_commitment_full(commitment):
            raise VentureError(
                "All commitment fields (window, metric, start/end dates) are required "
                "to enter executing state",
                VALIDATION_ERROR, 400,
            )
        updates.update({f: commitment[f] for f in COMMITMENT_FIELDS})  # type: ignore[index]
        updates["success_metric"] = updates["success_metric"].strip()
    elif target == VentureState.COMMITTED and commitment:
        if not is_valid_commitment_draft(commitment):
            raise VentureError(
                "A commitment window (14, 30 or 90 days) and a success metric are required",
                VALIDATION_ERROR, 400,
            )
        updates["commitment_window_days"] = commitment["commitment_window_days"]
        updates["success_metric"] = commitment["success_metric"].strip()
    return updates


# ---------------------------------------------------------------------------
# Review decisions
# ---------------------------------------------------------------------------


def validate_decision_request(action: str | None, reason: str | None) -> tuple[DecisionAction, str | None]:
    """Validate the action/reason pair of a review decision.

    Returns the parsed action and the trimmed reason.
    """
    if not action:
        raise VentureError("Missing ventureId or action", VALIDATION_ERROR, 400)
    try:
        parsed = DecisionAction(action)
    except ValueError:
        raise VentureError("Invalid action", VALIDATION_ERROR, 400) from None

    trimmed = reason.strip() if reason else None
    if parsed in (DecisionAction.PIVOT, DecisionAction.KILL) and not trimmed:
        raise VentureError("Reason required for pivot/kill", VALIDATION_ERROR, 400)
    if reason and len(reason) > MAX_REASON_LENGTH:
        raise VentureError(
            f"Reason must be {MAX_REASON_LENGTH} characters or less", VALIDATION_ERROR, 400,
        )
    return parsed, trimmed or None


@dataclass
class DecisionPlan:
    """Final state and column updates for a review decision, computed before any write."""
    action: DecisionAction
    from_state: VentureState
    target_state: VentureState
    updates: dict[str, Any] = field(default_factory=dict)


def plan_review_decision(
    venture: Any,
    metadata: Mapping[str, Any] | None,
    action: str | DecisionAction,
    reason: str | None,
    now: datetime,
) -> DecisionPlan:
    """Compute the outcome of a continue/pivot/kill decision in one step.

    *venture* needs ``venture_state``, ``commitment_window_days`` and
    ``success_metric`` attributes.  The venture passes through ``reviewed``
    implicitly; only the final state is written.
    """
    action, reason = validate_decision_request(action, reason)
    current = coerce_state(venture.venture_state)
    if current not in DECISION_STATES:
        raise VentureError(
            "Venture must be in executing, reviewed, or committed state. "
            f"Current state: {current}",
            INVALID_STATE, 400,
        )

    metadata = dict(metadata or {})
    review = dict(metadata.get("review") or {})
    review.update({
        "last_decision": action.value,
        "decided_at": now.isoformat(),
        "from_state": current.value,
    })

    updates: dict[str, Any] = {"updated_at": now}
    if action == DecisionAction.CONTINUE:
        target = VentureState.EXECUTING
        window = venture.commitment_window_days or DEFAULT_COMMITMENT_WINDOW_DAYS
        updates.update({
            "commitment_window_days": window,
            "commitment_start_at": now,
            "commitment_end_at": now + timedelta(days=window),
            "success_metric": venture.success_metric or DEFAULT_SUCCESS_METRIC,
        })
    elif action == DecisionAction.PIVOT:
        target = VentureState.INACTIVE
        review["pivot_reason"] = reason
        updates.update({"commitment_start_at": None, "commitment_end_at": None})
    else:
        target = VentureState.KILLED
        review["kill_reason"] = reason

    metadata["review"] = review
    updates["venture_state"] = target.value
    updates["metadata"] = metadata
    return DecisionPlan(action=action, from_state=current, target_state=target, updates=updates)
