from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from mcp.server.fastmcp import FastMCP

from blazer import lifecycle, navigation, services
from blazer.db import init_db, session_scope
from blazer.lifecycle import VentureError
from blazer.utils import as_utc

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def blazer_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield


mcp = FastMCP(
    "TrueBlazer",
    instructions=(
        "TrueBlazer tracks each founder's single active venture through a lifecycle: "
        "inactive, committed, executing, reviewed, killed. "
        "Start with get_venture_state(user_id) to see the active venture and what is allowed, "
        "then list_ventures(user_id) for history. Use review_decision to continue, pivot, "
        "or kill a venture at the end of its commitment window."
    ),
    lifespan=blazer_lifespan,
    json_response=True,
)


def _parse_ts(value: str | None) -> datetime | None:
    return as_utc(datetime.fromisoformat(value)) if value else None


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("blazer://overview")
def blazer_overview() -> str:
    """Overview of the venture lifecycle: states, transitions and decisions."""
    return json.dumps({
        "system": "TrueBlazer venture lifecycle",
        "states": [s.value for s in lifecycle.VentureState],
        "active_states": sorted(s.value for s in lifecycle.ACTIVE_STATES),
        "transitions": {
            s.value: sorted(t.value for t in targets)
            for s, targets in lifecycle.VALID_STATE_TRANSITIONS.items()
        },
        "decisions": {
            "continue": "Start a new commitment window (default 14 days) and keep executing.",
            "pivot": "Return the venture to inactive. Requires a reason (max 200 chars).",
            "kill": "Terminal. Requires a reason (max 200 chars).",
        },
        "commitment_window_options": list(lifecycle.COMMITMENT_WINDOW_OPTIONS),
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools: Ventures
# ---------------------------------------------------------------------------


@mcp.tool()
def get_venture_state(user_id: str) -> dict:
    """Get the user's active venture, permission flags, and any guard messages."""
    with session_scope() as session:
        return services.venture_state_summary(session, user_id)


@mcp.tool()
def list_ventures(user_id: str) -> list[dict]:
    """List all of a user's ventures, newest first, including killed ones."""
    with session_scope() as session:
        return [services.venture_summary(v) for v in services.list_ventures(session, user_id)]


@mcp.tool()
def transition_venture(
    user_id: str, venture_id: str, target_state: str,
    commitment_window_days: int | None = None, success_metric: str | None = None,
    commitment_start_at: str | None = None, commitment_end_at: str | None = None,
) -> dict:
    """Move a venture to a new state.

    Args:
        user_id: Owner of the venture.
        venture_id: Venture to transition.
        target_state: One of committed, executing, reviewed, inactive, killed.
        commitment_window_days: 14, 30 or 90. Required for executing.
        success_metric: What success looks like. Required for executing.
        commitment_start_at: ISO timestamp. Required for executing.
        commitment_end_at: ISO timestamp. Required for executing.
    """
    try:
        commitment = {
            "commitment_window_days": commitment_window_days,
            "success_metric": success_metric,
            "commitment_start_at": _parse_ts(commitment_start_at),
            "commitment_end_at": _parse_ts(commitment_end_at),
        }
    except ValueError as exc:
        return {"error": f"Invalid timestamp: {exc}", "code": lifecycle.VALIDATION_ERROR}
    has_commitment = any(v is not None for v in commitment.values())
    with session_scope() as session:
        try:
            venture = services.transition_to(
                session, user_id, venture_id, target_state, commitment if has_commitment else None,
            )
        except VentureError as exc:
            return exc.to_dict()
        return {"success": True, "venture": services.venture_summary(venture)}


@mcp.tool()
def review_decision(user_id: str, venture_id: str, action: str, reason: str | None = None) -> dict:
    """Apply a review decision: continue, pivot, or kill. Pivot and kill need a reason."""
    with session_scope() as session:
        try:
            venture, plan = services.apply_review_decision(session, user_id, venture_id, action, reason)
        except VentureError as exc:
            return exc.to_dict()
        return {"success": True, "venture": services.venture_summary(venture), "action": plan.action.value}


# ---------------------------------------------------------------------------
# Tools: Execution & Navigation
# ---------------------------------------------------------------------------


@mcp.tool()
def get_review_stats(user_id: str, venture_id: str) -> dict:
    """Task completion and check-in statistics for the venture's commitment window."""
    with session_scope() as session:
        try:
            venture = services.get_venture(session, venture_id, user_id)
        except VentureError as exc:
            return exc.to_dict()
        stats = services.compute_review_stats(session, venture)
        stats["recent_checkins"] = [
            {**c, "checkin_date": c["checkin_date"].isoformat()} for c in stats["recent_checkins"]
        ]
        return stats


@mcp.tool()
def check_route(user_id: str, path: str) -> dict:
    """Check whether an app route (e.g. /ideas or /venture-review) is open in the user's current state."""
    with session_scope() as session:
        active = services.fetch_active_venture(session, user_id)
        return navigation.route_summary(path, active.venture_state if active else None)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the TrueBlazer MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
