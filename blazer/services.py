"""Shared venture operations for the HTTP API, MCP server and scripts.

Every function takes an open Session.  Functions that change state commit
themselves so that stale-version and uniqueness conflicts surface as a
VentureError at a single place.
"""
from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from blazer import lifecycle
from blazer.lifecycle import (
    ACTIVE_STATES, INVALID_STATE, NOT_FOUND, STATE_TRANSITION_ERROR, VALIDATION_ERROR,
    DecisionPlan, VentureError,
)
from blazer.models import Idea, Venture, VentureDailyCheckin, VentureDailyTask, utcnow
from blazer.utils import as_utc, iso, json_parse

log = logging.getLogger(__name__)

_ACTIVE_STATE_VALUES = tuple(s.value for s in ACTIVE_STATES)

RECENT_CHECKINS_LIMIT = 7

# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def venture_summary(venture: Venture) -> dict:
    return {
        "id": venture.id, "user_id": venture.user_id, "idea_id": venture.idea_id,
        "name": venture.name, "status": venture.status,
        "venture_state": venture.venture_state,
        "commitment_window_days": venture.commitment_window_days,
        "commitment_start_at": iso(venture.commitment_start_at),
        "commitment_end_at": iso(venture.commitment_end_at),
        "success_metric": venture.success_metric,
        "metadata": json_parse(venture.metadata_json, {}),
        "version": venture.version,
        "created_at": iso(venture.created_at),
        "updated_at": iso(venture.updated_at),
    }


def idea_summary(idea: Idea) -> dict:
    return {
        "id": idea.id, "user_id": idea.user_id, "title": idea.title,
        "description": idea.description, "status": idea.status,
    }


def checkin_summary(checkin: VentureDailyCheckin) -> dict:
    return {
        "id": checkin.id, "checkin_date": checkin.checkin_date,
        "completion_status": checkin.completion_status,
        "explanation": checkin.explanation, "reflection": checkin.reflection,
    }


def daily_tasks_summary(row: VentureDailyTask) -> dict:
    return {
        "venture_id": row.venture_id, "task_date": row.task_date,
        "tasks": json_parse(row.tasks_json, []),
    }


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def get_venture(session: Session, venture_id: str, user_id: str) -> Venture:
    venture = session.execute(
        select(Venture).where(Venture.id == venture_id, Venture.user_id == user_id)
    ).scalars().first()
    if venture is None:
        raise VentureError("Venture not found", NOT_FOUND, 404)
    return venture


def get_idea(session: Session, idea_id: str, user_id: str) -> Idea:
    idea = session.execute(
        select(Idea).where(Idea.id == idea_id, Idea.user_id == user_id)
    ).scalars().first()
    if idea is None:
        raise VentureError("Idea not found", NOT_FOUND, 404)
    return idea


def fetch_active_venture(session: Session, user_id: str) -> Venture | None:
    """The user's newest venture in an active state, if any."""
    return session.execute(
        select(Venture)
        .where(Venture.user_id == user_id, Venture.venture_state.in_(_ACTIVE_STATE_VALUES))
        .order_by(Venture.created_at.desc())
        .limit(1)
    ).scalars().first()


def list_ventures(session: Session, user_id: str) -> list[Venture]:
    return list(session.execute(
        select(Venture).where(Venture.user_id == user_id).order_by(Venture.created_at.desc())
    ).scalars().all())


def venture_state_summary(session: Session, user_id: str) -> dict:
    """Active venture plus the permission flags and guard messages derived from it."""
    active = fetch_active_venture(session, user_id)
    state = active.venture_state if active else None
    return {
        "active_venture": venture_summary(active) if active else None,
        "venture_state": state or lifecycle.VentureState.INACTIVE.value,
        "permissions": lifecycle.permissions(state),
        "guards": lifecycle.guards(state),
    }


def _active_state_of(venture: Venture) -> str | None:
    return venture.venture_state if lifecycle.is_active_state(venture.venture_state) else None


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def _apply(venture: Venture, updates: Mapping[str, Any]) -> None:
    for key, value in updates.items():
        if key == "metadata":
            venture.metadata_json = json.dumps(value)
        elif isinstance(value, datetime):
            setattr(venture, key, as_utc(value))
        else:
            setattr(venture, key, value)


def _commit(session: Session, venture_id: str) -> None:
    """Commit, mapping concurrent-write conflicts to STATE_TRANSITION_ERROR."""
    try:
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        log.warning("Stale write rejected for venture %s", venture_id)
        raise VentureError(
            "Venture was modified by another request; reload and try again",
            STATE_TRANSITION_ERROR, 409,
        ) from exc
    except IntegrityError as exc:
        session.rollback()
        log.warning("Single-active-venture constraint rejected venture %s", venture_id)
        raise VentureError(
            "Another venture is already active for this user", STATE_TRANSITION_ERROR, 409,
        ) from exc


def _ensure_no_other_active(session: Session, venture: Venture) -> None:
    other = session.execute(
        select(Venture.id).where(
            Venture.user_id == venture.user_id,
            Venture.id != venture.id,
            Venture.venture_state.in_(_ACTIVE_STATE_VALUES),
        )
    ).first()
    if other is not None:
        raise VentureError(
            "Another venture is already active for this user", STATE_TRANSITION_ERROR, 409,
        )


def transition_to(
    session: Session,
    user_id: str,
    venture_id: str,
    target_state: str,
    commitment: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> Venture:
    """Validate a transition against the table and persist it in one update."""
    venture = get_venture(session, venture_id, user_id)
    from_state = venture.venture_state
    updates = lifecycle.validate_transition(from_state, target_state, commitment)
    if not lifecycle.is_active_state(from_state) and lifecycle.is_active_state(updates["venture_state"]):
        _ensure_no_other_active(session, venture)
    updates["updated_at"] = now or utcnow()
    _apply(venture, updates)
    _commit(session, venture.id)
    log.info("Venture %s transitioned %s -> %s", venture.id, from_state, venture.venture_state)
    return venture


def apply_review_decision(
    session: Session,
    user_id: str,
    venture_id: str,
    action: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> tuple[Venture, DecisionPlan]:
    """Apply a continue/pivot/kill decision as a single update."""
    lifecycle.validate_decision_request(action, reason)
    venture = get_venture(session, venture_id, user_id)
    plan = lifecycle.plan_review_decision(
        venture, json_parse(venture.metadata_json, {}), action, reason, now or utcnow(),
    )
    _apply(venture, plan.updates)
    _commit(session, venture.id)
    log.info(
        "Venture %s decision %s: %s -> %s",
        venture.id, plan.action, plan.from_state, plan.target_state,
    )
    return venture, plan


# ---------------------------------------------------------------------------
# Ideas and North Star
# ---------------------------------------------------------------------------


def create_idea(session: Session, user_id: str, title: str, description: str = "") -> Idea:
    idea = Idea(user_id=user_id, title=title, description=description)
    session.add(idea)
    session.commit()
    return idea


def update_idea(session: Session, user_id: str, idea_id: str, updates: Mapping[str, Any]) -> Idea:
    """Edit idea fundamentals; blocked once the founder has an active commitment."""
    idea = get_idea(session, idea_id, user_id)
    active = fetch_active_venture(session, user_id)
    reason = lifecycle.guard_idea_edit(active.venture_state if active else None)
    if reason:
        raise VentureError(reason, INVALID_STATE, 409)
    for field in ("title", "description"):
        value = updates.get(field)
        if value is not None:
            setattr(idea, field, value)
    idea.updated_at = utcnow()
    session.commit()
    return idea


def ensure_venture_for_idea(session: Session, user_id: str, idea: Idea) -> Venture:
    """Return the idea's active-status venture, creating it in ``inactive`` if missing.

    Caller must commit.
    """
    existing = session.execute(
        select(Venture)
        .where(Venture.user_id == user_id, Venture.idea_id == idea.id, Venture.status == "active")
        .order_by(Venture.created_at.desc())
        .limit(1)
    ).scalars().first()
    if existing is not None:
        return existing
    venture = Venture(
        user_id=user_id, idea_id=idea.id, name=idea.title or "My Venture",
        status="active", venture_state=lifecycle.VentureState.INACTIVE.value,
    )
    session.add(venture)
    session.flush()
    log.info("Created venture %s for idea %s", venture.id, idea.id)
    return venture


def designate_north_star(session: Session, user_id: str, idea_id: str) -> tuple[Idea, Venture]:
    """Make *idea_id* the user's North Star and make sure it has a venture."""
    idea = get_idea(session, idea_id, user_id)
    previous = session.execute(
        select(Idea).where(Idea.user_id == user_id, Idea.status == "north_star", Idea.id != idea.id)
    ).scalars().all()
    for other in previous:
        other.status = "candidate"
    idea.status = "north_star"
    idea.updated_at = utcnow()
    venture = ensure_venture_for_idea(session, user_id, idea)
    session.commit()
    return idea, venture


def north_star_summary(session: Session, user_id: str) -> dict:
    idea = session.execute(
        select(Idea).where(Idea.user_id == user_id, Idea.status == "north_star")
    ).scalars().first()
    if idea is None:
        return {"idea_id": None, "idea_title": None, "venture": None, "needs_repair": False}
    venture = session.execute(
        select(Venture)
        .where(Venture.user_id == user_id, Venture.idea_id == idea.id, Venture.status == "active")
        .order_by(Venture.created_at.desc())
        .limit(1)
    ).scalars().first()
    return {
        "idea_id": idea.id,
        "idea_title": idea.title,
        "venture": venture_summary(venture) if venture else None,
        "needs_repair": venture is None,
    }


def unset_north_star(session: Session, user_id: str, idea_id: str) -> Idea:
    """Demote the North Star idea back to a candidate. Its venture is left as is."""
    idea = get_idea(session, idea_id, user_id)
    if idea.status != "north_star":
        raise VentureError("This idea is not currently set as North Star", VALIDATION_ERROR, 400)
    idea.status = "candidate"
    idea.updated_at = utcnow()
    session.commit()
    log.info("Unset North Star idea %s", idea.id)
    return idea


def repair_north_star(session: Session, user_id: str) -> dict:
    """Create the missing venture for a North Star idea, if there is one."""
    idea = session.execute(
        select(Idea).where(Idea.user_id == user_id, Idea.status == "north_star")
    ).scalars().first()
    if idea is None:
        raise VentureError("No North Star idea to repair", NOT_FOUND, 404)
    created = north_star_summary(session, user_id)["needs_repair"]
    venture = ensure_venture_for_idea(session, user_id, idea)
    session.commit()
    if created:
        log.info("Repaired North Star %s with venture %s", idea.id, venture.id)
    return {"idea_id": idea.id, "venture": venture_summary(venture), "venture_created": created}


# ---------------------------------------------------------------------------
# Execution tracking
# ---------------------------------------------------------------------------


def record_daily_tasks(
    session: Session, user_id: str, venture_id: str, titles: list[str], task_date: date | None = None,
) -> VentureDailyTask:
    """Append tasks for a day; only allowed while the venture is executing."""
    venture = get_venture(session, venture_id, user_id)
    reason = lifecycle.guard_task_generation(_active_state_of(venture))
    if reason:
        raise VentureError(reason, INVALID_STATE, 409)
    new_tasks = [{"title": t.strip(), "completed": False} for t in titles if t and t.strip()]
    if not new_tasks:
        raise VentureError("At least one non-blank task is required", VALIDATION_ERROR, 400)
    task_date = task_date or utcnow().date()
    row = session.execute(
        select(VentureDailyTask).where(
            VentureDailyTask.venture_id == venture.id, VentureDailyTask.task_date == task_date,
        )
    ).scalars().first()
    if row is None:
        row = VentureDailyTask(venture_id=venture.id, task_date=task_date, tasks_json="[]")
        session.add(row)
    tasks = json_parse(row.tasks_json, [])
    tasks.extend(new_tasks)
    row.tasks_json = json.dumps(tasks)
    session.commit()
    return row


def set_daily_task_completed(
    session: Session, user_id: str, venture_id: str, task_date: date, index: int, completed: bool,
) -> VentureDailyTask:
    venture = get_venture(session, venture_id, user_id)
    row = session.execute(
        select(VentureDailyTask).where(
            VentureDailyTask.venture_id == venture.id, VentureDailyTask.task_date == task_date,
        )
    ).scalars().first()
    tasks = json_parse(row.tasks_json, []) if row else []
    if not 0 <= index < len(tasks):
        raise VentureError("Task not found", NOT_FOUND, 404)
    tasks[index]["completed"] = completed
    row.tasks_json = json.dumps(tasks)  # type: ignore[union-attr]
    session.commit()
    return row  # type: ignore[return-value]


def record_checkin(
    session: Session,
    user_id: str,
    venture_id: str,
    completion_status: str,
    explanation: str | None = None,
    reflection: str | None = None,
    checkin_date: date | None = None,
) -> VentureDailyCheckin:
    """Record (or overwrite) the founder's check-in for a day of an active venture."""
    venture = get_venture(session, venture_id, user_id)
    if _active_state_of(venture) is None:
        raise VentureError(
            f'Cannot check in while venture is in "{venture.venture_state}" state.', INVALID_STATE, 409,
        )
    checkin_date = checkin_date or utcnow().date()
    checkin = session.execute(
        select(VentureDailyCheckin).where(
            VentureDailyCheckin.venture_id == venture.id,
            VentureDailyCheckin.checkin_date == checkin_date,
        )
    ).scalars().first()
    if checkin is None:
        checkin = VentureDailyCheckin(venture_id=venture.id, checkin_date=checkin_date)
        session.add(checkin)
    checkin.completion_status = completion_status
    checkin.explanation = explanation
    checkin.reflection = reflection
    session.commit()
    return checkin


def compute_review_stats(session: Session, venture: Venture) -> dict:
    """Task and check-in totals over the venture's current commitment window."""
    start, end = as_utc(venture.commitment_start_at), as_utc(venture.commitment_end_at)
    if start is None or end is None:
        return {
            "total_days": 0, "days_with_tasks": 0, "total_tasks": 0, "tasks_completed": 0,
            "completion_rate": 0.0, "checkin_days": 0, "checkin_rate": 0.0,
            "yes_count": 0, "partial_count": 0, "no_count": 0, "recent_checkins": [],
        }
    start_date, end_date = start.date(), end.date()

    task_rows = session.execute(
        select(VentureDailyTask).where(
            VentureDailyTask.venture_id == venture.id,
            VentureDailyTask.task_date >= start_date,
            VentureDailyTask.task_date <= end_date,
        )
    ).scalars().all()
    checkins = session.execute(
        select(VentureDailyCheckin)
        .where(
            VentureDailyCheckin.venture_id == venture.id,
            VentureDailyCheckin.checkin_date >= start_date,
            VentureDailyCheckin.checkin_date <= end_date,
        )
        .order_by(VentureDailyCheckin.checkin_date.desc())
    ).scalars().all()

    total_days = venture.commitment_window_days or lifecycle.DEFAULT_COMMITMENT_WINDOW_DAYS
    total_tasks = tasks_completed = 0
    for row in task_rows:
        tasks = json_parse(row.tasks_json, [])
        total_tasks += len(tasks)
        tasks_completed += sum(1 for t in tasks if t.get("completed"))

    by_status: Counter[str] = Counter(c.completion_status for c in checkins)
    return {
        "total_days": total_days,
        "days_with_tasks": len(task_rows),
        "total_tasks": total_tasks,
        "tasks_completed": tasks_completed,
        "completion_rate": (tasks_completed / total_tasks) * 100 if total_tasks else 0.0,
        "checkin_days": len(checkins),
        "checkin_rate": (len(checkins) / total_days) * 100 if total_days else 0.0,
        "yes_count": by_status["yes"],
        "partial_count": by_status["partial"],
        "no_count": by_status["no"],
        "recent_checkins": [checkin_summary(c) for c in checkins[:RECENT_CHECKINS_LIMIT]],
    }
