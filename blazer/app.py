from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import date
from typing import Generator

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from blazer import navigation, services
from blazer.auth import AuthUser, current_user
from blazer.db import get_session, init_db
from blazer.lifecycle import INTERNAL_ERROR, VALIDATION_ERROR, VentureError
from blazer.schemas import (
    CheckinCreate,
    CheckinOut,
    DailyTasksCreate,
    DailyTasksOut,
    DecisionRequest,
    DecisionResponse,
    IdeaCreate,
    IdeaOut,
    IdeaUpdate,
    NavigationOut,
    NorthStarOut,
    NorthStarRepairOut,
    ReviewStatsOut,
    TransitionRequest,
    TransitionResponse,
    VentureOut,
    VentureStateOut,
)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="TrueBlazer Ventures",
    version="0.1.0",
    description=(
        "Venture lifecycle API for TrueBlazer founders. "
        "Tracks a founder's single active venture through inactive, committed, executing, "
        "reviewed and killed, gates features by state, and applies review decisions. "
        "All endpoints require a Bearer token and return JSON; errors are {error, code}."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Ventures", "description": "Venture state, transitions and permission guards."},
        {"name": "Review", "description": "Continue / pivot / kill decisions at the end of a commitment window."},
        {"name": "Ideas", "description": "Ideas and North Star designation."},
        {"name": "Execution", "description": "Daily tasks, check-ins and review statistics."},
        {"name": "Navigation", "description": "Route visibility derived from venture state."},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.environ.get("BLAZER_CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


# ---------------------------------------------------------------------------
# Dependencies & Error handlers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@app.exception_handler(VentureError)
async def venture_error_handler(request: Request, exc: VentureError):
    if exc.status >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        log.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse({"error": message, "code": VALIDATION_ERROR}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": str(exc) or "Unknown error", "code": INTERNAL_ERROR}, status_code=500)


# ---------------------------------------------------------------------------
# Routes: Review decision
# ---------------------------------------------------------------------------


@app.post("/venture-review-decision", response_model=DecisionResponse,
          tags=["Review"], summary="Continue, pivot, or kill a venture after its commitment window")
@app.post("/functions/v1/venture-review-decision", response_model=DecisionResponse, include_in_schema=False)
async def venture_review_decision(
    body: DecisionRequest,
    user: AuthUser = Depends(current_user),
    session: Session = Depends(db_session),
):
    log.info("Review decision: user=%s venture=%s action=%s", user.id, body.venture_id, body.action)
    if not body.venture_id or not body.action:
        raise VentureError("Missing ventureId or action", VALIDATION_ERROR, 400)
    venture, plan = services.apply_review_decision(
        session, user.id, body.venture_id, body.action, body.reason,
    )
    return {"success": True, "venture": services.venture_summary(venture), "action": plan.action.value}


# ---------------------------------------------------------------------------
# Routes: Ventures
# ---------------------------------------------------------------------------


@app.get("/api/venture-state", response_model=VentureStateOut,
         tags=["Ventures"], summary="Active venture with permission flags and guard messages")
async def get_venture_state(user: AuthUser = Depends(current_user), session: Session = Depends(db_session)):
    return services.venture_state_summary(session, user.id)


@app.get("/api/ventures", response_model=list[VentureOut],
         tags=["Ventures"], summary="List the caller's ventures, newest first")
async def list_ventures(user: AuthUser = Depends(current_user), session: Session = Depends(db_session)):
    return [services.venture_summary(v) for v in services.list_ventures(session, user.id)]


@app.get("/api/ventures/{venture_id}", response_model=VentureOut,
         tags=["Ventures"], summary="Get a single venture")
async def get_venture(venture_id: str, user: AuthUser = Depends(current_user),
                      session: Session = Depends(db_session)):
    return services.venture_summary(services.get_venture(session, venture_id, user.id))


@app.post("/api/ventures/{venture_id}/transition", response_model=TransitionResponse,
          tags=["Ventures"], summary="Move a venture along the state machine")
async def transition_venture(venture_id: str, body: TransitionRequest,
                             user: AuthUser = Depends(current_user),
                             session: Session = Depends(db_session)):
    commitment = body.commitment.model_dump() if body.commitment else None
    venture = services.transition_to(session, user.id, venture_id, body.target_state, commitment)
    return {"success": True, "venture": services.venture_summary(venture)}


# ---------------------------------------------------------------------------
# Routes: Execution tracking
# ---------------------------------------------------------------------------


@app.get("/api/ventures/{venture_id}/review-stats", response_model=ReviewStatsOut,
         tags=["Execution"], summary="Task and check-in totals for the current commitment window")
async def get_review_stats(venture_id: str, user: AuthUser = Depends(current_user),
                           session: Session = Depends(db_session)):
    venture = services.get_venture(session, venture_id, user.id)
    return services.compute_review_stats(session, venture)


@app.post("/api/ventures/{venture_id}/daily-tasks", response_model=DailyTasksOut, status_code=201,
          tags=["Execution"], summary="Add tasks for a day (executing ventures only)")
async def add_daily_tasks(venture_id: str, body: DailyTasksCreate,
                          user: AuthUser = Depends(current_user),
                          session: Session = Depends(db_session)):
    row = services.record_daily_tasks(session, user.id, venture_id, body.tasks, body.task_date)
    return services.daily_tasks_summary(row)


class TaskCompletion(BaseModel):
    completed: bool


@app.patch("/api/ventures/{venture_id}/daily-tasks/{task_date}/{index}", response_model=DailyTasksOut,
           tags=["Execution"], summary="Mark a daily task done or not done")
async def update_daily_task(venture_id: str, task_date: date, index: int, body: TaskCompletion,
                            user: AuthUser = Depends(current_user),
                            session: Session = Depends(db_session)):
    row = services.set_daily_task_completed(session, user.id, venture_id, task_date, index, body.completed)
    return services.daily_tasks_summary(row)


@app.post("/api/ventures/{venture_id}/checkins", response_model=CheckinOut, status_code=201,
          tags=["Execution"], summary="Record the daily check-in")
async def add_checkin(venture_id: str, body: CheckinCreate,
                      user: AuthUser = Depends(current_user),
                      session: Session = Depends(db_session)):
    checkin = services.record_checkin(
        session, user.id, venture_id, body.completion_status,
        explanation=body.explanation, reflection=body.reflection, checkin_date=body.checkin_date,
    )
    return services.checkin_summary(checkin)


# ---------------------------------------------------------------------------
# Routes: Ideas
# ---------------------------------------------------------------------------


@app.post("/api/ideas", response_model=IdeaOut, status_code=201,
          tags=["Ideas"], summary="Create an idea")
async def create_idea(body: IdeaCreate, user: AuthUser = Depends(current_user),
                      session: Session = Depends(db_session)):
    return services.idea_summary(services.create_idea(session, user.id, body.title, body.description))


@app.put("/api/ideas/{idea_id}", response_model=IdeaOut,
         tags=["Ideas"], summary="Edit idea fundamentals (blocked after commitment)")
async def update_idea(idea_id: str, body: IdeaUpdate, user: AuthUser = Depends(current_user),
                      session: Session = Depends(db_session)):
    return services.idea_summary(services.update_idea(session, user.id, idea_id, body.model_dump()))


@app.post("/api/ideas/{idea_id}/north-star", response_model=NorthStarOut,
          tags=["Ideas"], summary="Designate an idea as North Star, creating its venture")
async def set_north_star(idea_id: str, user: AuthUser = Depends(current_user),
                         session: Session = Depends(db_session)):
    idea, venture = services.designate_north_star(session, user.id, idea_id)
    return {
        "idea_id": idea.id, "idea_title": idea.title,
        "venture": services.venture_summary(venture), "needs_repair": False,
    }


@app.delete("/api/ideas/{idea_id}/north-star", response_model=IdeaOut,
            tags=["Ideas"], summary="Demote the North Star idea back to a candidate")
async def unset_north_star(idea_id: str, user: AuthUser = Depends(current_user),
                           session: Session = Depends(db_session)):
    return services.idea_summary(services.unset_north_star(session, user.id, idea_id))


@app.get("/api/north-star", response_model=NorthStarOut,
         tags=["Ideas"], summary="The caller's North Star idea and its venture")
async def get_north_star(user: AuthUser = Depends(current_user), session: Session = Depends(db_session)):
    return services.north_star_summary(session, user.id)


@app.post("/api/north-star/repair", response_model=NorthStarRepairOut,
          tags=["Ideas"], summary="Create the missing venture for the North Star idea")
async def repair_north_star(user: AuthUser = Depends(current_user), session: Session = Depends(db_session)):
    return services.repair_north_star(session, user.id)


# ---------------------------------------------------------------------------
# Routes: Navigation
# ---------------------------------------------------------------------------


@app.get("/api/navigation", response_model=NavigationOut,
         tags=["Navigation"], summary="Whether a route is reachable in the caller's venture state")
async def check_navigation(path: str = Query(..., description="App route, e.g. /ideas/123"),
                           user: AuthUser = Depends(current_user),
                           session: Session = Depends(db_session)):
    active = services.fetch_active_venture(session, user.id)
    return navigation.route_summary(path, active.venture_state if active else None)


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    uvicorn.run("blazer.app:app", host="127.0.0.1", port=8001, reload=True)


if __name__ == "__main__":
    main()
