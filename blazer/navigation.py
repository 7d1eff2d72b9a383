"""Which app sections a founder may visit, derived from their venture state.

Single source of truth for nav visibility.  Ideation sections stay reachable
in every state so a founder can always pick or create a venture; executing and
reviewed states only change where a blocked route redirects to and which
sections are emphasised.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from blazer.lifecycle import VentureState

log = logging.getLogger(__name__)

PUBLIC_ROUTES = ("/", "/auth", "/reset-password", "/terms", "/privacy")

COMMON_SECTIONS = ("home", "daily-pulse", "profile", "billing", "context-inspector")
ALWAYS_ACCESSIBLE = ("idea-lab", "fusion-lab", "radar")
IDEATION_SECTIONS = frozenset(ALWAYS_ACCESSIBLE)

PATH_TO_SECTION = {
    "/dashboard": "home",
    "/tasks": "tasks",
    "/venture-review": "venture-review",
    "/ideas": "idea-lab",
    "/fusion-lab": "fusion-lab",
    "/radar": "radar",
    "/blueprint": "blueprint",
    "/workspace": "workspace",
    "/context-inspector": "context-inspector",
    "/profile": "profile",
    "/billing": "billing",
}


@dataclass(frozen=True)
class NavVisibility:
    allowed: tuple[str, ...]
    hidden: tuple[str, ...]
    redirect_to: str


def get_nav_visibility(state: str | None) -> NavVisibility:
    if state == VentureState.EXECUTING:
        return NavVisibility(
            allowed=(*COMMON_SECTIONS, *ALWAYS_ACCESSIBLE, "tasks", "workspace", "blueprint", "venture-review"),
            hidden=(),
            redirect_to="/tasks",
        )
    if state == VentureState.REVIEWED:
        return NavVisibility(
            allowed=(*COMMON_SECTIONS, *ALWAYS_ACCESSIBLE, "venture-review", "blueprint", "workspace", "tasks"),
            hidden=(),
            redirect_to="/venture-review",
        )
    # inactive, committed, killed, or no venture at all
    return NavVisibility(
        allowed=(*COMMON_SECTIONS, *ALWAYS_ACCESSIBLE, "blueprint", "workspace", "tasks"),
        hidden=("venture-review",),
        redirect_to="/dashboard",
    )


def is_public_route(path: str) -> bool:
    return any(path == p or path.startswith(p + "/") for p in PUBLIC_ROUTES)


def find_section_for_path(path: str) -> str | None:
    """Exact match first, then base-path match for dynamic routes like ``/ideas/:id``."""
    if path in PATH_TO_SECTION:
        return PATH_TO_SECTION[path]
    for base, section in PATH_TO_SECTION.items():
        if path.startswith(base + "/"):
            return section
    return None


def is_route_allowed(path: str, state: str | None) -> bool:
    if is_public_route(path):
        return True
    section = find_section_for_path(path)
    if section is not None:
        return section in get_nav_visibility(state).allowed
    if state == VentureState.REVIEWED:
        log.warning('Unknown route "%s" in reviewed state, allowing', path)
    return True


def is_ideation_route(path: str) -> bool:
    return find_section_for_path(path) in IDEATION_SECTIONS


def get_redirect_path(state: str | None) -> str:
    return get_nav_visibility(state).redirect_to


def get_locked_message(state: str | None) -> str:
    if state == VentureState.EXECUTING:
        return "You're currently executing a venture. Finish or review it before exploring new ideas."
    if state == VentureState.REVIEWED:
        return "Complete your venture review before exploring new ideas."
    return "This section is not available in your current state."


def route_summary(path: str, state: str | None) -> dict:
    visibility = get_nav_visibility(state)
    allowed = is_route_allowed(path, state)
    return {
        "path": path,
        "venture_state": state,
        "allowed": allowed,
        "is_ideation": is_ideation_route(path),
        "redirect_to": visibility.redirect_to,
        "locked_message": None if allowed else get_locked_message(state),
        "allowed_sections": list(visibility.allowed),
        "hidden_sections": list(visibility.hidden),
    }
