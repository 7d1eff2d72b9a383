"""Python client for the venture API, mirroring the app's venture-state hook.

Usage::

    with VentureStateClient("https://api.example.com", token) as ventures:
        if reason := ventures.guard_task_generation():
            print(reason)
        ventures.transition_to(venture_id, "committed")
"""
from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from datetime import datetime
from typing import Any

import httpx

from blazer import lifecycle
from blazer.lifecycle import INTERNAL_ERROR, VentureError

log = logging.getLogger(__name__)

_TIMEOUT = 15.0


class VentureStateClient:
    """Caches the caller's active venture and answers permission/guard questions locally."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float = _TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        base_url = (base_url or os.environ.get("BLAZER_API_URL", "http://127.0.0.1:8001")).rstrip("/")
        token = token or os.environ.get("BLAZER_API_TOKEN", "")
        self._http = httpx.Client(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )
        self._state: dict[str, Any] | None = None

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> VentureStateClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- HTTP ---------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise VentureError(f"Request failed: {exc}", INTERNAL_ERROR, 500) from exc
        if resp.is_success:
            return resp.json()
        try:
            body = resp.json()
        except ValueError:
            body = {}
        raise VentureError(
            body.get("error") or resp.reason_phrase,
            body.get("code") or INTERNAL_ERROR,
            resp.status_code,
        )

    def refresh(self) -> dict[str, Any]:
        self._state = self._request("GET", "/api/venture-state")
        return self._state

    @property
    def state(self) -> dict[str, Any]:
        if self._state is None:
            self.refresh()
        return self._state  # type: ignore[return-value]

    # -- Active venture & permissions --------------------------------------

    @property
    def active_venture(self) -> dict[str, Any] | None:
        return self.state.get("active_venture")

    @property
    def active_state(self) -> str | None:
        venture = self.active_venture
        return venture["venture_state"] if venture else None

    @property
    def can_generate_tasks(self) -> bool:
        return lifecycle.permissions(self.active_state)["can_generate_tasks"]

    @property
    def can_generate_execution_advice(self) -> bool:
        return lifecycle.permissions(self.active_state)["can_generate_execution_advice"]

    @property
    def can_edit_idea_fundamentals(self) -> bool:
        return lifecycle.permissions(self.active_state)["can_edit_idea_fundamentals"]

    @property
    def can_access_ideation_tools(self) -> bool:
        return lifecycle.permissions(self.active_state)["can_access_ideation_tools"]

    def guard_task_generation(self) -> str | None:
        return lifecycle.guard_task_generation(self.active_state)

    def guard_execution_advice(self) -> str | None:
        return lifecycle.guard_execution_advice(self.active_state)

    def guard_idea_edit(self) -> str | None:
        return lifecycle.guard_idea_edit(self.active_state)

    def guard_ideation_access(self) -> str | None:
        return lifecycle.guard_ideation_access(self.active_state)

    # -- Mutations ----------------------------------------------------------

    def transition_to(
        self, venture_id: str, target_state: str, commitment: Mapping[str, Any] | None = None,
    ) -> bool:
        """Request a state change; returns True on success and refreshes the cache."""
        body: dict[str, Any] = {"targetState": str(target_state)}
        if commitment is not None:
            body["commitmentData"] = {
                k: v.isoformat() if isinstance(v, datetime) else v for k, v in commitment.items()
            }
        self._request("POST", f"/api/ventures/{venture_id}/transition", json=body)
        self.refresh()
        return True

    def review_decision(self, venture_id: str, action: str, reason: str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"ventureId": venture_id, "action": str(action)}
        if reason is not None:
            body["reason"] = reason
        result = self._request("POST", "/venture-review-decision", json=body)
        self.refresh()
        return result
