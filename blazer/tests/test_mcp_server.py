"""Tests for the MCP tools, called directly against the in-memory database."""
from __future__ import annotations

import json
from contextlib import contextmanager
from unittest.mock import patch

import pytest

from blazer import mcp_server

USER_ID = "user-1"


@pytest.fixture()
def scoped(session_factory):
    @contextmanager
    def _scope():
        sess = session_factory()
        try:
            yield sess
        finally:
            sess.close()

    with patch("blazer.mcp_server.session_scope", _scope):
        yield


class TestTools:
    def test_overview_lists_transitions(self):
        overview = json.loads(mcp_server.blazer_overview())
        assert overview["transitions"]["killed"] == []
        assert overview["transitions"]["reviewed"] == ["executing", "inactive", "killed"]
        assert overview["commitment_window_options"] == [14, 30, 90]

    def test_get_venture_state(self, scoped, make_venture):
        venture = make_venture("executing")
        state = mcp_server.get_venture_state(USER_ID)
        assert state["active_venture"]["id"] == venture.id
        assert state["permissions"]["can_generate_tasks"] is True

    def test_transition_with_iso_timestamps(self, scoped, make_venture):
        venture = make_venture("committed")
        result = mcp_server.transition_venture(
            USER_ID, venture.id, "executing",
            commitment_window_days=30, success_metric="3 pilots",
            commitment_start_at="2026-04-01T00:00:00+00:00",
            commitment_end_at="2026-05-01T00:00:00+00:00",
        )
        assert result["success"] is True
        assert result["venture"]["venture_state"] == "executing"

    def test_transition_offset_timestamp_stored_as_utc(self, scoped, make_venture):
        venture = make_venture("committed")
        result = mcp_server.transition_venture(
            USER_ID, venture.id, "executing",
            commitment_window_days=14, success_metric="3 pilots",
            commitment_start_at="2026-03-01T09:00:00+02:00",
            commitment_end_at="2026-03-15T09:00:00+02:00",
        )
        assert result["venture"]["commitment_start_at"] == "2026-03-01T07:00:00+00:00"

    def test_transition_bad_timestamp(self, scoped, make_venture):
        venture = make_venture("committed")
        result = mcp_server.transition_venture(USER_ID, venture.id, "executing", commitment_start_at="soon")
        assert result["code"] == "VALIDATION_ERROR"

    def test_review_decision_errors_are_returned(self, scoped, make_venture):
        venture = make_venture("reviewed")
        assert mcp_server.review_decision(USER_ID, venture.id, "pivot")["code"] == "VALIDATION_ERROR"
        result = mcp_server.review_decision(USER_ID, venture.id, "kill", "No traction")
        assert result == {**result, "success": True, "action": "kill"}
        assert mcp_server.list_ventures(USER_ID)[0]["venture_state"] == "killed"

    def test_review_stats_and_route(self, scoped, make_venture):
        venture = make_venture("executing")
        stats = mcp_server.get_review_stats(USER_ID, venture.id)
        assert stats["total_days"] == 14
        assert mcp_server.get_review_stats(USER_ID, "missing")["code"] == "NOT_FOUND"
        assert mcp_server.check_route(USER_ID, "/ideas")["redirect_to"] == "/tasks"
