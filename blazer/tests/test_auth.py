"""Tests for bearer-token parsing and verification against the auth provider."""
from __future__ import annotations

import asyncio

import httpx
import pytest

from blazer.auth import TokenVerifier, bearer_token
from blazer.lifecycle import VentureError


def _verifier(handler) -> TokenVerifier:
    return TokenVerifier(
        base_url="https://auth.example.com/", anon_key="anon-key",
        timeout=5, transport=httpx.MockTransport(handler),
    )


class TestBearerToken:
    def test_extracts_token(self):
        assert bearer_token("Bearer abc.def") == "abc.def"

    @pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer ", "Bearer    "])
    def test_missing_or_malformed(self, header):
        with pytest.raises(VentureError) as exc_info:
            bearer_token(header)
        assert exc_info.value.code == "AUTH_SESSION_MISSING"
        assert exc_info.value.status == 401


class TestTokenVerifier:
    def test_valid_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["apikey"] = request.headers["apikey"]
            return httpx.Response(200, json={"id": "user-1", "email": "founder@example.com"})

        user = asyncio.run(_verifier(handler).verify("tok"))
        assert user.id == "user-1"
        assert user.email == "founder@example.com"
        assert seen == {
            "url": "https://auth.example.com/auth/v1/user",
            "auth": "Bearer tok",
            "apikey": "anon-key",
        }

    @pytest.mark.parametrize("response", [
        httpx.Response(401, json={"msg": "invalid JWT"}),
        httpx.Response(200, json={"email": "no-id@example.com"}),
    ])
    def test_rejected_token(self, response):
        with pytest.raises(VentureError) as exc_info:
            asyncio.run(_verifier(lambda request: response).verify("tok"))
        assert exc_info.value.code == "AUTH_SESSION_MISSING"
        assert exc_info.value.message == "Invalid token"

    def test_network_failure_is_unauthorized(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(VentureError) as exc_info:
            asyncio.run(_verifier(handler).verify("tok"))
        assert exc_info.value.status == 401

    def test_unconfigured_provider(self, monkeypatch):
        monkeypatch.delenv("BLAZER_AUTH_URL", raising=False)
        with pytest.raises(VentureError) as exc_info:
            asyncio.run(TokenVerifier().verify("tok"))
        assert exc_info.value.code == "INTERNAL_ERROR"
        assert exc_info.value.status == 500
