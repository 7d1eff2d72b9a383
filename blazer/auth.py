"""Bearer-token authentication against the hosted auth provider."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import httpx
from fastapi import Header

from blazer.lifecycle import AUTH_SESSION_MISSING, INTERNAL_ERROR, VentureError

log = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10.0


@dataclass
class AuthUser:
    id: str
    email: str | None = None


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization or not authorization.startswith("Bearer "):
        raise VentureError("Missing authorization", AUTH_SESSION_MISSING, 401)
    token = authorization[7:].strip()
    if not token:
        raise VentureError("Missing authorization", AUTH_SESSION_MISSING, 401)
    return token


class TokenVerifier:
    """Resolves an access token to a user via ``GET {auth_url}/auth/v1/user``."""

    def __init__(
        self,
        base_url: str | None = None,
        anon_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or os.environ.get("BLAZER_AUTH_URL", "")).rstrip("/")
        self.anon_key = anon_key or os.environ.get("BLAZER_AUTH_ANON_KEY", "")
        self.timeout = timeout or float(os.environ.get("BLAZER_AUTH_TIMEOUT", _DEFAULT_TIMEOUT))
        self._transport = transport

    async def verify(self, token: str) -> AuthUser:
        if not self.base_url:
            raise VentureError("Auth provider is not configured", INTERNAL_ERROR, 500)
        headers = {"Authorization": f"Bearer {token}"}
        if self.anon_key:
            headers["apikey"] = self.anon_key
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout), transport=self._transport,
            ) as client:
                resp = await client.get(f"{self.base_url}/auth/v1/user", headers=headers)
        except httpx.HTTPError as exc:
            log.warning("Token verification request failed: %s", exc)
            raise VentureError("Invalid token", AUTH_SESSION_MISSING, 401) from exc

        if resp.status_code != 200:
            log.warning("Token rejected by auth provider (HTTP %s)", resp.status_code)
            raise VentureError("Invalid token", AUTH_SESSION_MISSING, 401)
        data = resp.json()
        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            raise VentureError("Invalid token", AUTH_SESSION_MISSING, 401)
        return AuthUser(id=str(user_id), email=data.get("email"))


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier
    if _verifier is None:
        _verifier = TokenVerifier()
    return _verifier


async def current_user(authorization: str | None = Header(None)) -> AuthUser:
    """FastAPI dependency resolving the caller from the Authorization header."""
    return await get_verifier().verify(bearer_token(authorization))
