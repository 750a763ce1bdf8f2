"""Request authentication: resolve the calling user or the cron secret."""
from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Any

from fastapi import Depends, HTTPException, Request, status

from webtoon_studio.config import WebtoonConfig, get_config, sanitize_secret
from webtoon_studio.log_config import logger

from .supabase import create_auth_client


@dataclass(frozen=True)
class Caller:
    """Identity of the authenticated user making the request."""

    user_id: str
    email: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def full_name(self) -> str | None:
        value = self.metadata.get("full_name") or self.metadata.get("name") or ""
        return str(value) or None

    @property
    def avatar_url(self) -> str | None:
        return str(self.metadata.get("avatar_url") or "") or None


class SupabaseAuth:
    """Supabase Auth for one request; the client is created on first use."""

    def __init__(self, config: WebtoonConfig) -> None:
        self._config = config
        self._client: Any = None

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = create_auth_client(self._config)
        return self._client

    def get_user(self, token: str) -> Any:
        return self.client.auth.get_user(token)

    def exchange_code_for_session(self, code: str, code_verifier: str | None = None) -> Any:
        params: dict[str, Any] = {"auth_code": code}
        if code_verifier:
            params["code_verifier"] = code_verifier
        return self.client.auth.exchange_code_for_session(params)

    def verify_otp(self, token_hash: str, otp_type: str) -> Any:
        return self.client.auth.verify_otp({"token_hash": token_hash, "type": otp_type})


def get_auth_client(config: WebtoonConfig = Depends(get_config)) -> SupabaseAuth:
    return SupabaseAuth(config)


def extract_access_token(request: Request, cookie_name: str) -> str | None:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    cookie = request.cookies.get(cookie_name)
    return cookie.strip() if cookie else None


def caller_from_user(user: Any) -> Caller | None:
    user_id = getattr(user, "id", None)
    if not user_id:
        return None
    metadata = getattr(user, "user_metadata", None) or {}
    return Caller(
        user_id=str(user_id),
        email=getattr(user, "email", None),
        metadata=dict(metadata) if isinstance(metadata, dict) else {},
    )


def _unauthorized() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def verify_session(
    request: Request,
    config: WebtoonConfig = Depends(get_config),
    auth: SupabaseAuth = Depends(get_auth_client),
) -> Caller:
    """Resolve the caller from a bearer token or the session cookie."""
    token = extract_access_token(request, config.access_token_cookie)
    if not token:
        raise _unauthorized()

    try:
        response = auth.get_user(token)
    except HTTPException:
        raise
    except Exception as exc:
        logger.warning("auth.verify-session token rejected error=%s", exc)
        raise _unauthorized() from exc

    caller = caller_from_user(getattr(response, "user", None))
    if caller is None:
        raise _unauthorized()
    return caller


async def verify_cron_secret(
    request: Request,
    config: WebtoonConfig = Depends(get_config),
) -> None:
    """Accept only `Authorization: Bearer <CRON_SECRET>`."""
    expected = sanitize_secret(config.cron_secret)
    provided = request.headers.get("authorization", "")
    if not expected or not secrets.compare_digest(
        provided.encode("utf-8"), f"Bearer {expected}".encode("utf-8")
    ):
        raise _unauthorized()
