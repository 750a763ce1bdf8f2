"""Supabase client construction for auth and storage.

Storage runs on one cached service-role client. Auth calls get a fresh client
that never persists a session, so a sign-in cannot leak into another request.
"""
from __future__ import annotations

import base64
import binascii
import json
from functools import lru_cache
from typing import Any, Mapping
from urllib.parse import urlparse

from fastapi import HTTPException, status
from supabase import ClientOptions, create_client

from webtoon_studio.config import WebtoonConfig, sanitize_secret

_BASE64_PREFIX = "base64-"


def _stateless_options() -> ClientOptions:
    return ClientOptions(persist_session=False, auto_refresh_token=False)


def _not_configured(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def _project_url(config: WebtoonConfig) -> str:
    url = sanitize_secret(config.supabase_url)
    if not url:
        raise _not_configured("Supabase is not configured")
    return url


@lru_cache(maxsize=4)
def _service_client(url: str, key: str) -> Any:
    return create_client(url, key, options=_stateless_options())


def create_service_client(config: WebtoonConfig) -> Any:
    """Service-role client for storage; the anon key is never used here."""
    url = _project_url(config)
    key = sanitize_secret(config.supabase_service_role_key)
    if not key:
        raise _not_configured("Supabase service role key not configured")
    return _service_client(url, key)


def create_auth_client(config: WebtoonConfig) -> Any:
    """A new anon-key client that keeps no session between calls."""
    url = _project_url(config)
    key = sanitize_secret(config.supabase_anon_key)
    if not key:
        raise _not_configured("Supabase is not configured")
    return create_client(url, key, options=_stateless_options())


def auth_storage_key(config: WebtoonConfig) -> str | None:
    """Cookie prefix the browser client stores its auth state under."""
    if config.auth_storage_key:
        return config.auth_storage_key
    host = urlparse(sanitize_secret(config.supabase_url)).hostname or ""
    project_ref = host.split(".")[0]
    return f"sb-{project_ref}-auth-token" if project_ref else None


def read_code_verifier(cookies: Mapping[str, str], storage_key: str | None) -> str | None:
    """PKCE verifier written by the browser client before the OAuth redirect."""
    if not storage_key:
        return None
    raw = cookies.get(f"{storage_key}-code-verifier")
    if not raw:
        return None
    value = raw
    if value.startswith(_BASE64_PREFIX):
        encoded = value[len(_BASE64_PREFIX):]
        try:
            value = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError, ValueError):
            return None
    if value.startswith('"'):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return None
    return value if isinstance(value, str) and value else None
