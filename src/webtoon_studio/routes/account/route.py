"""Profile endpoints and the auth-provider redirect bridge."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from webtoon_studio.auth import Caller, SupabaseAuth, caller_from_user, get_auth_client, verify_session
from webtoon_studio.auth.supabase import auth_storage_key, read_code_verifier
from webtoon_studio.config import WebtoonConfig, get_config
from webtoon_studio.credits import compute_credit_summary, get_or_create_profile, roll_month_if_stale
from webtoon_studio.db import Profile, get_db
from webtoon_studio.log_config import logger

router = APIRouter(tags=["account"])


def sync_profile(db: Session, caller: Caller, config: WebtoonConfig) -> Profile:
    """Create or refresh the caller's profile from their identity claims."""
    profile = get_or_create_profile(
        db,
        caller.user_id,
        email=caller.email,
        free_credits=config.free_monthly_credits,
    )
    if caller.email:
        profile.email = caller.email
    if caller.full_name:
        profile.full_name = caller.full_name
    if caller.avatar_url:
        profile.avatar_url = caller.avatar_url
    db.commit()
    roll_month_if_stale(db, caller.user_id)
    db.refresh(profile)
    return profile


def _profile_payload(profile: Profile) -> dict[str, Any]:
    return {"profile": profile.to_dict(), "credits": compute_credit_summary(profile).to_dict()}


@router.get("/api/profile")
async def get_profile(
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    config: WebtoonConfig = Depends(get_config),
) -> dict[str, Any]:
    """Return the caller's profile and credit summary."""
    profile = get_or_create_profile(
        db,
        caller.user_id,
        email=caller.email,
        free_credits=config.free_monthly_credits,
    )
    return _profile_payload(profile)


@router.post("/api/profile")
async def upsert_profile(
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    config: WebtoonConfig = Depends(get_config),
) -> dict[str, Any]:
    """Create or refresh the caller's profile from their identity."""
    profile = sync_profile(db, caller, config)
    logger.info("account.profile upsert user=%s", caller.user_id)
    return _profile_payload(profile)


def safe_next_path(value: str | None) -> str:
    """Only same-site absolute paths are followed after sign-in."""
    if not value or not value.startswith("/") or value.startswith("//") or "\\" in value:
        return "/"
    return value


def _redirect_base(request: Request, config: WebtoonConfig) -> str:
    forwarded_host = request.headers.get("x-forwarded-host")
    if config.environment != "development" and forwarded_host:
        return f"https://{forwarded_host}"
    return str(request.base_url).rstrip("/")


def _complete_sign_in(
    auth_response: Any,
    db: Session,
    config: WebtoonConfig,
    redirect_to: str,
) -> RedirectResponse:
    response = RedirectResponse(redirect_to, status_code=303)
    session = getattr(auth_response, "session", None)
    access_token = getattr(session, "access_token", None)
    if access_token:
        response.set_cookie(
            config.access_token_cookie,
            access_token,
            max_age=getattr(session, "expires_in", None),
            httponly=True,
            secure=config.environment != "development",
            samesite="lax",
        )

    caller = caller_from_user(getattr(auth_response, "user", None) or getattr(session, "user", None))
    if caller is not None:
        try:
            sync_profile(db, caller, config)
        except Exception as exc:
            db.rollback()
            logger.warning("account.sign-in profile sync failed user=%s error=%s", caller.user_id, exc)
    return response


@router.get("/auth/callback")
async def auth_callback(
    request: Request,
    code: str | None = None,
    next: str | None = None,
    db: Session = Depends(get_db),
    config: WebtoonConfig = Depends(get_config),
    auth: SupabaseAuth = Depends(get_auth_client),
) -> RedirectResponse:
    """Exchange an OAuth code for a session and redirect back into the app."""
    base = _redirect_base(request, config)
    if code:
        try:
            verifier = read_code_verifier(request.cookies, auth_storage_key(config))
            auth_response = auth.exchange_code_for_session(code, verifier)
        except Exception as exc:
            logger.warning("account.auth-callback exchange failed error=%s", exc)
        else:
            return _complete_sign_in(auth_response, db, config, f"{base}{safe_next_path(next)}")
    return RedirectResponse(f"{base}/auth/auth-code-error", status_code=303)


@router.get("/auth/confirm")
async def auth_confirm(
    request: Request,
    token_hash: str | None = None,
    type: str | None = None,
    next: str | None = None,
    db: Session = Depends(get_db),
    config: WebtoonConfig = Depends(get_config),
    auth: SupabaseAuth = Depends(get_auth_client),
) -> RedirectResponse:
    """Verify an email OTP link and redirect back into the app."""
    if token_hash and type:
        try:
            auth_response = auth.verify_otp(token_hash, type)
        except Exception as exc:
            logger.warning("account.auth-confirm verification failed type=%s error=%s", type, exc)
        else:
            return _complete_sign_in(auth_response, db, config, safe_next_path(next))
    return RedirectResponse("/error", status_code=303)
