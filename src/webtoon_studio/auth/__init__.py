from .dependencies import (
    Caller,
    SupabaseAuth,
    caller_from_user,
    get_auth_client,
    verify_cron_secret,
    verify_session,
)

__all__ = [
    "Caller",
    "SupabaseAuth",
    "caller_from_user",
    "get_auth_client",
    "verify_cron_secret",
    "verify_session",
]
