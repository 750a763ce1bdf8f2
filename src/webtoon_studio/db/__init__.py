from .models import (
    PAID_PLANS,
    PROJECT_STATUSES,
    ArtStyle,
    Base,
    Character,
    GeneratedScene,
    Profile,
    Project,
    SceneImage,
    StripeEvent,
    utcnow,
)
from .session import get_db, get_session_factory, init_db

__all__ = [
    "PAID_PLANS",
    "PROJECT_STATUSES",
    "ArtStyle",
    "Base",
    "Character",
    "GeneratedScene",
    "Profile",
    "Project",
    "SceneImage",
    "StripeEvent",
    "get_db",
    "get_session_factory",
    "init_db",
    "utcnow",
]
