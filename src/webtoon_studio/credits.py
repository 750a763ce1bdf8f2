"""Monthly credit accounting over the ``profiles`` table.

Remaining allowance for a month is ``max(0, base + bonus - used)``. When the
stored ``month_start`` is from an earlier month, ``used`` and ``bonus`` count
as zero; every write path persists that rollover before touching counters.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Iterator

from fastapi import HTTPException, status
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from webtoon_studio.db import PAID_PLANS, Profile
from webtoon_studio.log_config import logger

UNLIMITED_CREDITS = 999_999
DEFAULT_FREE_CREDITS = 50


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def first_of_month(today: date) -> date:
    return today.replace(day=1)


def is_current_month(month_start: date | None, today: date) -> bool:
    if month_start is None:
        return False
    return (month_start.year, month_start.month) == (today.year, today.month)


@dataclass(frozen=True)
class CreditSummary:
    plan: str
    base: int
    bonus: int
    used: int
    limit: int
    remaining: int
    month_start: date

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["month_start"] = self.month_start.isoformat()
        return payload


def compute_credit_summary(profile: Profile | None, today: date | None = None) -> CreditSummary:
    """Remaining allowance for ``profile`` as of ``today`` (read-only)."""
    today = today or utc_today()
    if profile is None:
        return CreditSummary(
            plan="free",
            base=DEFAULT_FREE_CREDITS,
            bonus=0,
            used=0,
            limit=DEFAULT_FREE_CREDITS,
            remaining=DEFAULT_FREE_CREDITS,
            month_start=first_of_month(today),
        )
    base = profile.monthly_base_limit or 0
    if is_current_month(profile.month_start, today):
        bonus = profile.monthly_bonus_credits or 0
        used = profile.monthly_used or 0
        month_start = profile.month_start or first_of_month(today)
    else:
        bonus = 0
        used = 0
        month_start = first_of_month(today)
    limit = max(0, base + bonus)
    return CreditSummary(
        plan=profile.plan or "free",
        base=base,
        bonus=bonus,
        used=used,
        limit=limit,
        remaining=max(0, limit - used),
        month_start=month_start,
    )


def get_or_create_profile(
    db: Session,
    user_id: str,
    *,
    email: str | None = None,
    free_credits: int = DEFAULT_FREE_CREDITS,
    today: date | None = None,
) -> Profile:
    profile = db.get(Profile, user_id)
    if profile is not None:
        return profile
    today = today or utc_today()
    profile = Profile(
        user_id=user_id,
        email=email,
        plan="free",
        month_start=first_of_month(today),
        monthly_base_limit=free_credits,
        monthly_bonus_credits=0,
        monthly_used=0,
        current_plan_credits=free_credits,
        lifetime_credits_purchased=0,
    )
    db.add(profile)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = db.get(Profile, user_id)
        if existing is None:
            raise
        return existing
    logger.info("credits.profile created user=%s freeCredits=%s", user_id, free_credits)
    return profile


def roll_month_if_stale(db: Session, user_id: str, today: date | None = None) -> bool:
    """Persist the monthly reset for ``user_id`` if its window is stale."""
    month = first_of_month(today or utc_today())
    result = db.execute(
        update(Profile)
        .where(
            Profile.user_id == user_id,
            or_(Profile.month_start.is_(None), Profile.month_start < month),
        )
        .values(monthly_used=0, monthly_bonus_credits=0, month_start=month)
        .execution_options(synchronize_session="fetch")
    )
    db.commit()
    rolled = bool(result.rowcount)
    if rolled:
        logger.info("credits.rollover user=%s monthStart=%s", user_id, month.isoformat())
    return rolled


def load_credit_summary(
    db: Session,
    user_id: str,
    *,
    free_credits: int = DEFAULT_FREE_CREDITS,
    today: date | None = None,
) -> CreditSummary:
    today = today or utc_today()
    profile = get_or_create_profile(db, user_id, free_credits=free_credits, today=today)
    roll_month_if_stale(db, user_id, today)
    db.refresh(profile)
    return compute_credit_summary(profile, today)


def _limit_reached() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={"error": "Monthly image limit reached", "details": {"remaining": 0}},
    )


def reserve_credit(
    db: Session,
    user_id: str,
    *,
    free_credits: int = DEFAULT_FREE_CREDITS,
    today: date | None = None,
) -> None:
    """Atomically take one credit, or raise 429 if none is left."""
    today = today or utc_today()
    get_or_create_profile(db, user_id, free_credits=free_credits, today=today)
    roll_month_if_stale(db, user_id, today)
    result = db.execute(
        update(Profile)
        .where(
            Profile.user_id == user_id,
            Profile.monthly_used < Profile.monthly_base_limit + Profile.monthly_bonus_credits,
        )
        .values(monthly_used=Profile.monthly_used + 1)
        .execution_options(synchronize_session="fetch")
    )
    db.commit()
    if not result.rowcount:
        logger.info("credits.limit-reached user=%s", user_id)
        raise _limit_reached()


def refund_credit(db: Session, user_id: str) -> None:
    """Give back a reserved credit; failures are logged only."""
    try:
        db.rollback()
        db.execute(
            update(Profile)
            .where(Profile.user_id == user_id, Profile.monthly_used > 0)
            .values(monthly_used=Profile.monthly_used - 1)
            .execution_options(synchronize_session="fetch")
        )
        db.commit()
    except Exception as exc:
        logger.warning("credits.refund failed user=%s error=%s", user_id, exc)


@contextmanager
def reserved_credit(
    db: Session,
    user_id: str,
    *,
    free_credits: int = DEFAULT_FREE_CREDITS,
) -> Iterator[None]:
    """Hold one credit for the duration of an image call; refund it on failure."""
    reserve_credit(db, user_id, free_credits=free_credits)
    try:
        yield
    except BaseException:
        refund_credit(db, user_id)
        raise


@dataclass
class DepositReport:
    total: int = 0
    successful: int = 0
    failed: int = 0
    details: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def run_monthly_deposit(db: Session, today: date | None = None) -> DepositReport:
    """Top up every paid profile with its plan credits and open a new month."""
    month = first_of_month(today or utc_today())
    profiles = db.execute(select(Profile).where(Profile.plan.in_(PAID_PLANS))).scalars().all()
    report = DepositReport(total=len(profiles))
    logger.info("credits.monthly-deposit start profiles=%d", len(profiles))

    for profile in profiles:
        user_id = profile.user_id
        if profile.plan == "enterprise":
            credits = UNLIMITED_CREDITS
        else:
            credits = profile.current_plan_credits or 0
        try:
            profile.monthly_base_limit = (profile.monthly_base_limit or 0) + credits
            profile.lifetime_credits_purchased = (profile.lifetime_credits_purchased or 0) + credits
            profile.monthly_used = 0
            profile.monthly_bonus_credits = 0
            profile.month_start = month
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.error("credits.monthly-deposit failed user=%s error=%s", user_id, exc)
            report.failed += 1
            report.details.append({"userId": user_id, "success": False, "error": str(exc)})
            continue
        report.successful += 1
        report.details.append(
            {"userId": user_id, "success": True, "creditsDeposited": credits, "plan": profile.plan}
        )

    logger.info(
        "credits.monthly-deposit done successful=%d failed=%d",
        report.successful,
        report.failed,
    )
    return report


def apply_purchase(
    db: Session,
    user_id: str,
    *,
    plan: str,
    credits: int,
    customer_id: str | None = None,
    email: str | None = None,
    free_credits: int = DEFAULT_FREE_CREDITS,
) -> Profile:
    """Add purchased credits on top of the existing allowance."""
    profile = get_or_create_profile(db, user_id, email=email, free_credits=free_credits)
    profile.plan = plan
    profile.monthly_base_limit = (profile.monthly_base_limit or 0) + credits
    profile.lifetime_credits_purchased = (profile.lifetime_credits_purchased or 0) + credits
    profile.current_plan_credits = credits
    if customer_id:
        profile.stripe_customer_id = customer_id
    db.commit()
    logger.info("credits.purchase user=%s plan=%s credits=%s", user_id, plan, credits)
    return profile


def downgrade_to_free(
    db: Session,
    profile: Profile,
    *,
    free_credits: int = DEFAULT_FREE_CREDITS,
) -> Profile:
    """Move a profile to the free plan; accumulated credits are kept."""
    profile.plan = "free"
    profile.current_plan_credits = free_credits
    db.commit()
    logger.info("credits.downgrade user=%s baseLimit=%s", profile.user_id, profile.monthly_base_limit)
    return profile
