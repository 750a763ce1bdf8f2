from __future__ import annotations

from typing import Any

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from webtoon_studio.auth import Caller, verify_cron_secret, verify_session
from webtoon_studio.config import WebtoonConfig, get_config, sanitize_secret
from webtoon_studio.credits import (
    apply_purchase,
    downgrade_to_free,
    load_credit_summary,
    reserve_credit,
    run_monthly_deposit,
)
from webtoon_studio.db import Profile, StripeEvent, get_db
from webtoon_studio.log_config import logger

from ..utils import api_error
from .plans import parse_credits, resolve_plan
from .schema import (
    CancelSubscriptionResponse,
    CheckoutRequest,
    CheckoutResponse,
    MonthlyDepositResponse,
    UsageResponse,
)

router = APIRouter(prefix="/api", tags=["billing"])


def configure_stripe(config: WebtoonConfig) -> None:
    api_key = sanitize_secret(config.stripe_secret_key)
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Stripe API key not configured",
        )
    stripe.api_key = api_key


def _field(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError, AttributeError):
        return getattr(obj, key, None)


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    config: WebtoonConfig = Depends(get_config),
) -> UsageResponse:
    """Return this month's credit usage."""
    summary = load_credit_summary(db, caller.user_id, free_credits=config.free_monthly_credits)
    return UsageResponse(**summary.to_dict())


@router.post("/usage")
async def increment_usage(
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    config: WebtoonConfig = Depends(get_config),
) -> dict[str, Any]:
    """Consume one credit, or answer 429 when none is left."""
    reserve_credit(db, caller.user_id, free_credits=config.free_monthly_credits)
    summary = load_credit_summary(db, caller.user_id, free_credits=config.free_monthly_credits)
    logger.info("billing.usage increment user=%s used=%s limit=%s", caller.user_id, summary.used, summary.limit)
    return {"success": True, **summary.to_dict()}


@router.post("/create-checkout-session", response_model=CheckoutResponse, response_model_exclude_none=True)
async def create_checkout_session(
    request: CheckoutRequest,
    caller: Caller = Depends(verify_session),
    config: WebtoonConfig = Depends(get_config),
) -> CheckoutResponse:
    """Start a Stripe Checkout session for a paid plan."""
    if request.planType not in ("pro", "enterprise"):
        raise api_error(status.HTTP_400_BAD_REQUEST, "Invalid plan type")
    plan = resolve_plan(request.planType, request.planIndex)
    if plan is None:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Invalid plan selection")
    price_id = config.stripe_price_ids.get(plan.key)
    if not price_id:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Invalid plan selection", f"No price configured for {plan.key}")

    configure_stripe(config)
    site_url = config.site_url.rstrip("/")
    logger.info(
        "billing.checkout request user=%s planType=%s plan=%s credits=%s",
        caller.user_id,
        request.planType,
        plan.key,
        plan.credits_metadata,
    )
    try:
        session = stripe.checkout.Session.create(
            mode="subscription",
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=f"{site_url}/dashboard?success=true&plan={request.planType}",
            cancel_url=f"{site_url}/pricing?canceled=true",
            customer_email=caller.email,
            metadata={
                "userId": caller.user_id,
                "planType": request.planType,
                "credits": plan.credits_metadata,
            },
        )
    except stripe.StripeError as exc:
        logger.error("billing.checkout failed user=%s error=%s", caller.user_id, exc)
        raise api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to create checkout session", str(exc)) from exc

    return CheckoutResponse(sessionId=_field(session, "id"), url=_field(session, "url"))


def _find_customer_id(profile: Profile, caller: Caller) -> str | None:
    if profile.stripe_customer_id:
        return profile.stripe_customer_id
    if not caller.email:
        return None
    customers = stripe.Customer.list(email=caller.email, limit=1)
    data = _field(customers, "data") or []
    return _field(data[0], "id") if data else None


@router.post("/cancel-subscription", response_model=CancelSubscriptionResponse)
async def cancel_subscription(
    caller: Caller = Depends(verify_session),
    db: Session = Depends(get_db),
    config: WebtoonConfig = Depends(get_config),
) -> CancelSubscriptionResponse:
    """Cancel the caller's active Stripe subscription."""
    profile = db.get(Profile, caller.user_id)
    if profile is None:
        raise api_error(status.HTTP_404_NOT_FOUND, "User profile not found")

    configure_stripe(config)
    try:
        customer_id = _find_customer_id(profile, caller)
        if not customer_id:
            logger.info("billing.cancel no customer user=%s", caller.user_id)
            raise api_error(status.HTTP_404_NOT_FOUND, "No active subscription found")
        subscriptions = stripe.Subscription.list(customer=customer_id, status="active", limit=1)
        data = _field(subscriptions, "data") or []
        if not data:
            logger.info("billing.cancel no active subscription user=%s customer=%s", caller.user_id, customer_id)
            raise api_error(status.HTTP_404_NOT_FOUND, "No active subscription found")
        subscription_id = _field(data[0], "id")
        stripe.Subscription.cancel(subscription_id)
    except stripe.StripeError as exc:
        logger.error("billing.cancel failed user=%s error=%s", caller.user_id, exc)
        raise api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to cancel subscription", str(exc)) from exc

    profile.stripe_customer_id = customer_id
    downgrade_to_free(db, profile, free_credits=config.free_monthly_credits)
    logger.info("billing.cancel success user=%s subscription=%s", caller.user_id, subscription_id)
    return CancelSubscriptionResponse(
        success=True,
        message=(
            "Successfully canceled subscription and moved to free plan. "
            "Your credits have been preserved."
        ),
        credits=profile.monthly_base_limit or 0,
    )


def _handle_checkout_completed(db: Session, session: Any, config: WebtoonConfig) -> None:
    metadata = _field(session, "metadata") or {}
    user_id = _field(metadata, "userId")
    plan_type = _field(metadata, "planType")
    credits = parse_credits(_field(metadata, "credits"))
    if not user_id or not plan_type or credits is None:
        logger.error("billing.webhook missing metadata metadata=%s", metadata)
        raise api_error(status.HTTP_400_BAD_REQUEST, "Missing metadata")

    customer_id = _field(session, "customer")
    details = _field(session, "customer_details")
    email = _field(session, "customer_email") or _field(details, "email")
    apply_purchase(
        db,
        user_id,
        plan="pro" if plan_type == "pro" else "enterprise",
        credits=credits,
        customer_id=customer_id if isinstance(customer_id, str) else None,
        email=email,
        free_credits=config.free_monthly_credits,
    )


def _handle_subscription_deleted(db: Session, subscription: Any, config: WebtoonConfig) -> None:
    customer_id = _field(subscription, "customer")
    if not customer_id:
        logger.warning("billing.webhook subscription deleted without customer")
        return
    profile = db.execute(
        select(Profile).where(Profile.stripe_customer_id == customer_id)
    ).scalar_one_or_none()
    if profile is None:
        logger.warning("billing.webhook no profile for customer=%s", customer_id)
        return
    downgrade_to_free(db, profile, free_credits=config.free_monthly_credits)


def _claim_event(db: Session, event_id: str, event_type: str | None) -> bool:
    """Record the event id; False when Stripe is redelivering one already handled."""
    db.add(StripeEvent(id=event_id, event_type=event_type))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


def _release_event(db: Session, event_id: str) -> None:
    db.rollback()
    db.execute(delete(StripeEvent).where(StripeEvent.id == event_id))
    db.commit()


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    config: WebtoonConfig = Depends(get_config),
) -> dict[str, Any]:
    """Apply verified Stripe events to profiles, once per event id."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise api_error(status.HTTP_400_BAD_REQUEST, "No signature")

    try:
        event = stripe.Webhook.construct_event(
            payload,
            signature,
            sanitize_secret(config.stripe_webhook_secret),
        )
    except (ValueError, stripe.SignatureVerificationError) as exc:
        logger.error("billing.webhook signature verification failed error=%s", exc)
        raise api_error(status.HTTP_400_BAD_REQUEST, "Invalid signature") from exc

    event_id = _field(event, "id")
    event_type = _field(event, "type")
    data_object = _field(_field(event, "data"), "object")
    logger.info("billing.webhook event type=%s id=%s", event_type, event_id)

    if event_id and not _claim_event(db, event_id, event_type):
        logger.info("billing.webhook duplicate event id=%s", event_id)
        return {"received": True}

    try:
        if event_type == "checkout.session.completed":
            _handle_checkout_completed(db, data_object, config)
        elif event_type == "customer.subscription.deleted":
            _handle_subscription_deleted(db, data_object, config)
        elif event_type == "customer.subscription.updated":
            logger.info("billing.webhook subscription updated id=%s", _field(data_object, "id"))
        else:
            logger.info("billing.webhook unhandled event type=%s", event_type)
    except Exception:
        if event_id:
            _release_event(db, event_id)
        raise
    return {"received": True}


@router.post(
    "/monthly-deposit",
    response_model=MonthlyDepositResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def monthly_deposit(db: Session = Depends(get_db)) -> MonthlyDepositResponse:
    """Deposit monthly plan credits for every paid profile."""
    report = run_monthly_deposit(db)
    return MonthlyDepositResponse(
        success=True,
        message=f"Monthly deposit completed for {report.total} users",
        results=report.to_dict(),
    )
