from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel


class UsageResponse(BaseModel):
    plan: str
    used: int
    limit: int
    remaining: int
    base: int
    bonus: int
    month_start: str


class CheckoutRequest(BaseModel):
    planType: str | None = None
    planIndex: int | None = None


class CheckoutResponse(BaseModel):
    sessionId: str
    url: str | None = None


class CancelSubscriptionResponse(BaseModel):
    success: bool = True
    message: str
    credits: int


class DepositResults(BaseModel):
    total: int
    successful: int
    failed: int
    details: List[Dict[str, Any]]


class MonthlyDepositResponse(BaseModel):
    success: bool = True
    message: str
    results: DepositResults
