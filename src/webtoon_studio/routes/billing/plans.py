"""Paid plan catalogue offered at checkout."""
from __future__ import annotations

from dataclasses import dataclass

from webtoon_studio.credits import UNLIMITED_CREDITS


@dataclass(frozen=True)
class Plan:
    key: str
    credits: int | None

    @property
    def credits_metadata(self) -> str:
        return "unlimited" if self.credits is None else str(self.credits)


PRO_PLANS: tuple[Plan, ...] = (
    Plan("starter", 100),
    Plan("creator", 300),
    Plan("professional", 800),
    Plan("studio", 1500),
)
ENTERPRISE_PLAN = Plan("enterprise", None)


def resolve_plan(plan_type: str | None, plan_index: int | None) -> Plan | None:
    if plan_type == "pro":
        if plan_index is None or not 0 <= plan_index < len(PRO_PLANS):
            return None
        return PRO_PLANS[plan_index]
    if plan_type == "enterprise":
        return ENTERPRISE_PLAN
    return None


def parse_credits(value: str | None) -> int | None:
    """Credits from checkout metadata: a positive count or ``"unlimited"``."""
    if value is None:
        return None
    value = str(value).strip().lower()
    if value == "unlimited":
        return UNLIMITED_CREDITS
    try:
        credits = int(value)
    except ValueError:
        return None
    return credits if credits > 0 else None
