"""Subscription plan catalogue: ids, aliases, credits, autonomy and feature flags."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping


class PlanId:
    FREE = "18f8da29-94cf-417b-83f8-07191b22f254"
    STARTER = "357abaf6-3035-4a25-b178-b5602c09fa8a"
    GROWTH = "aaca603f-f064-44a7-87a4-485f84f19517"
    SCALE = "5a02d7c5-031f-48fe-bbbd-42847b1c39df"


ALL_PLAN_IDS: tuple[str, ...] = (PlanId.FREE, PlanId.STARTER, PlanId.GROWTH, PlanId.SCALE)

# Free plan: 150 credits during the 7-day trial, then the monthly limit below
FREE_PLAN_TRIAL_CREDITS = 150
FREE_PLAN_TRIAL_DAYS = 7

CREDIT_LIMITS: Mapping[str, int] = MappingProxyType({
    PlanId.FREE: 50,
    PlanId.STARTER: 1000,
    PlanId.GROWTH: 6000,
    PlanId.SCALE: 15000,
})

EXECUTION_PRIORITY: Mapping[str, str] = MappingProxyType({
    PlanId.FREE: "standard",
    PlanId.STARTER: "standard",
    PlanId.GROWTH: "fast",
    PlanId.SCALE: "priority",
})

PLAN_AUTONOMY: Mapping[str, str] = MappingProxyType({
    PlanId.FREE: "manual",
    PlanId.STARTER: "manual",
    PlanId.GROWTH: "semi_auto",
    PlanId.SCALE: "full_auto",
})

PLAN_NAMES: Mapping[str, str] = MappingProxyType({
    PlanId.FREE: "Free",
    PlanId.STARTER: "Starter",
    PlanId.GROWTH: "Growth",
    PlanId.SCALE: "Pro",
})

PLAN_PRICES: Mapping[str, int] = MappingProxyType({
    PlanId.FREE: 0,
    PlanId.STARTER: 49,
    PlanId.GROWTH: 249,
    PlanId.SCALE: 499,
})

PLAN_DESCRIPTIONS: Mapping[str, str] = MappingProxyType({
    PlanId.FREE: "Free to install - 7-day trial with 150 credits, then 50/month",
    PlanId.STARTER: "Powerful but cautious assistant - manual approval required",
    PlanId.GROWTH: "Trusted autonomous operator - auto-runs low-risk actions",
    PlanId.SCALE: "Hands-free revenue engine - full autonomy with intelligence",
})

FEATURE_FLAGS: tuple[str, ...] = (
    "bulk_optimization",
    "serp_intelligence",
    "advanced_cart_recovery",
    "scheduled_refresh",
    "per_product_autonomy",
    "auto_execution",
    "power_mode",
)


def _flags(*enabled: str) -> Mapping[str, bool]:
    unknown = set(enabled) - set(FEATURE_FLAGS)
    if unknown:
        raise ValueError(f"Unknown feature flags: {sorted(unknown)}")
    return MappingProxyType({name: name in enabled for name in FEATURE_FLAGS})


PLAN_FEATURES: Mapping[str, Mapping[str, bool]] = MappingProxyType({
    PlanId.FREE: _flags(),
    PlanId.STARTER: _flags(),
    PlanId.GROWTH: _flags(
        "bulk_optimization",
        "advanced_cart_recovery",
        "scheduled_refresh",
        "auto_execution",
        "power_mode",
    ),
    PlanId.SCALE: _flags(*FEATURE_FLAGS),
})

PLAN_BY_NAME: Mapping[str, str] = MappingProxyType({
    "Free": PlanId.FREE,
    "free": PlanId.FREE,
    "free_plan": PlanId.FREE,
    "7-Day Free Trial": PlanId.FREE,
    "trial": PlanId.FREE,
    "Starter+": PlanId.STARTER,
    "Starter": PlanId.STARTER,
    "starter": PlanId.STARTER,
    "starter+": PlanId.STARTER,
    "Growth": PlanId.GROWTH,
    "growth": PlanId.GROWTH,
    "Scale": PlanId.SCALE,
    "scale": PlanId.SCALE,
    "Pro": PlanId.SCALE,
    "pro": PlanId.SCALE,
})


def get_plan_id_by_name(plan_name: str | None) -> str:
    """Resolve a display name or alias to a plan id. Unknown names → Free."""
    if not plan_name:
        return PlanId.FREE
    return PLAN_BY_NAME.get(plan_name, PlanId.FREE)


def get_plan_features(plan_name: str | None) -> Mapping[str, bool]:
    return PLAN_FEATURES[get_plan_id_by_name(plan_name)]
