"""Plan API: the authenticated user's plan catalogue entry and UX policy."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from auth import get_current_user
from logging_config import user_id_var
from models.user import UserProfile
from services.plan_experience import get_plan_experience
from services.plans import (
    CREDIT_LIMITS,
    EXECUTION_PRIORITY,
    PLAN_NAMES,
    get_plan_features,
    get_plan_id_by_name,
)

router = APIRouter()


@router.get("/plan-experience")
def plan_experience(user: UserProfile = Depends(get_current_user)):
    """Serialisable part of the plan policy for the current user."""
    user_id_var.set(str(user.id))
    return get_plan_experience(user.plan).as_dict()


@router.get("/plan")
def plan_summary(user: UserProfile = Depends(get_current_user)):
    user_id_var.set(str(user.id))
    plan_id = get_plan_id_by_name(user.plan)
    return {
        "plan_id": plan_id,
        "name": PLAN_NAMES[plan_id],
        "credit_limit": CREDIT_LIMITS[plan_id],
        "execution_priority": EXECUTION_PRIORITY[plan_id],
        "features": dict(get_plan_features(user.plan)),
    }
