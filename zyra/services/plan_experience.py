"""Plan-aware behaviour: how much ZYRA does on its own for each subscription tier.

Starter and trial users approve everything and see full previews. Growth
auto-runs low-risk actions. Scale runs everything except high-risk actions
and keeps prompts to a minimum. Upgrade copy nudges rather than blocks.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from functools import lru_cache
from typing import Literal

from services.plans import PLAN_AUTONOMY, PlanId, get_plan_id_by_name

PlanTier = Literal["trial", "starter", "growth", "scale"]
AutonomyLevel = Literal["manual", "semi_auto", "full_auto"]
RiskLevel = Literal["low", "medium", "high"]
NudgeContext = Literal["approval", "speed", "automation", "intelligence"]
ActionStatus = Literal["pending", "running", "completed", "auto_applied"]

RISK_LEVELS: tuple[str, ...] = ("low", "medium", "high")

# ---------------------------------------------------------------------------
# Copy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActionLanguage:
    action_prepared: str
    action_applied: str
    action_in_progress: str
    approval_prompt: str
    auto_applied_notice: str
    rollback_available: str
    preview_label: str
    confirm_button: str
    cancel_button: str


STARTER_LANGUAGE = ActionLanguage(
    action_prepared="Prepared by ZYRA",
    action_applied="Applied successfully",
    action_in_progress="Processing your request...",
    approval_prompt="Ready to apply — Review this change",
    auto_applied_notice="Applied with your approval",
    rollback_available="You can undo this anytime",
    preview_label="Preview changes before applying",
    confirm_button="Apply Change",
    cancel_button="Not Now",
)

GROWTH_LANGUAGE = ActionLanguage(
    action_prepared="ZYRA detected an opportunity",
    action_applied="Auto-applied by ZYRA",
    action_in_progress="ZYRA is optimizing...",
    approval_prompt="Quick approval needed",
    auto_applied_notice="Handled automatically",
    rollback_available="Rollback available if needed",
    preview_label="Review summary",
    confirm_button="Approve",
    cancel_button="Skip",
)

SCALE_LANGUAGE = ActionLanguage(
    action_prepared="Optimization queued",
    action_applied="Optimized automatically",
    action_in_progress="Autonomous optimization in progress",
    approval_prompt="High-impact action detected",
    auto_applied_notice="ZYRA handled this for you",
    rollback_available="All changes are reversible",
    preview_label="Impact summary",
    confirm_button="Confirm",
    cancel_button="Pause",
)

UPGRADE_NUDGES: dict[str, dict[str, str]] = {
    "trial": {
        "approval": "ZYRA could automate this safely",
        "speed": "Higher autonomy unlocks faster growth",
        "automation": "Let ZYRA handle routine optimizations",
        "intelligence": "Advanced AI creates smarter recommendations",
    },
    "starter": {
        "approval": "ZYRA could handle low-risk actions automatically",
        "speed": "Faster execution means more time for strategy",
        "automation": "Trust ZYRA with routine optimizations",
        "intelligence": "Premium AI analyzes deeper patterns",
    },
    "growth": {
        "approval": "Full autonomy handles even complex optimizations",
        "speed": "Priority processing maximizes your advantage",
        "automation": "ZYRA could optimize pricing automatically",
        "intelligence": "Competitive intelligence reveals hidden opportunities",
    },
}

STATUS_LABELS: dict[str, dict[str, str]] = {
    "trial": {
        "pending": "Awaiting your approval",
        "running": "Processing...",
        "completed": "Applied successfully",
        "auto_applied": "Applied with approval",
    },
    "starter": {
        "pending": "Ready for review",
        "running": "Applying changes...",
        "completed": "Change applied",
        "auto_applied": "Applied with approval",
    },
    "growth": {
        "pending": "Quick approval needed",
        "running": "ZYRA is working...",
        "completed": "Optimization complete",
        "auto_applied": "Auto-applied by ZYRA",
    },
    "scale": {
        "pending": "Confirmation needed",
        "running": "Optimizing...",
        "completed": "Optimized",
        "auto_applied": "Handled automatically",
    },
}

# ---------------------------------------------------------------------------
# Per-tier rules
# ---------------------------------------------------------------------------

_AUTO_EXECUTE_RISKS: dict[str, frozenset[str]] = {
    "scale": frozenset({"low", "medium"}),
    "growth": frozenset({"low"}),
}

_APPROVAL_MODAL_RISKS: dict[str, frozenset[str]] = {
    "scale": frozenset({"high"}),
    "growth": frozenset({"medium", "high"}),
}

_PREVIEW_ACTION_TYPES: dict[str, frozenset[str]] = {
    "scale": frozenset({"price_change", "bulk_update", "delete"}),
    "growth": frozenset({"price_change", "bulk_update", "delete", "seo_update"}),
}


def get_plan_tier(plan_name: str | None) -> PlanTier:
    plan_id = get_plan_id_by_name(plan_name)
    if plan_id == PlanId.SCALE:
        return "scale"
    if plan_id == PlanId.GROWTH:
        return "growth"
    if plan_id == PlanId.STARTER:
        return "starter"
    return "trial"


def get_autonomy_level(plan_name: str | None) -> AutonomyLevel:
    return PLAN_AUTONOMY.get(get_plan_id_by_name(plan_name), "manual")  # type: ignore[return-value]


@dataclass(frozen=True)
class PlanExperience:
    """UX behaviour bundle for one tier. Pure: same inputs, same answers."""

    tier: PlanTier
    autonomy_level: AutonomyLevel
    language: ActionLanguage

    @property
    def show_approval_flow(self) -> bool:
        return self.tier in ("trial", "starter")

    @property
    def show_detailed_previews(self) -> bool:
        return self.tier != "scale"

    @property
    def show_auto_applied_badges(self) -> bool:
        return self.tier in ("growth", "scale")

    @property
    def focus_on_revenue(self) -> bool:
        return self.tier == "scale"

    @property
    def minimal_notifications(self) -> bool:
        return self.tier == "scale"

    def should_auto_execute(self, risk_level: RiskLevel) -> bool:
        return risk_level in _AUTO_EXECUTE_RISKS.get(self.tier, frozenset())

    def should_show_approval_modal(self, risk_level: RiskLevel) -> bool:
        risks = _APPROVAL_MODAL_RISKS.get(self.tier)
        if risks is None:
            return True
        return risk_level in risks

    def should_show_detailed_preview(self, action_type: str) -> bool:
        action_types = _PREVIEW_ACTION_TYPES.get(self.tier)
        if action_types is None:
            return True
        return action_type in action_types

    def get_upgrade_nudge(self, context: NudgeContext) -> str | None:
        """Soft upsell copy for *context*; None on the top tier."""
        if self.tier == "scale":
            return None
        return UPGRADE_NUDGES.get(self.tier, {}).get(context)

    def get_action_status_label(self, status: ActionStatus) -> str:
        return STATUS_LABELS.get(self.tier, {}).get(status, status)

    def as_dict(self) -> dict:
        return {
            "tier": self.tier,
            "autonomy_level": self.autonomy_level,
            "show_approval_flow": self.show_approval_flow,
            "show_detailed_previews": self.show_detailed_previews,
            "show_auto_applied_badges": self.show_auto_applied_badges,
            "focus_on_revenue": self.focus_on_revenue,
            "minimal_notifications": self.minimal_notifications,
            "language": asdict(self.language),
            "auto_execute": {risk: self.should_auto_execute(risk) for risk in RISK_LEVELS},
            "approval_modal": {risk: self.should_show_approval_modal(risk) for risk in RISK_LEVELS},
        }


_LANGUAGE_BY_TIER: dict[str, ActionLanguage] = {
    "trial": STARTER_LANGUAGE,
    "starter": STARTER_LANGUAGE,
    "growth": GROWTH_LANGUAGE,
    "scale": SCALE_LANGUAGE,
}


@lru_cache(maxsize=64)
def get_plan_experience(plan_name: str | None) -> PlanExperience:
    """Build the experience for a plan display name or alias (default: trial)."""
    name = plan_name or "trial"
    tier = get_plan_tier(name)
    return PlanExperience(
        tier=tier,
        autonomy_level=get_autonomy_level(name),
        language=_LANGUAGE_BY_TIER[tier],
    )
