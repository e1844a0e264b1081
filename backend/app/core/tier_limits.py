# ============================
# FILE: app/core/tier_limits.py
# Canonical plan limits for Martly
# ============================
from __future__ import annotations

import enum
from dataclasses import dataclass


class Plan(str, enum.Enum):
    STARTER = "STARTER"
    PROFESSIONAL = "PROFESSIONAL"
    ENTERPRISE = "ENTERPRISE"


@dataclass(frozen=True)
class PlanLimits:
    max_stores: int
    max_users: int  # owner included


PLAN_LIMITS: dict[str, PlanLimits] = {
    Plan.STARTER.value: PlanLimits(max_stores=1, max_users=2),
    Plan.PROFESSIONAL.value: PlanLimits(max_stores=3, max_users=5),
    Plan.ENTERPRISE.value: PlanLimits(max_stores=999, max_users=999),
}


def normalize_plan(value) -> str:
    """
    Supports Enum-like plan objects (plan.value) or plain strings.
    """
    v = getattr(value, "value", value)
    return (v or "").strip().upper() if isinstance(v, str) else ""


def parse_plan(value) -> Plan:
    """
    Strict parse for registration input. Empty => STARTER. Raises ValueError.
    """
    p = normalize_plan(value)
    if not p:
        return Plan.STARTER
    return Plan(p)


def get_limits_for_plan(plan) -> PlanLimits:
    """
    Defaults to STARTER if unknown.
    """
    p = normalize_plan(plan)
    if p in PLAN_LIMITS:
        return PLAN_LIMITS[p]
    return PLAN_LIMITS[Plan.STARTER.value]


def get_next_plan(plan) -> str | None:
    """
    Returns the next plan in the upgrade path, or None if already highest/unknown.
    """
    p = normalize_plan(plan)
    return {"STARTER": "PROFESSIONAL", "PROFESSIONAL": "ENTERPRISE"}.get(p)
