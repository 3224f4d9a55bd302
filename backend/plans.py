"""Catalog of purchasable plans and how they map onto Stripe prices."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from settings import ConfigurationError, Settings


PAYMENT_MODE = "payment"
SUBSCRIPTION_MODE = "subscription"


class UnknownPlanError(Exception):
    """Raised when a plan identifier is not part of the catalog."""


@dataclass(frozen=True)
class Plan:
    plan_id: str
    price_setting: str
    billing_mode: str
    total: int
    installments: int

    @property
    def is_recurring(self) -> bool:
        return self.billing_mode == SUBSCRIPTION_MODE


@dataclass(frozen=True)
class ResolvedPlan:
    plan: Plan
    price_id: str


_ONE_TIME = ("PRICE_ONE_TIME", PAYMENT_MODE, 499, 1)
_SPLIT_2 = ("PRICE_SPLIT_2", SUBSCRIPTION_MODE, 515, 2)
_SPLIT_3 = ("PRICE_SPLIT_3", SUBSCRIPTION_MODE, 525, 3)

PLANS: Dict[str, Plan] = {
    plan_id: Plan(plan_id, *definition)
    for plan_id, definition in (
        ("one_time", _ONE_TIME),
        ("split_2", _SPLIT_2),
        ("split_3", _SPLIT_3),
        # Identifiers used by the older storefront embed.
        ("aibe_pif", _ONE_TIME),
        ("aibe_split_2", _SPLIT_2),
        ("aibe_split_3", _SPLIT_3),
    )
}


def get_plan(plan_id: Any) -> Plan:
    plan = PLANS.get(plan_id.strip()) if isinstance(plan_id, str) else None
    if plan is None:
        raise UnknownPlanError(f"Unknown plan: {plan_id!r}")
    return plan


def resolve_plan(plan_id: Any, settings: Settings) -> ResolvedPlan:
    """Resolve a plan identifier to its configured price.

    Raises UnknownPlanError for identifiers outside the catalog and
    ConfigurationError when the plan is known but its price is not configured.
    """
    plan = get_plan(plan_id)
    price_id = settings.price_ids.get(plan.price_setting)
    if not price_id:
        raise ConfigurationError(plan.price_setting)
    return ResolvedPlan(plan=plan, price_id=price_id)
