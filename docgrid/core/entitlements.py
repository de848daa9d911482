"""Plan entitlements and subscription reconciliation.

Subscription states map to entitlements asymmetrically:
- `active` and `trialing` grant the paid plan's entitlement
- `canceled` and `incomplete_expired` revoke it (back to free)
- everything else (`incomplete`, `past_due`, `paused`, `unpaid`) leaves the
  current entitlement untouched, so a failed card retry does not lock a
  paying user out mid-month
"""

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone

from docgrid.core.config import PlanLimits
from docgrid.pydantic_models.billing import Entitlement, PlanTier, UsageSnapshot

logger = logging.getLogger(__name__)

GRANTING_STATUSES = frozenset({"active", "trialing"})
REVOKING_STATUSES = frozenset({"canceled", "incomplete_expired"})


def is_active_paid_status(status: str) -> bool:
    return status in GRANTING_STATUSES


def is_terminal_downgrade_status(status: str) -> bool:
    return status in REVOKING_STATUSES


def entitlement_for_plan(plan_key: str | None, active: bool) -> Entitlement:
    """Entitlement a plan grants while its subscription is (or is not) active."""
    if not active:
        return Entitlement(tier=PlanTier.FREE)
    if plan_key == "starter":
        return Entitlement(
            tier=PlanTier.STARTER,
            docs_limit_monthly=PlanLimits.STARTER_MONTHLY_DOCS,
        )
    if plan_key == "pro":
        return Entitlement(tier=PlanTier.PRO, batch_enabled=True)
    return Entitlement(tier=PlanTier.FREE)


def reconcile_subscription(
    current: Entitlement | None,
    status: str,
    plan_key: str | None,
) -> Entitlement | None:
    """Apply a subscription status change to a user's entitlement.

    Returns:
        The new entitlement, or `current` unchanged when the status neither
        grants nor revokes. None only when there was no entitlement and the
        status does not create one.
    """
    if is_active_paid_status(status):
        return entitlement_for_plan(plan_key, active=True)
    if is_terminal_downgrade_status(status):
        return entitlement_for_plan(plan_key, active=False)
    logger.info("Subscription status %r leaves entitlement unchanged", status)
    return current


def start_trial(now: datetime) -> Entitlement:
    """Entitlement for a no-card pro trial starting at `now`."""
    return Entitlement(
        tier=PlanTier.PRO_TRIAL,
        docs_limit_trial=PlanLimits.TRIAL_DOCS,
        trial_expires_at=now + PlanLimits.TRIAL_LENGTH,
        batch_enabled=True,
    )


def month_start(now: datetime) -> date:
    """First day of the current UTC month; the monthly usage period key."""
    now = now.astimezone(timezone.utc) if now.tzinfo else now
    return date(now.year, now.month, 1)


class EntitlementSource(ABC):
    """Read/write access to entitlements and usage counters."""

    @abstractmethod
    async def get_entitlement(self, user_id: str) -> Entitlement | None:
        """Return the user's entitlement, None when they never had one."""

    @abstractmethod
    async def get_usage(self, user_id: str, period_start: date) -> UsageSnapshot:
        """Return usage for the period (zero counts when none recorded)."""

    @abstractmethod
    async def increment_usage(self, user_id: str, period_start: date, trial: bool = False) -> None:
        """Count one more extracted document for the period (and the trial, if on one)."""


class InMemoryEntitlementSource(EntitlementSource):
    """Dict-backed entitlement source for tests and local runs."""

    def __init__(self) -> None:
        self.entitlements: dict[str, Entitlement] = {}
        self._monthly: dict[tuple[str, date], int] = {}
        self._trial: dict[str, int] = {}

    def set_entitlement(self, user_id: str, entitlement: Entitlement) -> None:
        self.entitlements[user_id] = entitlement

    def set_usage(self, user_id: str, period_start: date, monthly: int = 0, trial: int = 0) -> None:
        self._monthly[(user_id, period_start)] = monthly
        self._trial[user_id] = trial

    async def get_entitlement(self, user_id: str) -> Entitlement | None:
        return self.entitlements.get(user_id)

    async def get_usage(self, user_id: str, period_start: date) -> UsageSnapshot:
        return UsageSnapshot(
            period_start=period_start,
            monthly_docs=self._monthly.get((user_id, period_start), 0),
            trial_docs=self._trial.get(user_id, 0),
        )

    async def increment_usage(self, user_id: str, period_start: date, trial: bool = False) -> None:
        key = (user_id, period_start)
        self._monthly[key] = self._monthly.get(key, 0) + 1
        if trial:
            self._trial[user_id] = self._trial.get(user_id, 0) + 1
