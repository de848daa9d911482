"""Quota gate consulted before an extraction starts.

The orchestrator calls check() after its idempotency short-circuits (an
extracted or in-progress row never re-checks quota) and before it claims the
row. A denied request raises QuotaExceeded carrying the plan tier; the row is
failed with its message and never reaches a provider.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from docgrid.core.entitlements import EntitlementSource, month_start
from docgrid.core.errors import QuotaExceeded
from docgrid.pydantic_models.billing import Entitlement, PlanTier, UsageSnapshot

logger = logging.getLogger(__name__)

GENERIC_DENIAL = "Document limit reached. Upgrade to continue."


class QuotaGate(ABC):
    """Capability check for starting an extraction."""

    @abstractmethod
    async def can_extract(self, user_id: str) -> bool:
        """True when the user may extract one more document."""

    async def denial_message(self, user_id: str) -> str:
        """User-facing explanation for a False can_extract()."""
        return GENERIC_DENIAL

    async def record_extraction(self, user_id: str) -> None:
        """Count a successfully extracted document against the user's plan."""

    async def check(self, user_id: str) -> None:
        """Raise QuotaExceeded when can_extract() is False."""
        if not await self.can_extract(user_id):
            raise QuotaExceeded(tier="unknown", reason=await self.denial_message(user_id))


class AllowAllQuotaGate(QuotaGate):
    """Gate that never denies. For self-hosted runs without billing."""

    async def can_extract(self, user_id: str) -> bool:
        return True


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    tier: PlanTier
    reason: str | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def evaluate_quota(
    entitlement: Entitlement | None,
    usage: UsageSnapshot,
    now: datetime,
) -> QuotaDecision:
    """Decide whether a plan allows another document, and why not.

    - free: never
    - starter: while the monthly count is under the monthly cap
    - pro: always
    - pro_trial: until the trial expires or its document cap is reached
    """
    if entitlement is None or entitlement.tier == PlanTier.FREE:
        return QuotaDecision(
            allowed=False,
            tier=PlanTier.FREE,
            reason="Your plan does not include document extraction. Choose a plan or start a trial to continue.",
        )

    tier = entitlement.tier
    if tier == PlanTier.PRO:
        return QuotaDecision(allowed=True, tier=tier)

    if tier == PlanTier.STARTER:
        limit = entitlement.docs_limit_monthly
        if limit is not None and usage.monthly_docs >= limit:
            return QuotaDecision(
                allowed=False,
                tier=tier,
                reason=f"Monthly limit of {limit} documents reached. Upgrade to Pro or wait until next month.",
            )
        return QuotaDecision(allowed=True, tier=tier)

    if tier == PlanTier.PRO_TRIAL:
        expires_at = entitlement.trial_expires_at
        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if now >= expires_at:
                return QuotaDecision(
                    allowed=False,
                    tier=tier,
                    reason="Your Pro trial has expired. Upgrade to continue extracting documents.",
                )
        limit = entitlement.docs_limit_trial
        if limit is not None and usage.trial_docs >= limit:
            return QuotaDecision(
                allowed=False,
                tier=tier,
                reason=f"Trial limit of {limit} documents reached. Upgrade to continue.",
            )
        return QuotaDecision(allowed=True, tier=tier)

    return QuotaDecision(allowed=False, tier=tier, reason=GENERIC_DENIAL)


class EntitlementQuotaGate(QuotaGate):
    """QuotaGate backed by plan entitlements and usage counters."""

    def __init__(
        self,
        source: EntitlementSource,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.source = source
        self.clock = clock

    async def evaluate(self, user_id: str) -> QuotaDecision:
        now = self.clock()
        entitlement = await self.source.get_entitlement(user_id)
        usage = await self.source.get_usage(user_id, month_start(now))
        return evaluate_quota(entitlement, usage, now)

    async def can_extract(self, user_id: str) -> bool:
        decision = await self.evaluate(user_id)
        if not decision.allowed:
            logger.info("Quota denied for user %s (tier=%s)", user_id, decision.tier.value)
        return decision.allowed

    async def denial_message(self, user_id: str) -> str:
        decision = await self.evaluate(user_id)
        return decision.reason or GENERIC_DENIAL

    async def check(self, user_id: str) -> None:
        decision = await self.evaluate(user_id)
        if not decision.allowed:
            logger.info("Quota denied for user %s (tier=%s)", user_id, decision.tier.value)
            raise QuotaExceeded(tier=decision.tier.value, reason=decision.reason or GENERIC_DENIAL)

    async def record_extraction(self, user_id: str) -> None:
        entitlement = await self.source.get_entitlement(user_id)
        on_trial = entitlement is not None and entitlement.tier == PlanTier.PRO_TRIAL
        await self.source.increment_usage(user_id, month_start(self.clock()), trial=on_trial)
