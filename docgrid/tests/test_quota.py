"""Tests for docgrid.core.quota."""

from datetime import date, timedelta

import pytest

from docgrid.core.entitlements import InMemoryEntitlementSource, month_start, start_trial
from docgrid.core.errors import QuotaExceeded
from docgrid.core.quota import (
    GENERIC_DENIAL,
    AllowAllQuotaGate,
    EntitlementQuotaGate,
    evaluate_quota,
)
from docgrid.pydantic_models import Entitlement, PlanTier, UsageSnapshot


def usage(monthly: int = 0, trial: int = 0) -> UsageSnapshot:
    return UsageSnapshot(period_start=date(2025, 3, 1), monthly_docs=monthly, trial_docs=trial)


STARTER = Entitlement(tier=PlanTier.STARTER, docs_limit_monthly=200)


# =============================================================================
# Pure decision
# =============================================================================


class TestEvaluateQuota:
    def test_no_entitlement_denied(self, clock):
        decision = evaluate_quota(None, usage(), clock())
        assert not decision.allowed
        assert decision.tier == PlanTier.FREE
        assert "does not include document extraction" in decision.reason

    def test_free_denied(self, clock):
        assert not evaluate_quota(Entitlement(tier=PlanTier.FREE), usage(), clock()).allowed

    def test_pro_always_allowed(self, clock):
        decision = evaluate_quota(Entitlement(tier=PlanTier.PRO), usage(monthly=10_000), clock())
        assert decision.allowed
        assert decision.reason is None

    def test_starter_under_cap(self, clock):
        assert evaluate_quota(STARTER, usage(monthly=199), clock()).allowed

    def test_starter_at_cap(self, clock):
        decision = evaluate_quota(STARTER, usage(monthly=200), clock())
        assert not decision.allowed
        assert decision.reason.startswith("Monthly limit of 200 documents reached")

    def test_trial_active(self, clock):
        assert evaluate_quota(start_trial(clock()), usage(trial=3), clock()).allowed

    def test_trial_expired(self, clock):
        trial = start_trial(clock() - timedelta(days=8))
        decision = evaluate_quota(trial, usage(), clock())
        assert not decision.allowed
        assert "trial has expired" in decision.reason

    def test_trial_cap_reached(self, clock):
        trial = start_trial(clock())
        decision = evaluate_quota(trial, usage(trial=trial.docs_limit_trial), clock())
        assert not decision.allowed
        assert decision.reason.startswith(f"Trial limit of {trial.docs_limit_trial} documents")

    def test_trial_expiry_checked_before_cap(self, clock):
        trial = start_trial(clock() - timedelta(days=30))
        decision = evaluate_quota(trial, usage(trial=10_000), clock())
        assert "expired" in decision.reason


# =============================================================================
# Gate over an entitlement source
# =============================================================================


@pytest.fixture
def source():
    return InMemoryEntitlementSource()


class TestEntitlementQuotaGate:
    @pytest.mark.asyncio
    async def test_denial_message_matches_reason(self, source, clock):
        source.set_entitlement("u1", STARTER)
        source.set_usage("u1", month_start(clock()), monthly=200)
        gate = EntitlementQuotaGate(source, clock=clock)

        assert not await gate.can_extract("u1")
        assert "Monthly limit" in await gate.denial_message("u1")

    @pytest.mark.asyncio
    async def test_check_raises_with_tier(self, source, clock):
        gate = EntitlementQuotaGate(source, clock=clock)
        with pytest.raises(QuotaExceeded) as exc_info:
            await gate.check("nobody")
        assert exc_info.value.tier == "free"

    @pytest.mark.asyncio
    async def test_record_extraction_counts_month(self, source, clock):
        source.set_entitlement("u1", STARTER)
        gate = EntitlementQuotaGate(source, clock=clock)

        await gate.record_extraction("u1")
        await gate.record_extraction("u1")

        snapshot = await source.get_usage("u1", month_start(clock()))
        assert snapshot.monthly_docs == 2
        assert snapshot.trial_docs == 0

    @pytest.mark.asyncio
    async def test_record_extraction_counts_trial(self, source, clock):
        source.set_entitlement("u1", start_trial(clock()))
        await EntitlementQuotaGate(source, clock=clock).record_extraction("u1")

        snapshot = await source.get_usage("u1", month_start(clock()))
        assert snapshot.trial_docs == 1

    @pytest.mark.asyncio
    async def test_new_month_resets_starter(self, source, clock):
        source.set_entitlement("u1", STARTER)
        source.set_usage("u1", month_start(clock()), monthly=200)
        gate = EntitlementQuotaGate(source, clock=clock)
        assert not await gate.can_extract("u1")

        clock.advance(timedelta(days=31))
        assert await gate.can_extract("u1")


class TestAllowAllQuotaGate:
    @pytest.mark.asyncio
    async def test_always_allows(self):
        gate = AllowAllQuotaGate()
        assert await gate.can_extract("anyone")
        await gate.check("anyone")
        await gate.record_extraction("anyone")

    @pytest.mark.asyncio
    async def test_generic_denial_message(self):
        assert await AllowAllQuotaGate().denial_message("u") == GENERIC_DENIAL
