"""Plan entitlement and usage models read by the quota gate."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel


class PlanTier(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    PRO_TRIAL = "pro_trial"


class Entitlement(BaseModel):
    """What a user's plan allows.

    A None limit means "no limit of this kind applies".
    """

    tier: PlanTier = PlanTier.FREE
    docs_limit_monthly: int | None = None
    docs_limit_trial: int | None = None
    trial_expires_at: datetime | None = None
    batch_enabled: bool = False


class UsageSnapshot(BaseModel):
    """Documents extracted so far, per accounting period."""

    period_start: date
    monthly_docs: int = 0
    trial_docs: int = 0
