"""Row state machine and the claim that guards against duplicate work.

    uploaded ──┐
               ├──► extracting ──► extracted
    failed  ◄──┘         │
       ▲                 └──────► failed
       └──── (re-extract)

A row in `extracting` whose last update is older than the staleness window
is treated like `failed`: the invocation that claimed it probably died.
Reclaiming it matches on the status and updated_at that were read, so two
callers looking at the same stale row cannot both win.

The claim is a single conditional write in the row store, never an
in-process lock, because invocations for the same row may run in different
processes. Only the caller whose write changed a row does provider work.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from docgrid.core.config import LifecycleConfig
from docgrid.core.sanitizer import truncate_for_storage
from docgrid.pydantic_models.rows import CLAIMABLE_STATUSES, Row, RowStatus
from docgrid.storage.base import RowStore

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleDecision(Enum):
    """What an incoming extraction request should do with a row."""

    ALREADY_EXTRACTED = "already_extracted"  # return stored data
    IN_PROGRESS = "in_progress"              # another invocation owns it
    CLAIMABLE = "claimable"                  # uploaded or failed
    STALE_RECLAIM = "stale_reclaim"          # extracting, but abandoned


class RowLifecycle:
    """Transitions for one row store.

    Usage:
        lifecycle = RowLifecycle(store)
        if lifecycle.classify(row) is LifecycleDecision.ALREADY_EXTRACTED:
            return row.data
        if await lifecycle.claim(row):
            ...
            await lifecycle.commit_success(row.id, data, raw)
    """

    def __init__(
        self,
        store: RowStore,
        clock: Callable[[], datetime] = utc_now,
        stale_after: timedelta = LifecycleConfig.STALE_EXTRACTING_AFTER,
    ) -> None:
        self.store = store
        self.clock = clock
        self.stale_after = stale_after

    def age_of(self, row: Row) -> timedelta | None:
        """Time since the row was last written, None when unknown."""
        if row.updated_at is None:
            return None
        updated_at = row.updated_at
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return self.clock() - updated_at

    def is_stale(self, row: Row) -> bool:
        """An extracting row with no timestamp counts as stale."""
        age = self.age_of(row)
        return age is None or age >= self.stale_after

    def classify(self, row: Row) -> LifecycleDecision:
        if row.status == RowStatus.EXTRACTED:
            return LifecycleDecision.ALREADY_EXTRACTED
        if row.status == RowStatus.EXTRACTING:
            if self.is_stale(row):
                return LifecycleDecision.STALE_RECLAIM
            return LifecycleDecision.IN_PROGRESS
        return LifecycleDecision.CLAIMABLE

    async def claim(self, row: Row) -> bool:
        """Move the row to `extracting` if nobody else got there first.

        Returns:
            True when this caller's write changed the row.

        Raises:
            StorageError: The conditional write itself failed.
        """
        decision = self.classify(row)
        if decision == LifecycleDecision.STALE_RECLAIM:
            logger.info("Reclaiming stale extracting row %s (age=%s)", row.id, self.age_of(row))
            affected = await self.store.update_row_if_unchanged(
                row.id, row, status=RowStatus.EXTRACTING, error=None
            )
        elif decision == LifecycleDecision.CLAIMABLE:
            affected = await self.store.claim_row(row.id, CLAIMABLE_STATUSES)
        else:
            return False

        if affected == 0:
            logger.info("Row %s claimed by another invocation", row.id)
        return affected > 0

    async def commit_success(self, row_id: str, data: dict[str, Any], raw_response: str) -> None:
        await self.store.update_row(
            row_id,
            status=RowStatus.EXTRACTED,
            data=data,
            error=None,
            raw_response=truncate_for_storage(raw_response),
        )

    async def commit_failure(
        self,
        row_id: str,
        message: str,
        raw_response: str | None = None,
    ) -> None:
        fields: dict[str, Any] = {"status": RowStatus.FAILED, "error": message}
        if raw_response is not None:
            fields["raw_response"] = truncate_for_storage(raw_response)
        await self.store.update_row(row_id, **fields)

    async def reject(self, row: Row, message: str) -> bool:
        """Fail a row that was refused before any claim.

        The write only lands if the row is still exactly as read, so a
        concurrent success or reclaim is never overwritten.

        Returns:
            True when the failure was recorded.
        """
        affected = await self.store.update_row_if_unchanged(
            row.id, row, status=RowStatus.FAILED, error=message
        )
        if affected == 0:
            logger.info("Row %s changed before its refusal was recorded", row.id)
        return affected > 0

    async def mark_failed(self, row_id: str, message: str | None = None) -> str:
        """Record a failure reported from outside the pipeline (e.g. a failed upload).

        Returns:
            The message actually stored.
        """
        text = message.strip() if isinstance(message, str) else ""
        stored = text or LifecycleConfig.DEFAULT_FAILURE_MESSAGE
        await self.store.update_row(row_id, status=RowStatus.FAILED, error=stored)
        return stored
