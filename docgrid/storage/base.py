"""Contracts for the collaborators the pipeline reads from and writes to.

The orchestrator never owns row storage. It reads a row, then issues
conditional writes and must accept that another invocation may win a race.
"""

from abc import ABC, abstractmethod
from collections.abc import Collection
from typing import Any

from docgrid.pydantic_models.rows import Row, RowStatus, TableRecord


class RowStore(ABC):
    """Row and table access.

    Implementations raise StorageError when the backing store cannot be
    reached or a write is rejected.
    """

    @abstractmethod
    async def get_table(self, table_id: str) -> TableRecord | None:
        """Return the table (owner + raw columns), or None."""

    @abstractmethod
    async def get_row(self, row_id: str, table_id: str) -> Row | None:
        """Return the row if it exists and belongs to the table."""

    @abstractmethod
    async def claim_row(
        self,
        row_id: str,
        eligible_statuses: Collection[RowStatus],
    ) -> int:
        """Atomically set status=extracting and clear the error.

        Args:
            row_id: Row to claim.
            eligible_statuses: Only update when the current status is in
                this set.

        Returns:
            Number of rows actually changed (0 or 1).
        """

    @abstractmethod
    async def update_row_if_unchanged(self, row_id: str, seen: Row, **fields: Any) -> int:
        """Write fields only while the row still has seen's status and updated_at.

        Used for transitions decided from a snapshot that did not go through
        claim_row: reclaiming a stale `extracting` row, and failing a row
        whose request was refused before any claim.

        Returns:
            Number of rows actually changed (0 or 1).
        """

    @abstractmethod
    async def update_row(self, row_id: str, **fields: Any) -> None:
        """Unconditionally write the given columns and bump updated_at."""


class DocumentStorage(ABC):
    """Object storage holding the uploaded PDFs."""

    @abstractmethod
    async def create_signed_url(self, path: str, expires_in: int) -> str:
        """Return a time-limited URL for the object at path.

        Raises:
            SignedUrlError: The URL could not be produced.
        """
