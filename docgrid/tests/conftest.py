"""Pytest configuration and shared fixtures.

Provides reusable test fixtures for:
- A controllable clock
- In-memory row store seeded with one table and one uploaded row
- Local document storage with a real file on disk
- A scripted provider adapter that records its calls
"""

from datetime import datetime, timedelta, timezone

import pytest

from docgrid.core.errors import ProviderError
from docgrid.core.pipeline_logger import PipelineLogger
from docgrid.core.retry import RetryPolicy
from docgrid.providers.base import ProviderAdapter, ProviderReply
from docgrid.pydantic_models import Row, RowStatus, TableRecord
from docgrid.storage import InMemoryRowStore, LocalDocumentStorage


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc))


# =============================================================================
# Tables and rows
# =============================================================================


INVOICE_COLUMNS = [
    {"key": "vendor", "desc": "Company that issued the invoice"},
    {"key": "total", "desc": "Invoice total including tax"},
    {"key": "date", "desc": "Invoice date"},
]


@pytest.fixture
def invoice_table():
    return TableRecord(id="t1", user_id="u1", table_name="Invoices", columns=INVOICE_COLUMNS)


@pytest.fixture
def uploaded_row():
    return Row(id="r1", table_id="t1", file_path="u1/invoice.pdf", status=RowStatus.UPLOADED)


@pytest.fixture
def store(clock, invoice_table, uploaded_row):
    """InMemoryRowStore holding the invoice table and one uploaded row."""
    store = InMemoryRowStore(clock=clock)
    store.add_table(invoice_table)
    store.add_row(uploaded_row)
    return store


@pytest.fixture
def documents(tmp_path):
    """LocalDocumentStorage with u1/invoice.pdf present on disk."""
    root = tmp_path / "documents"
    (root / "u1").mkdir(parents=True)
    (root / "u1" / "invoice.pdf").write_bytes(b"%PDF-1.4 test")
    return LocalDocumentStorage(root, "https://files.example.com/documents", "test-secret")


# =============================================================================
# Provider stub
# =============================================================================


class ScriptedProvider(ProviderAdapter):
    """ProviderAdapter that replays a list of replies or exceptions."""

    name = "chatpdf"

    def __init__(self, *outcomes, model: str = "stub-model", usage: dict | None = None):
        self.outcomes = list(outcomes)
        self.model = model
        self.usage = usage or {}
        self.calls: list[tuple[str, str, str]] = []

    async def extract(self, document_url: str, prompt: str, display_name: str) -> ProviderReply:
        self.calls.append((document_url, prompt, display_name))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return ProviderReply(text=outcome, model=self.model, usage=dict(self.usage))


@pytest.fixture
def scripted_provider():
    """Factory for ScriptedProvider instances."""
    return ScriptedProvider


@pytest.fixture
def no_sleep_retry():
    """RetryPolicy with default bounds and a recorded, instant sleep."""
    delays: list[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    policy = RetryPolicy(sleep=sleep)
    policy.delays = delays
    return policy


@pytest.fixture
def quiet_logger():
    return PipelineLogger(name="docgrid.tests")


@pytest.fixture
def transient_error():
    return ProviderError("ChatPDF API error: 503 Service Unavailable", status=503)
