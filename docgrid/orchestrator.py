"""Extraction orchestrator: one uploaded PDF in, one filled table row out.

Runs a single row through every stage in order:
  read row -> idempotency short-circuits -> quota gate -> claim
  -> signed URL -> prompt -> provider (with retry) -> sanitize
  -> normalize -> commit

Each stage lives in its own module so it can be tested in isolation. This
class wires them together and decides which failures become a `failed` row
and which ones propagate. Everything after a successful claim ends in a
terminal row state, with one exception: StorageError, raised when the row
store itself cannot be written, is re-raised because there is nowhere left
to record it.
"""

from collections.abc import Callable, Mapping
from datetime import datetime

from docgrid.core.config import LifecycleConfig
from docgrid.core.errors import (
    DocumentMissing,
    DuplicateColumnKey,
    EmptySchema,
    ProviderError,
    QuotaExceeded,
    RowNotFound,
    SignedUrlError,
    StorageError,
    TableNotFound,
    failure_from_exception,
    parse_failure,
)
from docgrid.core.lifecycle import LifecycleDecision, RowLifecycle, utc_now
from docgrid.core.normalizer import has_all_schema_keys, normalize_to_schema
from docgrid.core.pipeline_logger import PipelineLogger
from docgrid.core.quota import AllowAllQuotaGate, QuotaGate
from docgrid.core.retry import RetryPolicy
from docgrid.core.sanitizer import sanitize_json_response
from docgrid.core.usage_tracker import ProviderUsage, UsageTracker
from docgrid.prompts import build_extraction_prompt
from docgrid.providers import ProviderAdapter, ProviderReply, get_provider, normalize_provider_name
from docgrid.pydantic_models import (
    ExtractionJob,
    ExtractResult,
    Row,
    RowStatus,
    TableRecord,
    validate_columns,
)
from docgrid.storage.base import DocumentStorage, RowStore


class ExtractionOrchestrator:
    """Runs extractions for rows held in a RowStore."""

    def __init__(
        self,
        store: RowStore,
        documents: DocumentStorage,
        quota: QuotaGate | None = None,
        providers: Mapping[str, ProviderAdapter] | None = None,
        provider_factory: Callable[[str], ProviderAdapter] = get_provider,
        retry_policy: RetryPolicy | None = None,
        logger: PipelineLogger | None = None,
        usage_tracker: UsageTracker | None = None,
        clock: Callable[[], datetime] = utc_now,
        signed_url_ttl: int = LifecycleConfig.SIGNED_URL_TTL_SECONDS,
    ):
        """Initialize the orchestrator.

        Args:
            store: Row and table persistence.
            documents: Object storage that signs document URLs.
            quota: Plan gate checked before each claim. Defaults to allow-all.
            providers: Pre-built adapters by name. Names missing here are
                built on first use with provider_factory.
            provider_factory: Builds an adapter from a provider name.
            retry_policy: Retry applied around each provider call.
            logger: Pipeline logger. A quiet default is created when omitted.
            usage_tracker: Receives token usage for every successful call.
            clock: Time source for staleness checks.
            signed_url_ttl: Lifetime of the URL handed to providers, in seconds.
        """
        self.store = store
        self.documents = documents
        self.quota = quota or AllowAllQuotaGate()
        self._providers: dict[str, ProviderAdapter] = dict(providers or {})
        self._provider_factory = provider_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger = logger or PipelineLogger()
        self.usage_tracker = usage_tracker
        self.lifecycle = RowLifecycle(store, clock=clock)
        self.signed_url_ttl = signed_url_ttl

    def provider_for(self, name: str) -> ProviderAdapter:
        """Adapter for a normalized provider name, built once and reused."""
        adapter = self._providers.get(name)
        if adapter is None:
            adapter = self._provider_factory(name)
            self._providers[name] = adapter
        return adapter

    async def _load(self, table_id: str, row_id: str) -> tuple[TableRecord, Row]:
        table = await self.store.get_table(table_id)
        if table is None:
            raise TableNotFound(table_id)
        row = await self.store.get_row(row_id, table_id)
        if row is None:
            raise RowNotFound(row_id)
        if not row.has_document:
            raise DocumentMissing(row_id)
        return table, row

    async def extract(
        self,
        table_id: str,
        row_id: str,
        user_id: str,
        provider: str | None = None,
    ) -> ExtractResult:
        """Extract one row's document into its table schema.

        Returns:
            extracted with the normalized data, extracting when another
            invocation owns the row, or failed with the stored error message.

        Raises:
            TableNotFound, RowNotFound, DocumentMissing: Preconditions, checked
                before anything is written.
            StorageError: The row store could not be read or written.
        """
        provider_name = normalize_provider_name(provider)
        table, row = await self._load(table_id, row_id)

        decision = self.lifecycle.classify(row)
        if decision == LifecycleDecision.ALREADY_EXTRACTED:
            self.logger.debug(f"Row {row_id} already extracted")
            return ExtractResult.extracted(row.data)
        if decision == LifecycleDecision.IN_PROGRESS:
            self.logger.debug(f"Row {row_id} is being extracted elsewhere")
            return ExtractResult.in_progress()

        try:
            await self.quota.check(user_id)
        except QuotaExceeded as e:
            self.logger.warning(f"Quota denied for row {row_id}", user=user_id, tier=e.tier)
            if await self.lifecycle.reject(row, str(e)):
                return ExtractResult.failed(str(e))
            return await self._current_result(table_id, row_id)

        if not await self.lifecycle.claim(row):
            return ExtractResult.in_progress()

        self.logger.start_extraction(row_id, provider_name, table=table_id)
        result = await self._run_claimed(table, row, provider_name)
        if result.error:
            self.logger.end_extraction(row_id, result.status, error=result.error)
        else:
            self.logger.end_extraction(row_id, result.status)

        if result.status == "extracted":
            await self.quota.record_extraction(user_id)
        return result

    async def _current_result(self, table_id: str, row_id: str) -> ExtractResult:
        """Report a row as it is now, after another invocation moved it."""
        row = await self.store.get_row(row_id, table_id)
        if row is None:
            raise RowNotFound(row_id)
        if row.status == RowStatus.EXTRACTED:
            return ExtractResult.extracted(row.data)
        if row.status == RowStatus.FAILED:
            return ExtractResult.failed(row.error or LifecycleConfig.DEFAULT_FAILURE_MESSAGE)
        return ExtractResult.in_progress()

    async def _run_claimed(self, table: TableRecord, row: Row, provider_name: str) -> ExtractResult:
        """Everything after the claim. Always leaves the row extracted or failed."""
        try:
            document_url = await self.documents.create_signed_url(row.file_path, self.signed_url_ttl)
        except SignedUrlError as e:
            return await self._fail(row, provider_name, e, f"Failed to generate PDF URL: {e}")

        columns = table.column_specs()
        try:
            validate_columns(columns)
        except EmptySchema as e:
            return await self._fail(row, provider_name, e, LifecycleConfig.EMPTY_SCHEMA_MESSAGE)
        except DuplicateColumnKey as e:
            return await self._fail(row, provider_name, e, str(e))

        job = ExtractionJob(
            row_id=row.id,
            table_id=table.id,
            document_url=document_url,
            columns=tuple(columns),
            provider=provider_name,
        )

        try:
            prompt = build_extraction_prompt(job.columns)
            adapter = self.provider_for(provider_name)
            reply = await self.retry_policy.run(
                lambda: adapter.extract(job.document_url, prompt, job.display_name)
            )
        except StorageError:
            raise
        except Exception as e:
            message = str(e) or "Unknown extraction error"
            return await self._fail(row, provider_name, e, message, raw_response=message)

        self._record_usage(job, reply)

        parsed = sanitize_json_response(reply.text)
        if not parsed.success:
            failure = parse_failure(
                parsed.error_code or "",
                parsed.error or "",
                row_id=row.id,
                table_id=table.id,
                provider=provider_name,
                raw_response=reply.text,
            )
            self.logger.warning(str(failure))
            await self.lifecycle.commit_failure(row.id, parsed.error, raw_response=reply.text)
            return ExtractResult.failed(parsed.error)

        if not has_all_schema_keys(parsed.data, job.columns):
            self.logger.debug(f"Reply for row {row.id} left columns out; filling with null")
        data = normalize_to_schema(parsed.data, job.columns)
        await self.lifecycle.commit_success(row.id, data, reply.text)
        return ExtractResult.extracted(data)

    async def _fail(
        self,
        row: Row,
        provider_name: str,
        error: BaseException,
        message: str,
        raw_response: str | None = None,
    ) -> ExtractResult:
        failure = failure_from_exception(
            error,
            row_id=row.id,
            table_id=row.table_id,
            provider=provider_name,
        )
        if isinstance(error, ProviderError):
            failure.context["transport"] = error.transport
        self.logger.error(str(failure))
        await self.lifecycle.commit_failure(row.id, message, raw_response=raw_response)
        return ExtractResult.failed(message)

    def _record_usage(self, job: ExtractionJob, reply: ProviderReply) -> None:
        if self.usage_tracker is None:
            return
        self.usage_tracker.record(
            ProviderUsage(
                provider=job.provider,
                model=reply.model,
                table_id=job.table_id,
                row_id=job.row_id,
                **reply.usage,
            )
        )

    async def fail_row(self, row_id: str, message: str | None = None) -> str:
        """Mark a row failed on behalf of a client (e.g. its upload broke).

        Returns:
            The error message stored on the row.
        """
        stored = await self.lifecycle.mark_failed(row_id, message)
        self.logger.info(f"Row {row_id} marked failed by client", error=stored)
        return stored
