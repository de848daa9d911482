"""CLI entrypoint for the extraction pipeline."""

import argparse
import asyncio
import json
import logging
import os
import sys
import warnings

# Suppress LiteLLM's direct prints (must be before import)
os.environ["LITELLM_LOG"] = "ERROR"

warnings.filterwarnings("ignore", message="Pydantic serializer warnings")
warnings.filterwarnings("ignore", category=UserWarning, module="pydantic")
warnings.filterwarnings("ignore", category=ResourceWarning)

# Suppress noisy loggers (HTTP clients, LiteLLM and Gemini SDK internals)
for logger_name in ["httpx", "httpcore", "litellm", "LiteLLM",
                    "LiteLLM Router", "google_genai", "asyncio"]:
    logging.getLogger(logger_name).setLevel(logging.ERROR)

from dotenv import load_dotenv  # noqa: E402 - must be after logging config

load_dotenv()

import litellm  # noqa: E402

litellm.suppress_debug_info = True

from docgrid.core.config import DEFAULT_PROVIDER, SUPPORTED_PROVIDERS  # noqa: E402
from docgrid.core.errors import DocgridError  # noqa: E402

DEFAULT_DB_URL = os.environ.get("DOCGRID_DATABASE_URL", "sqlite:///docgrid.db")


async def extract(
    db_url: str,
    table_id: str,
    row_id: str,
    user_id: str,
    provider: str | None,
    documents_root: str,
    base_url: str,
    secret: str,
    verbose: bool = False,
    log_dir: str | None = None,
    usage_csv: str | None = None,
) -> dict | None:
    """Run one row through the pipeline against a SQL row store.

    Returns:
        The extraction result body, or None when a precondition failed.
    """
    # Import here so init-db and fail never load the provider SDKs
    from docgrid.core.pipeline_logger import PipelineLogger
    from docgrid.core.quota import AllowAllQuotaGate
    from docgrid.core.usage_tracker import UsageTracker
    from docgrid.orchestrator import ExtractionOrchestrator
    from docgrid.storage import LocalDocumentStorage, SqlRowStore

    logger = PipelineLogger(verbose=verbose, log_dir=log_dir)
    tracker = UsageTracker()

    print(f"\n{'='*50}")
    print(f"Extracting row {row_id} (table {table_id})")
    print(f"{'='*50}")
    print(f"  Provider: {provider or DEFAULT_PROVIDER}")
    print(f"  Database: {db_url}")
    print()

    try:
        orchestrator = ExtractionOrchestrator(
            store=SqlRowStore(db_url),
            documents=LocalDocumentStorage(documents_root, base_url, secret),
            quota=AllowAllQuotaGate(),
            logger=logger,
            usage_tracker=tracker,
        )
        result = await orchestrator.extract(table_id, row_id, user_id, provider=provider)
    except DocgridError as e:
        print(f"\n[ERROR] {e}")
        return None
    finally:
        logger.close()

    if tracker.call_count > 0:
        print(f"\n{tracker.summary()}")
        if usage_csv:
            print(f"[USAGE] {tracker.write_csv(usage_csv)}")

    return result.to_dict()


async def fail(db_url: str, row_id: str, message: str | None) -> str:
    from docgrid.core.lifecycle import RowLifecycle
    from docgrid.storage import SqlRowStore

    return await RowLifecycle(SqlRowStore(db_url)).mark_failed(row_id, message)


def init_db(db_url: str) -> None:
    from docgrid.storage import SqlRowStore

    SqlRowStore(db_url).create_schema()


def main():
    parser = argparse.ArgumentParser(
        description="PDF-to-table extraction pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  docgrid init-db --db sqlite:///rows.db
  docgrid extract --db sqlite:///rows.db --table-id t1 --row-id r1
  docgrid extract --table-id t1 --row-id r1 --provider gemini -v
  docgrid fail --row-id r1 --message "Upload failed"
        """,
    )
    db_parent = argparse.ArgumentParser(add_help=False)
    db_parent.add_argument(
        "--db",
        default=DEFAULT_DB_URL,
        help=f"Database URL (default: {DEFAULT_DB_URL})",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract_parser = subparsers.add_parser(
        "extract", parents=[db_parent], help="Extract one uploaded row"
    )
    extract_parser.add_argument("--table-id", required=True)
    extract_parser.add_argument("--row-id", required=True)
    extract_parser.add_argument(
        "--provider",
        choices=SUPPORTED_PROVIDERS,
        default=None,
        help=f"Extraction provider (default: {DEFAULT_PROVIDER})",
    )
    extract_parser.add_argument("--user-id", default="local", help="User the extraction is billed to")
    extract_parser.add_argument(
        "--documents-root",
        default=os.environ.get("DOCGRID_DOCUMENTS_ROOT", "documents"),
        help="Directory holding uploaded PDFs",
    )
    extract_parser.add_argument(
        "--base-url",
        default=os.environ.get("DOCGRID_DOCUMENTS_URL", "http://localhost:8000/documents"),
        help="Public URL the documents directory is served under",
    )
    extract_parser.add_argument(
        "--log-dir",
        default=None,
        help="Write a per-run log file to this directory",
    )
    extract_parser.add_argument(
        "--usage-csv",
        default=None,
        help="Append token usage of this run to a CSV file",
    )
    extract_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output with DEBUG level logging",
    )

    fail_parser = subparsers.add_parser("fail", parents=[db_parent], help="Mark a row failed")
    fail_parser.add_argument("--row-id", required=True)
    fail_parser.add_argument("--message", default=None)

    subparsers.add_parser("init-db", parents=[db_parent], help="Create the row store tables")

    args = parser.parse_args()

    if args.command == "init-db":
        init_db(args.db)
        print(f"[OK] Tables created in {args.db}")
        sys.exit(0)

    if args.command == "fail":
        stored = asyncio.run(fail(args.db, args.row_id, args.message))
        print(json.dumps({"status": "failed", "error": stored}))
        sys.exit(0)

    secret = os.environ.get("DOCGRID_SIGNING_SECRET", "")
    if not secret:
        print("Error: DOCGRID_SIGNING_SECRET not set")
        print("Set it in .env or export DOCGRID_SIGNING_SECRET=...")
        sys.exit(1)

    result = asyncio.run(extract(
        db_url=args.db,
        table_id=args.table_id,
        row_id=args.row_id,
        user_id=args.user_id,
        provider=args.provider,
        documents_root=args.documents_root,
        base_url=args.base_url,
        secret=secret,
        verbose=args.verbose,
        log_dir=args.log_dir,
        usage_csv=args.usage_csv,
    ))

    if result is None:
        sys.exit(1)
    print(json.dumps(result, indent=2, ensure_ascii=False))
    sys.exit(1 if result["status"] == "failed" else 0)


if __name__ == "__main__":
    main()
