from __future__ import annotations

import logging
import os
import threading
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from app.services.indexer_engine import ShipmentIndexer


def _validate_env() -> None:
    """
    Validate all required environment variables at startup.

    Runs before any service or database connection is initialised.
    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - A database URL is required (DATABASE_URL, CLOUD_DATABASE_URL or LOCAL_DATABASE_URL).
    - CONTRACT_ADDRESS is required whenever INDEXER_ENABLED is not false,
      and must be a 20-byte hex address.
    - CHAIN_ID, when set, must be an integer.
    """

    from eth_utils import is_address

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    database_urls = [
        os.getenv(name, "").strip()
        for name in ("DATABASE_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL")
    ]
    if not any(database_urls):
        errors.append(
            "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL "
            "or LOCAL_DATABASE_URL."
        )

    # --- Ledger source --------------------------------------------------
    indexer_enabled_raw = os.getenv("INDEXER_ENABLED", "true").strip().lower()
    indexer_enabled = indexer_enabled_raw in {"1", "true", "yes", "on"}
    contract_address = os.getenv("CONTRACT_ADDRESS", "").strip()
    if indexer_enabled:
        if not contract_address:
            errors.append(
                "CONTRACT_ADDRESS is not set but INDEXER_ENABLED is true. "
                "Set CONTRACT_ADDRESS or disable the indexer with INDEXER_ENABLED=false."
            )
        elif not is_address(contract_address):
            errors.append(f"CONTRACT_ADDRESS='{contract_address}' is not a valid address.")

    chain_id_raw = os.getenv("CHAIN_ID", "").strip()
    if chain_id_raw and not chain_id_raw.isdigit():
        errors.append(f"CHAIN_ID='{chain_id_raw}' is not a valid integer.")

    if errors:
        raise RuntimeError(
            "Startup validation failed. Missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Compare Base.metadata table names against the live DB schema.

    Every table registered on Base.metadata must exist in the database.
    If any are missing, log a critical error and abort startup so that
    the operator is forced to run migrations before serving traffic.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401 (registers all ORM models on Base.metadata)
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        log = logging.getLogger(__name__)
        log.critical(
            "Schema mismatch: %d table(s) defined in ORM metadata are absent from "
            "the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


def _build_indexer() -> ShipmentIndexer | None:
    """
    Build the ledger connector and indexer, or None when indexing is disabled.

    Raises LedgerConfigurationError for an unusable source address so that
    startup aborts before serving traffic.
    """
    from app.config import get_indexer_settings, get_ledger_http_settings, get_ledger_settings
    from app.connectors import JsonRpcLedgerConnector
    from db.session import get_session_factory

    indexer_settings = get_indexer_settings()
    if not indexer_settings.enabled:
        return None

    ledger_settings = get_ledger_settings()
    connector = JsonRpcLedgerConnector(
        settings=ledger_settings,
        http_settings=get_ledger_http_settings(),
    )
    return ShipmentIndexer(
        connector=connector,
        session_factory=get_session_factory(),
        ledger_settings=ledger_settings,
        indexer_settings=indexer_settings,
    )


def _run_indexer(indexer: ShipmentIndexer) -> None:
    """Thread target: replay, subscribe and, on failure, run the reconnect loop."""
    log = logging.getLogger(__name__)
    try:
        running = indexer.start()
    except Exception:
        log.exception("Indexer failed to start stream=%s", indexer.stream_key)
        return
    log.info("Indexer start finished stream=%s running=%s", indexer.stream_key, running)


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema, start the indexer and scheduler on boot; stop both on exit."""
    _check_db()
    logging.getLogger(__name__).info("Database connectivity confirmed")
    _check_schema()
    logging.getLogger(__name__).info("Database schema validated")

    from app.scheduler.jobs import build_scheduler

    indexer = _build_indexer()
    application.state.indexer = indexer
    if indexer is not None:
        threading.Thread(
            target=_run_indexer,
            args=(indexer,),
            name="shipment-indexer",
            daemon=True,
        ).start()
        logging.getLogger(__name__).info("Indexer thread started stream=%s", indexer.stream_key)
    else:
        logging.getLogger(__name__).warning("Indexer disabled (INDEXER_ENABLED=false)")

    scheduler = build_scheduler(indexer)
    scheduler.start()
    logging.getLogger(__name__).info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    try:
        yield
    finally:
        scheduler.shutdown(wait=True)
        logging.getLogger(__name__).info("Scheduler shut down")
        if indexer is not None:
            indexer.stop()
            indexer.close()
            logging.getLogger(__name__).info("Indexer stopped")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Shipment Ledger Indexer API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import (
        containers_router,
        indexer_router,
        scans_router,
        shipments_router,
    )

    application.include_router(shipments_router)
    application.include_router(containers_router)
    application.include_router(scans_router)
    application.include_router(indexer_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
