"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files

DEFAULT_RPC_URL = "http://127.0.0.1:8545"
DEFAULT_CHAIN_ID = 1337
DEFAULT_STREAM_KEY = "shipment-indexer"


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class LedgerHTTPSettings:
    """
    Transport behaviour for JSON-RPC calls to the ledger endpoint.
    """

    timeout_seconds: float = 15.0
    max_retries: int = 3
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    rate_limit_per_second: float = 10.0


@dataclass(frozen=True)
class LedgerSettings:
    """
    Identity and polling behaviour of the ledger being indexed.
    """

    rpc_url: str = DEFAULT_RPC_URL
    contract_address: str | None = None
    chain_id: int = DEFAULT_CHAIN_ID
    start_block: int = 0
    poll_interval_seconds: float = 4.0
    max_block_range: int = 2000


@dataclass(frozen=True)
class IndexerSettings:
    """
    Checkpointing, reconnect and health policy for the ingestion engine.

    ``reconnect_backoff_multiplier`` of 1.0 keeps a fixed delay between
    attempts; larger values grow the delay geometrically.
    """

    enabled: bool = True
    stream_key: str = DEFAULT_STREAM_KEY
    reconnect_max_attempts: int = 10
    reconnect_delay_seconds: float = 5.0
    reconnect_backoff_multiplier: float = 1.0
    staleness_threshold_blocks: int = 100
    health_check_interval_seconds: int = 60

    def reconnect_delay_for(self, attempt: int) -> float:
        """Delay before reconnect attempt number ``attempt`` (1-based)."""
        return self.reconnect_delay_seconds * (self.reconnect_backoff_multiplier ** max(0, attempt - 1))


@lru_cache(maxsize=1)
def get_ledger_http_settings() -> LedgerHTTPSettings:
    """
    Return ledger transport settings from environment variables.
    """

    return LedgerHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("LEDGER_HTTP_TIMEOUT_SECONDS", 15.0)),
        max_retries=max(0, _get_int_env("LEDGER_HTTP_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.1, _get_float_env("LEDGER_HTTP_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("LEDGER_HTTP_BACKOFF_MULTIPLIER", 2.0)),
        rate_limit_per_second=max(0.1, _get_float_env("LEDGER_HTTP_RATE_LIMIT_PER_SECOND", 10.0)),
    )


@lru_cache(maxsize=1)
def get_ledger_settings() -> LedgerSettings:
    """
    Return ledger identity settings from environment variables.
    """

    return LedgerSettings(
        rpc_url=_get_str_env("BLOCKCHAIN_RPC_URL", DEFAULT_RPC_URL),
        contract_address=_get_optional_str_env("CONTRACT_ADDRESS"),
        chain_id=_get_int_env("CHAIN_ID", DEFAULT_CHAIN_ID),
        start_block=max(0, _get_int_env("INDEXER_START_BLOCK", 0)),
        poll_interval_seconds=max(0.5, _get_float_env("LEDGER_POLL_INTERVAL_SECONDS", 4.0)),
        max_block_range=max(1, _get_int_env("LEDGER_MAX_BLOCK_RANGE", 2000)),
    )


@lru_cache(maxsize=1)
def get_indexer_settings() -> IndexerSettings:
    """
    Return ingestion engine settings from environment variables.
    """

    return IndexerSettings(
        enabled=_get_bool_env("INDEXER_ENABLED", True),
        stream_key=_get_str_env("INDEXER_STREAM_KEY", DEFAULT_STREAM_KEY),
        reconnect_max_attempts=max(0, _get_int_env("INDEXER_RECONNECT_MAX_ATTEMPTS", 10)),
        reconnect_delay_seconds=max(0.0, _get_float_env("INDEXER_RECONNECT_DELAY_SECONDS", 5.0)),
        reconnect_backoff_multiplier=max(
            1.0, _get_float_env("INDEXER_RECONNECT_BACKOFF_MULTIPLIER", 1.0)
        ),
        staleness_threshold_blocks=max(1, _get_int_env("INDEXER_STALENESS_THRESHOLD_BLOCKS", 100)),
        health_check_interval_seconds=max(
            5, _get_int_env("INDEXER_HEALTH_CHECK_INTERVAL_SECONDS", 60)
        ),
    )
