"""
tests/conftest.py

Shared fixtures: an in-memory SQLite index database and an in-memory ledger.

The ledger fake implements ``LedgerConnector`` with a settable height, a list
of creation events, failure injection and a subscription whose deliveries are
driven by the test (``emit`` / ``fail_subscription``), so nothing here starts a
thread or sleeps.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import IndexerSettings, LedgerSettings
from app.connectors.base import (
    ErrorCallback,
    EventsCallback,
    LedgerConnector,
    LedgerRequestError,
    LedgerSubscription,
)
from app.domain.ledger_event import ShipmentLockedEvent, sort_events
from app.services.event_processor import ShipmentEventProcessor
from db import models  # noqa: F401  (registers every table on Base.metadata)
from db.base import Base
from db.session import build_session_factory

CHAIN_ID = 1337
CONTRACT_ADDRESS = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
SUPPLIER = "0xF39FD6E51AAD88F6F4CE6AB8827279CFFFB92266"
TRANSPORTER = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
WAREHOUSE = "0x3c44cdddb6a900fa2b585dd299e03d12fa4293bc"
RETAILER = "0x90f79bf6eb2c4f870365e785982e1f101e93b906"


# ---------------------------------------------------------------------------
# In-memory ledger
# ---------------------------------------------------------------------------


class FakeSubscription(LedgerSubscription):
    def __init__(self, from_block: int, on_events: EventsCallback, on_error: ErrorCallback) -> None:
        self.next_block = from_block
        self.on_events = on_events
        self.on_error = on_error
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        self._active = False


class InMemoryLedgerConnector(LedgerConnector):
    """
    Ledger fake. ``unavailable`` makes every call raise ``LedgerRequestError``;
    ``fail_next`` makes only the next N chain-id calls raise.
    """

    source = "memory"

    def __init__(self, *, chain_id: int = CHAIN_ID, height: int = 0) -> None:
        self.chain_id = chain_id
        self.height = height
        self.events: list[ShipmentLockedEvent] = []
        self.unavailable = False
        self.fail_next = 0
        self.fetch_calls: list[tuple[int, int]] = []
        self.subscriptions: list[FakeSubscription] = []
        self.closed = False
        self._connected = False

    # -- LedgerConnector ---------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected

    def get_chain_id(self) -> int:
        if self.fail_next > 0:
            self.fail_next -= 1
            self._connected = False
            raise LedgerRequestError("eth_chainId: connection refused")
        self._check_available()
        return self.chain_id

    def get_block_number(self) -> int:
        self._check_available()
        return self.height

    def fetch_shipment_events(self, from_block: int, to_block: int) -> list[ShipmentLockedEvent]:
        self._check_available()
        self.fetch_calls.append((from_block, to_block))
        return sort_events([e for e in self.events if from_block <= e.block_number <= to_block])

    def subscribe(
        self,
        *,
        from_block: int,
        on_events: EventsCallback,
        on_error: ErrorCallback,
    ) -> LedgerSubscription:
        self._check_available()
        subscription = FakeSubscription(from_block, on_events, on_error)
        self.subscriptions.append(subscription)
        return subscription

    def close(self) -> None:
        self.closed = True

    # -- test controls -------------------------------------------------------

    @property
    def subscription(self) -> FakeSubscription | None:
        active = [s for s in self.subscriptions if s.active]
        return active[-1] if active else None

    def add_event(self, event: ShipmentLockedEvent) -> None:
        self.events.append(event)
        self.height = max(self.height, event.block_number)

    def emit(self, events: list[ShipmentLockedEvent] | None = None, *, to_block: int | None = None) -> None:
        """
        Deliver one live batch to the active subscription.

        Without ``events`` the batch is every stored event between the
        subscription cursor and ``to_block`` (default: current height).
        """

        subscription = self.subscription
        assert subscription is not None, "no active subscription"
        head = self.height if to_block is None else to_block
        if events is None:
            events = self.fetch_shipment_events(subscription.next_block, head)
        subscription.on_events(events, head)
        subscription.next_block = head + 1

    def fail_subscription(self, exc: Exception | None = None) -> None:
        subscription = self.subscription
        assert subscription is not None, "no active subscription"
        subscription.cancel()
        subscription.on_error(exc or LedgerRequestError("subscription dropped"))

    def _check_available(self) -> None:
        if self.unavailable:
            self._connected = False
            raise LedgerRequestError("ledger unavailable")
        self._connected = True


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    """In-memory SQLite shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return build_session_factory(engine)


@pytest.fixture()
def db(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Ledger events
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_event() -> Callable[..., ShipmentLockedEvent]:
    """Factory for creation events with sensible defaults."""

    def factory(
        shipment_hash: str = "SHIP-0001",
        *,
        block_number: int = 10,
        log_index: int = 0,
        containers: int = 3,
        quantity: int = 50,
        batch_id: str = "BATCH-A",
        supplier: str = SUPPLIER,
    ) -> ShipmentLockedEvent:
        return ShipmentLockedEvent(
            shipment_hash=shipment_hash,
            supplier=supplier,
            batch_id=batch_id,
            number_of_containers=containers,
            quantity_per_container=quantity,
            ledger_timestamp=1_760_000_000 + block_number,
            tx_hash="0x" + hashlib.sha256(shipment_hash.encode("utf-8")).hexdigest(),
            block_number=block_number,
            log_index=log_index,
        )

    return factory


@pytest.fixture()
def project(db: Session) -> Callable[[ShipmentLockedEvent], None]:
    """Project one event straight into the test database."""
    processor = ShipmentEventProcessor()

    def run(event: ShipmentLockedEvent) -> None:
        processor.project(db, event)

    return run


# ---------------------------------------------------------------------------
# Settings and ledger
# ---------------------------------------------------------------------------


@pytest.fixture()
def ledger() -> InMemoryLedgerConnector:
    return InMemoryLedgerConnector()


@pytest.fixture()
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(
        rpc_url="http://ledger.test",
        contract_address=CONTRACT_ADDRESS,
        chain_id=CHAIN_ID,
        start_block=0,
        poll_interval_seconds=1.0,
        max_block_range=1000,
    )


@pytest.fixture()
def indexer_settings() -> IndexerSettings:
    return IndexerSettings(
        enabled=True,
        stream_key="test-stream",
        reconnect_max_attempts=3,
        reconnect_delay_seconds=1.0,
        reconnect_backoff_multiplier=1.0,
        staleness_threshold_blocks=100,
        health_check_interval_seconds=60,
    )
