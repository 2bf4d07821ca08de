"""
app/connectors/base.py

Ledger connector abstraction shared by the indexer and its tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from app.domain.ledger_event import ShipmentLockedEvent

EventsCallback = Callable[[list[ShipmentLockedEvent], int], None]
ErrorCallback = Callable[[Exception], None]


class LedgerError(RuntimeError):
    """
    Base class for ledger connector failures.
    """


class LedgerRequestError(LedgerError):
    """
    Raised when the ledger endpoint cannot be reached after retries.

    Treated as transient by the indexer: it triggers the reconnect loop.
    """


class LedgerConfigurationError(LedgerError):
    """
    Raised for misconfiguration that retrying cannot fix (bad contract address).
    """


class LedgerEventDecodeError(LedgerError):
    """
    Raised when a log entry cannot be decoded into a creation event.
    """


class LedgerSubscription(ABC):
    """
    Handle for a live event subscription.
    """

    @abstractmethod
    def cancel(self) -> None:
        """
        Stop delivering events. Safe to call more than once.
        """

    @property
    @abstractmethod
    def active(self) -> bool:
        """
        Whether the subscription is still delivering events.
        """


class LedgerConnector(ABC):
    """
    Read access to the shipment registry contract on a ledger.
    """

    source: str = "ledger"

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """
        Whether the most recent call to the ledger succeeded.
        """

    @abstractmethod
    def get_chain_id(self) -> int:
        """
        Return the chain identity reported by the ledger.
        """

    @abstractmethod
    def get_block_number(self) -> int:
        """
        Return the current ledger height.
        """

    @abstractmethod
    def fetch_shipment_events(self, from_block: int, to_block: int) -> list[ShipmentLockedEvent]:
        """
        Return creation events in the inclusive block range, ordered by position.
        """

    @abstractmethod
    def subscribe(
        self,
        *,
        from_block: int,
        on_events: EventsCallback,
        on_error: ErrorCallback,
    ) -> LedgerSubscription:
        """
        Deliver creation events from ``from_block`` onward.

        ``on_events`` receives each batch with the highest block it covers;
        ``on_error`` is called once when delivery fails, after which the
        subscription is inactive.
        """

    def close(self) -> None:
        """
        Release transport resources.
        """
