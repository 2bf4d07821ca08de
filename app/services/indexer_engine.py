"""
app/services/indexer_engine.py

Ledger ingestion engine: checkpointed replay followed by a live subscription,
with a bounded reconnect loop.

The engine keeps no state that matters for correctness in memory. Replay and
live paths coordinate only through the checkpoint row and the uniqueness
constraints behind idempotent projection, so either can be restarted at any
time.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from itertools import groupby

from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import IndexerSettings, LedgerSettings
from app.connectors.base import (
    LedgerConfigurationError,
    LedgerConnector,
    LedgerError,
    LedgerSubscription,
)
from app.domain.indexer import HealthReport, HistoricalSyncResult, IndexerStatus, classify_health
from app.domain.ledger_event import ShipmentLockedEvent, sort_events
from app.logging_utils import log_event
from app.services.event_processor import ShipmentEventProcessor
from db.models.checkpoint import CheckpointStatus
from db.repositories import CheckpointRepository, ContainerRepository, ShipmentRepository

logger = logging.getLogger(__name__)

MAX_RECONNECT_MESSAGE = "Max reconnection attempts reached"

# Failures tied to one event's values rather than to the storage connection;
# retrying cannot help, so the event is skipped.
UNPROJECTABLE_EVENT_ERRORS = (DataError, IntegrityError, ValueError, OverflowError)


@dataclass(frozen=True)
class _CheckpointView:
    last_processed_position: int
    status: str
    total_events_processed: int
    last_error: str | None
    last_sync_at: datetime | None


class ShipmentIndexer:
    """
    Restartable ingestion engine for one checkpoint stream.

    Instances are independent: each owns its connector, subscription and
    reconnect state, so several can run side by side against different
    ledgers or fakes.
    """

    def __init__(
        self,
        *,
        connector: LedgerConnector,
        session_factory: sessionmaker[Session],
        ledger_settings: LedgerSettings,
        indexer_settings: IndexerSettings,
        processor: ShipmentEventProcessor | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._connector = connector
        self._session_factory = session_factory
        self._ledger = ledger_settings
        self._settings = indexer_settings
        self._processor = processor or ShipmentEventProcessor()
        self._sleep = sleep

        self._subscription: LedgerSubscription | None = None
        self._running = False
        self._connected = False
        self._stop_requested = False
        self._reconnect_attempts = 0
        self._last_known_height: int | None = None
        self._last_checkpoint: _CheckpointView | None = None
        self._reconnect_lock = threading.Lock()
        self._batch_lock = threading.Lock()

    @property
    def stream_key(self) -> str:
        return self._settings.stream_key

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """
        Connect, replay from the checkpoint and subscribe to new events.

        Configuration errors propagate to the caller. Transient failures
        enter the bounded reconnect loop; the return value reports whether
        the engine ended up running.
        """

        self._stop_requested = False
        try:
            self._connect_and_sync(subscribe=True)
        except LedgerConfigurationError as exc:
            self._record_error(str(exc))
            logger.error("Indexer configuration error stream=%s error=%s", self.stream_key, exc)
            raise
        except (LedgerError, SQLAlchemyError) as exc:
            logger.warning("Indexer start failed stream=%s error=%s", self.stream_key, exc)
            self._handle_disconnect(exc)
        except Exception as exc:
            self._halt_on_unexpected(exc)
        return self._running

    def stop(self) -> None:
        """
        Cancel the live subscription and mark the stream STOPPED.
        """

        self._stop_requested = True
        self._teardown_subscription()
        self._running = False
        try:
            with self._session_factory() as db:
                CheckpointRepository(db).set_status(self.stream_key, CheckpointStatus.STOPPED)
                db.commit()
        except SQLAlchemyError:
            logger.exception("Failed to mark checkpoint stopped stream=%s", self.stream_key)
        log_event(logger, logging.INFO, "indexer_stopped", stream_key=self.stream_key)

    def close(self) -> None:
        self._connected = False
        self._connector.close()

    def rebuild_from_chain(self, *, resume_live: bool = False) -> HistoricalSyncResult:
        """
        Delete every projected shipment, container and this stream's
        checkpoint, then replay the ledger from the configured start.

        Scan logs are kept.
        """

        self.stop()
        with self._session_factory() as db:
            try:
                containers_deleted = ContainerRepository(db).delete_all()
                shipments_deleted = ShipmentRepository(db).delete_all()
                CheckpointRepository(db).delete(self.stream_key)
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                raise
        log_event(
            logger,
            logging.WARNING,
            "index_cleared",
            stream_key=self.stream_key,
            shipments_deleted=shipments_deleted,
            containers_deleted=containers_deleted,
        )

        self._stop_requested = False
        self._last_checkpoint = None
        return self._connect_and_sync(subscribe=resume_live)

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def sync_historical_events(self, from_position: int) -> HistoricalSyncResult:
        """
        Replay creation events in ``[from_position, current height]``.

        Events are fetched in windows of at most ``max_block_range`` blocks and
        projected in ledger order. The checkpoint advances per block, after
        every event of that block committed, and finally to the height.
        """

        height = self._connector.get_block_number()
        self._last_known_height = height

        if from_position > height:
            with self._session_factory() as db:
                CheckpointRepository(db).set_status(self.stream_key, CheckpointStatus.SYNCED)
                db.commit()
            self._refresh_checkpoint_view()
            logger.info(
                "Indexer already up to date stream=%s from=%s height=%s",
                self.stream_key,
                from_position,
                height,
            )
            return HistoricalSyncResult(
                from_position=from_position,
                to_position=height,
                events_seen=0,
                events_processed=0,
                windows=0,
            )

        window_size = max(1, self._ledger.max_block_range)
        events_seen = 0
        events_processed = 0
        windows = 0
        start = from_position
        while start <= height:
            end = min(start + window_size - 1, height)
            events = self._connector.fetch_shipment_events(start, end)
            seen, processed = self._project_batch(events, end, status=CheckpointStatus.SYNCING)
            events_seen += seen
            events_processed += processed
            windows += 1
            start = end + 1

        with self._session_factory() as db:
            CheckpointRepository(db).advance(self.stream_key, position=height, status=CheckpointStatus.SYNCED)
            db.commit()
        self._refresh_checkpoint_view()

        result = HistoricalSyncResult(
            from_position=from_position,
            to_position=height,
            events_seen=events_seen,
            events_processed=events_processed,
            windows=windows,
        )
        log_event(
            logger,
            logging.INFO,
            "historical_sync_completed",
            stream_key=self.stream_key,
            from_position=from_position,
            to_position=height,
            events_seen=events_seen,
            events_processed=events_processed,
            windows=windows,
        )
        return result

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> IndexerStatus:
        """
        Current status from the checkpoint row and cached ledger height.

        Never calls the ledger. When storage is unreachable the last
        successfully read checkpoint is reported.
        """

        self._refresh_checkpoint_view()
        view = self._last_checkpoint
        return IndexerStatus(
            is_running=self._running,
            is_connected=self._connected,
            stream_key=self.stream_key,
            last_processed_position=view.last_processed_position if view else 0,
            last_known_height=self._last_known_height,
            checkpoint_status=view.status if view else None,
            total_events_processed=view.total_events_processed if view else 0,
            last_error=view.last_error if view else None,
            last_sync_at=view.last_sync_at if view else None,
            reconnect_attempts=self._reconnect_attempts,
        )

    def refresh_ledger_height(self) -> int | None:
        """
        Re-read the ledger height for staleness reporting.

        A failure is logged and leaves the cached height in place; the live
        subscription owns disconnect handling.
        """

        try:
            height = self._connector.get_block_number()
        except LedgerError as exc:
            logger.warning("Ledger height refresh failed stream=%s error=%s", self.stream_key, exc)
            return self._last_known_height
        self._last_known_height = height
        return height

    def health(self) -> HealthReport:
        return classify_health(
            self.get_status(),
            staleness_threshold=self._settings.staleness_threshold_blocks,
            error_status=CheckpointStatus.ERROR,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _connect_and_sync(self, *, subscribe: bool) -> HistoricalSyncResult:
        chain_id = self._connector.get_chain_id()
        if chain_id != self._ledger.chain_id:
            logger.warning(
                "Chain id mismatch stream=%s expected=%s actual=%s",
                self.stream_key,
                self._ledger.chain_id,
                chain_id,
            )
        self._connected = True

        with self._session_factory() as db:
            repository = CheckpointRepository(db)
            # Stored one below the configured start so that block is replayed.
            checkpoint = repository.get_or_create(
                self.stream_key,
                start_position=max(0, self._ledger.start_block - 1),
                chain_identity=self._ledger.chain_id,
                source_address=self._ledger.contract_address or "",
            )
            last_position = checkpoint.last_processed_position
            repository.set_status(self.stream_key, CheckpointStatus.SYNCING)
            db.commit()

        from_position = last_position + 1 if last_position > 0 else self._ledger.start_block
        log_event(
            logger,
            logging.INFO,
            "indexer_connecting",
            stream_key=self.stream_key,
            chain_id=chain_id,
            last_processed_position=last_position,
            from_position=from_position,
        )

        result = self.sync_historical_events(from_position)

        if subscribe and not self._stop_requested:
            self._teardown_subscription()
            self._subscription = self._connector.subscribe(
                from_block=result.to_position + 1,
                on_events=self._on_live_events,
                on_error=self._on_subscription_error,
            )
            self._running = True
            log_event(
                logger,
                logging.INFO,
                "indexer_subscribed",
                stream_key=self.stream_key,
                from_block=result.to_position + 1,
            )

        self._reconnect_attempts = 0
        return result

    def _project_batch(
        self,
        events: list[ShipmentLockedEvent],
        through_position: int,
        *,
        status: str,
    ) -> tuple[int, int]:
        """
        Project ``events`` in order and advance the checkpoint per block,
        then to ``through_position``. Returns (seen, newly projected).
        """

        seen = 0
        processed = 0
        with self._batch_lock, self._session_factory() as db:
            checkpoints = CheckpointRepository(db)
            for block_number, block_events in groupby(sort_events(events), key=lambda e: e.block_number):
                block_new = 0
                for event in block_events:
                    seen += 1
                    try:
                        projection = self._processor.project(db, event)
                    except UNPROJECTABLE_EVENT_ERRORS as exc:
                        self._skip_event(event, exc)
                        continue
                    if projection.is_new:
                        block_new += 1
                checkpoints.advance(
                    self.stream_key,
                    position=block_number,
                    events_processed=block_new,
                    status=status,
                )
                db.commit()
                processed += block_new

            checkpoints.advance(self.stream_key, position=through_position, status=status)
            db.commit()
        self._refresh_checkpoint_view()
        return seen, processed

    def _on_live_events(self, events: list[ShipmentLockedEvent], to_block: int) -> None:
        self._last_known_height = max(self._last_known_height or 0, to_block)
        seen, processed = self._project_batch(events, to_block, status=CheckpointStatus.SYNCED)
        if seen:
            log_event(
                logger,
                logging.INFO,
                "live_events_processed",
                stream_key=self.stream_key,
                to_block=to_block,
                events_seen=seen,
                events_processed=processed,
            )

    def _on_subscription_error(self, exc: Exception) -> None:
        logger.warning("Live subscription failed stream=%s error=%s", self.stream_key, exc)
        self._handle_disconnect(exc)

    def _handle_disconnect(self, exc: Exception) -> None:
        """
        Bounded reconnect loop. Each attempt waits the configured delay, then
        re-runs the full replay-then-subscribe protocol from the checkpoint.
        """

        if not self._reconnect_lock.acquire(blocking=False):
            logger.info("Reconnect already in progress stream=%s", self.stream_key)
            return

        try:
            self._connected = False
            self._running = False
            self._teardown_subscription()
            self._record_error(str(exc))

            max_attempts = self._settings.reconnect_max_attempts
            while self._reconnect_attempts < max_attempts and not self._stop_requested:
                self._reconnect_attempts += 1
                delay = self._settings.reconnect_delay_for(self._reconnect_attempts)
                logger.warning(
                    "Indexer reconnecting stream=%s attempt=%s/%s wait_seconds=%.2f",
                    self.stream_key,
                    self._reconnect_attempts,
                    max_attempts,
                    delay,
                )
                self._sleep(delay)
                if self._stop_requested:
                    return

                try:
                    self._connect_and_sync(subscribe=True)
                except LedgerConfigurationError as config_exc:
                    self._record_error(str(config_exc))
                    logger.error("Indexer configuration error stream=%s error=%s", self.stream_key, config_exc)
                    return
                except (LedgerError, SQLAlchemyError) as retry_exc:
                    self._connected = False
                    self._running = False
                    self._teardown_subscription()
                    self._record_error(str(retry_exc))
                    continue
                except Exception as unexpected_exc:
                    self._halt_on_unexpected(unexpected_exc)
                    return

                log_event(logger, logging.INFO, "indexer_reconnected", stream_key=self.stream_key)
                return

            if not self._stop_requested:
                self._record_error(MAX_RECONNECT_MESSAGE)
                logger.error(
                    "Indexer gave up reconnecting stream=%s attempts=%s",
                    self.stream_key,
                    self._reconnect_attempts,
                )
        finally:
            self._reconnect_lock.release()

    def _skip_event(self, event: ShipmentLockedEvent, exc: Exception) -> None:
        log_event(
            logger,
            logging.ERROR,
            "event_skipped",
            stream_key=self.stream_key,
            shipment_hash=event.shipment_hash,
            block_number=event.block_number,
            tx_hash=event.tx_hash,
            error=f"{type(exc).__name__}: {exc}",
        )

    def _halt_on_unexpected(self, exc: Exception) -> None:
        """
        Stop the stream on a failure outside the transient taxonomy. The
        checkpoint goes to ERROR so health reports it; no reconnect is tried.
        """

        logger.exception("Indexer halted on unexpected error stream=%s", self.stream_key)
        self._connected = False
        self._running = False
        self._teardown_subscription()
        self._record_error(f"Unexpected error: {type(exc).__name__}: {exc}")

    def _teardown_subscription(self) -> None:
        subscription = self._subscription
        self._subscription = None
        if subscription is not None:
            subscription.cancel()

    def _record_error(self, message: str) -> None:
        try:
            with self._session_factory() as db:
                CheckpointRepository(db).set_error(self.stream_key, message)
                db.commit()
        except SQLAlchemyError:
            logger.exception("Failed to record checkpoint error stream=%s", self.stream_key)
            return
        self._refresh_checkpoint_view()

    def _refresh_checkpoint_view(self) -> None:
        try:
            with self._session_factory() as db:
                checkpoint = CheckpointRepository(db).get(self.stream_key)
                if checkpoint is None:
                    return
                self._last_checkpoint = _CheckpointView(
                    last_processed_position=checkpoint.last_processed_position,
                    status=checkpoint.status,
                    total_events_processed=checkpoint.total_events_processed,
                    last_error=checkpoint.last_error,
                    last_sync_at=checkpoint.last_sync_at,
                )
        except SQLAlchemyError as exc:
            logger.warning("Checkpoint read failed stream=%s error=%s", self.stream_key, exc)
