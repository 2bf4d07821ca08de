"""
db/repositories/checkpoint_repository.py

Checkpoint store for ledger ingestion streams.

``advance`` is a single guarded UPDATE: the position only moves forward, and
the processed counter is incremented in the same statement.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from db.models.checkpoint import CheckpointStatus, IndexerCheckpoint
from db.repositories.dialect import conflict_insert
from db.repositories.types import WriteOutcome


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class CheckpointRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, stream_key: str) -> IndexerCheckpoint | None:
        stmt = (
            select(IndexerCheckpoint)
            .where(IndexerCheckpoint.stream_key == stream_key)
            .execution_options(populate_existing=True)
        )
        return self._session.scalars(stmt).one_or_none()

    def get_or_create(
        self,
        stream_key: str,
        *,
        start_position: int,
        chain_identity: int,
        source_address: str,
    ) -> IndexerCheckpoint:
        """
        Return the stream's checkpoint, creating it at ``start_position`` on first run.
        """

        stmt = (
            conflict_insert(self._session, IndexerCheckpoint)
            .values(
                stream_key=stream_key,
                last_processed_position=max(0, start_position),
                chain_identity=chain_identity,
                source_address=source_address.lower(),
                total_events_processed=0,
                status=CheckpointStatus.STOPPED,
            )
            .on_conflict_do_nothing(index_elements=["stream_key"])
        )
        self._session.execute(stmt)
        checkpoint = self.get(stream_key)
        if checkpoint is None:
            raise RuntimeError(f"Checkpoint could not be created for stream '{stream_key}'.")
        return checkpoint

    def advance(
        self,
        stream_key: str,
        *,
        position: int,
        events_processed: int = 0,
        status: str = CheckpointStatus.SYNCED,
    ) -> str:
        """
        Move the checkpoint forward to ``position`` and add ``events_processed``.

        A position behind the stored one is never written; the counter is
        still incremented so that newly projected events are not lost from
        the total.
        """

        result = self._session.execute(
            update(IndexerCheckpoint)
            .where(
                IndexerCheckpoint.stream_key == stream_key,
                IndexerCheckpoint.last_processed_position <= position,
            )
            .values(
                last_processed_position=position,
                total_events_processed=IndexerCheckpoint.total_events_processed + events_processed,
                status=status,
                last_error=None,
                last_sync_at=_now_utc(),
            )
        )
        if result.rowcount == 1:
            return WriteOutcome.APPLIED

        if events_processed:
            self._session.execute(
                update(IndexerCheckpoint)
                .where(IndexerCheckpoint.stream_key == stream_key)
                .values(
                    total_events_processed=IndexerCheckpoint.total_events_processed + events_processed,
                    last_sync_at=_now_utc(),
                )
            )
        return WriteOutcome.ALREADY_SATISFIED

    def set_status(self, stream_key: str, status: str) -> None:
        self._session.execute(
            update(IndexerCheckpoint)
            .where(IndexerCheckpoint.stream_key == stream_key)
            .values(status=status, last_sync_at=_now_utc())
        )

    def set_error(self, stream_key: str, error_message: str) -> None:
        self._session.execute(
            update(IndexerCheckpoint)
            .where(IndexerCheckpoint.stream_key == stream_key)
            .values(
                status=CheckpointStatus.ERROR,
                last_error=error_message[:2000],
                last_sync_at=_now_utc(),
            )
        )

    def delete(self, stream_key: str) -> int:
        result = self._session.execute(
            delete(IndexerCheckpoint).where(IndexerCheckpoint.stream_key == stream_key)
        )
        return result.rowcount or 0

    def list_all(self) -> Sequence[IndexerCheckpoint]:
        stmt = (
            select(IndexerCheckpoint)
            .order_by(IndexerCheckpoint.updated_at.desc())
            .execution_options(populate_existing=True)
        )
        return self._session.scalars(stmt).all()
