"""
Rebuild the shipment index from the ledger.

Deletes every projected shipment and container plus the stream checkpoint,
then replays all ShipmentLocked events from INDEXER_START_BLOCK. Scan logs are
kept. Run with the API stopped.
"""

from __future__ import annotations

import argparse
import json
import logging
import os

from app.config import get_indexer_settings, get_ledger_http_settings, get_ledger_settings
from app.connectors import JsonRpcLedgerConnector, LedgerError
from app.services.indexer_engine import ShipmentIndexer
from db.session import get_session_factory


def main() -> int:
    parser = argparse.ArgumentParser(description="Rebuild the shipment index from the ledger.")
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm deletion of all projected shipments and containers.",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").strip().upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    if not args.yes:
        parser.error("refusing to delete the index without --yes")

    ledger_settings = get_ledger_settings()
    connector = JsonRpcLedgerConnector(
        settings=ledger_settings,
        http_settings=get_ledger_http_settings(),
    )
    indexer = ShipmentIndexer(
        connector=connector,
        session_factory=get_session_factory(),
        ledger_settings=ledger_settings,
        indexer_settings=get_indexer_settings(),
    )

    try:
        result = indexer.rebuild_from_chain(resume_live=False)
    except LedgerError as exc:
        logging.getLogger(__name__).error("Rebuild failed: %s", exc)
        return 1
    finally:
        indexer.stop()
        indexer.close()

    payload = {
        "stream_key": indexer.stream_key,
        "from_position": result.from_position,
        "to_position": result.to_position,
        "events_seen": result.events_seen,
        "events_processed": result.events_processed,
        "windows": result.windows,
    }
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
