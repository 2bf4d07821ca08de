"""
app/connectors/shipment_event_codec.py

Decode raw ``eth_getLogs`` entries into ShipmentLocked events.

Event layout: ``supplier`` is the only indexed argument (``topics[1]``); the
remaining arguments are ABI-encoded in ``data`` in declaration order.
"""

from __future__ import annotations

import logging
from typing import Any

from eth_abi import decode
from eth_utils import keccak

from app.connectors.base import LedgerEventDecodeError
from app.domain.ledger_event import ShipmentLockedEvent, sort_events

logger = logging.getLogger(__name__)

SHIPMENT_LOCKED_SIGNATURE = "ShipmentLocked(string,address,string,uint256,uint256,uint256)"
SHIPMENT_LOCKED_TOPIC = "0x" + keccak(text=SHIPMENT_LOCKED_SIGNATURE).hex()
DATA_TYPES = ["string", "string", "uint256", "uint256", "uint256"]
MAX_SHIPMENT_HASH_LENGTH = 132
MAX_BATCH_ID_LENGTH = 128
# Storage bounds: container counts and quantities are 32-bit columns, the
# ledger timestamp and total quantity are 64-bit.
MAX_CONTAINERS_PER_SHIPMENT = 10_000
MAX_QUANTITY_PER_CONTAINER = 2**31 - 1
MAX_LEDGER_TIMESTAMP = 2**63 - 1


def _hex_to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith(("0x", "0X")) else int(value)
    raise LedgerEventDecodeError(f"Expected hex quantity, got {value!r}")


def _hex_to_bytes(value: str) -> bytes:
    stripped = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        return bytes.fromhex(stripped)
    except ValueError as exc:
        raise LedgerEventDecodeError(f"Invalid hex payload: {value[:20]}...") from exc


def decode_shipment_log(entry: dict[str, Any]) -> ShipmentLockedEvent:
    """
    Decode one log entry into a ShipmentLockedEvent.
    """

    topics = entry.get("topics") or []
    if len(topics) < 2:
        raise LedgerEventDecodeError("ShipmentLocked log is missing the supplier topic.")
    if str(topics[0]).lower() != SHIPMENT_LOCKED_TOPIC:
        raise LedgerEventDecodeError(f"Unexpected event topic: {topics[0]}")

    supplier_topic = _hex_to_bytes(str(topics[1]))
    supplier = "0x" + supplier_topic[-20:].hex()

    try:
        shipment_hash, batch_id, containers, per_container, timestamp = decode(
            DATA_TYPES, _hex_to_bytes(str(entry.get("data", "0x")))
        )
    except Exception as exc:
        raise LedgerEventDecodeError(f"Could not decode ShipmentLocked data: {exc}") from exc

    tx_hash = entry.get("transactionHash")
    block_number = entry.get("blockNumber")
    if not tx_hash or block_number is None:
        raise LedgerEventDecodeError("ShipmentLocked log is missing transaction metadata.")
    if not shipment_hash or len(shipment_hash) > MAX_SHIPMENT_HASH_LENGTH:
        raise LedgerEventDecodeError(f"ShipmentLocked hash has invalid length: {len(shipment_hash)}")
    if len(batch_id) > MAX_BATCH_ID_LENGTH:
        raise LedgerEventDecodeError(f"ShipmentLocked batch id has invalid length: {len(batch_id)}")
    if not 1 <= containers <= MAX_CONTAINERS_PER_SHIPMENT or not 1 <= per_container <= MAX_QUANTITY_PER_CONTAINER:
        raise LedgerEventDecodeError(
            f"ShipmentLocked values out of range hash={shipment_hash!r} "
            f"containers={containers} quantity={per_container}"
        )
    if timestamp > MAX_LEDGER_TIMESTAMP:
        raise LedgerEventDecodeError(
            f"ShipmentLocked timestamp out of range hash={shipment_hash!r} timestamp={timestamp}"
        )

    return ShipmentLockedEvent(
        shipment_hash=shipment_hash,
        supplier=supplier,
        batch_id=batch_id,
        number_of_containers=int(containers),
        quantity_per_container=int(per_container),
        ledger_timestamp=int(timestamp),
        tx_hash=str(tx_hash).lower(),
        block_number=_hex_to_int(block_number),
        log_index=_hex_to_int(entry.get("logIndex", 0)),
    )


def decode_shipment_logs(entries: list[dict[str, Any]]) -> list[ShipmentLockedEvent]:
    """
    Decode a batch of log entries, skipping logs removed by a reorg.

    Undecodable entries are logged and skipped; they never stop the batch.
    """

    events: list[ShipmentLockedEvent] = []
    for entry in entries:
        if entry.get("removed"):
            continue
        try:
            events.append(decode_shipment_log(entry))
        except LedgerEventDecodeError as exc:
            logger.warning(
                "Skipping undecodable ShipmentLocked log tx=%s log_index=%s error=%s",
                entry.get("transactionHash"),
                entry.get("logIndex"),
                exc,
            )
    return sort_events(events)
