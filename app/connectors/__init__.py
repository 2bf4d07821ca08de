"""
app/connectors package marker.
"""

from app.connectors.base import (
    LedgerConfigurationError,
    LedgerConnector,
    LedgerError,
    LedgerEventDecodeError,
    LedgerRequestError,
    LedgerSubscription,
)
from app.connectors.json_rpc_connector import JsonRpcLedgerConnector

__all__ = [
    "JsonRpcLedgerConnector",
    "LedgerConfigurationError",
    "LedgerConnector",
    "LedgerError",
    "LedgerEventDecodeError",
    "LedgerRequestError",
    "LedgerSubscription",
]
