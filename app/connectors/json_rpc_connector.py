"""
app/connectors/json_rpc_connector.py

JSON-RPC ledger connector with retrying transport and polling subscriptions.
"""

from __future__ import annotations

import logging
import threading
import time
from itertools import count
from typing import Any

import requests
from apscheduler.schedulers.background import BackgroundScheduler
from eth_utils import is_address

from app.config import LedgerHTTPSettings, LedgerSettings
from app.connectors.base import (
    ErrorCallback,
    EventsCallback,
    LedgerConfigurationError,
    LedgerConnector,
    LedgerRequestError,
    LedgerSubscription,
)
from app.connectors.shipment_event_codec import SHIPMENT_LOCKED_TOPIC, decode_shipment_logs
from app.domain.ledger_event import ShipmentLockedEvent

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class PollingSubscription(LedgerSubscription):
    """
    Live subscription that polls the ledger head on an APScheduler interval job.
    """

    def __init__(
        self,
        *,
        connector: "JsonRpcLedgerConnector",
        from_block: int,
        interval_seconds: float,
        on_events: EventsCallback,
        on_error: ErrorCallback,
    ) -> None:
        self._connector = connector
        self._next_block = max(0, from_block)
        self._on_events = on_events
        self._on_error = on_error
        self._lock = threading.Lock()
        self._active = True
        self._scheduler = BackgroundScheduler(timezone="UTC")
        self._scheduler.add_job(
            self._poll,
            trigger="interval",
            seconds=interval_seconds,
            id="ledger_poll",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def _poll(self) -> None:
        if not self._active:
            return
        try:
            head = self._connector.get_block_number()
            if head < self._next_block:
                return
            events = self._connector.fetch_shipment_events(self._next_block, head)
            self._on_events(events, head)
            self._next_block = head + 1
        except Exception as exc:
            logger.warning("Ledger poll failed next_block=%s error=%s", self._next_block, exc)
            self.cancel()
            self._on_error(exc)


class JsonRpcLedgerConnector(LedgerConnector):
    """
    Read-only client for the shipment registry contract over JSON-RPC.
    """

    source = "json_rpc"

    def __init__(
        self,
        *,
        settings: LedgerSettings,
        http_settings: LedgerHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        if not settings.contract_address or not is_address(settings.contract_address):
            raise LedgerConfigurationError(
                f"CONTRACT_ADDRESS is missing or invalid: {settings.contract_address!r}"
            )
        self._settings = settings
        self._contract_address = settings.contract_address.lower()
        self._session = session or requests.Session()
        self._timeout_seconds = http_settings.timeout_seconds
        self._max_retries = http_settings.max_retries
        self._backoff_initial_seconds = http_settings.backoff_initial_seconds
        self._backoff_multiplier = http_settings.backoff_multiplier
        self._min_request_interval_seconds = (
            1.0 / http_settings.rate_limit_per_second if http_settings.rate_limit_per_second > 0 else 0.0
        )
        self._last_request_monotonic: float = 0.0
        self._request_ids = count(1)
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def contract_address(self) -> str:
        return self._contract_address

    def get_chain_id(self) -> int:
        return int(self._call("eth_chainId", []), 16)

    def get_block_number(self) -> int:
        return int(self._call("eth_blockNumber", []), 16)

    def fetch_shipment_events(self, from_block: int, to_block: int) -> list[ShipmentLockedEvent]:
        """
        Fetch ShipmentLocked logs in ``[from_block, to_block]``, split into
        windows of at most ``max_block_range`` blocks.
        """

        if to_block < from_block:
            return []

        events: list[ShipmentLockedEvent] = []
        window = self._settings.max_block_range
        start = from_block
        while start <= to_block:
            end = min(start + window - 1, to_block)
            entries = self._call(
                "eth_getLogs",
                [
                    {
                        "address": self._contract_address,
                        "topics": [SHIPMENT_LOCKED_TOPIC],
                        "fromBlock": hex(start),
                        "toBlock": hex(end),
                    }
                ],
            )
            if not isinstance(entries, list):
                raise LedgerRequestError("eth_getLogs returned an unexpected payload shape.")
            events.extend(decode_shipment_logs(entries))
            start = end + 1
        return events

    def subscribe(
        self,
        *,
        from_block: int,
        on_events: EventsCallback,
        on_error: ErrorCallback,
    ) -> LedgerSubscription:
        return PollingSubscription(
            connector=self,
            from_block=from_block,
            interval_seconds=self._settings.poll_interval_seconds,
            on_events=on_events,
            on_error=on_error,
        )

    def close(self) -> None:
        self._connected = False
        self._session.close()

    def _call(self, method: str, params: list[Any]) -> Any:
        """
        Execute one JSON-RPC call and return its ``result``.
        """

        body = {"jsonrpc": "2.0", "id": next(self._request_ids), "method": method, "params": params}
        response = self._request(body)
        try:
            payload = response.json()
        except ValueError as exc:
            self._connected = False
            raise LedgerRequestError(f"{method}: response was not valid JSON.") from exc

        if not isinstance(payload, dict):
            raise LedgerRequestError(f"{method}: unexpected response shape.")
        if payload.get("error"):
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise LedgerRequestError(f"{method}: RPC error: {message}")
        return payload.get("result")

    def _request(self, body: dict[str, Any]) -> requests.Response:
        """
        POST a JSON-RPC body with rate limiting and exponential backoff.
        """

        url = self._settings.rpc_url
        method = body.get("method")
        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            self._apply_rate_limit()
            try:
                response = self._session.post(url, json=body, timeout=self._timeout_seconds)
                if response.status_code in RETRYABLE_STATUS_CODES:
                    raise requests.HTTPError(
                        f"Retryable HTTP status code: {response.status_code}",
                        response=response,
                    )
                response.raise_for_status()
                self._connected = True
                return response
            except requests.HTTPError as exc:
                last_error = exc
                status_code = exc.response.status_code if exc.response is not None else None
                if status_code not in RETRYABLE_STATUS_CODES:
                    self._connected = False
                    logger.error(
                        "Ledger request failed method=%s status=%s url=%s error=%s",
                        method,
                        status_code,
                        url,
                        exc,
                    )
                    raise LedgerRequestError(f"{method}: non-retryable request failure.") from exc
            except (requests.Timeout, requests.ConnectionError) as exc:
                last_error = exc

            if attempt >= self._max_retries:
                break

            backoff_seconds = self._backoff_initial_seconds * (self._backoff_multiplier**attempt)
            logger.warning(
                "Ledger request retry method=%s attempt=%s/%s wait_seconds=%.2f",
                method,
                attempt + 1,
                self._max_retries,
                backoff_seconds,
            )
            time.sleep(backoff_seconds)

        self._connected = False
        logger.error("Ledger request exhausted retries method=%s url=%s error=%s", method, url, last_error)
        raise LedgerRequestError(f"{method}: request failed after retries.") from last_error

    def _apply_rate_limit(self) -> None:
        if self._min_request_interval_seconds <= 0:
            return

        now = time.monotonic()
        elapsed = now - self._last_request_monotonic
        remaining = self._min_request_interval_seconds - elapsed
        if remaining > 0:
            time.sleep(remaining)
        self._last_request_monotonic = time.monotonic()
