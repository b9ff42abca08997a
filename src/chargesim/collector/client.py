"""HTTP client for the remote telemetry collector."""

import logging
from datetime import datetime
from typing import Any

import httpx

from ..logging_utils import log_collector_call
from ..models import TelemetryRecord

logger = logging.getLogger(__name__)


class CollectorError(Exception):
    """
    A collector call failed.

    Covers both non-success HTTP responses and transport errors; the message
    is suitable for showing to the user.
    """

    def __init__(self, operation: str, message: str, status_code: int | None = None):
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class CollectorClient:
    """
    Async client for the collector's session API.

    Usage:
        collector = CollectorClient("http://localhost:8000")
        tx_id = await collector.start_session(datetime.now(UTC), 0.2)
        await collector.send_update(tx_id, record)
        await collector.end_session(tx_id, record)
        await collector.close()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the collector client.

        Args:
            base_url: Collector root URL, e.g. http://localhost:8000
            timeout: Per-request timeout in seconds
            http_client: Pre-built client (tests inject one with a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _post(
        self,
        operation: str,
        path: str,
        failure: str,
        payload: dict[str, Any] | None = None,
        transaction_id: str | None = None,
    ) -> httpx.Response:
        client = await self._get_client()
        url = f"{self.base_url}/{path}"
        log_collector_call(logger, operation, transaction_id, payload=payload, url=url)

        try:
            if payload is None:
                response = await client.post(url)
            else:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise CollectorError(operation, f"{failure}: {e}") from e

        if not response.is_success:
            raise CollectorError(
                operation,
                f"{failure}: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        return response

    async def start_session(self, started_at: datetime, soc_start: float) -> str:
        """
        Open a session on the collector.

        Args:
            started_at: Session start timestamp
            soc_start: Initial state of charge as a fraction of capacity

        Returns:
            The collector-assigned transaction ID

        Raises:
            CollectorError: on a failed call or a response without transaction_id
        """
        response = await self._post(
            "start_charge",
            "start_charge",
            "Failed to start charge",
            payload={"started_at": started_at.isoformat(), "soc_start": soc_start},
        )
        try:
            transaction_id = response.json()["transaction_id"]
        except (ValueError, KeyError, TypeError) as e:
            raise CollectorError(
                "start_charge",
                f"Failed to start charge: malformed response {response.text!r}",
                status_code=response.status_code,
            ) from e
        return str(transaction_id)

    async def send_update(self, transaction_id: str, record: TelemetryRecord) -> None:
        """Report one telemetry sample."""
        await self._post(
            "charge_update",
            f"{transaction_id}/charge_update",
            "Failed to send charge update",
            payload=record.to_payload(),
            transaction_id=transaction_id,
        )

    async def end_session(
        self, transaction_id: str, final_record: TelemetryRecord | None = None
    ) -> None:
        """Close the session, optionally with the final telemetry snapshot."""
        await self._post(
            "charge_end",
            f"{transaction_id}/charge_end",
            "Failed to end charge",
            payload=final_record.to_payload() if final_record is not None else None,
            transaction_id=transaction_id,
        )
