#!/usr/bin/env python3
"""HTTP transport for the remote sync authority.

RemoteSyncClient wraps an httpx.AsyncClient and performs the combined
sync exchange (see wire.py). Every failure mode is reported as a distinct
TransportOutcome on the returned ExchangeResult rather than raised, so
the orchestrator can record exactly what went wrong:

- HTTP_ERROR:      non-2xx status
- UNAUTHORIZED:    401/403, the bearer credential was refused
- MALFORMED:       body absent, not JSON, or not a valid envelope
- TIMEOUT:         no response within the connection timeout
- TRANSPORT_ERROR: connection refused, DNS failure and similar
- SERVER_ERROR:    2xx envelope with success=false

Transient failures (timeouts, transport errors, 408/429/5xx) are retried
with tenacity using exponential backoff, up to max_retry_attempts extra
attempts. The client does not renew credentials; it only surfaces
UNAUTHORIZED.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pastelist.errors import RemoteSyncError
from pastelist.sync_config import API_PREFIX
from pastelist.transport_constants import (
    CLIENT_VERSION,
    INITIAL_WAIT,
    MAX_WAIT,
    RETRYABLE_STATUS_CODES,
    WAIT_MULTIPLIER,
)
from pastelist.wire import (
    HEALTH_PATH,
    SYNC_PATH,
    ApiEnvelope,
    LocalItem,
    SyncRequest,
    SyncResponseData,
)

if TYPE_CHECKING:
    from typing import Self

    from pastelist.models import ClipboardRecord
    from pastelist.sync_config import ServerSyncConfig

logger = logging.getLogger(__name__)


class TransportOutcome(str, Enum):
    """Result category of one exchange."""

    OK = "ok"
    HTTP_ERROR = "http_error"
    UNAUTHORIZED = "unauthorized"
    MALFORMED = "malformed"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"
    SERVER_ERROR = "server_error"


@dataclass
class ExchangeResult:
    """Outcome of a request to the remote authority.

    Attributes:
        outcome: Result category.
        message: Human-readable summary.
        status_code: HTTP status, if a response arrived.
        data: Parsed sync payload for a successful exchange.
        error_code: Error code from an error envelope, if any.
    """

    outcome: TransportOutcome
    message: str
    status_code: int | None = None
    data: SyncResponseData | None = None
    error_code: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome is TransportOutcome.OK

    @property
    def pushed_count(self) -> int:
        """Number of uploaded items the server accepted."""
        if self.data is None:
            return 0
        return sum(1 for u in self.data.uploaded if u.success)

    def raise_for_outcome(self) -> None:
        """Raise RemoteSyncError unless the exchange succeeded."""
        if not self.success:
            raise RemoteSyncError(self.message, self.outcome, self.status_code)


class _RetryableStatus(Exception):
    """Raised inside the retry loop for a retryable HTTP status."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Sync request failed (attempt %d): %s, will retry",
        retry_state.attempt_number,
        exc,
    )


def _error_message(response: httpx.Response) -> tuple[str | None, str | None]:
    """Extract (code, message) from an error envelope, if present."""
    try:
        envelope = ApiEnvelope.model_validate(response.json())
    except (ValueError, ValidationError):
        return None, None
    if envelope.error is None:
        return None, envelope.message
    return envelope.error.code, envelope.error.message


class RemoteSyncClient:
    """Async client for the remote sync authority.

    Use as an async context manager:

        async with RemoteSyncClient(config) as client:
            result = await client.exchange(records, config.last_sync_time)
    """

    def __init__(
        self,
        config: ServerSyncConfig,
        token: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Server settings (URL, device id, timeout, retries).
            token: Bearer credential; defaults to config.access_token.
            transport: Optional httpx transport, e.g. for an in-process app.
        """
        self.config = config
        self.token = token if token is not None else config.access_token
        self.transport = transport
        self.retry_wait = wait_exponential(
            multiplier=WAIT_MULTIPLIER, min=INITIAL_WAIT, max=MAX_WAIT
        )
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        headers = {
            "X-Device-ID": self.config.device_id,
            "X-Client-Version": CLIENT_VERSION,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        self._client = httpx.AsyncClient(
            base_url=self.config.server_url.rstrip("/"),
            headers=headers,
            timeout=float(self.config.connection_timeout_seconds),
            transport=self.transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """The underlying HTTP client."""
        if self._client is None:
            raise RuntimeError("Client not initialized. Use async context manager.")
        return self._client

    async def _send(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Send a request, retrying transient failures.

        Raises:
            httpx.TimeoutException: If every attempt timed out.
            httpx.TransportError: If every attempt failed at transport level.
        """
        request_timeout = httpx.USE_CLIENT_DEFAULT if timeout is None else timeout
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retry_attempts + 1),
            wait=self.retry_wait,
            retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
            before_sleep=_log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self.client.request(
                        method, url, json=json, timeout=request_timeout
                    )
                    if response.status_code in RETRYABLE_STATUS_CODES:
                        raise _RetryableStatus(response)
                    return response
        except _RetryableStatus as e:
            return e.response
        raise AssertionError("unreachable")

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        timeout: float | None = None,
    ) -> httpx.Response | ExchangeResult:
        """Send a request, mapping transport exceptions to results."""
        try:
            return await self._send(method, url, json=json, timeout=timeout)
        except httpx.TimeoutException as e:
            logger.error("Sync request to %s timed out: %s", url, e)
            return ExchangeResult(TransportOutcome.TIMEOUT, f"Request timed out: {e}")
        except httpx.TransportError as e:
            logger.error("Sync request to %s failed: %s", url, e)
            return ExchangeResult(
                TransportOutcome.TRANSPORT_ERROR, f"Connection failed: {e}"
            )

    async def exchange(
        self,
        local_items: list[ClipboardRecord],
        last_sync_time: datetime | None,
        timeout: float | None = None,
    ) -> ExchangeResult:
        """Upload local items and fetch remote items in one request.

        Args:
            local_items: Records to offer the server (may be empty).
            last_sync_time: Watermark; only newer remote items are returned.
            timeout: Per-call timeout overriding the configured one.

        Returns:
            The exchange result; check .success before using .data.
        """
        body = SyncRequest(
            device_id=self.config.device_id,
            last_sync_time=last_sync_time,
            local_items=[LocalItem.from_record(r) for r in local_items],
        ).to_json()
        logger.info("Syncing with %s, uploading %d records", self.config.server_url, len(local_items))
        response = await self._request(
            "POST", f"{API_PREFIX}{SYNC_PATH}", json=body, timeout=timeout
        )
        if isinstance(response, ExchangeResult):
            return response
        return self._interpret(response)

    async def check_health(self, timeout: float | None = None) -> ExchangeResult:
        """Check that the server answers its health endpoint."""
        response = await self._request("GET", HEALTH_PATH, timeout=timeout)
        if isinstance(response, ExchangeResult):
            return response
        if not response.is_success:
            return ExchangeResult(
                TransportOutcome.HTTP_ERROR,
                f"Health check failed with status {response.status_code}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError:
            return ExchangeResult(
                TransportOutcome.MALFORMED,
                "Health check returned invalid JSON",
                status_code=response.status_code,
            )
        if not isinstance(body, dict) or body.get("status") != "ok":
            return ExchangeResult(
                TransportOutcome.MALFORMED,
                "Health check returned unexpected body",
                status_code=response.status_code,
            )
        return ExchangeResult(TransportOutcome.OK, "Server is healthy", response.status_code)

    def _interpret(self, response: httpx.Response) -> ExchangeResult:
        """Map a sync exchange response to an ExchangeResult."""
        status = response.status_code
        if status in (401, 403):
            code, message = _error_message(response)
            logger.error("Sync request unauthorized: %s", message)
            return ExchangeResult(
                TransportOutcome.UNAUTHORIZED,
                f"Unauthorized: {message or 'credential rejected'}",
                status_code=status,
                error_code=code,
            )
        if not response.is_success:
            code, message = _error_message(response)
            detail = f": {message}" if message else ""
            logger.error("Sync request failed with status %d%s", status, detail)
            return ExchangeResult(
                TransportOutcome.HTTP_ERROR,
                f"Sync failed with status {status}{detail}",
                status_code=status,
                error_code=code,
            )
        try:
            envelope = ApiEnvelope.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error("Sync response is not a valid envelope: %s", e)
            return ExchangeResult(
                TransportOutcome.MALFORMED,
                "Server returned a malformed response",
                status_code=status,
            )
        if not envelope.success:
            code = envelope.error.code if envelope.error else None
            message = envelope.error.message if envelope.error else "unknown error"
            return ExchangeResult(
                TransportOutcome.SERVER_ERROR,
                f"Server reported failure: {message}",
                status_code=status,
                error_code=code,
            )
        try:
            data = SyncResponseData.model_validate(envelope.data)
        except ValidationError as e:
            logger.error("Sync response data is invalid: %s", e)
            return ExchangeResult(
                TransportOutcome.MALFORMED,
                "Server returned malformed sync data",
                status_code=status,
            )
        return ExchangeResult(
            TransportOutcome.OK, envelope.message or "Sync succeeded", status, data
        )
