# offline_sync/services/dispatch/request_dispatcher.py
"""
Request dispatch for queued actions.

Translates a QueueItem into one HTTP call against the backend and classifies
the outcome as delivered, retryable, permanent, or unavailable:

- 2xx                          -> delivered
- 401, 408, 425, 429, 5xx      -> retryable
- any other 4xx (validation)   -> permanent, evicted without further retries
- timeouts / transport errors  -> retryable
- circuit breaker open         -> unavailable, nothing was sent

attempt() never raises for delivery problems; DispatchError is reserved for
misuse (attempting after close()).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from offline_sync.infrastructure.observability.logging import get_logger
from offline_sync.models.domain.queue_domain import QueueItem
from offline_sync.services.dispatch.circuit_breaker import CircuitBreaker

logger = get_logger(__name__)

# Request timeouts and connection limits
REQUEST_TIMEOUT = 30  # seconds
RETRYABLE_CLIENT_STATUS_CODES = {401, 408, 425, 429}
IDEMPOTENCY_HEADER = "X-Idempotency-Key"
BODY_METHODS = {"POST", "PUT", "PATCH"}


class DispatchError(Exception):
    """Custom exception for request dispatcher misuse."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = False):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    RETRYABLE = "retryable"
    PERMANENT = "permanent"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    outcome: DeliveryOutcome
    status_code: int | None = None
    error: str | None = None
    response_data: Any = None

    @property
    def delivered(self) -> bool:
        return self.outcome is DeliveryOutcome.DELIVERED

    @property
    def permanent(self) -> bool:
        return self.outcome is DeliveryOutcome.PERMANENT

    @property
    def unavailable(self) -> bool:
        """No request was sent; the attempt does not count against the item."""
        return self.outcome is DeliveryOutcome.UNAVAILABLE


def classify_status(status_code: int) -> DeliveryOutcome:
    if 200 <= status_code < 300:
        return DeliveryOutcome.DELIVERED
    if status_code in RETRYABLE_CLIENT_STATUS_CODES or status_code >= 500:
        return DeliveryOutcome.RETRYABLE
    if 400 <= status_code < 500:
        return DeliveryOutcome.PERMANENT
    # 1xx/3xx never reach us with redirects followed; treat as transient
    return DeliveryOutcome.RETRYABLE


class RequestDispatcher:
    """
    Backend client for queued actions.

    Wraps an httpx.AsyncClient and a CircuitBreaker; while the breaker is open
    attempts return an unavailable result without touching the network.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = REQUEST_TIMEOUT,
        auth_headers: dict[str, str] | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth_headers = dict(auth_headers or {})
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self._client = client or self._create_client(timeout)
        self._closed = False

    def _create_client(self, timeout: float) -> httpx.AsyncClient:
        """Create async HTTP client for backend requests."""
        return httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            headers={"Accept": "application/json"},
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if not self._closed:
            self._closed = True
            await self._client.aclose()

    def _build_request_kwargs(self, item: QueueItem) -> dict[str, Any]:
        headers = {**self.auth_headers, **(item.headers or {}), IDEMPOTENCY_HEADER: item.id}
        kwargs: dict[str, Any] = {"headers": headers}

        if item.payload is None:
            return kwargs
        if item.method in BODY_METHODS:
            kwargs["json"] = item.payload
        elif isinstance(item.payload, dict):
            kwargs["params"] = {k: v for k, v in item.payload.items() if v is not None}
        return kwargs

    def _url_for(self, item: QueueItem) -> str:
        if item.endpoint.startswith(("http://", "https://")):
            return item.endpoint
        endpoint = item.endpoint if item.endpoint.startswith("/") else f"/{item.endpoint}"
        return f"{self.base_url}{endpoint}"

    async def attempt(self, item: QueueItem) -> DeliveryResult:
        """
        Send one queued action.

        Args:
            item: Queued action to deliver

        Returns:
            DeliveryResult: classified outcome of the single attempt
        """
        if self._closed:
            raise DispatchError("Dispatcher is closed", operation="attempt")

        if not self.circuit_breaker.allow_request():
            logger.debug("Circuit breaker open, skipping request", item_id=item.id)
            return DeliveryResult(DeliveryOutcome.UNAVAILABLE, error="Circuit breaker is open")

        try:
            response = await self._client.request(
                item.method, self._url_for(item), **self._build_request_kwargs(item)
            )
        except httpx.TimeoutException as e:
            self.circuit_breaker.record_failure()
            logger.warning("Backend request timed out", item_id=item.id, endpoint=item.endpoint)
            return DeliveryResult(DeliveryOutcome.RETRYABLE, error=f"Request timed out: {e}")
        except httpx.RequestError as e:
            self.circuit_breaker.record_failure()
            logger.warning(
                "Backend request failed",
                item_id=item.id,
                endpoint=item.endpoint,
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeliveryResult(DeliveryOutcome.RETRYABLE, error=f"Connection error: {e}")

        return self._handle_response(item, response)

    def _handle_response(self, item: QueueItem, response: httpx.Response) -> DeliveryResult:
        outcome = classify_status(response.status_code)

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = response.text or None

        if outcome is DeliveryOutcome.RETRYABLE:
            self.circuit_breaker.record_failure()
        else:
            # A 4xx is still a healthy backend answering
            self.circuit_breaker.record_success()

        if outcome is DeliveryOutcome.DELIVERED:
            logger.debug(
                "Backend accepted request",
                item_id=item.id,
                endpoint=item.endpoint,
                status_code=response.status_code,
            )
            return DeliveryResult(outcome, status_code=response.status_code, response_data=data)

        error = f"HTTP {response.status_code}"
        if isinstance(data, dict):
            detail = data.get("detail") or data.get("message") or data.get("error")
            if detail:
                error = f"{error}: {detail}"

        logger.warning(
            "Backend rejected request",
            item_id=item.id,
            endpoint=item.endpoint,
            status_code=response.status_code,
            outcome=outcome.value,
        )
        return DeliveryResult(
            outcome, status_code=response.status_code, error=error, response_data=data
        )
