"""
Slack Notifications
===================

Incoming-webhook delivery for ticket alerts and triage digests.

Delivery is best-effort: `post_blocks` returns False instead of raising,
with a circuit breaker so a dead webhook is not hammered on every ticket.
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from supportdesk.config import Settings, settings as default_settings
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for the webhook.

    States:
    - CLOSED: requests pass through
    - OPEN: after `failure_threshold` failed deliveries, reject for `recovery_timeout` seconds
    - HALF_OPEN: after the timeout, let one trial delivery through
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._clock() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._failure_count >= self.failure_threshold or self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class SlackClient:
    """
    Slack webhook client with circuit breaker and bounded retry.

    An unset webhook URL disables delivery; `post_blocks` then returns
    False without any network call.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        config: Optional[Settings] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        backoff_base: float = 1.0
    ):
        config = config or default_settings
        self._webhook_url = webhook_url if webhook_url is not None else config.slack_webhook_url
        self._timeout = config.slack_timeout_seconds
        self._max_retries = config.slack_max_retries
        self._backoff_base = backoff_base
        self._circuit_breaker = circuit_breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def post_blocks(
        self,
        blocks: List[Dict[str, Any]],
        text: str = "",
        context: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Post a Block Kit message.

        Args:
            blocks: Block Kit blocks
            text: Plain-text fallback for notifications
            context: Extra log fields (ticket_id, report_id)

        Returns:
            True if Slack accepted the message, False otherwise
        """
        context = context or {}

        if not self._webhook_url:
            logger.debug("Slack webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning("Circuit breaker open, skipping Slack notification", extra=context)
            return False

        payload = {"text": text, "blocks": blocks}

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=payload)

                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info("Slack notification sent", extra=context)
                    return True

                logger.warning(
                    "Slack webhook returned non-200",
                    extra={"status_code": response.status_code, "attempt": attempt + 1, **context}
                )
            except httpx.HTTPError as e:
                logger.error(
                    "Slack notification failed",
                    extra={"error": str(e), "attempt": attempt + 1, **context}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base * (2 ** attempt))

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
