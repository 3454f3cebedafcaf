"""
Callback Invoker

Purpose:
--------
Calls a user's registered callback URL when its trigger link is hit and
reports what happened. The result feeds both the callback log row and the
notification fan-out.

Outcome rules:
--------------
- Any 2xx response is a success
- Non-2xx responses are failures, with the status code kept
- Timeouts and connection errors are failures without a status code
"""

import time
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)

USER_AGENT = "WebTrigger/1.0"


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of one callback request."""

    success: bool
    status_code: Optional[int] = None
    response_time: Optional[int] = None  # milliseconds
    error: Optional[str] = None


class CallbackInvoker:
    """Issues the HTTP request behind a trigger."""

    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    async def invoke(self, url: str) -> InvocationResult:
        """
        GET the callback URL.

        Args:
            url: Registered callback URL

        Returns:
            InvocationResult describing the response or the transport failure
        """
        started = time.perf_counter()

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self.transport,
                headers={"User-Agent": USER_AGENT},
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            elapsed = int((time.perf_counter() - started) * 1000)
            logger.warning("Callback request timed out", url=url, response_time=elapsed)
            return InvocationResult(
                success=False,
                response_time=elapsed,
                error=f"Request timed out after {self.timeout:g}s",
            )
        except httpx.HTTPError as e:
            elapsed = int((time.perf_counter() - started) * 1000)
            logger.warning("Callback request failed", url=url, error=str(e))
            return InvocationResult(success=False, response_time=elapsed, error=str(e) or type(e).__name__)

        elapsed = int((time.perf_counter() - started) * 1000)

        if response.is_success:
            return InvocationResult(
                success=True, status_code=response.status_code, response_time=elapsed
            )

        return InvocationResult(
            success=False,
            status_code=response.status_code,
            response_time=elapsed,
            error=f"HTTP {response.status_code}: {response.reason_phrase}",
        )
