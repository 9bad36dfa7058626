"""Retry with exponential backoff for provider calls, failing fast on client errors."""
import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from weather_provider import ClientError, RetryExhaustedError, ValidationError

# Markers of errors that retrying can't fix
PERMANENT_MARKERS = ("invalid api key", "unauthorized", "forbidden")
_HTTP_4XX = re.compile(r"\bHTTP 4\d\d\b")


@dataclass
class RetryOptions:
    max_attempts: int = 3
    base_delay: float = 0.3  # seconds
    backoff_multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows failed attempt number `attempt` (1-based)."""
        return self.base_delay * self.backoff_multiplier ** (attempt - 1)


@dataclass
class RetryState:
    """Bookkeeping for a single with_retry call. Never persisted."""
    attempt: int = 0
    last_error: Optional[BaseException] = None
    delay: float = 0.0


def is_permanent_error(error: BaseException) -> bool:
    """
    Classify an error as permanent (client side) or transient.

    Permanent: validation errors, HTTP 4xx, explicit auth/key failures.
    Everything else (network errors, 5xx, timeouts) is transient.
    """
    if isinstance(error, (ValidationError, ClientError)):
        return True
    status = getattr(error, "status_code", None)
    if isinstance(status, int) and 400 <= status < 500:
        return True
    message = str(error)
    if _HTTP_4XX.search(message):
        return True
    lowered = message.lower()
    return any(marker in lowered for marker in PERMANENT_MARKERS)


async def with_retry(
    operation: Callable[[], Awaitable[Any]],
    name: str,
    options: Optional[RetryOptions] = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """
    Run an idempotent async operation with bounded retries.

    Args:
        operation: No-argument coroutine function returning the payload
        name: Label used in log messages
        options: Attempt count and backoff parameters
        sleep: Awaitable delay function (injected by tests)

    Returns:
        Whatever the first successful attempt returned

    Raises:
        ClientError: On a permanent error, after exactly one attempt
        RetryExhaustedError: When every attempt failed with a transient error
    """
    options = options or RetryOptions()
    state = RetryState()

    while True:
        state.attempt += 1
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            state.last_error = e

            if is_permanent_error(e):
                logging.warning(f"[{name}] Non-retryable error, giving up: {e}")
                if isinstance(e, ClientError):
                    raise
                raise ClientError(str(e), status_code=getattr(e, "status_code", None)) from e

            if state.attempt >= options.max_attempts:
                logging.error(f"[{name}] Failed after {options.max_attempts} attempts: {e}")
                raise RetryExhaustedError(
                    f"{name} failed after {options.max_attempts} attempts: {e}",
                    status_code=getattr(e, "status_code", None),
                    state=state,
                ) from e

            state.delay = options.delay_for(state.attempt)
            logging.warning(
                f"[{name}] Attempt {state.attempt}/{options.max_attempts} failed, "
                f"retrying in {state.delay:.2f}s: {e}"
            )
            await sleep(state.delay)
