"""Resilience utilities for ER-Flow.

Retry policies for startup connectivity checks only. Case-affecting gateway
calls are never retried automatically: a failed assessment or plan is
surfaced to the user, who decides whether to try again.
"""

import logging
from typing import Callable, TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
    RetryCallState,
)

from erflow_core.exceptions import GatewayUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """Log a retry with the attempt number and the failure that caused it."""
    if retry_state.attempt_number > 1:
        logger.warning(
            f"[Resilience] Retry attempt {retry_state.attempt_number} for "
            f"{retry_state.fn.__name__} after {retry_state.seconds_since_start:.1f}s. "
            f"Exception: {retry_state.outcome.exception() if retry_state.outcome else 'Unknown'}"
        )


# Startup readiness policy for the assessment gateway
# - Wait 2^x * 1 seconds between retries (2s, 4s, 8s, 16s)
# - Stop after 5 attempts
# - Only GatewayUnavailableError is retried; rate limits and bad answers are not
# - Re-raise the exception if all retries fail
service_startup_retry = retry(
    retry=retry_if_exception_type(GatewayUnavailableError),
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=2, max=32),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    after=log_retry_attempt,
    reraise=True,
)


def create_custom_retry(
    max_attempts: int = 5,
    min_wait: float = 2,
    max_wait: float = 32,
    multiplier: float = 1,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Create a startup retry decorator with specific parameters.

    Args:
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time between retries (seconds)
        max_wait: Maximum wait time between retries (seconds)
        multiplier: Exponential backoff multiplier

    Returns:
        A retry decorator retrying GatewayUnavailableError only

    Example:
        ```python
        quick_probe = create_custom_retry(max_attempts=3, min_wait=0, max_wait=0)
        await quick_probe(client.ping)()
        ```
    """
    return retry(
        retry=retry_if_exception_type(GatewayUnavailableError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
