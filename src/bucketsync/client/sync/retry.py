"""Bounded retry with exponential backoff.

Used for the short, bounded retries the engine allows itself: the remote
probe before a transfer and the bucket check at startup. Everything else is
retried by the next reconciliation pass.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from bucketsync.client.remote import AuthenticationError, TransientRemoteError

logger = logging.getLogger(__name__)

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_MAX_BACKOFF = 30.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0


def retry_with_backoff(
    func: Callable[[], Any],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    retryable_exceptions: tuple[type[Exception], ...] = (TransientRemoteError,),
    description: str = "Operation",
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Execute a function with exponential backoff retry.

    Authentication errors are never retried, even when they match
    ``retryable_exceptions``.

    Args:
        func: Function to execute.
        max_retries: Maximum number of retry attempts.
        initial_backoff: Initial backoff time in seconds.
        max_backoff: Maximum backoff time in seconds.
        backoff_multiplier: Multiplier for each retry.
        retryable_exceptions: Tuple of exception types to retry on.
        description: Label used in log messages.
        sleep: Sleep function (replaced in tests).

    Returns:
        Result of the function.

    Raises:
        The last exception if all retries fail.
    """
    backoff = initial_backoff
    attempt = 0

    while True:
        try:
            return func()
        except AuthenticationError:
            raise
        except retryable_exceptions as e:
            if attempt >= max_retries:
                logger.error("%s failed after %d retries: %s", description, max_retries, e)
                raise

            attempt += 1
            logger.warning(
                "%s failed (attempt %d/%d): %s. Retrying in %.1fs...",
                description,
                attempt,
                max_retries + 1,
                e,
                backoff,
            )
            sleep(backoff)
            backoff = min(backoff * backoff_multiplier, max_backoff)
