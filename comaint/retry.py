"""
Retries with exponential backoff while the database comes up.

Only `connect_database` retries. Collaborator calls made during a
resolution are never retried.
"""

import time
from itertools import islice
from typing import Any, Callable, Iterator, Optional, Tuple, Type


class RetryError(Exception):
    """Raised when every attempt has failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def backoff_delays(
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
) -> Iterator[float]:
    """Yield base_delay, base_delay * exponential_base, ... capped at max_delay."""
    delay = base_delay
    while True:
        yield min(delay, max_delay)
        if delay < max_delay:
            delay *= exponential_base


def retry_call(
    func: Callable[[], Any],
    max_retries: int = 3,
    delays: Optional[Iterator[float]] = None,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """
    Call `func` until it succeeds or `max_retries` retries have failed.

    Args:
        func: Callable taking no arguments
        max_retries: Retries after the first attempt (0 = single attempt)
        delays: Waits between attempts (default: backoff_delays())
        exceptions: Exception types that trigger a retry; others propagate
        on_retry: Called as on_retry(retry_number, error, delay) before each wait
        sleep: Waiting function

    Returns:
        The first successful result of `func`

    Raises:
        RetryError: After max_retries + 1 failed attempts, chained to the last error
    """
    if max_retries < 0:
        raise ValueError("max_retries must not be negative")
    waits = islice(delays if delays is not None else backoff_delays(), max_retries)

    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except exceptions as e:
            delay = next(waits, None)
            if delay is None:
                raise RetryError(attempt, e) from e
            if on_retry is not None:
                on_retry(attempt, e, delay)
            sleep(delay)
