import time
from collections.abc import Callable
from typing import TypeVar

from hls_worker.logging.logger import Log

T = TypeVar("T")


def linear_backoff(attempt: int, base: float) -> float:
    """Seconds to wait after the given failed attempt: base * attempt."""
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    return base * attempt


def retry_call(
    fn: Callable[[], T],
    *,
    attempts: int,
    base: float,
    retry_on: tuple[type[BaseException], ...],
    description: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call fn up to `attempts` times, sleeping linear_backoff between failures.

    Only exceptions in retry_on are retried; the last one is re-raised once
    the ceiling is reached.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as exc:
            if attempt == attempts:
                Log.error(f"{description} failed after {attempts} attempts: {exc}")
                raise
            delay = linear_backoff(attempt, base)
            Log.warning(
                f"{description} failed (attempt {attempt}/{attempts}), "
                f"retrying in {delay:.1f}s: {exc}"
            )
            sleep(delay)
    raise AssertionError("unreachable")
