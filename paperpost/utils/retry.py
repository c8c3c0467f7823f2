from __future__ import annotations

import time
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")


def sleep_ms(milliseconds: float) -> None:
    time.sleep(milliseconds / 1000)


def run_with_backoff(
    *,
    operation: Callable[[], T],
    should_retry: Callable[[Exception], bool],
    backoff_schedule_ms: Sequence[float] = (500, 1500),
    sleep_fn: Callable[[float], None] = sleep_ms,
    on_retry: Callable[[int, float, Exception], None] | None = None,
) -> T:
    """Run ``operation`` up to ``1 + len(backoff_schedule_ms)`` times.

    The last error is re-raised once the schedule is exhausted or
    ``should_retry`` rejects it.
    """
    attempt = 0
    while True:
        try:
            return operation()
        except Exception as error:  # noqa: BLE001
            if attempt >= len(backoff_schedule_ms) or not should_retry(error):
                raise

            delay = backoff_schedule_ms[attempt]
            if on_retry is not None:
                on_retry(attempt + 1, delay, error)
            sleep_fn(delay)
            attempt += 1
