import logging
import threading
import time
from typing import Callable, Iterable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_DELAY_SECONDS = 0.1


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    items = list(items)
    return [items[i:i + size] for i in range(0, len(items), size)]


def _default_wait(stop_event: threading.Event | None) -> Callable[[float], bool]:
    """Return a wait(seconds) -> stopped callable."""
    if stop_event is not None:
        return stop_event.wait

    def _sleep(seconds: float) -> bool:
        time.sleep(seconds)
        return False
    return _sleep


def for_each_chunk(
    items: Iterable[T],
    size: int,
    delay_seconds: float,
    fn: Callable[[int, list[T]], None],
    *,
    stop_event: threading.Event | None = None,
    wait: Callable[[float], bool] | None = None,
) -> int:
    """
    Call fn(index, chunk) for consecutive chunks of `items`, one at a time,
    pausing `delay_seconds` between calls (never before the first, never
    after the last). The pause is the provider backpressure policy, so it
    is clamped to MIN_DELAY_SECONDS.

    Setting `stop_event` skips the remaining chunks; chunks already handed
    to fn keep their results. Returns the number of chunks processed.
    """
    chunks = chunked(list(items), size)
    delay = max(float(delay_seconds), MIN_DELAY_SECONDS)
    wait = wait or _default_wait(stop_event)

    processed = 0
    for index, chunk in enumerate(chunks):
        if stop_event is not None and stop_event.is_set():
            logger.info("[batch] stop requested; skipping %d remaining chunk(s)",
                        len(chunks) - index)
            break
        if index > 0 and wait(delay):
            logger.info("[batch] stop requested during delay; skipping %d remaining chunk(s)",
                        len(chunks) - index)
            break
        fn(index, chunk)
        processed += 1
    return processed
