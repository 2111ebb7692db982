"""Concurrency test utilities for multi-threaded integration tests.

Each worker thread drives the async registry services through its own event
loop, so the stores see truly concurrent callers.
"""

import asyncio
from threading import Barrier, Thread
from typing import Any, Awaitable, Callable, List, Optional


def run_in_threads(
    targets: List[Callable[[], None]], join_timeout: float = 10.0
) -> List[Optional[BaseException]]:
    """Execute multiple functions concurrently in separate threads.

    Args:
        targets: List of functions to execute concurrently
        join_timeout: Maximum time to wait for threads to complete

    Returns:
        List of exceptions (or None) aligned with targets
    """
    threads: List[Thread] = []
    errors: List[Optional[BaseException]] = [None] * len(targets)

    def wrap(i: int, fn: Callable[[], None]) -> None:
        try:
            fn()
        except BaseException as e:
            errors[i] = e

    for i, target in enumerate(targets):
        t = Thread(target=wrap, args=(i, target), daemon=True)
        threads.append(t)
        t.start()

    for t in threads:
        t.join(timeout=join_timeout)

    return errors


def async_worker(
    coro_fn: Callable[[], Awaitable[Any]],
    results: List[Any],
    index: int,
    barrier: Optional[Barrier] = None,
) -> Callable[[], None]:
    """Wrap a coroutine function to run on its own event loop in a thread.

    The coroutine's result is stored at ``results[index]``; exceptions are
    left to :func:`run_in_threads` to collect.
    """
    def _inner():
        if barrier is not None:
            barrier.wait()
        results[index] = asyncio.run(coro_fn())
    return _inner


def barrier_sync(n: int) -> Barrier:
    """Create a threading barrier for synchronizing n threads."""
    return Barrier(n)
