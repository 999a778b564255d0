"""Poll-until-state primitive shared by providers.

Provider "wait until X" calls are bounded poll loops. This module holds
the loop once so every provider gets the same timeout, interval and
cancellation behavior.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from loguru import logger

from cloudkeeper.context import OperationContext
from cloudkeeper.core.exceptions import ProviderError, WaitTimeoutError


def wait_for_state[T](
    poll_fn: Callable[[], T | None],
    ready_check: Callable[[T], bool],
    *,
    ctx: OperationContext,
    terminal_check: Callable[[T], bool] | None = None,
    timeout: float = 300.0,
    interval: float = 5.0,
    description: str = "resource",
) -> T:
    """Block until poll_fn returns something that passes ready_check.

    Args:
        poll_fn: Reads the current provider state. None means "not visible yet".
        ready_check: Returns True when the resource is ready.
        ctx: Operation context; checked before every poll and during sleeps.
        terminal_check: Returns True if the resource reached a failure state.
        timeout: Maximum time to wait in seconds.
        interval: Time between polls in seconds.
        description: Description for error messages.

    Returns:
        The last polled value, which passed ready_check.

    Raises:
        WaitTimeoutError: If timeout is exceeded.
        ProviderError: If the resource reaches a terminal failure state.
        OperationCancelled: If ctx is cancelled or its deadline passes.
    """
    start = time.monotonic()

    while True:
        ctx.check()
        result = poll_fn()

        if result is not None:
            if ready_check(result):
                return result

            if terminal_check is not None and terminal_check(result):
                raise ProviderError(f"{description} reached terminal state: {result}")

        elapsed = time.monotonic() - start
        if elapsed > timeout:
            raise WaitTimeoutError(
                f"Timeout waiting for {description} after {timeout:.1f}s"
            )

        logger.debug(f"Waiting for {description} ({elapsed:.0f}s elapsed)")
        ctx.sleep(interval)
