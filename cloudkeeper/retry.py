"""Bounded retry with exponential backoff for idempotent provider reads.

Only describe-style calls go through here. Create, tag and delete are
not idempotent without provider idempotency keys and are never retried
automatically.

Example:
    from cloudkeeper.retry import RetryPolicy, retry_call, on_retryable

    records = retry_call(
        lambda: provider.describe_resources(flt, ctx),
        policy=RetryPolicy(max_attempts=3),
        on=on_retryable,
        ctx=ctx,
    )
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from cloudkeeper.context import OperationContext
from cloudkeeper.core.exceptions import ProviderError

type RetryPredicate = Callable[[BaseException], bool]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Backoff settings for a retried call.

    Args:
        max_attempts: Maximum number of attempts (including the first one).
        base_delay: Initial delay in seconds before the first retry.
        max_delay: Maximum delay cap in seconds.
        jitter: Whether to add up to 10% random jitter to each delay.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be >= 0")


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    delay = state.next_action.sleep if state.next_action else 0.0
    logger.warning(
        f"Retry {state.attempt_number} after {type(exc).__name__}: {exc}. "
        f"Waiting {delay:.1f}s..."
    )


def retry_call[T](
    fn: Callable[[], T],
    *,
    policy: RetryPolicy,
    on: RetryPredicate,
    ctx: OperationContext,
) -> T:
    """Call fn, retrying with exponential backoff while on(exc) is True.

    Sleeps go through ctx, so a cancelled context stops the retry loop
    with OperationCancelled instead of waiting out the backoff.
    """
    wait = wait_exponential(multiplier=policy.base_delay, max=policy.max_delay)
    if policy.jitter:
        wait = wait + wait_random(0, policy.base_delay * 0.1)

    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait,
        retry=retry_if_exception(on),
        sleep=ctx.sleep,
        before_sleep=_log_retry,
        reraise=True,
    )
    return retrying(fn)


# =============================================================================
# Common Predicates
# =============================================================================


def on_retryable(e: BaseException) -> bool:
    """Retry provider throttling and transient server errors."""
    return isinstance(e, ProviderError) and e.retryable
