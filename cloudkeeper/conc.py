"""Run independent controllers on worker threads.

Controller calls block for minutes, so a caller managing several
resources runs one controller per thread. Contextvars (the active event
callback among them) are copied into every worker.
"""

import contextvars
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Settled[I, O]:
    """Outcome of one item: either a value or the exception it raised."""

    item: I
    value: O | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def map_concurrently[I, O](
    fn: Callable[[I], O],
    items: Iterable[I],
    concurrency: int | None = None,
) -> Iterator[O]:
    """Apply function to items concurrently, preserving order.

    Args:
        fn: Function to apply to each item.
        items: Items to process.
        concurrency: Max concurrent workers. None = len(items).

    Yields:
        Results in same order as input items. The first exception is re-raised.

    Example:
        >>> list(map_concurrently(lambda c: c.reconcile(), controllers, concurrency=4))
        [<ReconcileAction.CREATED: 'created'>, ...]
    """
    items_list = list(items)
    if not items_list:
        return

    # Fresh context copy per task: ctx.run cannot be entered concurrently on one object
    workers = concurrency if concurrency is not None else len(items_list)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [
            executor.submit(contextvars.copy_context().run, fn, item)
            for item in items_list
        ]
        for future in futures:
            yield future.result()


def for_each_concurrently[I](
    fn: Callable[[I], object],
    items: Iterable[I],
    concurrency: int | None = None,
) -> None:
    """Apply function to items concurrently, discarding results. Fails fast."""
    for _ in map_concurrently(fn, items, concurrency):
        pass


def settle_concurrently[I, O](
    fn: Callable[[I], O],
    items: Iterable[I],
    concurrency: int | None = None,
) -> list[Settled[I, O]]:
    """Apply function to every item and collect each outcome, failures included.

    One resource failing does not stop the others, which is what a
    workflow step reconciling a whole node wants.
    """

    def attempt(item: I) -> Settled[I, O]:
        try:
            return Settled(item, value=fn(item))
        except Exception as e:
            return Settled(item, error=e)

    return list(map_concurrently(attempt, items, concurrency))
