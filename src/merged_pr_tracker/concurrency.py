"""
Concurrency primitives shared by the catalog, calendar and analyzer.

LazyValue is a single-flight memoized value: the first caller runs the loader,
concurrent callers wait on the same future, later callers read the result.
run_bounded fans work out over a bounded thread pool and joins on all of it.
"""

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from contextlib import nullcontext
from typing import Generic, TypeVar

from ..shared_utilities import get_logger

T = TypeVar("T")
R = TypeVar("R")

logger = get_logger(__name__)


class LazyValue(Generic[T]):
    """Thread-safe lazily computed value.

    Args:
        loader: Zero-argument callable producing the value
        name: Label used in log messages
        cache_errors: When True a failed load is terminal and every later
            caller gets the same exception. When False the failure is handed
            to the callers that were waiting and the next call retries.
    """

    def __init__(
        self, loader: Callable[[], T], name: str = "value", cache_errors: bool = True
    ):
        self._loader = loader
        self.name = name
        self.cache_errors = cache_errors
        self._lock = threading.Lock()
        self._future: Future | None = None
        self._load_count = 0

    @property
    def load_count(self) -> int:
        """Number of times the loader has been invoked."""
        return self._load_count

    @property
    def is_loaded(self) -> bool:
        future = self._future
        return future is not None and future.done() and future.exception() is None

    def get(self, timeout: float | None = None) -> T:
        """Return the value, loading it on first use.

        Raises whatever the loader raised.
        """
        with self._lock:
            future = self._future
            owner = future is None
            if owner:
                future = Future()
                future.set_running_or_notify_cancel()
                self._future = future
                self._load_count += 1

        if owner:
            self._load(future)
        return future.result(timeout=timeout)

    def start(self) -> threading.Thread | None:
        """Trigger loading on a daemon thread if nobody has started it yet."""
        with self._lock:
            if self._future is not None:
                return None
        thread = threading.Thread(
            target=self._background_get, name=f"load-{self.name}", daemon=True
        )
        thread.start()
        return thread

    def reset(self) -> None:
        """Forget the loaded value so the next get() reloads."""
        with self._lock:
            self._future = None

    def _background_get(self) -> None:
        try:
            self.get()
        except Exception as e:
            # Surfaced to foreground callers through the future
            logger.debug(f"Background load of {self.name} failed: {e}")

    def _load(self, future: Future) -> None:
        try:
            value = self._loader()
        except BaseException as e:
            future.set_exception(e)
            if not self.cache_errors:
                with self._lock:
                    if self._future is future:
                        self._future = None
            return
        future.set_result(value)


def run_bounded(
    func: Callable[[T], R],
    items: Iterable[T],
    max_workers: int,
    semaphore: threading.Semaphore | None = None,
    on_error: Callable[[T, Exception], R] | None = None,
    name: str = "worker",
) -> list[R]:
    """Apply func to every item on a bounded thread pool.

    Results come back in input order. Each task writes only its own slot of a
    pre-sized list, and the call returns after every task has finished. When
    on_error is given, a task's exception is converted into that task's result
    instead of propagating.

    Args:
        func: Work to run per item
        items: Inputs
        max_workers: Pool size
        semaphore: Optional permit shared with other fan-outs, held for the
            duration of each task
        on_error: Converts a failed task into a result
        name: Thread name prefix

    Returns:
        List of results aligned with items
    """
    if max_workers < 1:
        raise ValueError("max_workers must be at least 1")

    work = list(items)
    results: list = [None] * len(work)
    if not work:
        return results

    def run_one(index: int, item: T) -> None:
        with semaphore if semaphore is not None else nullcontext():
            try:
                results[index] = func(item)
            except Exception as e:
                if on_error is None:
                    raise
                results[index] = on_error(item, e)

    with ThreadPoolExecutor(
        max_workers=min(max_workers, len(work)), thread_name_prefix=name
    ) as executor:
        futures = [
            executor.submit(run_one, index, item) for index, item in enumerate(work)
        ]
        wait(futures)

    for future in futures:
        future.result()

    return results
