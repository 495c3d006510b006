import asyncio
import os
import pathlib
from concurrent.futures import ThreadPoolExecutor
from typing import Awaitable, Callable, TypeVar

from ..classifier import LinkClassifier, LinkMatch


T = TypeVar('T')


class Processor:
    """Runs blocking filesystem inspection on a fixed pool of threads.

    Coroutines hand work to the pool and await its completion, so the event loop
    stays responsive while lstat, realpath and readlink calls are in flight.
    """
    def __init__(self, concurrency: int | None = None):
        if concurrency is None:
            concurrency = os.cpu_count() or 1

        self._executor = ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix='lfinder-worker')

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        # Jobs abandoned by a timeout or cancellation are dropped, not run
        self._executor.shutdown(wait=True, cancel_futures=True)

    def classify(self, classifier: LinkClassifier, path: pathlib.Path) -> Awaitable[LinkMatch | None]:
        return self._evaluate(classifier.classify, path)

    def _evaluate(self, func: Callable[..., T], *args) -> Awaitable[T]:
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._executor, func, *args)
