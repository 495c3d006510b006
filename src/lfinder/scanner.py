import asyncio
import logging
import os
from asyncio import TaskGroup
from enum import StrEnum
from pathlib import Path
from typing import Callable, NamedTuple

from .classifier import LinkClassifier, LinkMatch
from .config import ScanConfig, ScanMode
from .errors import HardlinkUnsupported
from .identity import InodeResolver, TargetIdentity, default_inode_resolver
from .utils.channel import Channel
from .utils.processor import Processor
from .utils.walker import WalkPolicy, walk_with_policy

logger = logging.getLogger(__name__)


class ScanState(StrEnum):
    IDLE = 'idle'
    WALKING = 'walking'
    DRAINING = 'draining'
    COMPLETED = 'completed'
    TIMED_OUT = 'timed-out'
    CANCELED = 'canceled'

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.COMPLETED, ScanState.TIMED_OUT, ScanState.CANCELED)


class ScanOutcome(NamedTuple):
    """Result of a finished scan.

    Attributes:
        state: Terminal state the scan ended in
        matches: Number of matches delivered to the sink
        candidates: Number of paths handed to the workers
    """
    state: ScanState
    matches: int
    candidates: int

    @property
    def partial(self) -> bool:
        return self.state is not ScanState.COMPLETED

    def status_line(self) -> str | None:
        """User-facing notice for a scan that ended early, None if it completed."""
        if self.state is ScanState.TIMED_OUT:
            return f"Search timed out ({self.matches} matches found before the deadline)"
        if self.state is ScanState.CANCELED:
            return f"Search canceled ({self.matches} matches found before cancellation)"
        return None


class _ScanCanceled(Exception):
    pass


class LinkScanner:
    """Finds every entry under the search root that links to the target.

    The scan is a pipeline of asyncio tasks over two bounded channels:

    - one walker task feeds candidate paths into the job channel and closes it
      when the traversal ends;
    - a fixed number of worker tasks take candidates from the job channel,
      classify them on the Processor's threads and send matches to the result
      channel;
    - a watcher task closes the result channel once every worker has exited;
    - the coordinating task drains the result channel into the sink.

    A deadline and cancel() both stop every task at whatever it is waiting on.
    Matches already delivered to the sink stay delivered.
    """

    def __init__(self, processor: Processor, config: ScanConfig, target: str | os.PathLike,
                 resolver: InodeResolver | None = None):
        """Resolve the target and validate the configuration.

        Args:
            processor: Thread pool running classification syscalls
            config: Scan configuration, read-only from here on
            target: File whose links are sought, relative to the search root unless absolute
            resolver: Inode identity resolver, defaults to the one for this platform

        Raises:
            TargetNotFound: the target cannot be stat'ed
            HardlinkUnsupported: hardlink-only mode without inode identity
            ValueError: non-positive worker count or queue size
        """
        if config.workers < 1:
            raise ValueError(f"worker count must be positive, got {config.workers}")
        if config.queue_size < 1:
            raise ValueError(f"queue size must be positive, got {config.queue_size}")

        if resolver is None:
            resolver = default_inode_resolver()

        target_identity = TargetIdentity.resolve(target, config.search_path, resolver)
        if target_identity.inode_key is None:
            if config.mode is ScanMode.HARDLINKS:
                raise HardlinkUnsupported(
                    f"cannot find hard links of {target_identity.path}: {target_identity.inode_failure}")
            if config.mode is ScanMode.BOTH:
                logger.warning("Hard link detection disabled, searching for symbolic links only")

        self._processor = processor
        self._config = config
        self._target = target_identity
        self._classifier = LinkClassifier(target_identity, config.mode, resolver)
        self._policy = WalkPolicy(config.normalized_skip_dirs(), yield_root=True)
        self._state = ScanState.IDLE
        self._cancel_requested = asyncio.Event()
        self._matches = 0
        self._candidates = 0

    @property
    def config(self) -> ScanConfig:
        return self._config

    @property
    def target(self) -> TargetIdentity:
        return self._target

    @property
    def state(self) -> ScanState:
        return self._state

    def cancel(self) -> None:
        """Request the running scan to stop. Must be called from the scan's event loop."""
        logger.info("Scan cancellation requested")
        self._cancel_requested.set()

    def scan(self, sink: Callable[[str], object]) -> ScanOutcome:
        """Run the scan to a terminal state in a fresh event loop."""
        return asyncio.run(self.run(sink))

    async def run(self, sink: Callable[[str], object]) -> ScanOutcome:
        """Run the scan, passing each formatted match to sink as soon as it is found.

        Returns:
            The outcome; timed-out and canceled scans return normally
        """
        if self._state is not ScanState.IDLE:
            raise RuntimeError(f"scan already {self._state}")

        logger.info(f"Scanning {self._config.search_path} for {self._config.mode} "
                    f"to {self._target.path} (workers={self._config.workers}, timeout={self._config.timeout})")

        state = ScanState.COMPLETED
        try:
            async with asyncio.timeout(self._config.timeout):
                try:
                    await self._run_pipeline(sink)
                except* _ScanCanceled:
                    state = ScanState.CANCELED
        except TimeoutError:
            state = ScanState.TIMED_OUT

        self._state = state
        outcome = ScanOutcome(state, self._matches, self._candidates)
        logger.info(f"Scan {state}: {outcome.matches} matches among {outcome.candidates} entries")
        return outcome

    async def _run_pipeline(self, sink: Callable[[str], object]):
        jobs: Channel[Path] = Channel(self._config.queue_size)
        results: Channel[LinkMatch] = Channel(self._config.queue_size)

        async with TaskGroup() as tg:
            cancel_watcher = tg.create_task(self._watch_cancellation())
            tg.create_task(self._walk(jobs))
            workers = [tg.create_task(self._work(jobs, results), name=f"lfinder-worker-{i}")
                       for i in range(self._config.workers)]
            tg.create_task(self._close_when_done(workers, results))
            self._state = ScanState.WALKING

            async for match in results:
                sink(str(match))
                self._matches += 1

            cancel_watcher.cancel()

    async def _watch_cancellation(self):
        await self._cancel_requested.wait()
        raise _ScanCanceled()

    async def _walk(self, jobs: Channel[Path]):
        try:
            for file_path, _ in walk_with_policy(self._config.search_path, self._policy):
                await jobs.send(file_path)
                self._candidates += 1
        finally:
            jobs.close()

        self._state = ScanState.DRAINING
        logger.debug(f"Traversal finished after {self._candidates} entries")

    async def _work(self, jobs: Channel[Path], results: Channel[LinkMatch]):
        async for path in jobs:
            match = await self._processor.classify(self._classifier, path)
            if match is not None:
                logger.debug(f"Match: {match}")
                await results.send(match)

    async def _close_when_done(self, workers: list[asyncio.Task], results: Channel[LinkMatch]):
        await asyncio.wait(workers)
        results.close()
