import os
from enum import StrEnum
from pathlib import Path
from typing import NamedTuple

# Pseudo-filesystems that can hang or explode a traversal
DEFAULT_SKIP_DIRS = ('/proc', '/sys', '/dev')
DEFAULT_TIMEOUT = 30 * 60.0
DEFAULT_WORKERS = 8
DEFAULT_QUEUE_SIZE = 1000


class ScanMode(StrEnum):
    SYMLINKS = 'symlinks'
    HARDLINKS = 'hardlinks'
    BOTH = 'both'

    @property
    def finds_symlinks(self) -> bool:
        return self is not ScanMode.HARDLINKS

    @property
    def finds_hardlinks(self) -> bool:
        return self is not ScanMode.SYMLINKS


class ScanConfig(NamedTuple):
    """Settings of a single scan, fixed before the scan starts.

    Attributes:
        mode: Which kinds of links to look for
        search_path: Root of the traversal
        skip_dirs: Directories pruned from the traversal, compared as absolute paths
        timeout: Overall deadline in seconds, None for no deadline
        workers: Number of concurrent classification workers
        queue_size: Capacity of the job queue and of the result queue
    """
    mode: ScanMode = ScanMode.BOTH
    search_path: Path = Path('.')
    skip_dirs: tuple[Path, ...] = tuple(Path(d) for d in DEFAULT_SKIP_DIRS)
    timeout: float | None = DEFAULT_TIMEOUT
    workers: int = DEFAULT_WORKERS
    queue_size: int = DEFAULT_QUEUE_SIZE

    def normalized_skip_dirs(self) -> frozenset[Path]:
        return frozenset(Path(os.path.abspath(d)) for d in self.skip_dirs)
