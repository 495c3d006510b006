"""Platform-specific file identity.

Hard links are recognised by sharing a (device, inode) pair. Whether that pair
can be trusted depends on the platform, so extraction goes through an
InodeResolver: callers receive either an InodeKey or an InodeUnavailable
exception and never branch on the platform themselves.
"""
import logging
import os
import sys
from abc import ABC, abstractmethod
from enum import StrEnum
from pathlib import Path
from typing import NamedTuple

from .errors import TargetNotFound

logger = logging.getLogger(__name__)


class InodeKey(NamedTuple):
    device: int
    inode: int


class InodeFailure(StrEnum):
    UNSUPPORTED_PLATFORM = 'unsupported-platform'
    UNEXPECTED_METADATA = 'unexpected-metadata'


class InodeUnavailable(Exception):
    def __init__(self, reason: InodeFailure, message: str):
        super().__init__(message)
        self.reason = InodeFailure(reason)


class InodeResolver(ABC):
    @abstractmethod
    def resolve(self, st: os.stat_result) -> InodeKey:
        """Extract the identity of the file described by st.

        Raises:
            InodeUnavailable: identity cannot be determined from st
        """


class PosixInodeResolver(InodeResolver):
    def resolve(self, st: os.stat_result) -> InodeKey:
        device = getattr(st, 'st_dev', None)
        inode = getattr(st, 'st_ino', None)
        if not isinstance(device, int) or not isinstance(inode, int) or inode == 0:
            raise InodeUnavailable(InodeFailure.UNEXPECTED_METADATA, "unable to get system file info")
        return InodeKey(device, inode)


class UnsupportedInodeResolver(InodeResolver):
    def __init__(self, platform: str | None = None):
        self._platform = sys.platform if platform is None else platform

    def resolve(self, st: os.stat_result) -> InodeKey:
        raise InodeUnavailable(
            InodeFailure.UNSUPPORTED_PLATFORM,
            f"hard link detection is not supported on {self._platform}")


def default_inode_resolver() -> InodeResolver:
    if os.name == 'posix':
        return PosixInodeResolver()
    return UnsupportedInodeResolver()


def canonicalize(path: str | os.PathLike, strict: bool = True) -> str:
    """Return the absolute, symlink-free and case-normalised form of path."""
    return os.path.normcase(os.path.realpath(path, strict=strict))


class TargetIdentity(NamedTuple):
    """Identity of the file whose links are being searched for.

    Attributes:
        path: Target path as it will be stat'ed (joined to the search root if relative)
        canonical_path: Canonical form of path, compared against resolved symlinks
        inode_key: Identity compared against regular files, None where unavailable
        inode_failure: Why inode_key is None, if it is
    """
    path: Path
    canonical_path: str
    inode_key: InodeKey | None
    inode_failure: InodeUnavailable | None = None

    @classmethod
    def resolve(cls, target: str | os.PathLike, search_path: str | os.PathLike,
                resolver: InodeResolver) -> 'TargetIdentity':
        """Compute the identity of target once, before the walk starts.

        Raises:
            TargetNotFound: target does not exist or cannot be stat'ed
        """
        target_path = Path(target)
        if not target_path.is_absolute():
            target_path = Path(search_path) / target_path

        try:
            st = target_path.stat()
            canonical_path = canonicalize(target_path)
        except OSError as e:
            raise TargetNotFound(target_path, e) from e

        try:
            inode_key = resolver.resolve(st)
            inode_failure = None
        except InodeUnavailable as e:
            logger.warning(f"Inode identity unavailable for {target_path}: {e}")
            inode_key = None
            inode_failure = e

        logger.info(f"Target {target_path} resolved to {canonical_path} (inode={inode_key})")
        return cls(target_path, canonical_path, inode_key, inode_failure)
