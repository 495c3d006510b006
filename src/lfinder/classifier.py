import logging
import os
import stat
from enum import StrEnum
from pathlib import Path
from typing import NamedTuple

from .config import ScanMode
from .identity import InodeResolver, InodeUnavailable, TargetIdentity, canonicalize

logger = logging.getLogger(__name__)


class LinkKind(StrEnum):
    SYMLINK = 'symlink'
    HARDLINK = 'hardlink'


class LinkMatch(NamedTuple):
    """One directory entry found to refer to the target.

    Attributes:
        kind: Whether the entry is a symbolic link or a hard link
        path: Path of the entry as discovered by the walk
        link_text: Literal contents of the symbolic link, None for hard links
    """
    kind: LinkKind
    path: Path
    link_text: str | None = None

    def __str__(self):
        if self.kind is LinkKind.SYMLINK:
            return f"{self.path} ({self.kind}) -> {self.link_text}"
        return f"{self.path} ({self.kind})"


class LinkClassifier:
    """Decides whether a path is a link to the target.

    All checks are free of side effects. Any failure to inspect a candidate
    (race-deleted entries, permissions, broken or looping symlinks) means the
    candidate simply does not match.
    """

    def __init__(self, target: TargetIdentity, mode: ScanMode, resolver: InodeResolver):
        self._target = target
        self._mode = ScanMode(mode)
        self._resolver = resolver

    @property
    def target(self) -> TargetIdentity:
        return self._target

    @property
    def mode(self) -> ScanMode:
        return self._mode

    def classify(self, path: Path) -> LinkMatch | None:
        # A symlink's own metadata decides its classification, never its target's
        try:
            st = os.lstat(path)
        except OSError as e:
            logger.debug(f"Skipping {path}: {e}")
            return None

        return self.classify_stat(path, st)

    def classify_stat(self, path: Path, st: os.stat_result) -> LinkMatch | None:
        if stat.S_ISLNK(st.st_mode):
            if self._mode.finds_symlinks:
                return self.check_symlink(path)
        elif stat.S_ISREG(st.st_mode):
            if self._mode.finds_hardlinks:
                return self.check_hardlink(path, st)
        return None

    def check_symlink(self, path: Path) -> LinkMatch | None:
        try:
            resolved = canonicalize(path)
        except OSError as e:
            logger.debug(f"Cannot resolve symlink {path}: {e}")
            return None

        if resolved != self._target.canonical_path:
            return None

        try:
            link_text = os.readlink(path)
        except OSError as e:
            logger.debug(f"Cannot read symlink {path}: {e}")
            return None

        return LinkMatch(LinkKind.SYMLINK, path, link_text)

    def check_hardlink(self, path: Path, st: os.stat_result) -> LinkMatch | None:
        if self._target.inode_key is None:
            return None

        try:
            inode_key = self._resolver.resolve(st)
        except InodeUnavailable as e:
            logger.debug(f"No inode identity for {path}: {e}")
            return None

        if inode_key != self._target.inode_key:
            return None

        # The target's own entry shares its inode but is not a link to it
        try:
            if canonicalize(path) == self._target.canonical_path:
                return None
        except OSError as e:
            logger.debug(f"Cannot resolve {path}: {e}")
            return None

        return LinkMatch(LinkKind.HARDLINK, path)
