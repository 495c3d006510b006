import logging
import os
from pathlib import Path
from typing import Generator, Iterator, NamedTuple

logger = logging.getLogger(__name__)


class FileContext:
    """Context object for a file or directory during traversal.

    The entry's type is taken from the directory listing when available and
    fetched from the filesystem otherwise. Symbolic links are never followed: a
    link to a directory is reported as a link, not as a directory.
    """
    def __init__(self, parent, name: str | None, path: Path | None = None, entry: os.DirEntry | None = None):
        self._path: Path | None = path
        self._entry: os.DirEntry | None = entry

        # Built from the parent's path up front
        if name is None:
            self._relative_path = Path('.')
        elif parent is None:
            self._relative_path = Path(name)
        else:
            self._relative_path = parent.relative_path / name

    @property
    def relative_path(self) -> Path:
        """Path of this entry relative to the root of the walk."""
        return self._relative_path

    def is_dir(self) -> bool:
        if self._entry is not None:
            return self._entry.is_dir(follow_symlinks=False)
        return self._path is not None and self._path.is_dir() and not self._path.is_symlink()


def list_directory(path: Path) -> list[os.DirEntry]:
    """Read a whole directory listing, or nothing if the directory cannot be read.

    The listing is fully consumed so that no directory handle stays open while
    the walk descends into children.
    """
    try:
        with os.scandir(path) as it:
            return list(it)
    except OSError as e:
        logger.debug(f"Cannot read directory {path}: {e}")
        return []


def walk(path: Path, parent: FileContext) -> Generator[tuple[Path, FileContext], None | bool, None]:
    """Traverse directory depth first, without following symlinks.

    Sending False back into the generator after an entry is yielded prunes that
    entry: a directory is then not descended into. Pending directories are kept
    on an explicit stack, so the depth of the tree is not bounded by the
    interpreter's recursion limit.
    """
    stack: list[tuple[Path, FileContext, Iterator[os.DirEntry]]] = [(path, parent, iter(list_directory(path)))]

    while stack:
        directory, directory_context, entries = stack[-1]
        entry = next(entries, None)
        if entry is None:
            stack.pop()
            continue

        child = directory / entry.name
        context = FileContext(directory_context, entry.name, path=child, entry=entry)
        descend = yield child, context

        if descend is False:
            continue

        try:
            is_dir = context.is_dir()
        except OSError as e:
            logger.debug(f"Skipping {child}: {e}")
            continue

        if is_dir:
            stack.append((child, context, iter(list_directory(child))))


class WalkPolicy(NamedTuple):
    """Policy controlling filesystem traversal behavior.

    Attributes:
        skipped_paths: Absolute, normalized paths of directories pruned from the walk
        yield_root: Whether to yield the root itself before walking its children
    """
    skipped_paths: frozenset[Path]
    yield_root: bool = False


def walk_with_policy(path: Path, policy: WalkPolicy) -> Iterator[tuple[Path, FileContext]]:
    """Walk filesystem tree, pruning the directories named by the policy.

    Skipped directories are neither yielded nor descended into. Symlinked
    directories are yielded as entries but never descended into, so cycles
    through symlinks cannot make the walk revisit a subtree.

    Yields:
        Tuples of (path, file_context), where path is the root joined with the
        entry's relative path
    """
    root_absolute = Path(os.path.abspath(path))
    context = FileContext(None, None, path)

    if root_absolute in policy.skipped_paths:
        logger.info(f"Search root {path} is a skipped directory")
        return

    if policy.yield_root:
        yield path, context

    try:
        if not context.is_dir():
            return
    except OSError as e:
        logger.debug(f"Cannot inspect search root {path}: {e}")
        return

    gen = walk(path, context)
    pending = None

    try:
        while True:
            file_path, file_context = gen.send(pending)
            pending = None

            if policy.skipped_paths and root_absolute / file_context.relative_path in policy.skipped_paths:
                try:
                    is_dir = file_context.is_dir()
                except OSError:
                    is_dir = False
                if is_dir:
                    logger.info(f"Skipping directory {file_path}")
                    pending = False
                    continue

            yield file_path, file_context
    except StopIteration:
        pass
    finally:
        gen.close()
