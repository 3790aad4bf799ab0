"""Build a Merkle tree from a flat directory snapshot.

The snapshot is grouped into a hierarchy of nodes by path segment, every
file is written as a blob, and directories are then written bottom-up so
that a tree is only stored once everything it references is stored.
"""
import logging
import unicodedata
from concurrent.futures import Executor
from typing import Iterable

from . import hasher
from . import types
from .errors import ConflictError, UnsupportedEntryError
from .store import ObjectStore
from .types import Blob, EntryKind, Mode, SnapshotEntry, Tree, TreeEntry

logger = logging.getLogger(__name__)

_FILE_MODES = {
    EntryKind.FILE: Mode.FILE,
    EntryKind.EXECUTABLE: Mode.EXECUTABLE,
}


class _Dir:
    __slots__ = ('path', 'children', 'hash')

    def __init__(self, path: types.Path):
        self.path = path
        self.children: dict[str, _Dir | SnapshotEntry] = {}
        self.hash: types.Hash | None = None


def split_path(path: types.Path) -> list[str]:
    """Normalize a snapshot path into its segments."""
    segments = []
    for segment in path.replace('\\', '/').split('/'):
        if segment in ('', '.'):
            continue
        if segment == '..':
            raise UnsupportedEntryError(f'path escapes the snapshot root: {path!r}')
        segments.append(unicodedata.normalize('NFC', segment))
    return segments


def _insert(root: _Dir, entry: SnapshotEntry) -> None:
    if not isinstance(entry.kind, EntryKind) or (
            entry.kind is not EntryKind.DIRECTORY and entry.kind not in _FILE_MODES):
        raise UnsupportedEntryError(f'unsupported entry kind {entry.kind!r} at {entry.path!r}')

    segments = split_path(entry.path)
    if not segments:
        if entry.kind is EntryKind.DIRECTORY:
            return  # the root itself
        raise UnsupportedEntryError(f'file entry without a name: {entry.path!r}')

    current = root
    for depth, name in enumerate(segments[:-1]):
        child = current.children.get(name)
        if child is None:
            child = current.children[name] = _Dir('/'.join(segments[:depth + 1]))
        elif not isinstance(child, _Dir):
            raise ConflictError(f'{child.path!r} is both a file and a directory')
        current = child

    name = segments[-1]
    existing = current.children.get(name)
    if entry.kind is EntryKind.DIRECTORY:
        if existing is None:
            current.children[name] = _Dir('/'.join(segments))
        elif not isinstance(existing, _Dir):
            raise ConflictError(f'{existing.path!r} is both a file and a directory')
    else:
        if existing is not None:
            raise ConflictError(f'duplicate entry {"/".join(segments)!r}')
        current.children[name] = entry


def _read_blob(entry: SnapshotEntry) -> Blob:
    if entry.content is None:
        raise UnsupportedEntryError(f'no content for {entry.path!r}')
    return Blob(entry.content())


class TreeBuilder:
    def __init__(self, store: ObjectStore, executor: Executor | None = None):
        self.store = store
        self.executor = executor

    def build(self, entries: Iterable[SnapshotEntry]) -> types.Hash:
        """Write every blob and tree of the snapshot, return the root tree hash."""
        root = _Dir('')
        files = []
        for entry in entries:
            _insert(root, entry)
            if entry.kind in _FILE_MODES:
                files.append(entry)

        blob_hashes = self._write_blobs(files)
        root_hash = self._write_trees(root, blob_hashes)
        logger.debug('Built tree %s from %d files', hasher.to_hex(root_hash)[:10], len(files))
        return root_hash

    def _write_blob(self, entry: SnapshotEntry) -> types.Hash:
        return self.store.write(_read_blob(entry))

    def _write_blobs(self, files: list[SnapshotEntry]) -> dict[int, types.Hash]:
        if self.executor is None:
            hashes = map(self._write_blob, files)
        else:
            hashes = self.executor.map(self._write_blob, files)
        return {id(entry): hash_ for entry, hash_ in zip(files, hashes)}

    def _write_trees(self, root: _Dir, blob_hashes: dict[int, types.Hash]) -> types.Hash:
        # Post-order walk with an explicit stack: a directory is pushed once to
        # expand its children and once more to be written after them.
        stack = [(root, False)]
        while stack:
            node, expanded = stack.pop()
            if not expanded:
                stack.append((node, True))
                stack.extend((child, False) for child in node.children.values()
                             if isinstance(child, _Dir))
                continue

            tree_entries = []
            for name, child in node.children.items():
                if isinstance(child, _Dir):
                    tree_entries.append(TreeEntry(name, Mode.DIRECTORY, child.hash))
                else:
                    tree_entries.append(TreeEntry(name, _FILE_MODES[child.kind], blob_hashes[id(child)]))
            node.hash = self.store.write(Tree.of(tree_entries))
        return root.hash


def build_tree(store: ObjectStore, entries: Iterable[SnapshotEntry],
               executor: Executor | None = None) -> types.Hash:
    return TreeBuilder(store, executor).build(entries)
