"""Snapshot a directory on disk as a sequence of tree builder entries."""
import fnmatch
import functools
import os
import stat
from typing import Iterator

from .config import Config
from .types import EntryKind, SnapshotEntry


def load_ignores(path: str) -> list[str]:
    try:
        with open(path) as f:
            patterns = []
            for line in f:
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                patterns.append(line)
            return patterns
    except FileNotFoundError:
        return []


def is_ignored(path: str, patterns: list[str], always: tuple[str, ...] = ()) -> bool:
    path = path.replace('\\', '/')
    if any(name in path.split('/') for name in always):
        return True
    for pattern in patterns:
        if pattern.endswith('/'):
            base = pattern.rstrip('/')
            if path == base or path.startswith(base + '/'):
                return True
        elif fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(os.path.basename(path), pattern):
            return True
    return False


def _read_file(path: str) -> bytes:
    with open(path, 'rb') as f:
        return f.read()


def _kind(path: str) -> EntryKind:
    try:
        st = os.stat(path)  # follows symlinks
    except FileNotFoundError:
        return EntryKind.SYMLINK  # dangling link
    if stat.S_ISDIR(st.st_mode):
        return EntryKind.DIRECTORY
    if stat.S_ISREG(st.st_mode):
        if st.st_mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH):
            return EntryKind.EXECUTABLE
        return EntryKind.FILE
    return EntryKind.SPECIAL


def iter_snapshot(directory: str, patterns: list[str] | None = None,
                  always: tuple[str, ...] = ()) -> Iterator[SnapshotEntry]:
    """Yield an entry per file and directory under `directory`, sorted by path.

    File contents are read lazily, when the tree builder asks for them.
    """
    patterns = patterns or []
    directory = os.path.abspath(directory)
    for root, dirnames, filenames in os.walk(directory, followlinks=False):
        rel_dir = os.path.relpath(root, directory).replace('\\', '/')
        if rel_dir == '.':
            rel_dir = ''
        dirnames[:] = sorted(
            d for d in dirnames
            if not is_ignored(f'{rel_dir}/{d}'.lstrip('/'), patterns, always)
        )
        names = sorted(set(dirnames) | set(filenames))
        for name in names:
            rel_path = f'{rel_dir}/{name}'.lstrip('/')
            if is_ignored(rel_path, patterns, always):
                continue
            full_path = os.path.join(root, name)
            kind = _kind(full_path)
            if kind is EntryKind.DIRECTORY and os.path.islink(full_path):
                # os.walk does not descend into linked directories
                kind = EntryKind.SYMLINK
            content = functools.partial(_read_file, full_path) if kind in (
                EntryKind.FILE, EntryKind.EXECUTABLE) else None
            yield SnapshotEntry(rel_path, kind, content)


def iter_repo_snapshot(config: Config, directory: str | None = None) -> Iterator[SnapshotEntry]:
    patterns, always = repo_ignores(config)
    return iter_snapshot(directory or config.root, patterns, always=always)


def clear_directory(directory: str, patterns: list[str] | None = None,
                    always: tuple[str, ...] = ()) -> None:
    """Remove every file and directory under `directory` that is not ignored.

    Directories still holding ignored files are kept.
    """
    patterns = patterns or []
    directory = os.path.abspath(directory)
    for root, dirnames, filenames in os.walk(directory, topdown=False):
        rel_dir = os.path.relpath(root, directory).replace('\\', '/')
        if rel_dir == '.':
            rel_dir = ''
        for name in filenames + dirnames:
            rel_path = f'{rel_dir}/{name}'.lstrip('/')
            if is_ignored(rel_path, patterns, always):
                continue
            path = os.path.join(root, name)
            if os.path.islink(path) or not os.path.isdir(path):
                os.remove(path)
            elif not os.listdir(path):
                os.rmdir(path)


def repo_ignores(config: Config) -> tuple[list[str], tuple[str, ...]]:
    """Ignore patterns and always-ignored names for the repository worktree."""
    return load_ignores(config.ignore_file), (config.vx_dir,)
