import getpass
import logging
import os
import stat
import time
from collections import deque
from concurrent.futures import Executor
from typing import Iterable, Iterator

from . import data
from . import hasher
from . import objects
from . import types
from . import worktree
from .commit import create_commit
from .config import Config
from .errors import ConflictError, FormatError, InvalidNameError, NotFoundError
from .store import ObjectStore
from .tree import build_tree
from .types import Blob, Commit, Mode, ObjectType, RefValue, Tree, TreeEntry

logger = logging.getLogger(__name__)


def init(config: Config) -> None:
    data.init(config)


def hash_object(store: ObjectStore | None, content: bytes) -> types.Hash:
    """Hash `content` as a blob; store it too when a store is given."""
    blob = Blob(content)
    if store is None:
        return objects.hash_of(blob)
    return store.write(blob)


def get_commit(store: ObjectStore, oid: types.Hash) -> Commit:
    obj = store.read(oid)
    if not isinstance(obj, Commit):
        raise NotFoundError(f'{hasher.to_hex(oid)} is not a commit')
    return obj


def write_tree(config: Config, store: ObjectStore, directory: str | None = None,
               executor: Executor | None = None) -> types.Hash:
    return build_tree(store, worktree.iter_repo_snapshot(config, directory), executor=executor)


def resolve_author(config: Config, author: str | None = None) -> str:
    return author or config.author or getpass.getuser()


def commit(config: Config, store: ObjectStore, message: str, author: str | None = None,
           timestamp: int | None = None) -> types.Hash:
    tree = write_tree(config, store)

    parents = []
    HEAD = data.get_ref_hash(config, 'HEAD')
    if HEAD:
        parents.append(HEAD)

    if timestamp is None:
        timestamp = int(time.time())
    oid = create_commit(store, tree, parents, resolve_author(config, author), message, timestamp)
    data.update_ref(config, 'HEAD', RefValue(symbolic=False, value=hasher.to_hex(oid)))
    return oid


def get_tree(store: ObjectStore, oid: types.Hash) -> Tree:
    obj = store.read(oid)
    if not isinstance(obj, Tree):
        raise NotFoundError(f'{hasher.to_hex(oid)} is not a tree')
    return obj


def iter_tree(store: ObjectStore, oid: types.Hash) -> Iterator[tuple[types.Path, TreeEntry]]:
    """Yield (path, entry) for everything below tree `oid`, parents before children."""
    stack = [('', oid)]
    while stack:
        base_path, tree_oid = stack.pop()
        for entry in reversed(get_tree(store, tree_oid).entries):
            if not entry.name or '/' in entry.name or entry.name in ('.', '..'):
                raise FormatError(f'tree {hasher.to_hex(tree_oid)} has unsafe entry name {entry.name!r}')
            path = base_path + entry.name
            yield path, entry
            if entry.mode is Mode.DIRECTORY:
                stack.append((f'{path}/', entry.target))


def read_tree(config: Config, store: ObjectStore, tree_oid: types.Hash) -> None:
    """Replace the worktree with the contents of tree `tree_oid`; ignored paths stay."""
    entries = list(iter_tree(store, tree_oid))
    patterns, always = worktree.repo_ignores(config)
    worktree.clear_directory(config.root, patterns, always)
    for path, entry in entries:
        full_path = os.path.join(config.root, *path.split('/'))
        if entry.mode is Mode.DIRECTORY:
            os.makedirs(full_path, exist_ok=True)
            continue
        blob = store.read(entry.target)
        if not isinstance(blob, Blob):
            raise NotFoundError(f'{hasher.to_hex(entry.target)} is not a blob')
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, 'wb') as f:
            f.write(blob.data)
        if entry.mode is Mode.EXECUTABLE:
            mode = os.stat(full_path).st_mode
            os.chmod(full_path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    logger.debug('Read tree %s into %s', hasher.to_hex(tree_oid)[:10], config.root)


def worktree_hash(config: Config) -> types.Hash:
    """Hash the worktree as write-tree would, without touching the repository store."""
    with ObjectStore() as scratch:
        return build_tree(scratch, worktree.iter_repo_snapshot(config))


def checkout(config: Config, store: ObjectStore, name: str, force: bool = False) -> types.Hash:
    oid = get_oid(config, name)
    commit_ = get_commit(store, oid)

    if not force:
        HEAD = data.get_ref_hash(config, 'HEAD')
        expected = get_commit(store, HEAD).tree if HEAD else objects.hash_of(Tree())
        if worktree_hash(config) != expected:
            raise ConflictError('working tree has uncommitted changes; commit them or use --force')

    read_tree(config, store, commit_.tree)

    if is_branch(config, name):
        HEAD = RefValue(symbolic=True, value=f'refs/heads/{name}')
    else:
        HEAD = RefValue(symbolic=False, value=hasher.to_hex(oid))
    data.update_ref(config, 'HEAD', HEAD, deref=False)
    return oid


def check_branch_name(name: str) -> str:
    if (not name or '/' in name or name.startswith('-') or name in ('.', '..', 'HEAD')
            or any(c.isspace() for c in name) or hasher.is_hex(name)):
        raise InvalidNameError(f'invalid branch name {name!r}')
    return name


def create_branch(config: Config, store: ObjectStore, name: str, start_point: str = '@') -> types.Hash:
    check_branch_name(name)
    if is_branch(config, name):
        raise ConflictError(f'branch {name!r} already exists')
    oid = get_oid(config, start_point)
    get_commit(store, oid)
    data.update_ref(config, f'refs/heads/{name}', RefValue(symbolic=False, value=hasher.to_hex(oid)))
    logger.debug('Created branch %s at %s', name, hasher.to_hex(oid)[:10])
    return oid


def is_branch(config: Config, name: str) -> bool:
    return data.get_ref(config, f'refs/heads/{name}').value is not None


def get_branch_name(config: Config) -> str | None:
    HEAD = data.get_ref(config, 'HEAD', deref=False)
    if not HEAD.symbolic:
        return None
    return HEAD.value.removeprefix('refs/heads/')


def iter_branch_names(config: Config) -> Iterator[str]:
    for refname, _ in data.iter_refs(config, 'refs/heads/'):
        yield refname.removeprefix('refs/heads/')


def get_oid(config: Config, name: str) -> types.Hash:
    if name == '@':
        name = 'HEAD'

    if hasher.is_hex(name):
        return hasher.from_hex(name)

    refs_to_try = [
        f'{name}',
        f'refs/{name}',
        f'refs/heads/{name}',
    ]
    for ref in refs_to_try:
        if oid := data.get_ref(config, ref).value:
            return hasher.from_hex(oid)

    raise NotFoundError(f'unknown object name {name!r}')


def iter_commits_and_parents(store: ObjectStore, oids: Iterable[types.Hash]) -> Iterator[types.Hash]:
    oids = deque(oids)
    visited = set()

    while oids:
        oid = oids.popleft()
        if not oid or oid in visited:
            continue
        visited.add(oid)
        yield oid

        commit_ = get_commit(store, oid)
        oids.extendleft(commit_.parents[:1])
        oids.extend(commit_.parents[1:])


def _references(obj: types.Object) -> Iterator[types.Hash]:
    if isinstance(obj, Tree):
        for entry in obj.entries:
            yield entry.target
    elif isinstance(obj, Commit):
        yield obj.tree
        yield from obj.parents


def check_references(store: ObjectStore,
                     skip: Iterable[types.Hash] = ()) -> list[tuple[types.Hash, types.Hash]]:
    """Return (object, missing reference) pairs for every tree and commit.

    Objects in `skip` are not decoded; fsck passes the ones that failed
    verification.
    """
    skip = set(skip)
    missing = []
    for type_ in (ObjectType.TREE, ObjectType.COMMIT):
        for oid in store.iter_hashes(type_):
            if oid in skip:
                continue
            for ref in _references(store.read(oid)):
                if ref not in store:
                    missing.append((oid, ref))
    return missing
