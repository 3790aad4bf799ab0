import logging
from typing import Iterable

from . import hasher
from . import types
from .errors import DanglingReferenceError
from .store import ObjectStore
from .types import Commit, ObjectType

logger = logging.getLogger(__name__)


def _check_reference(store: ObjectStore, hash_: types.Hash, expected: ObjectType, role: str) -> None:
    if not store.contains(hash_):
        raise DanglingReferenceError(f'{role} {hasher.to_hex(hash_)} is not in the store')
    actual = store.type_of(hash_)
    if actual is not expected:
        raise DanglingReferenceError(
            f'{role} {hasher.to_hex(hash_)} is a {actual.name.lower()}, not a {expected.name.lower()}')


def create_commit(store: ObjectStore, tree_hash: types.Hash, parent_hashes: Iterable[types.Hash],
                  author: str, message: str, timestamp: int) -> types.Hash:
    """Write a commit of `tree_hash` on top of `parent_hashes`.

    Every referenced hash must already be stored; author and timestamp
    come from the caller so the result only depends on the arguments.
    """
    parents = tuple(parent_hashes)
    _check_reference(store, tree_hash, ObjectType.TREE, 'tree')
    for parent in parents:
        _check_reference(store, parent, ObjectType.COMMIT, 'parent')

    commit_ = Commit(tree=tree_hash, parents=parents, author=author,
                     message=message, timestamp=int(timestamp))
    oid = store.write(commit_)
    logger.debug('Created commit %s', hasher.to_hex(oid)[:10])
    return oid
