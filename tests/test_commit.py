import pytest

from vx.commit import create_commit
from vx.errors import DanglingReferenceError, FormatError
from vx.tree import build_tree
from vx.types import Blob, Commit, EntryKind, SnapshotEntry

from conftest import HELLO


@pytest.fixture
def tree(store):
    return build_tree(store, [SnapshotEntry('test.txt', EntryKind.FILE, lambda: HELLO)])


def test_initial_commit(store, tree):
    oid = create_commit(store, tree, [], 'alice', 'initial commit', 1700000000)
    assert store.read(oid) == Commit(tree=tree, parents=(), author='alice',
                                     message='initial commit', timestamp=1700000000)


def test_same_inputs_same_hash(store, tree):
    first = create_commit(store, tree, [], 'alice', 'msg', 10)
    count = len(store)
    assert create_commit(store, tree, [], 'alice', 'msg', 10) == first
    assert len(store) == count


def test_timestamp_or_author_change_hash(store, tree):
    base = create_commit(store, tree, [], 'alice', 'msg', 10)
    later = create_commit(store, tree, [], 'alice', 'msg', 11)
    other = create_commit(store, tree, [], 'bob', 'msg', 10)
    assert len({base, later, other}) == 3
    assert store.read(later).tree == store.read(other).tree == tree


def test_parents_keep_order(store, tree):
    a = create_commit(store, tree, [], 'a', 'a', 1)
    b = create_commit(store, tree, [], 'b', 'b', 2)
    merge = create_commit(store, tree, [b, a], 'm', 'merge', 3)
    assert store.read(merge).parents == (b, a)


def test_missing_tree(store):
    with pytest.raises(DanglingReferenceError):
        create_commit(store, bytes(32), [], 'a', 'm', 0)
    assert len(store) == 0


def test_missing_parent(store, tree):
    count = len(store)
    with pytest.raises(DanglingReferenceError):
        create_commit(store, tree, [bytes(32)], 'a', 'm', 0)
    assert len(store) == count


def test_tree_hash_must_name_a_tree(store):
    blob = store.write(Blob(HELLO))
    with pytest.raises(DanglingReferenceError):
        create_commit(store, blob, [], 'a', 'm', 0)


def test_parent_must_name_a_commit(store, tree):
    with pytest.raises(DanglingReferenceError):
        create_commit(store, tree, [tree], 'a', 'm', 0)


def test_references_exist_after_commit(store, tree):
    first = create_commit(store, tree, [], 'a', 'm', 0)
    second = create_commit(store, tree, [first], 'a', 'm2', 1)
    commit_ = store.read(second)
    assert commit_.tree in store
    assert all(parent in store for parent in commit_.parents)


@pytest.mark.parametrize('timestamp', [2 ** 63, -2 ** 63 - 1])
def test_timestamp_out_of_range(store, tree, timestamp):
    with pytest.raises(FormatError):
        create_commit(store, tree, [], 'a', 'm', timestamp)
    assert len(store) == 2


def test_timestamp_extremes(store, tree):
    for timestamp in (2 ** 63 - 1, -2 ** 63):
        oid = create_commit(store, tree, [], 'a', 'm', timestamp)
        assert store.read(oid).timestamp == timestamp
