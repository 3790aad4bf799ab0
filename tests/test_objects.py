import struct

import pytest

from vx import hasher
from vx.errors import ConflictError, FormatError
from vx.objects import MAGIC, decode, encode, hash_of, type_of
from vx.types import Blob, Commit, Mode, ObjectType, Tree, TreeEntry

from conftest import EMPTY_TREE, HELLO, HELLO_HASH

H1 = bytes(range(32))
H2 = bytes(range(32, 64))


def sample_objects():
    return [
        Blob(b''),
        Blob(HELLO),
        Blob(bytes(range(256)) * 3),
        Tree(),
        Tree.of([TreeEntry('b.txt', Mode.FILE, H1),
                 TreeEntry('a', Mode.DIRECTORY, H2),
                 TreeEntry('run.sh', Mode.EXECUTABLE, H1)]),
        Tree.of([TreeEntry('ünïcödé', Mode.FILE, H2)]),
        Commit(tree=H1, parents=(), author='A U Thor', message='initial commit', timestamp=0),
        Commit(tree=H1, parents=(H2, H1), author='', message='merge\n\nbody', timestamp=-5),
        Commit(tree=H2, parents=(H1,), author='ça va', message='', timestamp=2 ** 62),
    ]


@pytest.mark.parametrize('obj', sample_objects())
def test_round_trip(obj):
    assert decode(encode(obj)) == obj


def test_hello_blob_layout():
    data = encode(Blob(HELLO))
    assert data == MAGIC + b'\x00' + struct.pack('<Q', 12) + HELLO
    assert hasher.to_hex(hash_of(Blob(HELLO))) == HELLO_HASH


def test_empty_tree_hash():
    assert encode(Tree()) == MAGIC + b'\x01' + b'\x00' * 4
    assert hasher.to_hex(hash_of(Tree())) == EMPTY_TREE


def test_hash_is_32_bytes_and_stable():
    assert len(hash_of(Blob(HELLO))) == 32
    assert hash_of(Blob(HELLO)) == hash_of(Blob(bytes(HELLO)))


def test_hash_equal_iff_encoding_equal():
    objs = sample_objects()
    for a in objs:
        for b in objs:
            assert (hash_of(a) == hash_of(b)) == (encode(a) == encode(b))


def test_tree_sorted_at_encode_time():
    entries = [TreeEntry('z', Mode.FILE, H1), TreeEntry('a', Mode.FILE, H2)]
    unsorted = Tree(tuple(entries))
    assert encode(unsorted) == encode(Tree.of(entries))
    assert [e.name for e in decode(encode(unsorted)).entries] == ['a', 'z']


def test_tree_of_rejects_duplicate_names():
    with pytest.raises(ConflictError):
        Tree.of([TreeEntry('a', Mode.FILE, H1), TreeEntry('a', Mode.DIRECTORY, H2)])


def test_encode_rejects_duplicate_names():
    with pytest.raises(ConflictError):
        encode(Tree((TreeEntry('a', Mode.FILE, H1), TreeEntry('a', Mode.DIRECTORY, H2))))


@pytest.mark.parametrize('obj', [
    Tree((TreeEntry('a', Mode.FILE, H1[:31]),)),
    Tree((TreeEntry('a', 3, H1),)),
    Commit(tree=b'', parents=(), author='a', message='m', timestamp=0),
    Commit(tree=H1, parents=(H2 + H2,), author='a', message='m', timestamp=0),
    Commit(tree=H1, parents=(), author='a', message='m', timestamp=2 ** 63),
])
def test_encode_rejects_malformed_objects(obj):
    with pytest.raises(FormatError):
        encode(obj)


def test_blob_and_tree_with_same_payload_differ():
    assert hash_of(Blob(b'')) != hash_of(Tree())


def test_type_of():
    assert type_of(encode(Blob(b'x'))) is ObjectType.BLOB
    assert type_of(encode(Tree())) is ObjectType.TREE
    assert type_of(encode(sample_objects()[6])) is ObjectType.COMMIT


def _raw_tree(*entries):
    data = MAGIC + b'\x01' + struct.pack('<I', len(entries))
    for name, mode, target in entries:
        raw = name.encode()
        data += struct.pack('<I', len(raw)) + raw + bytes([mode]) + target
    return data


@pytest.mark.parametrize('data', [
    b'',
    b'VX0',
    b'VX02\x00' + struct.pack('<Q', 0),
    MAGIC + b'\x07',
    MAGIC + b'\x00' + struct.pack('<Q', 5) + b'abc',
    MAGIC + b'\x00' + struct.pack('<Q', 1) + b'abc',
    MAGIC + b'\x00' + b'\x01\x00',
    MAGIC + b'\x01' + struct.pack('<I', 2),
    _raw_tree(('a', 9, H1)),
    _raw_tree(('b', 0, H1), ('a', 0, H2)),
    _raw_tree(('a', 0, H1), ('a', 0, H2)),
    _raw_tree(('a', 0, H1)) + b'\x00',
    MAGIC + b'\x01' + struct.pack('<I', 1) + struct.pack('<I', 2) + b'\xff\xfe' + b'\x00' + H1,
])
def test_decode_rejects_malformed(data):
    with pytest.raises(FormatError):
        decode(data)


@pytest.mark.parametrize('obj', sample_objects())
def test_decode_rejects_truncation(obj):
    data = encode(obj)
    for cut in (1, len(data) // 2, len(data) - 1):
        with pytest.raises(FormatError):
            decode(data[:cut])


def test_decode_rejects_trailing_bytes_after_commit():
    with pytest.raises(FormatError):
        decode(encode(sample_objects()[6]) + b'!')
