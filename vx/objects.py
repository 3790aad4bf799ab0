"""Canonical binary encoding of vx objects.

Every encoded object starts with the 4-byte magic ``VX01`` and a 1-byte
type tag. Integers are little-endian, strings are UTF-8:

    Blob    u64 length, bytes
    Tree    u32 count, then per entry sorted by name:
            u32 name length, name, u8 mode, 32-byte target hash
    Commit  32-byte tree hash, u32 parent count, parent hashes,
            u32 author length, author, u32 message length, message,
            i64 timestamp

The encoding is the identity of an object: its hash is the digest of
these bytes and nothing else.
"""
import struct

from . import hasher
from . import types
from .errors import ConflictError, FormatError
from .types import Blob, Commit, Mode, ObjectType, Tree, TreeEntry

MAGIC = b'VX01'
HEADER_SIZE = len(MAGIC) + 1

_U8 = struct.Struct('<B')
_U32 = struct.Struct('<I')
_U64 = struct.Struct('<Q')
_I64 = struct.Struct('<q')

I64_MIN = -2 ** 63
I64_MAX = 2 ** 63 - 1


def encode(obj: types.Object) -> bytes:
    if isinstance(obj, Blob):
        return _header(ObjectType.BLOB) + _U64.pack(len(obj.data)) + bytes(obj.data)
    if isinstance(obj, Tree):
        return _header(ObjectType.TREE) + _encode_tree(obj)
    if isinstance(obj, Commit):
        return _header(ObjectType.COMMIT) + _encode_commit(obj)
    raise TypeError(f'cannot encode {type(obj).__name__}')


def hash_of(obj: types.Object) -> types.Hash:
    return hasher.hash_bytes(encode(obj))


def _header(type_: ObjectType) -> bytes:
    return MAGIC + _U8.pack(type_)


def _str(value: str) -> bytes:
    raw = value.encode('utf-8')
    return _U32.pack(len(raw)) + raw


def _digest(value: bytes, what: str) -> bytes:
    if not isinstance(value, (bytes, bytearray)) or len(value) != hasher.HASH_SIZE:
        raise FormatError(f'{what} is not a {hasher.HASH_SIZE}-byte hash')
    return bytes(value)


def _mode(value: int, name: str) -> Mode:
    try:
        return Mode(value)
    except ValueError:
        raise FormatError(f'unknown entry mode {value!r} for {name!r}') from None


def _encode_tree(tree: Tree) -> bytes:
    entries = sorted(tree.entries, key=lambda e: e.name)
    parts = [_U32.pack(len(entries))]
    prev = None
    for name, mode, target in entries:
        if name == prev:
            raise ConflictError(f'duplicate tree entry name {name!r}')
        prev = name
        parts.append(_str(name))
        parts.append(_U8.pack(_mode(mode, name)))
        parts.append(_digest(target, f'target of {name!r}'))
    return b''.join(parts)


def _encode_commit(commit: Commit) -> bytes:
    if not I64_MIN <= commit.timestamp <= I64_MAX:
        raise FormatError(f'timestamp {commit.timestamp} does not fit in 64 bits')
    parts = [_digest(commit.tree, 'tree hash'), _U32.pack(len(commit.parents))]
    parts.extend(_digest(parent, 'parent hash') for parent in commit.parents)
    parts.append(_str(commit.author))
    parts.append(_str(commit.message))
    parts.append(_I64.pack(commit.timestamp))
    return b''.join(parts)


class _Reader:
    """Cursor over an encoded payload; every read checks the remaining length."""

    def __init__(self, data: bytes, pos: int = 0):
        self.data = memoryview(data)
        self.pos = pos

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def take(self, n: int, what: str) -> bytes:
        if n > self.remaining:
            raise FormatError(f'truncated {what}: need {n} bytes, {self.remaining} left')
        chunk = bytes(self.data[self.pos:self.pos + n])
        self.pos += n
        return chunk

    def unpack(self, fmt: struct.Struct, what: str) -> int:
        return fmt.unpack(self.take(fmt.size, what))[0]

    def digest(self, what: str) -> types.Hash:
        return self.take(hasher.HASH_SIZE, what)

    def text(self, what: str) -> str:
        length = self.unpack(_U32, f'{what} length')
        raw = self.take(length, what)
        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise FormatError(f'{what} is not valid UTF-8') from e

    def finish(self, what: str) -> None:
        if self.remaining:
            raise FormatError(f'{self.remaining} trailing bytes after {what}')


def type_of(data: bytes) -> ObjectType:
    """Read the type tag of an encoded object without decoding its payload."""
    if len(data) < HEADER_SIZE:
        raise FormatError(f'truncated header: {len(data)} bytes')
    if data[:len(MAGIC)] != MAGIC:
        raise FormatError(f'bad magic {bytes(data[:len(MAGIC)])!r}')
    tag = data[len(MAGIC)]
    try:
        return ObjectType(tag)
    except ValueError:
        raise FormatError(f'unknown type tag {tag}') from None


def decode(data: bytes) -> types.Object:
    type_ = type_of(data)
    reader = _Reader(data, HEADER_SIZE)
    if type_ is ObjectType.BLOB:
        obj = _decode_blob(reader)
    elif type_ is ObjectType.TREE:
        obj = _decode_tree(reader)
    else:
        obj = _decode_commit(reader)
    reader.finish(type_.name.lower())
    return obj


def _decode_blob(reader: _Reader) -> Blob:
    length = reader.unpack(_U64, 'blob length')
    if length != reader.remaining:
        raise FormatError(f'blob declares {length} bytes, {reader.remaining} present')
    return Blob(reader.take(length, 'blob'))


def _decode_tree(reader: _Reader) -> Tree:
    count = reader.unpack(_U32, 'tree entry count')
    entries = []
    for _ in range(count):
        name = reader.text('entry name')
        mode_byte = reader.unpack(_U8, 'entry mode')
        try:
            mode = Mode(mode_byte)
        except ValueError:
            raise FormatError(f'unknown entry mode {mode_byte}') from None
        target = reader.digest('entry hash')
        if entries and entries[-1].name >= name:
            raise FormatError(f'tree entries not in canonical order at {name!r}')
        entries.append(TreeEntry(name, mode, target))
    return Tree(tuple(entries))


def _decode_commit(reader: _Reader) -> Commit:
    tree = reader.digest('tree hash')
    count = reader.unpack(_U32, 'parent count')
    parents = tuple(reader.digest('parent hash') for _ in range(count))
    author = reader.text('author')
    message = reader.text('message')
    timestamp = reader.unpack(_I64, 'timestamp')
    return Commit(tree=tree, parents=parents, author=author,
                  message=message, timestamp=timestamp)
