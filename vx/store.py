"""Hash-indexed, append-only, deduplicating object store.

Metadata is kept as parallel arrays, one per field of a record:

    hashes   packed 32-byte digests (bytearray)
    types    object type tags       (array 'B')
    offsets  payload offsets        (array 'Q')
    lengths  payload lengths        (array 'Q')

Row ``i`` of every array describes the same object, and ``_index`` maps a
digest to its row. Payload bytes live in a separate region, so scans over
one field (listing every tree, re-checking every digest) never touch the
others.

On disk the payload region is one file, ``objects.bin``::

    b'VXST' u32 version
    frame*   hash(32) type(1) length(u64) encoded-object(length)

The metadata arrays are rebuilt from the frame headers when the store is
opened; the payload bytes themselves are not read at that point.
"""
import logging
import os
import struct
import threading
from array import array
from typing import Iterator

from . import hasher
from . import objects
from . import types
from .errors import FormatError, NotFoundError
from .types import ObjectType

logger = logging.getLogger(__name__)

STORE_MAGIC = b'VXST'
STORE_VERSION = 1

_FILE_HEADER = struct.Struct('<4sI')
_FRAME_HEADER = struct.Struct(f'<{hasher.HASH_SIZE}sBQ')


class _MemoryRegion:
    def __init__(self):
        self._buf = bytearray()

    def append(self, hash_: types.Hash, type_: ObjectType, data: bytes) -> int:
        offset = len(self._buf)
        self._buf += data
        return offset

    def read(self, offset: int, length: int) -> bytes:
        return bytes(self._buf[offset:offset + length])

    def scan(self) -> Iterator[tuple[types.Hash, int, int, int]]:
        return iter(())

    def close(self) -> None:
        pass


class _FileRegion:
    def __init__(self, path: str, fsync: bool = True):
        self.path = path
        self.fsync = fsync
        self._file = open(path, 'a+b')
        self._size = os.fstat(self._file.fileno()).st_size
        if self._size == 0:
            header = _FILE_HEADER.pack(STORE_MAGIC, STORE_VERSION)
            self._write(header)
            self._size = len(header)

    def _write(self, data: bytes) -> None:
        try:
            self._file.write(data)
            self._file.flush()
            if self.fsync:
                os.fsync(self._file.fileno())
        except OSError:
            # drop a partially written frame so the next append starts clean
            self._file.truncate(self._size)
            raise

    def append(self, hash_: types.Hash, type_: ObjectType, data: bytes) -> int:
        frame = _FRAME_HEADER.pack(hash_, type_, len(data))
        self._write(frame + data)
        offset = self._size + len(frame)
        self._size = offset + len(data)
        return offset

    def read(self, offset: int, length: int) -> bytes:
        data = os.pread(self._file.fileno(), length, offset)
        if len(data) != length:
            raise FormatError(f'{self.path}: short read at offset {offset}')
        return data

    def scan(self) -> Iterator[tuple[types.Hash, int, int, int]]:
        """Yield (hash, type, offset, length) for every frame, skipping payloads."""
        with open(self.path, 'rb') as f:
            magic, version = _FILE_HEADER.unpack(_read_exact(f, _FILE_HEADER.size, 'store header'))
            if magic != STORE_MAGIC:
                raise FormatError(f'{self.path}: bad store magic {magic!r}')
            if version != STORE_VERSION:
                raise FormatError(f'{self.path}: unsupported store version {version}')

            pos = _FILE_HEADER.size
            while pos < self._size:
                header = _read_exact(f, _FRAME_HEADER.size, 'frame header')
                hash_, type_, length = _FRAME_HEADER.unpack(header)
                offset = pos + _FRAME_HEADER.size
                if offset + length > self._size or length < objects.HEADER_SIZE:
                    raise FormatError(f'{self.path}: truncated frame for {hasher.to_hex(hash_)}')
                if objects.type_of(_read_exact(f, objects.HEADER_SIZE, 'object header')) != type_:
                    raise FormatError(f'{self.path}: frame type mismatch for {hasher.to_hex(hash_)}')
                f.seek(offset + length)
                pos = offset + length
                yield hash_, type_, offset, length

    def close(self) -> None:
        self._file.close()


def _read_exact(f, n: int, what: str) -> bytes:
    data = f.read(n)
    if len(data) != n:
        raise FormatError(f'truncated {what}')
    return data


class ObjectStore:
    """Content-addressed store of encoded objects.

    ``path=None`` keeps everything in memory. Writes are serialized by a
    single lock that covers the index lookup and the append; reads take no
    lock.
    """

    def __init__(self, path: str | None = None, fsync: bool = True):
        self.path = path
        self._lock = threading.Lock()
        self._index: dict[types.Hash, int] = {}
        self._hashes = bytearray()
        self._types = array('B')
        self._offsets = array('Q')
        self._lengths = array('Q')

        if path is None:
            self._region = _MemoryRegion()
        else:
            self._region = _FileRegion(path, fsync=fsync)
            try:
                for record in self._region.scan():
                    self._add_record(*record)
            except FormatError:
                self._region.close()
                raise
            logger.debug('Opened %s with %d objects', path, len(self))

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self) -> None:
        self._region.close()

    def __len__(self) -> int:
        return len(self._offsets)

    def __contains__(self, hash_: types.Hash) -> bool:
        return hash_ in self._index

    def contains(self, hash_: types.Hash) -> bool:
        return hash_ in self._index

    def _add_record(self, hash_: types.Hash, type_: int, offset: int, length: int) -> None:
        if hash_ in self._index:
            raise FormatError(f'duplicate record for {hasher.to_hex(hash_)}')
        row = len(self._offsets)
        self._hashes += hash_
        self._types.append(type_)
        self._offsets.append(offset)
        self._lengths.append(length)
        # published last: a reader that finds the row finds its payload too
        self._index[hash_] = row

    def _hash_at(self, row: int) -> types.Hash:
        start = row * hasher.HASH_SIZE
        return bytes(self._hashes[start:start + hasher.HASH_SIZE])

    def _row(self, hash_: types.Hash) -> int:
        row = self._index.get(hash_)
        if row is None:
            raise NotFoundError(f'object {hasher.to_hex(hash_)} not found')
        return row

    def write(self, obj: types.Object) -> types.Hash:
        data = objects.encode(obj)
        return self._put(hasher.hash_bytes(data), objects.type_of(data), data)

    def write_encoded(self, data: bytes) -> types.Hash:
        objects.decode(data)
        return self._put(hasher.hash_bytes(data), objects.type_of(data), data)

    def _put(self, hash_: types.Hash, type_: ObjectType, data: bytes) -> types.Hash:
        if hash_ in self._index:
            logger.debug('Object %s already stored', hasher.to_hex(hash_)[:10])
            return hash_
        with self._lock:
            if hash_ in self._index:
                return hash_
            offset = self._region.append(hash_, type_, data)
            self._add_record(hash_, type_, offset, len(data))
        logger.debug('Stored %s %s (%d bytes)', type_.name.lower(), hasher.to_hex(hash_)[:10], len(data))
        return hash_

    def read_encoded(self, hash_: types.Hash) -> bytes:
        row = self._row(hash_)
        return self._region.read(self._offsets[row], self._lengths[row])

    def read(self, hash_: types.Hash) -> types.Object:
        return objects.decode(self.read_encoded(hash_))

    def type_of(self, hash_: types.Hash) -> ObjectType:
        return ObjectType(self._types[self._row(hash_)])

    def iter_hashes(self, type_: ObjectType | None = None) -> Iterator[types.Hash]:
        count = len(self._types)
        for row in range(count):
            if type_ is None or self._types[row] == type_:
                yield self._hash_at(row)

    def verify(self) -> list[types.Hash]:
        """Return the hashes whose stored bytes no longer digest to them."""
        corrupted = []
        count = len(self._offsets)
        for row in range(count):
            expected = self._hash_at(row)
            payload = self._region.read(self._offsets[row], self._lengths[row])
            if hasher.hash_bytes(payload) != expected:
                logger.warning('Object %s is corrupted', hasher.to_hex(expected))
                corrupted.append(expected)
        return corrupted
