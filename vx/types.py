import enum
from typing import Callable, Iterable, NamedTuple, TypeAlias, Union

from typing_extensions import Self

from .errors import ConflictError

Path: TypeAlias = str  # a '/'-separated path relative to the snapshot root
Hash: TypeAlias = bytes  # 32-byte digest


class ObjectType(enum.IntEnum):
    BLOB = 0
    TREE = 1
    COMMIT = 2


class Mode(enum.IntEnum):
    FILE = 0
    EXECUTABLE = 1
    DIRECTORY = 2


class EntryKind(enum.Enum):
    FILE = 'file'
    EXECUTABLE = 'executable'
    DIRECTORY = 'directory'
    SYMLINK = 'symlink'
    SPECIAL = 'special'  # sockets, fifos, devices


class Blob(NamedTuple):
    data: bytes


class TreeEntry(NamedTuple):
    name: str
    mode: Mode
    target: Hash


class Tree(NamedTuple):
    entries: tuple[TreeEntry, ...] = ()

    @classmethod
    def of(cls, entries: Iterable[TreeEntry]) -> Self:
        """Build a canonical tree: entries sorted by name, names unique."""
        entries = sorted(entries, key=lambda e: e.name)
        for prev, entry in zip(entries, entries[1:]):
            if prev.name == entry.name:
                raise ConflictError(f'duplicate tree entry name {entry.name!r}')
        return cls(tuple(entries))

    def get(self, name: str) -> TreeEntry | None:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None


class Commit(NamedTuple):
    tree: Hash
    parents: tuple[Hash, ...]
    author: str
    message: str
    timestamp: int


Object: TypeAlias = Union[Blob, Tree, Commit]


class SnapshotEntry(NamedTuple):
    path: Path
    kind: EntryKind
    content: Callable[[], bytes] | None = None


class RefValue(NamedTuple):
    symbolic: bool
    value: str | None
