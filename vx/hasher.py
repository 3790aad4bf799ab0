import hashlib
import string

from . import types
from .errors import NotFoundError

HASH_SIZE = 32
HEX_SIZE = HASH_SIZE * 2


def hash_bytes(data: bytes) -> types.Hash:
    return hashlib.sha256(data).digest()


def to_hex(hash_: types.Hash) -> str:
    return hash_.hex()


def is_hex(name: str) -> bool:
    return len(name) == HEX_SIZE and all(c in string.hexdigits for c in name)


def from_hex(name: str) -> types.Hash:
    if not is_hex(name):
        raise NotFoundError(f'not an object name: {name!r}')
    return bytes.fromhex(name)
