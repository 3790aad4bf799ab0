import logging
import os
from typing import Iterator

from . import hasher
from . import types
from .config import Config
from .errors import InvalidNameError, NotFoundError
from .store import ObjectStore
from .types import RefValue

logger = logging.getLogger(__name__)

OBJECTS_FILE = 'objects.bin'
DEFAULT_BRANCH = 'refs/heads/main'


def init(config: Config) -> None:
    os.makedirs(os.path.join(config.repo_dir, 'refs', 'heads'), exist_ok=True)
    open_store(config).close()
    if not os.path.isfile(os.path.join(config.repo_dir, 'HEAD')):
        update_ref(config, 'HEAD', RefValue(symbolic=True, value=DEFAULT_BRANCH), deref=False)
    logger.debug('Initialized repository in %s', config.repo_dir)


def is_repo(config: Config) -> bool:
    return os.path.isdir(config.repo_dir)


def open_store(config: Config) -> ObjectStore:
    if not is_repo(config):
        raise NotFoundError(f'not a vx repository: {config.root}')
    return ObjectStore(os.path.join(config.repo_dir, OBJECTS_FILE), fsync=config.fsync)


def update_ref(config: Config, ref: str, value: RefValue, deref: bool = True) -> None:
    ref = _get_ref_internal(config, ref, deref)[0]

    assert value.value
    if value.symbolic:
        content = f'ref: {value.value}'
    else:
        content = value.value
    ref_path = os.path.join(config.repo_dir, ref)
    os.makedirs(os.path.dirname(ref_path), exist_ok=True)
    with open(ref_path, 'w') as f:
        f.write(content)


def get_ref(config: Config, ref: str, deref: bool = True) -> RefValue:
    return _get_ref_internal(config, ref, deref)[1]


def check_ref_name(ref: str) -> str:
    parts = ref.replace('\\', '/').split('/')
    if os.path.isabs(ref) or any(part in ('', '.', '..') for part in parts):
        raise InvalidNameError(f'invalid ref name {ref!r}')
    return ref


def _get_ref_internal(config: Config, ref: str, deref: bool) -> tuple[str, RefValue]:
    check_ref_name(ref)
    ref_path = os.path.join(config.repo_dir, ref)
    value = None
    if os.path.isfile(ref_path):
        with open(ref_path) as f:
            value = f.read().strip()

    symbolic = bool(value) and value.startswith('ref:')
    if symbolic:
        value = value.split(':', 1)[1].strip()
        if deref:
            return _get_ref_internal(config, value, deref=True)
    return ref, RefValue(symbolic=symbolic, value=value or None)


def get_ref_hash(config: Config, ref: str) -> types.Hash | None:
    value = get_ref(config, ref).value
    if value is None:
        return None
    return hasher.from_hex(value)



def iter_refs(config: Config, prefix: str = '', deref: bool = True) -> Iterator[tuple[str, RefValue]]:
    refs = ['HEAD']
    for root, dirnames, filenames in os.walk(os.path.join(config.repo_dir, 'refs')):
        dirnames.sort()
        root = os.path.relpath(root, config.repo_dir).replace('\\', '/')
        refs.extend(f'{root}/{name}' for name in sorted(filenames))

    for refname in refs:
        if not refname.startswith(prefix):
            continue
        ref = get_ref(config, refname, deref=deref)
        if ref.value:
            yield refname, ref
