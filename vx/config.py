"""Per-invocation configuration.

A Config names one repository and is handed to whatever needs it; nothing
in vx keeps the current repository in module state.
"""
import os
from typing import Mapping, NamedTuple

from typing_extensions import Self

DEFAULT_DIR = '.vx'
IGNORE_FILE = '.vxignore'


def _env_flag(value: str | None, default: bool) -> bool:
    if value is None or value == '':
        return default
    return value.strip().lower() not in ('0', 'false', 'no', 'off')


class Config(NamedTuple):
    root: str
    vx_dir: str = DEFAULT_DIR
    fsync: bool = True
    author: str | None = None

    @property
    def repo_dir(self) -> str:
        return os.path.join(self.root, self.vx_dir)

    @property
    def ignore_file(self) -> str:
        return os.path.join(self.root, IGNORE_FILE)

    @classmethod
    def from_env(cls, root: str = '.', environ: Mapping[str, str] | None = None) -> Self:
        env = os.environ if environ is None else environ
        return cls(
            root=os.path.abspath(root),
            vx_dir=env.get('VX_DIR') or DEFAULT_DIR,
            fsync=_env_flag(env.get('VX_FSYNC'), default=True),
            author=env.get('VX_AUTHOR') or None,
        )

    def discover(self) -> Self:
        """Return a copy rooted at the nearest ancestor holding a repository."""
        path = self.root
        while True:
            if os.path.isdir(os.path.join(path, self.vx_dir)):
                return self._replace(root=path)
            parent = os.path.dirname(path)
            if parent == path:
                return self
            path = parent
