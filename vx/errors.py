"""Error kinds reported by vx operations.

Each kind carries the process exit code the command line maps it to.
"""


class VxError(Exception):
    exit_code = 1


class FormatError(VxError):
    """Malformed object or store bytes: bad magic, unknown tag, bad lengths, truncation."""
    exit_code = 3


class NotFoundError(VxError):
    """No object (or repository) exists under the requested name."""
    exit_code = 4


class DanglingReferenceError(VxError):
    """A tree or commit would reference a hash absent from the store."""
    exit_code = 5


class ConflictError(VxError):
    """Two entries claim the same name within one tree level."""
    exit_code = 6


class UnsupportedEntryError(VxError):
    """A snapshot entry whose kind cannot be represented in a tree."""
    exit_code = 7


class InvalidNameError(VxError):
    """A ref or branch name that cannot name anything inside the repository."""
    exit_code = 8
