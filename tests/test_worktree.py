import os

import pytest

from vx.config import Config
from vx.types import EntryKind
from vx.worktree import clear_directory, is_ignored, iter_repo_snapshot, iter_snapshot, load_ignores


def snapshot(path, **kwargs):
    return {e.path: e for e in iter_snapshot(str(path), **kwargs)}


def test_files_and_directories(tmp_path):
    (tmp_path / 'a.txt').write_bytes(b'a')
    (tmp_path / 'sub').mkdir()
    (tmp_path / 'sub' / 'b.txt').write_bytes(b'b')
    (tmp_path / 'empty').mkdir()

    entries = snapshot(tmp_path)
    assert sorted(entries) == ['a.txt', 'empty', 'sub', 'sub/b.txt']
    assert entries['a.txt'].kind is EntryKind.FILE
    assert entries['a.txt'].content() == b'a'
    assert entries['empty'].kind is EntryKind.DIRECTORY
    assert entries['sub/b.txt'].content() == b'b'


@pytest.mark.skipif(os.name != 'posix', reason='needs POSIX permissions')
def test_executable(tmp_path):
    script = tmp_path / 'run.sh'
    script.write_text('#!/bin/sh\n')
    script.chmod(0o755)
    assert snapshot(tmp_path)['run.sh'].kind is EntryKind.EXECUTABLE


@pytest.mark.skipif(os.name != 'posix', reason='needs POSIX symlinks')
def test_symlinks(tmp_path):
    (tmp_path / 'target.txt').write_bytes(b't')
    (tmp_path / 'dir').mkdir()
    os.symlink('target.txt', tmp_path / 'link.txt')
    os.symlink('missing', tmp_path / 'broken')
    os.symlink('dir', tmp_path / 'dirlink')

    entries = snapshot(tmp_path)
    assert entries['link.txt'].kind is EntryKind.FILE
    assert entries['link.txt'].content() == b't'
    assert entries['broken'].kind is EntryKind.SYMLINK
    assert entries['dirlink'].kind is EntryKind.SYMLINK


def test_ignore_patterns(tmp_path):
    (tmp_path / '.vx').mkdir()
    (tmp_path / '.vx' / 'objects.bin').write_bytes(b'')
    (tmp_path / 'keep.txt').write_bytes(b'k')
    (tmp_path / 'skip.tmp').write_bytes(b's')
    (tmp_path / 'build').mkdir()
    (tmp_path / 'build' / 'out').write_bytes(b'o')
    (tmp_path / '.vxignore').write_text('# comment\n\n*.tmp\nbuild/\n')

    entries = list(iter_repo_snapshot(Config(root=str(tmp_path))))
    assert [e.path for e in entries] == ['.vxignore', 'keep.txt']


def test_load_ignores_missing_file(tmp_path):
    assert load_ignores(str(tmp_path / 'nope')) == []


def test_is_ignored():
    assert is_ignored('a/.vx/b', [], always=('.vx',))
    assert is_ignored('logs/x.log', ['*.log'])
    assert is_ignored('build', ['build/'])
    assert not is_ignored('builder', ['build/'])


def test_config_from_env(tmp_path):
    config = Config.from_env(str(tmp_path), {'VX_DIR': '.other', 'VX_FSYNC': '0', 'VX_AUTHOR': 'ann'})
    assert config == Config(root=str(tmp_path), vx_dir='.other', fsync=False, author='ann')
    assert Config.from_env(str(tmp_path), {}).fsync is True


def test_config_discover(tmp_path):
    (tmp_path / '.vx').mkdir()
    nested = tmp_path / 'a' / 'b'
    nested.mkdir(parents=True)
    assert Config.from_env(str(nested), {}).discover().root == str(tmp_path)


def test_clear_directory_keeps_ignored(tmp_path):
    (tmp_path / 'a.txt').write_bytes(b'a')
    (tmp_path / 'sub' / 'deep').mkdir(parents=True)
    (tmp_path / 'sub' / 'deep' / 'b.txt').write_bytes(b'b')
    (tmp_path / 'logs').mkdir()
    (tmp_path / 'logs' / 'run.log').write_bytes(b'log')
    (tmp_path / '.vx').mkdir()
    (tmp_path / '.vx' / 'HEAD').write_text('ref: refs/heads/main')

    clear_directory(str(tmp_path), ['*.log'], always=('.vx',))

    assert sorted(os.listdir(tmp_path)) == ['.vx', 'logs']
    assert (tmp_path / 'logs' / 'run.log').read_bytes() == b'log'
    assert (tmp_path / '.vx' / 'HEAD').exists()
