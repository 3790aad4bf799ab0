import argparse
import logging
import os
import sys
import textwrap

from . import base
from . import data
from . import hasher
from .config import Config
from .errors import DanglingReferenceError, FormatError, VxError
from .types import Blob, Commit, Tree

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    args = parse_args(argv)
    _setup_logging(args.verbose)

    config = Config.from_env('.')
    if args.command != 'init':
        config = config.discover()

    try:
        return args.func(args, config) or 0
    except VxError as e:
        logger.debug('Command %s failed', args.command, exc_info=True)
        print(f'vx: error: {e}', file=sys.stderr)
        return e.exit_code
    except OSError as e:
        print(f'vx: error: {e}', file=sys.stderr)
        return 1


def _setup_logging(verbose: bool) -> None:
    name = os.environ.get('VX_LOG_LEVEL') or ('DEBUG' if verbose else 'WARNING')
    level = logging.getLevelName(name.upper())
    logging.basicConfig(stream=sys.stderr, level=level if isinstance(level, int) else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')
    if not isinstance(level, int):
        logger.warning('Unknown log level %r, using WARNING', name)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog='vx')
    parser.add_argument('-v', '--verbose', action='store_true', help='log debug output to stderr')
    commands = parser.add_subparsers(dest='command')
    commands.required = True

    init_parser = commands.add_parser('init')
    init_parser.set_defaults(func=init)

    hash_object_parser = commands.add_parser('hash-object')
    hash_object_parser.set_defaults(func=hash_object)
    hash_object_parser.add_argument('-w', dest='write', action='store_true',
                                    help='write the blob into the object store')
    hash_object_parser.add_argument('file')

    cat_file_parser = commands.add_parser('cat-file')
    cat_file_parser.set_defaults(func=cat_file)
    cat_file_parser.add_argument('-t', dest='show_type', action='store_true',
                                 help='print the object type instead of its content')
    cat_file_parser.add_argument('object')

    write_tree_parser = commands.add_parser('write-tree')
    write_tree_parser.set_defaults(func=write_tree)
    write_tree_parser.add_argument('directory', nargs='?', default=None)

    commit_parser = commands.add_parser('commit')
    commit_parser.set_defaults(func=commit)
    commit_parser.add_argument('-m', '--message', required=True)
    commit_parser.add_argument('--author', default=None)

    log_parser = commands.add_parser('log')
    log_parser.set_defaults(func=log)
    log_parser.add_argument('oid', default='@', nargs='?')

    branch_parser = commands.add_parser('branch')
    branch_parser.set_defaults(func=branch)
    branch_parser.add_argument('name', nargs='?')
    branch_parser.add_argument('start_point', default='@', nargs='?')

    checkout_parser = commands.add_parser('checkout')
    checkout_parser.set_defaults(func=checkout)
    checkout_parser.add_argument('commit')
    checkout_parser.add_argument('-f', '--force', action='store_true',
                                 help='discard uncommitted changes in the working tree')

    fsck_parser = commands.add_parser('fsck')
    fsck_parser.set_defaults(func=fsck)

    return parser.parse_args(argv)


def init(args, config):
    base.init(config)
    print(f'Initialized empty vx repository in {config.repo_dir}')


def hash_object(args, config):
    with open(args.file, 'rb') as f:
        content = f.read()
    if args.write:
        with data.open_store(config) as store:
            print(hasher.to_hex(base.hash_object(store, content)))
    else:
        print(hasher.to_hex(base.hash_object(None, content)))


def cat_file(args, config):
    with data.open_store(config) as store:
        oid = base.get_oid(config, args.object)
        if args.show_type:
            print(store.type_of(oid).name.lower())
            return
        obj = store.read(oid)

    if isinstance(obj, Blob):
        sys.stdout.flush()
        sys.stdout.buffer.write(obj.data)
        sys.stdout.buffer.flush()
    elif isinstance(obj, Tree):
        for entry in obj.entries:
            print(f'{entry.mode.name.lower()} {hasher.to_hex(entry.target)} {entry.name}')
    elif isinstance(obj, Commit):
        print(format_commit(obj), end='')


def format_commit(commit_: Commit) -> str:
    lines = [f'tree {hasher.to_hex(commit_.tree)}']
    lines.extend(f'parent {hasher.to_hex(parent)}' for parent in commit_.parents)
    lines.append(f'author {commit_.author} {commit_.timestamp}')
    lines.append('')
    lines.append(commit_.message)
    return '\n'.join(lines) + '\n'


def write_tree(args, config):
    with data.open_store(config) as store:
        print(hasher.to_hex(base.write_tree(config, store, args.directory)))


def commit(args, config):
    with data.open_store(config) as store:
        print(hasher.to_hex(base.commit(config, store, args.message, author=args.author)))


def log(args, config):
    with data.open_store(config) as store:
        if args.oid == '@' and data.get_ref(config, 'HEAD').value is None:
            print('No commits yet')
            return
        for oid in base.iter_commits_and_parents(store, [base.get_oid(config, args.oid)]):
            commit_ = base.get_commit(store, oid)
            print(f'commit {hasher.to_hex(oid)}')
            print(f'Author: {commit_.author}')
            print(f'Date:   {commit_.timestamp}\n')
            print(textwrap.indent(commit_.message, '    '))
            print('')


def branch(args, config):
    if not args.name:
        current = base.get_branch_name(config)
        names = list(base.iter_branch_names(config))
        if not names:
            print('No branches yet')
        for name in names:
            prefix = '*' if name == current else ' '
            print(f'{prefix} {name}')
        return

    with data.open_store(config) as store:
        oid = base.create_branch(config, store, args.name, args.start_point)
    print(f'Branch {args.name} created at {hasher.to_hex(oid)[:10]}')


def checkout(args, config):
    with data.open_store(config) as store:
        base.checkout(config, store, args.commit, force=args.force)
    branch_name = base.get_branch_name(config)
    print(f'Switched to branch {branch_name}' if branch_name else f'HEAD is now at {args.commit}')


def fsck(args, config):
    with data.open_store(config) as store:
        corrupted = store.verify()
        for oid in corrupted:
            print(f'corrupted {hasher.to_hex(oid)}')
        missing = base.check_references(store, skip=corrupted)
        for oid, ref in missing:
            print(f'missing {hasher.to_hex(ref)} referenced by {hasher.to_hex(oid)}')
        if corrupted:
            raise FormatError(f'{len(corrupted)} corrupted objects')
        if missing:
            raise DanglingReferenceError(f'{len(missing)} dangling references')
        print(f'{len(store)} objects ok')


if __name__ == '__main__':
    raise SystemExit(main())
