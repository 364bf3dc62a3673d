#!/usr/bin/env python3
"""issueflow CLI entrypoint."""

import argparse
import logging
import sys
from pathlib import Path

from issueflow.commands import archive as cmd_archive_module
from issueflow.commands import list as cmd_list_module
from issueflow.commands import new as cmd_new_module
from issueflow.commands import run as cmd_run_module
from issueflow.commands import status as cmd_status_module
from issueflow.lib.config import ConfigError, load_config
from issueflow.lib.constants import EXIT_USAGE


def get_config(args):
    """Load workspace config from --root (default: current directory)."""
    root = Path(args.root).resolve()
    try:
        return load_config(root), root
    except ConfigError as e:
        print(f"ERROR: {e}")
        sys.exit(EXIT_USAGE)


def cmd_new(args):
    config, root = get_config(args)
    return cmd_new_module.cmd_new(args, root, config)


def cmd_status(args):
    config, root = get_config(args)
    return cmd_status_module.cmd_status(args, root, config)


def cmd_run(args):
    config, root = get_config(args)
    return cmd_run_module.cmd_run(args, root, config)


def cmd_run_all(args):
    config, root = get_config(args)
    return cmd_run_module.cmd_run_all(args, root, config)


def cmd_list_open(args):
    config, root = get_config(args)
    return cmd_list_module.cmd_list_open(args, root, config)


def cmd_archive(args):
    config, root = get_config(args)
    return cmd_archive_module.cmd_archive(args, root, config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='issueflow', description='Issue workflow orchestrator')
    parser.add_argument('--root', '-r', default='.', help='Workspace root (default: current directory)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Log progress to stderr')

    subparsers = parser.add_subparsers(dest='command', required=True)

    # issueflow new
    p_new = subparsers.add_parser('new', help='Create an issue')
    p_new.add_argument('id', help='Issue id, kebab-case (e.g. bug-off-by-one)')
    p_new.add_argument('--type', '-t', required=True, help='BUG, FEATURE or PERFORMANCE')
    p_new.add_argument('--title', help='Issue title (default: the id)')
    body = p_new.add_mutually_exclusive_group()
    body.add_argument('--body', '-b', help='Problem description')
    body.add_argument('--body-file', help='Read the problem description from a file')
    p_new.set_defaults(func=cmd_new)

    # issueflow status
    p_status = subparsers.add_parser('status', help='Show issue status and artifacts')
    p_status.add_argument('id', help='Issue id')
    p_status.set_defaults(func=cmd_status)

    # issueflow run
    p_run = subparsers.add_parser('run', help='Drive an issue through its remaining phases')
    p_run.add_argument('id', help='Issue id')
    p_run.add_argument('--max-fix-attempts', type=int, help='Override MAX_FIX_ATTEMPTS for this run')
    p_run.add_argument('--force', action='store_true', help='Retry an issue whose fix loop was exhausted')
    p_run.add_argument('--no-prefect', action='store_true', help='Run phases without Prefect flow/tasks')
    p_run.set_defaults(func=cmd_run)

    # issueflow run-all
    p_run_all = subparsers.add_parser('run-all', help='Run every unfinished issue, continuing past failures')
    p_run_all.add_argument('--max-fix-attempts', type=int, help='Override MAX_FIX_ATTEMPTS for each issue')
    p_run_all.add_argument('--no-prefect', action='store_true', help='Run phases without Prefect flow/tasks')
    p_run_all.set_defaults(func=cmd_run_all)

    # issueflow list-open
    p_list = subparsers.add_parser('list-open', help='List issues not yet archived')
    p_list.add_argument('--status', '-s', action='append', help='Only show this status (repeatable)')
    p_list.set_defaults(func=cmd_list_open)

    # issueflow archive
    p_archive = subparsers.add_parser('archive', help='Archive a RESOLVED or REJECTED issue')
    p_archive.add_argument('id', help='Issue id')
    p_archive.set_defaults(func=cmd_archive)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if getattr(args, 'max_fix_attempts', None) is not None and args.max_fix_attempts < 0:
        parser.error("--max-fix-attempts must be >= 0")

    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
