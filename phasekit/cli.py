#!/usr/bin/env python3
"""phasekit CLI entrypoint."""

import sys
import argparse
import logging
from pathlib import Path

from phasekit import __version__
from phasekit.commands import artifact as cmd_artifact_module
from phasekit.commands import delete as cmd_delete_module
from phasekit.commands import fire as cmd_fire_module
from phasekit.commands import metadata as cmd_metadata_module
from phasekit.commands import new as cmd_new_module
from phasekit.commands import order as cmd_order_module
from phasekit.commands import prompt as cmd_prompt_module
from phasekit.commands import status as cmd_status_module
from phasekit.commands import task as cmd_task_module
from phasekit.commands.common import UsageError, Workspace
from phasekit.lib import depgraph
from phasekit.lib.config import ConfigError, find_workspace_root, load_settings
from phasekit.lib.constants import (
    EXIT_CONFIG,
    EXIT_DEPENDENCY,
    EXIT_ERROR,
    EXIT_GUARD,
    EXIT_IO,
    EXIT_LOCK,
    EXIT_SCHEMA,
    TASK_STATUSES,
)
from phasekit.lib.locking import LockTimeout
from phasekit.lib.prompts import PromptError, PromptRegistry
from phasekit.lib.validate import SchemaViolation
from phasekit.state.operations import DuplicateArtifact, NotFoundError, TaskStateError
from phasekit.state.persistence import PersistenceFailure
from phasekit.workflow.fsm import ActionFailed, ConfigurationError, TransitionError
from phasekit.workflow.registry import UnknownProjectType, default_registry

logger = logging.getLogger(__name__)

# Checked in order; the first matching class decides the exit code.
EXIT_CODES = [
    (ActionFailed, EXIT_ERROR),
    (TransitionError, EXIT_GUARD),
    (SchemaViolation, EXIT_SCHEMA),
    (depgraph.DependencyError, EXIT_DEPENDENCY),
    (PersistenceFailure, EXIT_IO),
    (LockTimeout, EXIT_LOCK),
    ((ConfigError, ConfigurationError, UnknownProjectType, UsageError), EXIT_CONFIG),
    ((TaskStateError, DuplicateArtifact, NotFoundError, PromptError), EXIT_ERROR),
]


def exit_code_for(error: Exception) -> int:
    for classes, code in EXIT_CODES:
        if isinstance(error, classes):
            return code
    raise error


def get_workspace(args) -> Workspace:
    """Settings for --root, or the nearest .phasekit/ above the cwd."""
    if args.root:
        root = Path(args.root)
    else:
        root = find_workspace_root(Path.cwd()) or Path.cwd()

    settings = load_settings(root)
    return Workspace(
        settings=settings,
        registry=default_registry(),
        prompts=PromptRegistry(settings.prompts_dir),
    )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def cmd_new(args, ws):
    return cmd_new_module.cmd_new(args, ws)


def cmd_status(args, ws):
    return cmd_status_module.cmd_status(args, ws)


def cmd_fire(args, ws):
    return cmd_fire_module.cmd_fire(args, ws)


def cmd_advance(args, ws):
    return cmd_fire_module.cmd_advance(args, ws)


def cmd_task_add(args, ws):
    return cmd_task_module.cmd_task_add(args, ws)


def cmd_task_list(args, ws):
    return cmd_task_module.cmd_task_list(args, ws)


def cmd_task_status(args, ws):
    return cmd_task_module.cmd_task_status(args, ws)


def cmd_artifact_add(args, ws):
    return cmd_artifact_module.cmd_artifact_add(args, ws)


def cmd_artifact_approve(args, ws):
    return cmd_artifact_module.cmd_artifact_approve(args, ws)


def cmd_artifact_list(args, ws):
    return cmd_artifact_module.cmd_artifact_list(args, ws)


def cmd_set(args, ws):
    return cmd_metadata_module.cmd_set(args, ws)


def cmd_order(args, ws):
    return cmd_order_module.cmd_order(args, ws)


def cmd_prompt(args, ws):
    return cmd_prompt_module.cmd_prompt(args, ws)


def cmd_delete(args, ws):
    return cmd_delete_module.cmd_delete(args, ws)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='phasekit', description='Phase-driven project workflows')
    parser.add_argument('--root', help='Workspace root (default: nearest directory with .phasekit/)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    parser.add_argument('--version', action='version', version=f'phasekit {__version__}')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # phasekit new
    p_new = subparsers.add_parser('new', help='Create a project')
    p_new.add_argument('--branch', '-b', required=True, help='Branch the work happens on')
    p_new.add_argument('--description', '-d', help='What the project is about')
    p_new.add_argument('--type', '-t', help='Project type (default: from branch prefix)')
    p_new.add_argument('--name', help='Project name (default: from description)')
    p_new.add_argument('--input', action='append', metavar='PHASE:TYPE:PATH', help='Initial phase input')
    p_new.set_defaults(func=cmd_new)

    # phasekit status
    p_status = subparsers.add_parser('status', help='Show project status')
    p_status.set_defaults(func=cmd_status)

    # phasekit fire
    p_fire = subparsers.add_parser('fire', help='Fire a workflow event')
    p_fire.add_argument('event', help='Event name')
    p_fire.set_defaults(func=cmd_fire)

    # phasekit advance
    p_advance = subparsers.add_parser('advance', help='Fire the one event currently permitted')
    p_advance.set_defaults(func=cmd_advance)

    # phasekit task ...
    p_task = subparsers.add_parser('task', help='Manage tasks')
    task_sub = p_task.add_subparsers(dest='task_command', required=True)

    p_task_add = task_sub.add_parser('add', help='Add a task')
    p_task_add.add_argument('name', help='Task name')
    p_task_add.add_argument('--phase', help='Phase (default: current task phase)')
    p_task_add.add_argument('--id', help='Explicit three digit id, e.g. 015')
    p_task_add.add_argument('--depends', help='Comma separated ids this task depends on')
    p_task_add.add_argument('--agent', help='Assigned agent')
    p_task_add.add_argument('--artifact', help='Output artifact path this task produces')
    p_task_add.set_defaults(func=cmd_task_add)

    p_task_list = task_sub.add_parser('list', help='List tasks')
    p_task_list.add_argument('--phase', help='Only this phase')
    p_task_list.set_defaults(func=cmd_task_list)

    p_task_status = task_sub.add_parser('status', help='Move a task to a new status')
    p_task_status.add_argument('id', help='Task id')
    p_task_status.add_argument('status', choices=TASK_STATUSES, help='New status')
    p_task_status.add_argument('--phase', help='Phase (default: current task phase)')
    p_task_status.set_defaults(func=cmd_task_status)

    # phasekit artifact ...
    p_artifact = subparsers.add_parser('artifact', help='Manage artifacts')
    artifact_sub = p_artifact.add_subparsers(dest='artifact_command', required=True)

    p_art_add = artifact_sub.add_parser('add', help='Add an artifact')
    p_art_add.add_argument('path', help='Relative path of the artifact')
    p_art_add.add_argument('--type', required=True, help='Artifact type')
    p_art_add.add_argument('--phase', help='Phase (default: current phase)')
    p_art_add.add_argument('--input', action='store_true', help='Add as input instead of output')
    p_art_add.add_argument('--approved', action='store_true', help='Mark approved right away')
    p_art_add.add_argument('--meta', action='append', metavar='KEY=VALUE', help='Artifact metadata')
    p_art_add.set_defaults(func=cmd_artifact_add)

    p_art_approve = artifact_sub.add_parser('approve', help='Approve an artifact')
    p_art_approve.add_argument('path', help='Artifact path')
    p_art_approve.add_argument('--phase', help='Phase (default: current phase)')
    p_art_approve.set_defaults(func=cmd_artifact_approve)

    p_art_list = artifact_sub.add_parser('list', help='List artifacts')
    p_art_list.add_argument('--phase', help='Only this phase')
    p_art_list.set_defaults(func=cmd_artifact_list)

    # phasekit set
    p_set = subparsers.add_parser('set', help='Set a metadata key')
    p_set.add_argument('key', help='Metadata key')
    p_set.add_argument('value', help='Value (true/false, number or string)')
    p_set.add_argument('--phase', help='Phase (default: current phase)')
    target = p_set.add_mutually_exclusive_group()
    target.add_argument('--task', help='Set on this task instead of the phase')
    target.add_argument('--artifact', help='Set on this artifact instead of the phase')
    p_set.set_defaults(func=cmd_set)

    # phasekit order
    p_order = subparsers.add_parser('order', help='Tasks in dependency order')
    p_order.add_argument('--phase', help='Phase (default: current task phase)')
    p_order.add_argument('--publish', action='store_true', help='Breakdown: completed units in publish order')
    p_order.set_defaults(func=cmd_order)

    # phasekit prompt
    p_prompt = subparsers.add_parser('prompt', help='Render the prompt for the current state')
    p_prompt.set_defaults(func=cmd_prompt)

    # phasekit delete
    p_delete = subparsers.add_parser('delete', help='Remove the project document')
    p_delete.add_argument('--force', action='store_true', help='Really delete')
    p_delete.set_defaults(func=cmd_delete)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        ws = get_workspace(args)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_CONFIG

    configure_logging("DEBUG" if args.verbose else ws.settings.log_level)

    try:
        return args.func(args, ws)
    except Exception as e:
        code = exit_code_for(e)
        print(f"ERROR: {e}", file=sys.stderr)
        logger.debug("Command failed", exc_info=True)
        return code


if __name__ == '__main__':
    sys.exit(main())
