"""
phasekit set - Set a metadata key on a phase, task or artifact.

`true`/`false` become bools, plain decimals like `3` or `0.5` become numbers
and anything else, `010` and `2024-01-01` included, stays a string. The
`dependencies` key takes a comma separated list of task ids and is checked
against the rest of the phase's tasks.
"""

import re

from phasekit.commands.common import Workspace, parse_list, project_session, resolve_phase
from phasekit.lib.constants import DEPENDENCIES_KEY
from phasekit.state import operations

_INT_PATTERN = re.compile(r'^-?(0|[1-9][0-9]*)$')
_FLOAT_PATTERN = re.compile(r'^-?(0|[1-9][0-9]*)\.[0-9]+$')


def parse_value(key: str, raw: str):
    if key == DEPENDENCIES_KEY:
        return parse_list(raw)
    if raw.lower() in ("true", "false"):
        return raw.lower() == "true"
    if _INT_PATTERN.match(raw):
        return int(raw)
    if _FLOAT_PATTERN.match(raw):
        return float(raw)
    return raw


def cmd_set(args, ws: Workspace) -> int:
    value = parse_value(args.key, args.value)

    with project_session(ws) as session:
        phase_name = resolve_phase(session, args.phase, for_tasks=bool(args.task))
        phase = session.project.phases[phase_name]

        if args.task:
            operations.set_task_metadata(phase, args.task, args.key, value)
            target = f"task {args.task}"
        elif args.artifact:
            operations.get_artifact(phase, args.artifact).metadata[args.key] = value
            target = f"artifact {args.artifact}"
        else:
            operations.set_phase_metadata(phase, args.key, value)
            target = f"phase {phase_name}"

        print(f"Set {args.key}={value!r} on {target}")
    return 0
