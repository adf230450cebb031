"""
phasekit fire / advance - Move the project through its workflow.
"""

from phasekit.commands.common import Workspace, project_session


def _report(result, session) -> None:
    print(f"{result.source} -> {result.dest} ({result.event})")
    template = session.config.prompt_template(result.dest)
    if template:
        print(f"Next: phasekit prompt  ({template})")


def cmd_fire(args, ws: Workspace) -> int:
    with project_session(ws) as session:
        result = session.machine.fire(args.event)
        _report(result, session)
    return 0


def cmd_advance(args, ws: Workspace) -> int:
    with project_session(ws) as session:
        result = session.machine.advance()
        _report(result, session)
    return 0
