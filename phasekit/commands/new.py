"""
phasekit new - Create a project in this workspace.
"""

from phasekit.commands.common import UsageError, Workspace
from phasekit.lib.config import init_workspace
from phasekit.state import persistence


def _parse_inputs(values: list[str]) -> dict[str, list[dict]]:
    """PHASE:TYPE:PATH triples -> {phase: [{type, path}]}"""
    inputs: dict[str, list[dict]] = {}
    for value in values or []:
        parts = value.split(":", 2)
        if len(parts) != 3 or not all(parts):
            raise UsageError(f"--input expects PHASE:TYPE:PATH, got '{value}'")
        phase, artifact_type, path = parts
        inputs.setdefault(phase, []).append({"type": artifact_type, "path": path})
    return inputs


def cmd_new(args, ws: Workspace) -> int:
    init_workspace(ws.settings.root)

    with ws.lock():
        project = persistence.create_project(
            ws.backend,
            ws.registry,
            branch=args.branch,
            description=args.description or "",
            project_type=args.type,
            initial_inputs=_parse_inputs(args.input),
            name=args.name,
        )

    print(f"Created {project.type} project: {project.name}")
    print(f"  Branch: {project.branch}")
    print(f"  State:  {project.statechart.current_state}")
    return 0
