"""
phasekit artifact - Add, approve and list phase artifacts.
"""

from phasekit.commands.common import UsageError, Workspace, project_session, resolve_phase
from phasekit.state import operations


def cmd_artifact_add(args, ws: Workspace) -> int:
    collection = "inputs" if args.input else "outputs"
    metadata = {}
    for item in args.meta or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise UsageError(f"--meta expects KEY=VALUE, got '{item}'")
        metadata[key] = value

    with project_session(ws) as session:
        phase_name = resolve_phase(session, args.phase)
        session.config.check_artifact_type(phase_name, args.type, collection)

        artifact = operations.add_artifact(
            session.project.phases[phase_name],
            args.type,
            args.path,
            collection=collection,
            approved=args.approved,
            metadata=metadata,
        )
        state = "approved" if artifact.approved else "pending approval"
        print(f"Added {artifact.type} {artifact.path} to {phase_name} {collection} ({state})")
    return 0


def cmd_artifact_approve(args, ws: Workspace) -> int:
    with project_session(ws) as session:
        phase_name = resolve_phase(session, args.phase)
        artifact = operations.approve_artifact(session.project.phases[phase_name], args.path)
        print(f"Approved {artifact.path}")
    return 0


def cmd_artifact_list(args, ws: Workspace) -> int:
    with project_session(ws, write=False) as session:
        names = [args.phase] if args.phase else list(session.project.phases)
        shown = 0
        for phase_name in names:
            phase = operations.get_phase(session.project, phase_name)
            for collection in ("inputs", "outputs"):
                for artifact in getattr(phase, collection):
                    mark = "x" if artifact.approved else " "
                    print(f"[{mark}] {phase_name}/{collection} {artifact.type}: {artifact.path}")
                    shown += 1
        if not shown:
            print("No artifacts")
    return 0
