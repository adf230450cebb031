"""
phasekit task - Add, list and move tasks.
"""

from phasekit.commands.common import UsageError, Workspace, parse_list, project_session, resolve_phase
from phasekit.state import operations


def cmd_task_add(args, ws: Workspace) -> int:
    with project_session(ws) as session:
        phase_name = resolve_phase(session, args.phase, for_tasks=True)
        if not session.config.phases[phase_name].supports_tasks:
            raise UsageError(f"Phase '{phase_name}' does not take tasks")

        phase = session.project.phases[phase_name]
        metadata = {}
        if args.artifact:
            metadata["artifact_path"] = args.artifact
        task = operations.add_task(
            phase,
            phase_name,
            args.name,
            task_id=args.id,
            dependencies=parse_list(args.depends),
            assigned_agent=args.agent,
            metadata=metadata,
        )
        print(f"Added task {task.id} to {phase_name}: {task.name}")
        if task.dependencies:
            print(f"  Depends on: {', '.join(task.dependencies)}")
    return 0


def cmd_task_list(args, ws: Workspace) -> int:
    with project_session(ws, write=False) as session:
        names = [args.phase] if args.phase else session.config.task_phases()
        shown = 0
        for phase_name in names:
            phase = operations.get_phase(session.project, phase_name)
            if not phase.tasks:
                continue
            print(f"{phase_name}:")
            for task in phase.tasks:
                deps = f"  (after {', '.join(task.dependencies)})" if task.dependencies else ""
                iteration = f" #{task.iteration}" if task.iteration > 1 else ""
                print(f"  {task.id} [{task.status}]{iteration} {task.name}{deps}")
                shown += 1
        if not shown:
            print("No tasks")
    return 0


def cmd_task_status(args, ws: Workspace) -> int:
    with project_session(ws) as session:
        phase_name = resolve_phase(session, args.phase, for_tasks=True)
        task = session.config.update_task_status(session.project, phase_name, args.id, args.status)
        print(f"Task {task.id}: {task.status}")
    return 0
