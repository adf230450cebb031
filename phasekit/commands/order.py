"""
phasekit order - Print tasks in dependency order.
"""

from phasekit.commands.common import Workspace, project_session, resolve_phase
from phasekit.lib import depgraph
from phasekit.projects import breakdown


def cmd_order(args, ws: Workspace) -> int:
    with project_session(ws, write=False) as session:
        project = session.project
        if project.type == breakdown.NAME and args.publish:
            order = breakdown.publish_order(project)
            tasks = {t.id: t for t in project.phases[breakdown.PHASE].tasks}
        else:
            phase_name = resolve_phase(session, args.phase, for_tasks=True)
            phase_tasks = project.phases[phase_name].tasks
            order = depgraph.topological_order(phase_tasks)
            tasks = {t.id: t for t in phase_tasks}

        for position, task_id in enumerate(order, 1):
            task = tasks[task_id]
            print(f"{position:>3}. {task.id} [{task.status}] {task.name}")
        if not order:
            print("No tasks")
    return 0
