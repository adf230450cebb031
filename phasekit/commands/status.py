"""
phasekit status - Show the project, its phases and what can happen next.
"""

from phasekit.commands.common import Workspace, project_session
from phasekit.state import guards


def cmd_status(args, ws: Workspace) -> int:
    with project_session(ws, write=False) as session:
        project = session.project
        machine = session.machine

        print(f"Project: {project.name} ({project.type})")
        print(f"Branch:  {project.branch}")
        if project.description:
            print(f"About:   {project.description}")
        print(f"State:   {machine.state}")
        print(f"Updated: {project.updated_at.isoformat(timespec='seconds')}")

        print("\nPhases:")
        for name, phase in project.phases.items():
            flag = "" if phase.enabled else " (disabled)"
            details = []
            if phase.tasks:
                open_count = guards.count_unresolved_tasks(project, name)
                details.append(f"{len(phase.tasks)} tasks, {open_count} open")
            if phase.outputs:
                unapproved = guards.count_unapproved_artifacts(project, name)
                details.append(f"{len(phase.outputs)} outputs, {unapproved} unapproved")
            if phase.iteration:
                details.append(f"iteration {phase.iteration}")
            suffix = f" - {', '.join(details)}" if details else ""
            print(f"  {name:<16} {phase.status}{flag}{suffix}")

        permitted = sorted(machine.permitted_events())
        print("\nNext:")
        for transition in session.config.available_transitions(machine.state):
            if transition.event in permitted:
                print(f"  {transition.event} -> {transition.dest}")
            else:
                blocked = ", ".join(machine.blocking_guards(transition.event))
                print(f"  {transition.event} -> {transition.dest} (blocked: {blocked})")
        if not session.config.available_transitions(machine.state):
            print("  (no transitions from this state)")

    return 0
