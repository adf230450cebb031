"""
phasekit prompt - Render the agent prompt for the current state.
"""

from phasekit.commands.common import Workspace, project_session


def cmd_prompt(args, ws: Workspace) -> int:
    with project_session(ws, write=False) as session:
        state = session.machine.state
        name = session.config.prompt_template(state)
        if name is None:
            print(f"No prompt for state '{state}'")
            return 0
        print(ws.prompts.render(name, **session.config.prompt_context(session.project)))
    return 0
