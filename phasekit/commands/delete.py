"""
phasekit delete - Remove the project document.
"""

from phasekit.commands.common import Workspace
from phasekit.state import persistence


def cmd_delete(args, ws: Workspace) -> int:
    if not args.force:
        print("Refusing to delete without --force")
        return 1
    with ws.lock():
        persistence.delete_project(ws.backend)
    print(f"Removed {ws.settings.state_path}")
    return 0
