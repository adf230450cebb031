"""
Shared plumbing for commands.

Every mutating command runs exactly one lock -> load -> mutate -> save
cycle through project_session(). If the body raises, nothing is saved.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from phasekit.lib.config import Settings
from phasekit.lib.locking import project_lock
from phasekit.lib.prompts import PromptRegistry
from phasekit.state import persistence
from phasekit.state.models import Project
from phasekit.workflow.project_type import ProjectMachine, ProjectTypeConfig
from phasekit.workflow.registry import ProjectTypeRegistry

logger = logging.getLogger(__name__)


class UsageError(Exception):
    """The command line asks for something that can't be resolved."""
    pass


@dataclass
class Workspace:
    """Everything a command needs, built once per invocation."""
    settings: Settings
    registry: ProjectTypeRegistry
    prompts: PromptRegistry

    @property
    def backend(self) -> persistence.YAMLBackend:
        return persistence.YAMLBackend(self.settings.state_path)

    def lock(self):
        return project_lock(
            self.settings.lock_path,
            timeout=self.settings.lock_timeout,
            enabled=self.settings.lock_enabled,
        )


@dataclass
class Session:
    project: Project
    config: ProjectTypeConfig
    machine: ProjectMachine


@contextmanager
def project_session(ws: Workspace, write: bool = True):
    """Yield a loaded project; save it (or delete it) afterwards if write.

    Reaching the project type's cleanup state deletes the document instead
    of saving it.
    """
    backend = ws.backend

    if not write:
        project = persistence.load_project(backend, ws.registry)
        config = ws.registry.get(project.type)
        yield Session(project, config, config.build_machine(project))
        return

    with ws.lock():
        project = persistence.load_project(backend, ws.registry)
        config = ws.registry.get(project.type)
        yield Session(project, config, config.build_machine(project))

        if config.cleanup_state and project.statechart.current_state == config.cleanup_state:
            persistence.delete_project(backend)
            print(f"Project '{project.name}' finished; removed {backend.path}")
        else:
            persistence.save_project(backend, project, config)


def resolve_phase(session: Session, phase: Optional[str], for_tasks: bool = False) -> str:
    """Phase named on the command line, or the one implied by the current state."""
    if phase:
        if phase not in session.project.phases:
            raise UsageError(f"Unknown phase '{phase}' (phases: {', '.join(session.project.phases)})")
        return phase

    state = session.project.statechart.current_state
    if for_tasks:
        name = session.config.default_task_phase(state)
    else:
        name = session.config.phase_for_state(state)
    if not name:
        raise UsageError(f"State '{state}' has no active phase; pass --phase")
    return name


def parse_list(value: Optional[str]) -> list[str]:
    """'010,020' or '[010, 020]' -> ['010', '020']"""
    if not value:
        return []
    value = value.strip().strip("[]")
    return [item.strip().strip("'\"") for item in value.split(",") if item.strip()]
