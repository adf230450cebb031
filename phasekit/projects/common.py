"""Helpers shared by the built-in workflow types."""

from phasekit.state import operations
from phasekit.state.models import Project, Task

ARTIFACT_PATH_KEY = "artifact_path"


def linked_artifact_path(task: Task):
    value = task.metadata.get(ARTIFACT_PATH_KEY)
    return value if isinstance(value, str) and value else None


def require_linked_artifact(project: Project, phase_name: str, task: Task) -> None:
    """A task may only complete once it names an existing output artifact.

    Raises:
        TaskStateError: no artifact_path, or no such output
    """
    path = linked_artifact_path(task)
    if path is None:
        raise operations.TaskStateError(
            f"Task {task.id} has no {ARTIFACT_PATH_KEY} in metadata. "
            f"Link an artifact to the task before completing it"
        )
    phase = operations.get_phase(project, phase_name)
    if operations.find_artifact(phase.outputs, path) is None:
        raise operations.TaskStateError(
            f"Artifact not found at {path}. Add the artifact before completing task {task.id}"
        )


def approve_linked_artifact(project: Project, phase_name: str, task: Task) -> bool:
    """Approve the output the task links to, if any. Returns True if approved."""
    path = linked_artifact_path(task)
    if path is None:
        return False
    phase = operations.get_phase(project, phase_name)
    artifact = operations.find_artifact(phase.outputs, path)
    if artifact is None:
        return False
    artifact.approved = True
    return True


def set_phase_status(phase_name: str, status: str):
    """Entry action that sets a workflow-specific phase status."""
    def action(project: Project) -> None:
        operations.get_phase(project, phase_name).status = status
    action.__name__ = f"set_{phase_name}_{status}"
    return action


def skip_phase(phase_name: str):
    def action(project: Project) -> None:
        operations.mark_phase_skipped(operations.get_phase(project, phase_name))
    action.__name__ = f"skip_{phase_name}"
    return action
