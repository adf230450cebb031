"""
Scoped mutations of the project data model.

Commands and transition actions change artifacts, tasks and phase status
only through these helpers so the model invariants hold: artifact paths are
unique per collection, task ids are well-formed and unique per phase, task
dependencies never reference themselves or close a cycle, and task status
moves follow the task lifecycle.
"""

import copy
import logging
from typing import Any, Iterable, Optional

from phasekit.lib import depgraph
from phasekit.lib.constants import (
    DEPENDENCIES_KEY,
    TASK_ID_PATTERN,
    TASK_ID_STEP,
    TASK_STATUS_MOVES,
)
from phasekit.state.models import Artifact, Phase, Project, Task, utcnow

logger = logging.getLogger(__name__)

ARTIFACT_COLLECTIONS = ("inputs", "outputs")


class NotFoundError(Exception):
    """A phase, task or artifact named by the caller does not exist."""
    pass


class DuplicateArtifact(Exception):
    def __init__(self, path: str, collection: str):
        self.path = path
        self.collection = collection
        super().__init__(f"Artifact '{path}' already exists in {collection}")


class TaskStateError(Exception):
    """A task id or status move is not allowed."""
    pass


# =============================================================================
# Lookups
# =============================================================================

def get_phase(project: Project, name: str) -> Phase:
    try:
        return project.phases[name]
    except KeyError:
        known = ", ".join(project.phases) or "none"
        raise NotFoundError(f"Phase '{name}' not found (phases: {known})") from None


def find_task(phase: Phase, task_id: str) -> Optional[Task]:
    for task in phase.tasks:
        if task.id == task_id:
            return task
    return None


def get_task(project: Project, task_id: str, phase_name: Optional[str] = None) -> Task:
    """Find a task by id, in one phase or across all phases in order."""
    phases = [get_phase(project, phase_name)] if phase_name else list(project.phases.values())
    for phase in phases:
        task = find_task(phase, task_id)
        if task is not None:
            return task
    where = f" in phase '{phase_name}'" if phase_name else ""
    raise NotFoundError(f"Task {task_id} not found{where}")


def find_artifact(artifacts: Iterable[Artifact], path: str) -> Optional[Artifact]:
    for artifact in artifacts:
        if artifact.path == path:
            return artifact
    return None


def get_artifact(phase: Phase, path: str, collection: Optional[str] = None) -> Artifact:
    """Find an artifact by path. Without a collection, outputs are searched first."""
    collections = [collection] if collection else ["outputs", "inputs"]
    for name in collections:
        artifact = find_artifact(getattr(phase, name), path)
        if artifact is not None:
            return artifact
    raise NotFoundError(f"Artifact '{path}' not found in {' or '.join(collections)}")


# =============================================================================
# Artifacts
# =============================================================================

def add_artifact(
    phase: Phase,
    artifact_type: str,
    path: str,
    collection: str = "outputs",
    approved: bool = False,
    metadata: Optional[dict[str, Any]] = None,
) -> Artifact:
    """Append a new artifact to a phase collection.

    Raises:
        DuplicateArtifact: path already present in that collection
    """
    if collection not in ARTIFACT_COLLECTIONS:
        raise ValueError(f"Unknown artifact collection '{collection}'")

    artifacts = getattr(phase, collection)
    if find_artifact(artifacts, path) is not None:
        raise DuplicateArtifact(path, collection)

    artifact = Artifact(type=artifact_type, path=path, approved=approved, metadata=dict(metadata or {}))
    artifacts.append(artifact)
    return artifact


def approve_artifact(phase: Phase, path: str, collection: Optional[str] = None) -> Artifact:
    artifact = get_artifact(phase, path, collection)
    artifact.approved = True
    return artifact


def add_phase_input_from_output(project: Project, source_phase: str, target_phase: str, artifact_type: str) -> Artifact:
    """Copy the latest output of a type from one phase into another's inputs."""
    source = get_phase(project, source_phase)
    target = get_phase(project, target_phase)

    for artifact in reversed(source.outputs):
        if artifact.type == artifact_type:
            if find_artifact(target.inputs, artifact.path) is not None:
                raise DuplicateArtifact(artifact.path, "inputs")
            copied = copy.deepcopy(artifact)
            target.inputs.append(copied)
            return copied

    raise NotFoundError(f"No '{artifact_type}' output in phase '{source_phase}'")


# =============================================================================
# Tasks
# =============================================================================

def next_task_id(tasks: Iterable[Task]) -> str:
    """Next gap-numbered id: the next multiple of TASK_ID_STEP above the highest."""
    highest = max((int(t.id) for t in tasks), default=0)
    next_id = (highest // TASK_ID_STEP + 1) * TASK_ID_STEP
    if next_id > 999:
        raise TaskStateError("Task ids exhausted (max 999)")
    return f"{next_id:03d}"


def _check_dependencies(tasks: list[Task]) -> None:
    depgraph.validate_acyclic(tasks)


def add_task(
    phase: Phase,
    phase_name: str,
    name: str,
    task_id: Optional[str] = None,
    dependencies: Optional[list[str]] = None,
    assigned_agent: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> Task:
    """Create a pending task in phase.

    Raises:
        TaskStateError: malformed or duplicate id
        DependencyError: the new dependencies are invalid or close a cycle
    """
    if task_id is None:
        task_id = next_task_id(phase.tasks)
    elif not TASK_ID_PATTERN.match(task_id):
        raise TaskStateError(f"Task id '{task_id}' must be three digits (e.g. 010)")
    if find_task(phase, task_id) is not None:
        raise TaskStateError(f"Task {task_id} already exists in phase '{phase_name}'")

    meta = dict(metadata or {})
    if dependencies:
        meta[DEPENDENCIES_KEY] = list(dependencies)

    task = Task(id=task_id, name=name, phase=phase_name, assigned_agent=assigned_agent, metadata=meta)
    _check_dependencies(phase.tasks + [task])

    phase.tasks.append(task)
    logger.debug(f"Added task {task_id} to phase {phase_name}")
    return task


def set_task_dependencies(phase: Phase, task_id: str, dependencies: list[str]) -> Task:
    task = find_task(phase, task_id)
    if task is None:
        raise NotFoundError(f"Task {task_id} not found")

    candidate = copy.copy(task)
    candidate.metadata = dict(task.metadata)
    if dependencies:
        candidate.metadata[DEPENDENCIES_KEY] = list(dependencies)
    else:
        candidate.metadata.pop(DEPENDENCIES_KEY, None)
    _check_dependencies([candidate if t is task else t for t in phase.tasks])

    task.metadata = candidate.metadata
    task.updated_at = utcnow()
    return task


def set_task_status(task: Task, status: str) -> Task:
    """Move a task along its lifecycle.

    Raises:
        TaskStateError: the move is not allowed from the current status
    """
    if status not in TASK_STATUS_MOVES:
        raise TaskStateError(f"Unknown task status '{status}'")
    if status == task.status:
        return task

    allowed = TASK_STATUS_MOVES[task.status]
    if status not in allowed:
        options = ", ".join(sorted(allowed)) or "none, status is terminal"
        raise TaskStateError(
            f"Task {task.id} cannot move from {task.status} to {status} (allowed: {options})"
        )

    now = utcnow()
    if status == "in_progress":
        if task.status == "needs_review":
            task.iteration += 1
        if task.started_at is None:
            task.started_at = now
    elif status == "completed":
        task.completed_at = now

    task.status = status
    task.updated_at = now
    return task


def set_task_metadata(phase: Phase, task_id: str, key: str, value: Any) -> Task:
    if key == DEPENDENCIES_KEY:
        return set_task_dependencies(phase, task_id, list(value or []))
    task = find_task(phase, task_id)
    if task is None:
        raise NotFoundError(f"Task {task_id} not found")
    task.metadata[key] = value
    task.updated_at = utcnow()
    return task


# =============================================================================
# Phases
# =============================================================================

def set_phase_metadata(phase: Phase, key: str, value: Any) -> None:
    phase.metadata[key] = value


def mark_phase_in_progress(phase: Phase) -> None:
    phase.enabled = True
    phase.status = "in_progress"
    if phase.started_at is None:
        phase.started_at = utcnow()


def mark_phase_completed(phase: Phase) -> None:
    phase.status = "completed"
    phase.completed_at = utcnow()


def mark_phase_failed(phase: Phase) -> None:
    phase.status = "failed"
    phase.failed_at = utcnow()


def mark_phase_skipped(phase: Phase) -> None:
    phase.enabled = False
    phase.status = "skipped"


def increment_phase_iteration(phase: Phase) -> int:
    phase.iteration += 1
    return phase.iteration
