"""Reusable predicates over the project model.

Workflows compose these into transition guards. Every predicate is total:
a missing phase, an empty task list or an absent metadata key evaluates to
False and never raises.
"""

from typing import Any, Optional

from phasekit.lib.constants import TASK_TERMINAL_STATUSES
from phasekit.state.models import Artifact, Phase, Project


def _phase(project: Project, phase_name: str) -> Optional[Phase]:
    phases = getattr(project, "phases", None) or {}
    return phases.get(phase_name)


def _artifacts(project: Project, phase_name: str, collection: str) -> list[Artifact]:
    phase = _phase(project, phase_name)
    if phase is None:
        return []
    return list(getattr(phase, collection, None) or [])


def has_tasks(project: Project, phase_name: str) -> bool:
    phase = _phase(project, phase_name)
    return bool(phase and phase.tasks)


def tasks_complete(project: Project, phase_name: str) -> bool:
    """Every task completed or abandoned, and at least one completed.

    An empty or fully abandoned phase does not count as done.
    """
    phase = _phase(project, phase_name)
    if phase is None or not phase.tasks:
        return False
    if any(t.status not in TASK_TERMINAL_STATUSES for t in phase.tasks):
        return False
    return any(t.status == "completed" for t in phase.tasks)


def tasks_resolved(project: Project, phase_name: str) -> bool:
    """At least one task and every task completed or abandoned."""
    phase = _phase(project, phase_name)
    if phase is None or not phase.tasks:
        return False
    return all(t.status in TASK_TERMINAL_STATUSES for t in phase.tasks)


def all_tasks_completed(project: Project, phase_name: str) -> bool:
    """At least one task and every task completed (none abandoned)."""
    phase = _phase(project, phase_name)
    if phase is None or not phase.tasks:
        return False
    return all(t.status == "completed" for t in phase.tasks)


def count_unresolved_tasks(project: Project, phase_name: str) -> int:
    phase = _phase(project, phase_name)
    if phase is None:
        return 0
    return sum(1 for t in phase.tasks if t.status not in TASK_TERMINAL_STATUSES)


def artifacts_approved(project: Project, phase_name: str, artifact_type: str, collection: str = "outputs") -> bool:
    """At least one artifact of the type exists and every one is approved."""
    matching = [a for a in _artifacts(project, phase_name, collection) if a.type == artifact_type]
    return bool(matching) and all(a.approved for a in matching)


def has_approved_artifact(project: Project, phase_name: str, artifact_type: str, collection: str = "outputs") -> bool:
    return any(
        a.type == artifact_type and a.approved
        for a in _artifacts(project, phase_name, collection)
    )


def count_unapproved_artifacts(project: Project, phase_name: str, collection: str = "outputs") -> int:
    return sum(1 for a in _artifacts(project, phase_name, collection) if not a.approved)


def metadata_flag(project: Project, phase_name: str, key: str) -> bool:
    """The phase metadata value at key is the boolean True."""
    phase = _phase(project, phase_name)
    if phase is None:
        return False
    return phase.metadata.get(key) is True


def latest_artifact(
    project: Project,
    phase_name: str,
    artifact_type: str,
    collection: str = "outputs",
    approved_only: bool = False,
) -> Optional[Artifact]:
    """Most recently created artifact of a type.

    Equal creation times go to the one added later.
    """
    latest = None
    for artifact in _artifacts(project, phase_name, collection):
        if artifact.type != artifact_type:
            continue
        if approved_only and not artifact.approved:
            continue
        if latest is None or artifact.created_at >= latest.created_at:
            latest = artifact
    return latest


def latest_artifact_has(
    project: Project,
    phase_name: str,
    artifact_type: str,
    key: str,
    value: Any,
    collection: str = "outputs",
    approved_only: bool = False,
) -> bool:
    artifact = latest_artifact(project, phase_name, artifact_type, collection, approved_only)
    if artifact is None:
        return False
    return artifact.metadata.get(key) == value


def all_outputs_approved(project: Project, phase_name: str) -> bool:
    """The phase has at least one output and every output is approved."""
    outputs = _artifacts(project, phase_name, "outputs")
    return bool(outputs) and all(a.approved for a in outputs)
