"""Breakdown project workflow (branches named breakdown/...).

    active --begin_publishing--> publishing --complete_breakdown--> completed

A larger piece of work is broken into work units, one task per unit. Each
unit's spec is an output artifact linked from the task. Units may depend on
each other; before publishing, the dependency graph over the completed
units must be valid, and units are published in topological order.

Metadata contract:

    breakdown task metadata.artifact_path  path of the unit's work_unit_spec output
    breakdown task metadata.dependencies   ids of units this one depends on
    breakdown task metadata.published      true once published
    breakdown task metadata.issue_url      where it was published
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from phasekit.lib import depgraph
from phasekit.projects.common import approve_linked_artifact, linked_artifact_path, set_phase_status
from phasekit.state import guards, operations
from phasekit.state.models import Project, Task
from phasekit.workflow.fsm import Guard
from phasekit.workflow.project_type import ProjectTypeConfig, ProjectTypeConfigBuilder

logger = logging.getLogger(__name__)

NAME = "breakdown"

ACTIVE = "active"
PUBLISHING = "publishing"
COMPLETED = "completed"

PHASE = "breakdown"


@dataclass
class WorkUnit:
    """Typed view of a breakdown task."""
    id: str
    name: str
    status: str
    artifact_path: Optional[str] = None
    dependencies: list[str] = field(default_factory=list)
    published: bool = False
    issue_url: Optional[str] = None

    @classmethod
    def of(cls, task: Task) -> "WorkUnit":
        return cls(
            id=task.id,
            name=task.name,
            status=task.status,
            artifact_path=linked_artifact_path(task),
            dependencies=task.dependencies,
            published=task.metadata.get("published") is True,
            issue_url=task.metadata.get("issue_url"),
        )


def work_units(project: Project, completed_only: bool = False) -> list[WorkUnit]:
    phase = project.phases.get(PHASE)
    if phase is None:
        return []
    return [
        WorkUnit.of(t) for t in phase.tasks
        if not completed_only or t.status == "completed"
    ]


def dependencies_valid(project: Project) -> bool:
    """The completed units form a valid, acyclic graph among themselves."""
    try:
        depgraph.validate_acyclic(work_units(project, completed_only=True))
    except depgraph.DependencyError as e:
        logger.debug(f"Breakdown dependency check failed: {e}")
        return False
    return True


def ready_to_publish(project: Project) -> bool:
    return guards.tasks_complete(project, PHASE) and dependencies_valid(project)


def count_unpublished(project: Project) -> int:
    return sum(1 for unit in work_units(project, completed_only=True) if not unit.published)


def all_published(project: Project) -> bool:
    units = work_units(project, completed_only=True)
    return bool(units) and all(unit.published for unit in units)


def publish_order(project: Project) -> list[str]:
    """Ids of completed units in the order they must be published.

    Raises:
        DependencyError: the completed units don't form a valid graph
    """
    return depgraph.topological_order(work_units(project, completed_only=True))


def mark_published(project: Project, task_id: str, issue_url: Optional[str] = None) -> Task:
    phase = operations.get_phase(project, PHASE)
    task = operations.find_task(phase, task_id)
    if task is None:
        raise operations.NotFoundError(f"Work unit {task_id} not found")
    if task.status != "completed":
        raise operations.TaskStateError(f"Work unit {task_id} is {task.status}; only completed units are published")
    operations.set_task_metadata(phase, task_id, "published", True)
    if issue_url:
        operations.set_task_metadata(phase, task_id, "issue_url", issue_url)
    return task


def complete_work_unit(project: Project, phase_name: str, task: Task) -> None:
    """Completion hook: approve the unit's spec if it is linked."""
    if approve_linked_artifact(project, phase_name, task):
        logger.debug(f"Approved spec for work unit {task.id}")


def initialize(project: Project) -> None:
    project.phases[PHASE].enabled = True


def build_config() -> ProjectTypeConfig:
    return (
        ProjectTypeConfigBuilder(NAME, "Break work into dependency-ordered units and publish them")
        .with_phase(PHASE, ACTIVE, PUBLISHING, outputs=["work_unit_spec"], tasks=True)
        .set_initial_state(ACTIVE)
        .with_initializer(initialize)
        .on_task_completed(complete_work_unit)
        .add_transition(ACTIVE, PUBLISHING, "begin_publishing",
                        guard=Guard("all work units approved and dependencies valid", ready_to_publish),
                        on_entry=set_phase_status(PHASE, "publishing"))
        .add_transition(PUBLISHING, COMPLETED, "complete_breakdown",
                        guard=Guard("all work units published", all_published))
        .with_prompt(ACTIVE, "breakdown/active")
        .with_prompt(PUBLISHING, "breakdown/publishing")
        .build()
    )
