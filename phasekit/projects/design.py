"""Design project workflow (branches named design/...).

    active --complete_design--> finalizing --complete_finalization--> completed

The design phase produces documents: each design task links the document it
produces through metadata.artifact_path. A task can only complete once that
output exists, and completing it approves the document.

Metadata contract:

    design task metadata.artifact_path     path of the output the task produces
    design.metadata.design_scope           free text summary of what is designed
    finalization.metadata.pr_url           str
"""

from dataclasses import dataclass
from typing import Optional

from phasekit.projects.common import approve_linked_artifact, linked_artifact_path, require_linked_artifact
from phasekit.state import guards
from phasekit.state.models import Project, Task
from phasekit.workflow.fsm import Guard
from phasekit.workflow.project_type import ProjectTypeConfig, ProjectTypeConfigBuilder

NAME = "design"

ACTIVE = "active"
FINALIZING = "finalizing"
COMPLETED = "completed"

DESIGN_OUTPUT_TYPES = ["design", "adr", "architecture", "diagram", "spec"]

DESIGN_META_SCHEMA = {
    "type": "object",
    "properties": {
        "design_scope": {"type": "string"},
    },
}

FINALIZATION_META_SCHEMA = {
    "type": "object",
    "properties": {
        "pr_url": {"type": "string"},
    },
}


@dataclass
class DesignTask:
    """Typed view of a design task."""
    id: str
    name: str
    status: str
    artifact_path: Optional[str]

    @classmethod
    def of(cls, task: Task) -> "DesignTask":
        return cls(task.id, task.name, task.status, linked_artifact_path(task))


def complete_design_task(project: Project, phase_name: str, task: Task) -> None:
    """Completion hook: design tasks need their document, and approve it."""
    if phase_name != "design":
        return
    require_linked_artifact(project, phase_name, task)
    approve_linked_artifact(project, phase_name, task)


def initialize(project: Project) -> None:
    project.phases["design"].enabled = True
    project.phases["finalization"].enabled = False


def build_config() -> ProjectTypeConfig:
    return (
        ProjectTypeConfigBuilder(NAME, "Produce and approve design documents")
        .with_phase("design", ACTIVE, ACTIVE, outputs=DESIGN_OUTPUT_TYPES,
                    tasks=True, metadata_schema=DESIGN_META_SCHEMA)
        .with_phase("finalization", FINALIZING, FINALIZING, outputs=["pr"],
                    tasks=True, metadata_schema=FINALIZATION_META_SCHEMA)
        .set_initial_state(ACTIVE)
        .with_initializer(initialize)
        .on_task_completed(complete_design_task)
        .add_transition(ACTIVE, FINALIZING, "complete_design",
                        guard=Guard("all design documents approved",
                                    lambda p: guards.tasks_complete(p, "design")))
        .add_transition(FINALIZING, COMPLETED, "complete_finalization",
                        guard=Guard("all finalization tasks complete",
                                    lambda p: guards.all_tasks_completed(p, "finalization")))
        .with_prompt(ACTIVE, "design/active")
        .with_prompt(FINALIZING, "design/finalizing")
        .build()
    )
