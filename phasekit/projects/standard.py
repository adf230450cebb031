"""Standard project workflow.

    no_project
      -> discovery_decision -> [discovery_active] -> design_decision
      -> [design_active] -> implementation_planning -> implementation_executing
      -> review_active -> finalize_documentation -> finalize_checks
      -> finalize_delete -> no_project

Discovery and design are optional: each decision state offers an enable
event and a skip event. Review routes on the latest approved review
artifact: "pass" moves on to finalize, "fail" loops back to planning for
another implementation iteration. Reaching no_project again ends the project
and deletes its document.

Metadata contract (keys this workflow reads and writes):

    discovery.metadata.discovery_type      bug | feature | docs | refactor | general
    implementation.metadata.tasks_approved true once the task list is approved
    review output artifact metadata.assessment   pass | fail
    finalize.metadata.documentation_assessed     bool
    finalize.metadata.checks_assessed            bool
    finalize.metadata.project_deleted            bool
    finalize.metadata.pr_url                     str
"""

import copy
from dataclasses import dataclass
from typing import Optional

from phasekit.projects.common import skip_phase
from phasekit.state import guards, operations
from phasekit.state.models import Project
from phasekit.workflow.fsm import Guard
from phasekit.workflow.project_type import (
    ProjectTypeConfig,
    ProjectTypeConfigBuilder,
    When,
)

NAME = "standard"

# States
NO_PROJECT = "no_project"
DISCOVERY_DECISION = "discovery_decision"
DISCOVERY_ACTIVE = "discovery_active"
DESIGN_DECISION = "design_decision"
DESIGN_ACTIVE = "design_active"
IMPLEMENTATION_PLANNING = "implementation_planning"
IMPLEMENTATION_EXECUTING = "implementation_executing"
REVIEW_ACTIVE = "review_active"
FINALIZE_DOCUMENTATION = "finalize_documentation"
FINALIZE_CHECKS = "finalize_checks"
FINALIZE_DELETE = "finalize_delete"

DISCOVERY_META_SCHEMA = {
    "type": "object",
    "properties": {
        "discovery_type": {"enum": ["bug", "feature", "docs", "refactor", "general"]},
    },
}

IMPLEMENTATION_META_SCHEMA = {
    "type": "object",
    "properties": {
        "tasks_approved": {"type": "boolean"},
    },
}

FINALIZE_META_SCHEMA = {
    "type": "object",
    "properties": {
        "documentation_assessed": {"type": "boolean"},
        "checks_assessed": {"type": "boolean"},
        "project_deleted": {"type": "boolean"},
        "pr_url": {"type": "string"},
    },
}


@dataclass
class FinalizeFlags:
    """Typed view of the finalize phase metadata."""
    documentation_assessed: bool = False
    checks_assessed: bool = False
    project_deleted: bool = False
    pr_url: Optional[str] = None

    @classmethod
    def of(cls, project: Project) -> "FinalizeFlags":
        phase = project.phases.get("finalize")
        meta = phase.metadata if phase else {}
        return cls(
            documentation_assessed=meta.get("documentation_assessed") is True,
            checks_assessed=meta.get("checks_assessed") is True,
            project_deleted=meta.get("project_deleted") is True,
            pr_url=meta.get("pr_url"),
        )


def review_assessment(project: Project) -> Optional[str]:
    """Assessment of the latest approved review, or None."""
    review = guards.latest_artifact(project, "review", "review", approved_only=True)
    if review is None:
        return None
    return review.metadata.get("assessment")


def tasks_approved(project: Project) -> bool:
    return (
        guards.metadata_flag(project, "implementation", "tasks_approved")
        and guards.has_tasks(project, "implementation")
    )


def rework_implementation(project: Project) -> None:
    """After a failed review: reopen implementation for another iteration."""
    implementation = operations.get_phase(project, "implementation")
    implementation.status = "in_progress"
    implementation.metadata["tasks_approved"] = False
    operations.increment_phase_iteration(implementation)

    review = guards.latest_artifact(project, "review", "review", approved_only=True)
    if review is not None and operations.find_artifact(implementation.inputs, review.path) is None:
        implementation.inputs.append(copy.deepcopy(review))


def initialize(project: Project) -> None:
    for name in ("implementation", "review", "finalize"):
        project.phases[name].enabled = True


def build_config() -> ProjectTypeConfig:
    return (
        ProjectTypeConfigBuilder(NAME, "Discovery, design, implementation, review and finalize")
        .with_phase("discovery", DISCOVERY_ACTIVE, DISCOVERY_ACTIVE,
                    outputs=["discovery"], metadata_schema=DISCOVERY_META_SCHEMA)
        .with_phase("design", DESIGN_ACTIVE, DESIGN_ACTIVE,
                    outputs=["design", "adr", "architecture", "diagram"])
        .with_phase("implementation", IMPLEMENTATION_PLANNING, IMPLEMENTATION_EXECUTING,
                    tasks=True, metadata_schema=IMPLEMENTATION_META_SCHEMA)
        .with_phase("review", REVIEW_ACTIVE, REVIEW_ACTIVE, outputs=["review"])
        .with_phase("finalize", FINALIZE_DOCUMENTATION, FINALIZE_DELETE,
                    outputs=["pr_body", "documentation"], metadata_schema=FINALIZE_META_SCHEMA)
        .set_initial_state(NO_PROJECT)
        .with_init_event("project_init")
        .with_cleanup_state(NO_PROJECT)
        .with_initializer(initialize)

        .add_transition(NO_PROJECT, DISCOVERY_DECISION, "project_init")

        # Discovery (optional)
        .add_transition(DISCOVERY_DECISION, DISCOVERY_ACTIVE, "enable_discovery")
        .add_transition(DISCOVERY_DECISION, DESIGN_DECISION, "skip_discovery",
                        on_entry=skip_phase("discovery"))
        .add_transition(DISCOVERY_ACTIVE, DESIGN_DECISION, "complete_discovery",
                        guard=Guard("all discovery artifacts approved",
                                    lambda p: guards.all_outputs_approved(p, "discovery")))

        # Design (optional)
        .add_transition(DESIGN_DECISION, DESIGN_ACTIVE, "enable_design")
        .add_transition(DESIGN_DECISION, IMPLEMENTATION_PLANNING, "skip_design",
                        on_entry=skip_phase("design"))
        .add_transition(DESIGN_ACTIVE, IMPLEMENTATION_PLANNING, "complete_design",
                        guard=Guard("all design artifacts approved",
                                    lambda p: guards.all_outputs_approved(p, "design")))

        # Implementation
        .add_transition(IMPLEMENTATION_PLANNING, IMPLEMENTATION_EXECUTING, "tasks_approved",
                        guard=Guard("task list approved", tasks_approved))
        .add_transition(IMPLEMENTATION_EXECUTING, REVIEW_ACTIVE, "all_tasks_complete",
                        guard=Guard("all implementation tasks complete",
                                    lambda p: guards.tasks_complete(p, "implementation")))

        # Review
        .add_branch(
            REVIEW_ACTIVE, review_assessment,
            When("pass", "review_pass", FINALIZE_DOCUMENTATION,
                 description="latest approved review passed"),
            When("fail", "review_fail", IMPLEMENTATION_PLANNING,
                 description="latest approved review failed",
                 on_entry=(rework_implementation,), failed_phase="review"),
            label="review assessment",
        )

        # Finalize
        .add_transition(FINALIZE_DOCUMENTATION, FINALIZE_CHECKS, "documentation_done",
                        guard=Guard("documentation assessed",
                                    lambda p: FinalizeFlags.of(p).documentation_assessed))
        .add_transition(FINALIZE_CHECKS, FINALIZE_DELETE, "checks_done",
                        guard=Guard("checks assessed", lambda p: FinalizeFlags.of(p).checks_assessed))
        .add_transition(FINALIZE_DELETE, NO_PROJECT, "project_delete",
                        guard=Guard("project deletion confirmed",
                                    lambda p: FinalizeFlags.of(p).project_deleted))

        .with_prompt(DISCOVERY_DECISION, "standard/discovery_decision")
        .with_prompt(DISCOVERY_ACTIVE, "standard/discovery")
        .with_prompt(DESIGN_ACTIVE, "standard/design")
        .with_prompt(IMPLEMENTATION_PLANNING, "standard/planning")
        .with_prompt(IMPLEMENTATION_EXECUTING, "standard/executing")
        .with_prompt(REVIEW_ACTIVE, "standard/review")
        .with_prompt(FINALIZE_DOCUMENTATION, "standard/finalize")
        .build()
    )
