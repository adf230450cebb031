"""Exploration project workflow (branches named explore/...).

    active --begin_summarizing--> summarizing --complete_summarizing-->
    finalizing --complete_finalization--> completed

Research happens as tasks in the exploration phase. Once every topic is
resolved (completed or abandoned) the findings are summarized; an approved
summary unlocks finalization.

Metadata contract:

    exploration task metadata.findings     free text notes for the topic
    exploration.metadata.research_question str
    finalization.metadata.pr_url           str
"""

from phasekit.projects.common import set_phase_status
from phasekit.state import guards
from phasekit.state.models import Project
from phasekit.workflow.fsm import Guard
from phasekit.workflow.project_type import ProjectTypeConfig, ProjectTypeConfigBuilder

NAME = "exploration"

ACTIVE = "active"
SUMMARIZING = "summarizing"
FINALIZING = "finalizing"
COMPLETED = "completed"

EXPLORATION_META_SCHEMA = {
    "type": "object",
    "properties": {
        "research_question": {"type": "string"},
    },
}


def initialize(project: Project) -> None:
    project.phases["exploration"].enabled = True


def build_config() -> ProjectTypeConfig:
    return (
        ProjectTypeConfigBuilder(NAME, "Research a question and summarize the findings")
        .with_phase("exploration", ACTIVE, SUMMARIZING, outputs=["summary", "findings"],
                    tasks=True, metadata_schema=EXPLORATION_META_SCHEMA)
        .with_phase("finalization", FINALIZING, FINALIZING, outputs=["pr"], tasks=True)
        .set_initial_state(ACTIVE)
        .with_initializer(initialize)
        .add_transition(ACTIVE, SUMMARIZING, "begin_summarizing",
                        guard=Guard("all research topics resolved",
                                    lambda p: guards.tasks_resolved(p, "exploration")),
                        on_entry=set_phase_status("exploration", "summarizing"))
        .add_transition(SUMMARIZING, FINALIZING, "complete_summarizing",
                        guard=Guard("all summaries approved",
                                    lambda p: guards.artifacts_approved(p, "exploration", "summary")))
        .add_transition(FINALIZING, COMPLETED, "complete_finalization",
                        guard=Guard("all finalization tasks complete",
                                    lambda p: guards.all_tasks_completed(p, "finalization")))
        .with_prompt(ACTIVE, "exploration/active")
        .with_prompt(SUMMARIZING, "exploration/summarizing")
        .build()
    )
