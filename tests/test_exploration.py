"""Tests for the exploration workflow."""

import pytest

from phasekit.projects import exploration
from phasekit.state import operations
from phasekit.state.persistence import MemoryBackend, create_project, load_project, save_project
from phasekit.workflow.registry import default_registry


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def project(registry):
    return create_project(MemoryBackend(), registry, "explore/caching", description="Caching options")


class TestLifecycle:
    """active -> summarizing -> finalizing -> completed."""

    def test_topics_must_be_resolved(self, project, registry):
        machine = registry.get("exploration").build_machine(project)
        phase = project.phases["exploration"]
        assert not machine.can_fire("begin_summarizing")

        operations.add_task(phase, "exploration", "Redis")
        operations.add_task(phase, "exploration", "In-process LRU")
        operations.set_task_status(phase.tasks[0], "in_progress")
        operations.set_task_status(phase.tasks[0], "completed")
        assert not machine.can_fire("begin_summarizing")

        # A dead end still counts as resolved
        operations.set_task_status(phase.tasks[1], "abandoned")
        assert machine.can_fire("begin_summarizing")

    def test_lifecycle(self, project, registry):
        config = registry.get("exploration")
        backend = MemoryBackend()
        machine = config.build_machine(project)
        phase = project.phases["exploration"]
        operations.add_task(phase, "exploration", "Survey")
        operations.set_task_status(phase.tasks[0], "abandoned")

        machine.advance()
        assert project.current_state == exploration.SUMMARIZING
        assert phase.status == "summarizing"
        save_project(backend, project, config)
        assert load_project(backend, registry).phases["exploration"].status == "summarizing"

        operations.add_artifact(phase, "summary", "summary.md")
        operations.add_artifact(phase, "findings", "findings.md")
        assert machine.blocking_guards("complete_summarizing") == ["all summaries approved"]
        operations.approve_artifact(phase, "summary.md")
        machine.advance()

        assert phase.status == "completed"
        finalization = project.phases["finalization"]
        assert finalization.status == "in_progress"

        task = operations.add_task(finalization, "finalization", "Open PR")
        operations.set_task_status(task, "in_progress")
        operations.set_task_status(task, "completed")
        machine.advance()
        assert project.current_state == exploration.COMPLETED
        assert finalization.status == "completed"
