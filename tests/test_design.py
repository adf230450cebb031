"""Tests for the design workflow."""

import pytest

from phasekit.projects import design
from phasekit.state import operations
from phasekit.state.persistence import MemoryBackend, create_project, save_project
from phasekit.workflow.fsm import GuardNotMet
from phasekit.workflow.registry import default_registry


@pytest.fixture
def config():
    return default_registry().get("design")


@pytest.fixture
def project():
    return create_project(MemoryBackend(), default_registry(), "design/api", description="API design")


def add_design_task(project, name, path):
    phase = project.phases["design"]
    task = operations.add_task(phase, "design", name, metadata={"artifact_path": path})
    operations.set_task_status(task, "in_progress")
    return task


class TestDesignTasks:
    """Tests for the design task completion hook."""

    def test_requires_linked_path(self, project, config):
        task = operations.add_task(project.phases["design"], "design", "Sketch")
        operations.set_task_status(task, "in_progress")
        with pytest.raises(operations.TaskStateError) as exc_info:
            config.update_task_status(project, "design", task.id, "completed")
        assert "has no artifact_path" in str(exc_info.value)
        assert task.status == "in_progress"

    def test_requires_existing_artifact(self, project, config):
        task = add_design_task(project, "Sketch", "docs/api.md")
        with pytest.raises(operations.TaskStateError) as exc_info:
            config.update_task_status(project, "design", task.id, "completed")
        assert "Artifact not found at docs/api.md" in str(exc_info.value)

    def test_completion_approves_document(self, project, config):
        operations.add_artifact(project.phases["design"], "design", "docs/api.md")
        task = add_design_task(project, "Sketch", "docs/api.md")

        config.update_task_status(project, "design", task.id, "completed")

        assert task.status == "completed"
        assert project.phases["design"].outputs[0].approved is True
        assert design.DesignTask.of(task).artifact_path == "docs/api.md"

    def test_abandon_skips_hook(self, project, config):
        task = add_design_task(project, "Sketch", "docs/missing.md")
        config.update_task_status(project, "design", task.id, "abandoned")
        assert task.status == "abandoned"


class TestLifecycle:
    """active -> finalizing -> completed."""

    def test_lifecycle(self, project, config):
        machine = config.build_machine(project)
        assert project.phases["finalization"].enabled is False
        with pytest.raises(GuardNotMet):
            machine.fire("complete_design")

        operations.add_artifact(project.phases["design"], "adr", "docs/adr-001.md")
        task = add_design_task(project, "ADR", "docs/adr-001.md")
        config.update_task_status(project, "design", task.id, "completed")
        machine.fire("complete_design")

        finalization = project.phases["finalization"]
        assert project.phases["design"].status == "completed"
        assert finalization.status == "in_progress"
        assert finalization.enabled is True

        pr_task = operations.add_task(finalization, "finalization", "Open PR")
        operations.set_task_status(pr_task, "in_progress")
        config.update_task_status(project, "finalization", pr_task.id, "completed")
        finalization.metadata["pr_url"] = "https://example.com/pr/1"
        machine.fire("complete_finalization")

        assert project.current_state == design.COMPLETED
        assert finalization.status == "completed"
        save_project(MemoryBackend(), project, config)

    def test_abandoned_finalization_task_blocks(self, project, config):
        operations.add_artifact(project.phases["design"], "adr", "docs/adr-001.md")
        task = add_design_task(project, "ADR", "docs/adr-001.md")
        config.update_task_status(project, "design", task.id, "completed")
        machine = config.build_machine(project)
        machine.fire("complete_design")

        finalization = project.phases["finalization"]
        done = operations.add_task(finalization, "finalization", "Open PR")
        operations.set_task_status(done, "in_progress")
        operations.set_task_status(done, "completed")
        dropped = operations.add_task(finalization, "finalization", "Announce")
        operations.set_task_status(dropped, "abandoned")

        assert machine.blocking_guards("complete_finalization") == ["all finalization tasks complete"]
