"""Tests for the breakdown workflow."""

import pytest

from phasekit.lib.depgraph import InvalidReference
from phasekit.projects import breakdown
from phasekit.state import operations
from phasekit.state.persistence import MemoryBackend, create_project
from phasekit.workflow.registry import default_registry


@pytest.fixture
def config():
    return default_registry().get("breakdown")


@pytest.fixture
def project():
    return create_project(MemoryBackend(), default_registry(), "breakdown/billing", description="Billing epic")


def add_unit(project, config, name, dependencies=None, complete=True):
    phase = project.phases[breakdown.PHASE]
    task_id = operations.next_task_id(phase.tasks)
    path = f"units/{task_id}.md"
    operations.add_artifact(phase, "work_unit_spec", path)
    task = operations.add_task(phase, breakdown.PHASE, name, dependencies=dependencies,
                               metadata={"artifact_path": path})
    if complete:
        config.update_task_status(project, breakdown.PHASE, task.id, "in_progress")
        config.update_task_status(project, breakdown.PHASE, task.id, "completed")
    return task


class TestWorkUnits:
    """Tests for work unit helpers."""

    def test_completion_approves_spec(self, project, config):
        add_unit(project, config, "Schema")
        assert project.phases[breakdown.PHASE].outputs[0].approved is True

    def test_publish_order_follows_dependencies(self, project, config):
        add_unit(project, config, "Schema")
        add_unit(project, config, "API", dependencies=["010"])
        add_unit(project, config, "UI", dependencies=["020"])
        add_unit(project, config, "Docs")

        assert breakdown.publish_order(project) == ["010", "020", "030", "040"]

    def test_dependency_on_dropped_unit_invalid(self, project, config):
        add_unit(project, config, "Schema", complete=False)
        add_unit(project, config, "API", dependencies=["010"])
        config.update_task_status(project, breakdown.PHASE, "010", "abandoned")

        assert breakdown.dependencies_valid(project) is False
        with pytest.raises(InvalidReference):
            breakdown.publish_order(project)

    def test_mark_published_requires_completed(self, project, config):
        add_unit(project, config, "Schema", complete=False)
        with pytest.raises(operations.TaskStateError):
            breakdown.mark_published(project, "010")

    def test_mark_published(self, project, config):
        add_unit(project, config, "Schema")
        add_unit(project, config, "API")
        breakdown.mark_published(project, "010", "https://example.com/issues/1")

        units = breakdown.work_units(project)
        assert units[0].published is True
        assert units[0].issue_url == "https://example.com/issues/1"
        assert breakdown.count_unpublished(project) == 1
        assert breakdown.all_published(project) is False


class TestLifecycle:
    """active -> publishing -> completed."""

    def test_lifecycle(self, project, config):
        machine = config.build_machine(project)
        assert machine.blocking_guards("begin_publishing") == [
            "all work units approved and dependencies valid"
        ]

        add_unit(project, config, "Schema")
        add_unit(project, config, "API", dependencies=["010"])
        machine.fire("begin_publishing")

        phase = project.phases[breakdown.PHASE]
        assert phase.status == "publishing"
        assert not machine.can_fire("complete_breakdown")

        for task_id in breakdown.publish_order(project):
            breakdown.mark_published(project, task_id)
        machine.fire("complete_breakdown")

        assert project.current_state == breakdown.COMPLETED
        assert phase.status == "completed"
