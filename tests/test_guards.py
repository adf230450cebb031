"""Tests for phasekit.state.guards module."""

from datetime import datetime, timedelta, timezone

import pytest

from phasekit.state import guards
from phasekit.state.models import Artifact, Phase, Project, Statechart, Task

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_project(**phases) -> Project:
    return Project(
        name="demo",
        type="standard",
        branch="feat/demo",
        statechart=Statechart("implementation_executing"),
        phases=dict(phases),
    )


def phase_with_tasks(*statuses) -> Phase:
    return Phase(tasks=[
        Task(id=f"{(i + 1) * 10:03d}", name=f"task {i}", phase="implementation", status=status)
        for i, status in enumerate(statuses)
    ])


class TestTaskPredicates:
    """Tests for task completion predicates."""

    def test_completed_and_abandoned_is_complete(self):
        """010 completed + 020 abandoned counts as done."""
        project = make_project(implementation=phase_with_tasks("completed", "abandoned"))
        assert guards.tasks_complete(project, "implementation") is True

    def test_pending_task_blocks(self):
        """010 completed + 020 pending is not done."""
        project = make_project(implementation=phase_with_tasks("completed", "pending"))
        assert guards.tasks_complete(project, "implementation") is False

    @pytest.mark.parametrize("status", ["in_progress", "needs_review"])
    def test_open_statuses_block(self, status):
        project = make_project(implementation=phase_with_tasks("completed", status))
        assert guards.tasks_complete(project, "implementation") is False

    def test_all_abandoned_is_not_complete(self):
        """A fully abandoned phase must not advance."""
        project = make_project(implementation=phase_with_tasks("abandoned", "abandoned"))
        assert guards.tasks_complete(project, "implementation") is False
        assert guards.tasks_resolved(project, "implementation") is True

    def test_empty_phase_is_not_complete(self):
        project = make_project(implementation=Phase())
        assert guards.tasks_complete(project, "implementation") is False
        assert guards.tasks_resolved(project, "implementation") is False
        assert guards.all_tasks_completed(project, "implementation") is False

    def test_missing_phase_is_false(self):
        """Absent phases are a defined false, not an error."""
        project = make_project()
        assert guards.tasks_complete(project, "implementation") is False
        assert guards.has_tasks(project, "implementation") is False
        assert guards.count_unresolved_tasks(project, "implementation") == 0

    def test_all_tasks_completed_rejects_abandoned(self):
        project = make_project(finalization=phase_with_tasks("completed", "abandoned"))
        assert guards.all_tasks_completed(project, "finalization") is False

    def test_count_unresolved(self):
        project = make_project(implementation=phase_with_tasks("completed", "pending", "in_progress"))
        assert guards.count_unresolved_tasks(project, "implementation") == 2


class TestArtifactPredicates:
    """Tests for artifact approval predicates."""

    def test_all_of_type_approved(self):
        phase = Phase(outputs=[
            Artifact("design", "docs/a.md", approved=True),
            Artifact("design", "docs/b.md", approved=True),
            Artifact("diagram", "docs/c.png", approved=False),
        ])
        project = make_project(design=phase)
        assert guards.artifacts_approved(project, "design", "design") is True
        assert guards.artifacts_approved(project, "design", "diagram") is False

    def test_none_of_type_is_false(self):
        project = make_project(design=Phase())
        assert guards.artifacts_approved(project, "design", "design") is False
        assert guards.has_approved_artifact(project, "design", "design") is False

    def test_all_outputs_approved(self):
        phase = Phase(outputs=[Artifact("design", "a.md", approved=True), Artifact("adr", "b.md")])
        project = make_project(design=phase)
        assert guards.all_outputs_approved(project, "design") is False
        phase.outputs[1].approved = True
        assert guards.all_outputs_approved(project, "design") is True

    def test_inputs_collection(self):
        phase = Phase(inputs=[Artifact("discovery", "notes.md", approved=True)])
        project = make_project(design=phase)
        assert guards.artifacts_approved(project, "design", "discovery", collection="inputs") is True
        assert guards.artifacts_approved(project, "design", "discovery") is False


class TestMetadataFlag:
    """Tests for metadata_flag."""

    def test_true_flag(self):
        project = make_project(implementation=Phase(metadata={"tasks_approved": True}))
        assert guards.metadata_flag(project, "implementation", "tasks_approved") is True

    @pytest.mark.parametrize("value", [False, "true", 1, None])
    def test_only_boolean_true_counts(self, value):
        project = make_project(implementation=Phase(metadata={"tasks_approved": value}))
        assert guards.metadata_flag(project, "implementation", "tasks_approved") is False

    def test_absent_key(self):
        project = make_project(implementation=Phase())
        assert guards.metadata_flag(project, "implementation", "tasks_approved") is False


class TestLatestArtifact:
    """Tests for latest-artifact routing."""

    def reviews(self, *entries):
        return make_project(review=Phase(outputs=[
            Artifact("review", path, created_at=created, approved=approved, metadata={"assessment": assessment})
            for path, created, assessment, approved in entries
        ]))

    def test_most_recent_wins(self):
        project = self.reviews(
            ("r1.md", T0, "fail", True),
            ("r2.md", T0 + timedelta(hours=1), "pass", True),
        )
        assert guards.latest_artifact_has(project, "review", "review", "assessment", "pass") is True
        assert guards.latest_artifact_has(project, "review", "review", "assessment", "fail") is False

    def test_creation_time_beats_position(self):
        """An older artifact added later does not win."""
        project = self.reviews(
            ("new.md", T0 + timedelta(hours=2), "pass", True),
            ("old.md", T0, "fail", True),
        )
        assert guards.latest_artifact(project, "review", "review").path == "new.md"

    def test_tie_goes_to_later_position(self):
        project = self.reviews(("a.md", T0, "fail", True), ("b.md", T0, "pass", True))
        assert guards.latest_artifact(project, "review", "review").path == "b.md"

    def test_approved_only(self):
        project = self.reviews(
            ("r1.md", T0, "pass", True),
            ("r2.md", T0 + timedelta(hours=1), "fail", False),
        )
        latest = guards.latest_artifact(project, "review", "review", approved_only=True)
        assert latest.path == "r1.md"

    def test_missing_is_false(self):
        project = make_project()
        assert guards.latest_artifact(project, "review", "review") is None
        assert guards.latest_artifact_has(project, "review", "review", "assessment", "pass") is False
