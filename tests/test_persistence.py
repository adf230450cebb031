"""Tests for phasekit.state.persistence module."""

import os
from datetime import timedelta

import pytest

from phasekit.lib.validate import SchemaViolation
from phasekit.state import operations
from phasekit.state.models import utcnow
from phasekit.state.persistence import (
    MemoryBackend,
    PersistenceFailure,
    ProjectNotFound,
    YAMLBackend,
    create_project,
    decode,
    delete_project,
    dump_project,
    generate_project_name,
    load_project,
    save_project,
)
from phasekit.workflow.registry import UnknownProjectType, default_registry


@pytest.fixture
def registry():
    return default_registry()


def without_updated_at(text: str) -> list[str]:
    return [line for line in text.splitlines() if not line.startswith("updated_at:")]


class TestCreateProject:
    """Tests for create_project."""

    def test_standard_fires_init_event(self, registry):
        backend = MemoryBackend()
        project = create_project(backend, registry, "feat/login", description="Add login page")

        assert project.type == "standard"
        assert project.name == "add-login-page"
        assert project.current_state == "discovery_decision"
        assert set(project.phases) == {"discovery", "design", "implementation", "review", "finalize"}
        assert project.phases["implementation"].enabled is True
        assert project.phases["discovery"].enabled is False
        assert backend.exists()

    @pytest.mark.parametrize("branch,expected", [
        ("explore/caching", "exploration"),
        ("design/api", "design"),
        ("breakdown/epic", "breakdown"),
        ("fix/typo", "standard"),
    ])
    def test_type_from_branch(self, registry, branch, expected):
        project = create_project(MemoryBackend(), registry, branch)
        assert project.type == expected

    def test_start_phase_in_progress(self, registry):
        project = create_project(MemoryBackend(), registry, "explore/caching")
        exploration = project.phases["exploration"]
        assert exploration.status == "in_progress"
        assert exploration.started_at is not None
        assert project.phases["finalization"].status == "pending"

    def test_initial_inputs(self, registry):
        project = create_project(
            MemoryBackend(), registry, "design/api",
            initial_inputs={"design": [{"type": "design", "path": "notes/context.md"}]},
        )
        assert project.phases["design"].inputs[0].path == "notes/context.md"

    def test_existing_document_refused(self, registry):
        backend = MemoryBackend()
        create_project(backend, registry, "feat/a")
        with pytest.raises(PersistenceFailure):
            create_project(backend, registry, "feat/b")

    def test_unknown_type(self, registry):
        with pytest.raises(UnknownProjectType):
            create_project(MemoryBackend(), registry, "feat/a", project_type="nope")

    def test_explicit_name(self, registry):
        project = create_project(MemoryBackend(), registry, "feat/a", name="my-name")
        assert project.name == "my-name"


class TestRoundTrip:
    """Tests for load/save."""

    def test_memory_round_trip(self, registry):
        backend = MemoryBackend()
        created = create_project(backend, registry, "breakdown/epic", description="Split the epic")
        phase = created.phases["breakdown"]
        operations.add_task(phase, "breakdown", "Schema")
        operations.add_task(phase, "breakdown", "API", dependencies=["010"])
        save_project(backend, created)

        loaded = load_project(backend, registry)
        assert loaded.to_dict() == created.to_dict()

    def test_yaml_round_trip(self, tmp_path, registry):
        path = tmp_path / "project" / "state.yaml"
        created = create_project(path, registry, "feat/x", description="Thing")
        loaded = load_project(path, registry)
        assert loaded.to_dict() == created.to_dict()

    def test_resave_is_stable(self, registry):
        """Saving an unchanged project only moves updated_at."""
        backend = MemoryBackend()
        create_project(backend, registry, "feat/x")
        first = backend.text

        save_project(backend, load_project(backend, registry))
        assert without_updated_at(backend.text) == without_updated_at(first)

    def test_key_order_is_fixed(self, registry):
        backend = MemoryBackend()
        create_project(backend, registry, "feat/x")
        keys = [line.split(":")[0] for line in backend.text.splitlines() if not line.startswith(" ")]
        assert keys == ["name", "type", "branch", "description", "created_at", "updated_at",
                        "phases", "statechart"]

    def test_updated_at_never_moves_backwards(self, registry):
        backend = MemoryBackend()
        project = create_project(backend, registry, "feat/x")
        future = utcnow() + timedelta(days=1)
        project.updated_at = future
        save_project(backend, project)
        assert project.updated_at == future

    def test_timestamps_stay_strings(self, registry):
        backend = MemoryBackend()
        create_project(backend, registry, "feat/x")
        data = decode(backend.text, "<memory>")
        assert isinstance(data["created_at"], str)

    def test_dump_matches_backend(self, registry):
        backend = MemoryBackend()
        project = create_project(backend, registry, "feat/x")
        assert dump_project(project) == backend.text


class TestValidation:
    """Tests for schema checks at the persistence boundary."""

    def test_bad_task_id_names_path(self, registry):
        backend = MemoryBackend()
        create_project(backend, registry, "breakdown/epic")
        backend.text = backend.text.replace("tasks: []", "tasks:\n    - {id: '1', name: x, phase: breakdown}", 1)

        with pytest.raises(SchemaViolation) as exc_info:
            load_project(backend, registry)
        assert exc_info.value.path.startswith("phases.")

    def test_unknown_type(self, registry):
        backend = MemoryBackend()
        create_project(backend, registry, "feat/x")
        backend.text = backend.text.replace("type: standard", "type: mystery", 1)

        with pytest.raises(SchemaViolation) as exc_info:
            load_project(backend, registry)
        assert exc_info.value.path == "type"

    def test_unknown_state(self, registry):
        backend = MemoryBackend()
        create_project(backend, registry, "feat/x")
        backend.text = backend.text.replace("current_state: discovery_decision", "current_state: limbo", 1)

        with pytest.raises(SchemaViolation) as exc_info:
            load_project(backend, registry)
        assert exc_info.value.path == "statechart.current_state"

    def test_not_a_mapping(self, registry):
        with pytest.raises(SchemaViolation):
            load_project(MemoryBackend("- just\n- a list\n"), registry)

    def test_invalid_yaml(self, registry):
        with pytest.raises(SchemaViolation):
            load_project(MemoryBackend("name: [unclosed\n"), registry)

    def test_invalid_project_not_written(self, registry):
        backend = MemoryBackend()
        project = create_project(backend, registry, "feat/x")
        before = backend.text
        project.name = "Not Kebab Case"

        with pytest.raises(SchemaViolation):
            save_project(backend, project)
        assert backend.text == before

    def test_missing_document(self, tmp_path, registry):
        with pytest.raises(ProjectNotFound):
            load_project(tmp_path / "state.yaml", registry)


class TestAtomicWrite:
    """Tests for crash-safe writes."""

    def test_failed_rename_keeps_old_document(self, tmp_path, registry, monkeypatch):
        path = tmp_path / "state.yaml"
        project = create_project(path, registry, "feat/x")
        before = path.read_text()

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", broken_replace)
        project.description = "changed"
        with pytest.raises(PersistenceFailure):
            save_project(path, project)

        assert path.read_text() == before
        assert [p.name for p in tmp_path.iterdir()] == ["state.yaml"]

    def test_delete(self, tmp_path, registry):
        path = tmp_path / "state.yaml"
        create_project(path, registry, "feat/x")
        delete_project(path)
        assert not path.exists()
        with pytest.raises(ProjectNotFound):
            YAMLBackend(path).delete()


class TestGenerateProjectName:
    """Tests for generate_project_name."""

    def test_kebab_case(self):
        assert generate_project_name("Add OAuth2 login!") == "add-oauth2-login"

    def test_truncated(self):
        name = generate_project_name("word " * 30)
        assert len(name) <= 50
        assert not name.endswith("-")

    def test_fallback(self):
        assert generate_project_name("!!!") == "project"
