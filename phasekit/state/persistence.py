"""
Load and save project documents.

The project lives in one YAML document (default .phasekit/project/state.yaml).
Loading validates it against the project JSON Schema and the project type's
own rules before anything trusts it. Saving bumps updated_at, validates,
serializes canonically and replaces the file atomically: the new content is
written to a temp file in the same directory, fsynced, then renamed over the
target. A failed write leaves the previous document untouched and removes
the temp file.

There is no transaction log: one load -> mutate -> save cycle is the unit of
atomicity. Concurrent writers are last-writer-wins at rename time unless the
caller holds phasekit.lib.locking.project_lock.
"""

import copy
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Mapping, Optional, Union

import yaml

from phasekit.lib.constants import PROJECT_NAME_MAX_LENGTH
from phasekit.lib.validate import SchemaViolation, validate, validate_before_write
from phasekit.state.models import Project, Statechart, utcnow

logger = logging.getLogger(__name__)

SCHEMA_NAME = "project"


class PersistenceFailure(Exception):
    """Reading or writing the project document failed."""

    def __init__(self, path, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class ProjectNotFound(PersistenceFailure):
    def __init__(self, path):
        super().__init__(path, "no project found (run 'phasekit new' first)")


class _StateLoader(yaml.SafeLoader):
    """SafeLoader that keeps timestamps as strings."""


_StateLoader.yaml_implicit_resolvers = {
    first: [r for r in resolvers if r[0] != "tag:yaml.org,2002:timestamp"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


class _StateDumper(yaml.SafeDumper):
    """SafeDumper that never emits anchors or aliases."""

    def ignore_aliases(self, data):
        return True


def encode(data: dict) -> str:
    return yaml.dump(
        data,
        Dumper=_StateDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )


def decode(text: str, source) -> dict:
    try:
        data = yaml.load(text, Loader=_StateLoader)
    except yaml.YAMLError as e:
        raise SchemaViolation(SCHEMA_NAME, f"invalid YAML in {source}: {e}") from None
    if not isinstance(data, dict):
        raise SchemaViolation(SCHEMA_NAME, f"{source} does not contain a mapping")
    return data


def atomic_write_text(path: Path, content: str) -> None:
    """Write content to path via temp file + rename. Cleans up on any failure."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


# =============================================================================
# Backends
# =============================================================================

class YAMLBackend:
    """Project document stored as a YAML file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    @property
    def location(self) -> str:
        return str(self.path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> dict:
        if not self.path.exists():
            raise ProjectNotFound(self.path)
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceFailure(self.path, f"read failed: {e}") from e
        return decode(text, self.path)

    def save(self, data: dict) -> None:
        try:
            atomic_write_text(self.path, encode(data))
        except OSError as e:
            raise PersistenceFailure(self.path, f"write failed: {e}") from e
        logger.debug(f"Wrote {self.path}")

    def delete(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            raise ProjectNotFound(self.path) from None
        except OSError as e:
            raise PersistenceFailure(self.path, f"delete failed: {e}") from e


class MemoryBackend:
    """In-memory document, serialized exactly as the YAML backend would write it."""

    location = "<memory>"

    def __init__(self, text: Optional[str] = None):
        self.text = text

    def exists(self) -> bool:
        return self.text is not None

    def load(self) -> dict:
        if self.text is None:
            raise ProjectNotFound(self.location)
        return decode(self.text, self.location)

    def save(self, data: dict) -> None:
        self.text = encode(copy.deepcopy(data))

    def delete(self) -> None:
        if self.text is None:
            raise ProjectNotFound(self.location)
        self.text = None


Backend = Union[YAMLBackend, MemoryBackend]


def _backend(source) -> Backend:
    if isinstance(source, (str, Path)):
        return YAMLBackend(source)
    return source


# =============================================================================
# Operations
# =============================================================================

def dump_project(project: Project) -> str:
    """Canonical YAML for a project."""
    return encode(project.to_dict())


def load_project(source, registry) -> Project:
    """
    Load and validate a project document.

    Args:
        source: A backend, or a path to a YAML document
        registry: ProjectTypeRegistry used to resolve the project type

    Raises:
        ProjectNotFound: no document at source
        PersistenceFailure: the document could not be read
        SchemaViolation: the document violates the schema or its type's rules
    """
    backend = _backend(source)
    data = backend.load()
    validate(data, SCHEMA_NAME)

    project = Project.from_dict(data)
    if project.type not in registry:
        raise SchemaViolation(
            SCHEMA_NAME,
            f"unknown project type '{project.type}' (known: {', '.join(registry.names())})",
            "type",
        )
    registry.get(project.type).validate(project)
    return project


def save_project(source, project: Project, config=None) -> None:
    """
    Validate and atomically write a project.

    updated_at is bumped to now, never moving backwards.

    Raises:
        SchemaViolation: the project is not valid; nothing is written
        PersistenceFailure: the write or rename failed; target untouched
    """
    backend = _backend(source)
    project.updated_at = max(utcnow(), project.updated_at)

    data = project.to_dict()
    validate_before_write(data, SCHEMA_NAME, backend.location)
    if config is not None:
        config.validate(project)

    backend.save(data)


def generate_project_name(text: str) -> str:
    """Kebab-case project name from free text, at most 50 characters."""
    name = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    name = name[:PROJECT_NAME_MAX_LENGTH].rstrip("-")
    return name or "project"


def create_project(
    source,
    registry,
    branch: str,
    description: str = "",
    project_type: Optional[str] = None,
    initial_inputs: Optional[Mapping[str, list]] = None,
    name: Optional[str] = None,
) -> Project:
    """
    Create, initialize and save a new project.

    If the type declares an init event it is fired before the first save.
    The type defaults to the one implied by the branch prefix. The name
    defaults to a kebab-case form of the description (or branch).

    Raises:
        PersistenceFailure: a project document already exists
        UnknownProjectType: project_type isn't registered
    """
    from phasekit.workflow.registry import detect_project_type

    backend = _backend(source)
    if backend.exists():
        raise PersistenceFailure(backend.location, "a project already exists here")

    project_type = project_type or detect_project_type(branch)
    config = registry.get(project_type)

    project = Project(
        name=name or generate_project_name(description or branch),
        type=project_type,
        branch=branch,
        description=description,
        statechart=Statechart(current_state=config.initial_state),
    )
    project.updated_at = project.created_at
    config.initialize(project, initial_inputs)
    if config.init_event:
        config.build_machine(project).fire(config.init_event)

    save_project(backend, project, config)
    logger.info(f"Created {project_type} project '{project.name}' on {branch}")
    return project


def delete_project(source) -> None:
    backend = _backend(source)
    backend.delete()
    logger.info(f"Deleted project document {backend.location}")
