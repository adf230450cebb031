"""
Registry of project types.

An explicit object: the CLI builds one per process with default_registry()
and passes it to whatever needs to resolve a project's type. Tests build
their own.
"""

import logging
from typing import Optional

from phasekit.workflow.project_type import ProjectTypeConfig

logger = logging.getLogger(__name__)

DEFAULT_TYPE = "standard"

# Branch prefix -> project type
BRANCH_PREFIXES = [
    ("explore/", "exploration"),
    ("design/", "design"),
    ("breakdown/", "breakdown"),
]


class UnknownProjectType(KeyError):
    def __init__(self, name: str, known: list[str]):
        self.name = name
        self.known = known
        super().__init__(name)

    def __str__(self) -> str:
        return f"Unknown project type '{self.name}' (known: {', '.join(self.known) or 'none'})"


class ProjectTypeRegistry:
    def __init__(self, configs: Optional[list[ProjectTypeConfig]] = None):
        self._configs: dict[str, ProjectTypeConfig] = {}
        for config in configs or []:
            self.register(config)

    def register(self, config: ProjectTypeConfig) -> None:
        if config.name in self._configs:
            raise ValueError(f"Project type '{config.name}' already registered")
        self._configs[config.name] = config

    def get(self, name: str) -> ProjectTypeConfig:
        try:
            return self._configs[name]
        except KeyError:
            raise UnknownProjectType(name, self.names()) from None

    def __contains__(self, name: str) -> bool:
        return name in self._configs

    def names(self) -> list[str]:
        return sorted(self._configs)


def detect_project_type(branch: str) -> str:
    """Project type implied by a branch name; standard when no prefix matches."""
    for prefix, project_type in BRANCH_PREFIXES:
        if branch.startswith(prefix):
            return project_type
    return DEFAULT_TYPE


def default_registry() -> ProjectTypeRegistry:
    """Registry with every built-in workflow type."""
    from phasekit.projects import breakdown, design, exploration, standard

    return ProjectTypeRegistry([
        standard.build_config(),
        design.build_config(),
        exploration.build_config(),
        breakdown.build_config(),
    ])
