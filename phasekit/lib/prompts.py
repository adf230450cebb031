"""
Prompt template registry for phasekit.

Templates are Markdown files named <name>.md under a prompts directory,
possibly nested (e.g. "standard/planning" -> standard/planning.md). They use
Python str.format() syntax: {variable_name}. Use {{ and }} for literal braces.

HTML comments (<!-- ... -->) are stripped before rendering - use them for
notes that shouldn't reach the agent.

A registry is built once per process and handed to whatever renders
prompts; there is no module-level template cache.
"""

import logging
import re
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

__all__ = ["PromptError", "PromptRegistry", "BUNDLED_PROMPTS_DIR"]

# Pattern to strip HTML comments (including multiline)
_HTML_COMMENT_PATTERN = re.compile(r'<!--.*?-->\s*', re.DOTALL)

BUNDLED_PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


class PromptError(Exception):
    """Raised when prompt loading or rendering fails."""
    pass


class PromptRegistry:
    """Loads and renders templates from one directory."""

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory) if directory else BUNDLED_PROMPTS_DIR
        self._templates: dict[str, str] = {}

    def names(self) -> list[str]:
        """All template names available in the directory, sorted."""
        if not self.directory.is_dir():
            return []
        return sorted(
            p.relative_to(self.directory).with_suffix("").as_posix()
            for p in self.directory.rglob("*.md")
        )

    def load(self, name: str) -> str:
        """
        Load a template by name (cached per registry).

        Raises:
            PromptError: If the template file doesn't exist
        """
        if name in self._templates:
            return self._templates[name]

        prompt_path = self.directory / f"{name}.md"
        if not prompt_path.is_file():
            raise PromptError(
                f"Prompt template '{name}' not found. "
                f"Expected file: {prompt_path}"
            )

        logger.debug(f"Loading prompt template: {name}")
        content = _HTML_COMMENT_PATTERN.sub('', prompt_path.read_text())
        self._templates[name] = content.lstrip()
        return self._templates[name]

    def render(self, template_name: str, **kwargs) -> str:
        """
        Load and render a template.

        Raises:
            PromptError: If the template is missing or a variable is missing
        """
        template = self.load(template_name)
        try:
            return template.format(**kwargs)
        except KeyError as e:
            raise PromptError(
                f"Missing required variable {e} in prompt '{template_name}'. "
                f"Provided: {sorted(kwargs)}"
            ) from e

    def clear(self) -> None:
        """Drop cached templates so edits on disk are picked up."""
        self._templates.clear()
