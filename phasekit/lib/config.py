"""
Configuration loaders for phasekit.

Settings come from .phasekit/config.env in the workspace root. Every key is
optional; missing keys fall back to the defaults below.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import envparse
from .constants import CONFIG_FILE, DEFAULT_STATE_PATH, WORKSPACE_DIR

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Workspace configuration is missing or malformed."""
    pass


@dataclass
class Settings:
    """Workspace settings from .phasekit/config.env"""
    root: Path                        # directory containing .phasekit/
    state_path: Path                  # absolute path of the project document
    lock_enabled: bool = True
    lock_timeout: int = 10            # seconds
    log_level: str = "WARNING"
    prompts_dir: Optional[Path] = None  # None = bundled templates

    @property
    def lock_path(self) -> Path:
        return self.state_path.with_name(self.state_path.name + ".lock")


def find_workspace_root(start: Path) -> Optional[Path]:
    """Walk up from start to the first directory holding .phasekit/."""
    current = Path(start).resolve()
    while True:
        if (current / WORKSPACE_DIR).is_dir():
            return current
        if current.parent == current:
            return None
        current = current.parent


def load_settings(root: Path) -> Settings:
    """Load settings for the workspace at root.

    A missing config.env is not an error. A malformed one is.
    """
    root = Path(root)
    config_path = root / WORKSPACE_DIR / CONFIG_FILE

    env: dict[str, str] = {}
    if config_path.exists():
        try:
            env = envparse.load_env(config_path)
        except ValueError as e:
            raise ConfigError(str(e)) from e
    else:
        logger.debug(f"No {config_path}, using defaults")

    state_rel = env.get("STATE_PATH", DEFAULT_STATE_PATH)
    state_path = Path(state_rel)
    if not state_path.is_absolute():
        state_path = root / WORKSPACE_DIR / state_path

    try:
        lock_enabled = envparse.parse_bool(env.get("LOCK_ENABLED", "true"), "LOCK_ENABLED")
        lock_timeout = int(env.get("LOCK_TIMEOUT", "10"))
    except ValueError as e:
        raise ConfigError(f"{config_path}: {e}") from e
    if lock_timeout < 0:
        raise ConfigError(f"{config_path}: LOCK_TIMEOUT must be >= 0")

    log_level = env.get("LOG_LEVEL", "WARNING").upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"{config_path}: LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

    prompts_dir = None
    if env.get("PROMPTS_DIR"):
        prompts_dir = Path(env["PROMPTS_DIR"])
        if not prompts_dir.is_absolute():
            prompts_dir = root / prompts_dir

    return Settings(
        root=root,
        state_path=state_path,
        lock_enabled=lock_enabled,
        lock_timeout=lock_timeout,
        log_level=log_level,
        prompts_dir=prompts_dir,
    )


def init_workspace(root: Path) -> Path:
    """Create .phasekit/ under root if missing. Returns the workspace dir."""
    workspace = Path(root) / WORKSPACE_DIR
    workspace.mkdir(parents=True, exist_ok=True)
    return workspace
