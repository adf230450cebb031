"""
Centralized constants for phasekit.

Exit codes, identifier patterns and status vocabularies live here so the
CLI, the schema and the model helpers agree on them.
"""

import re

# =============================================================================
# Exit codes
# =============================================================================

EXIT_ERROR = 1            # generic failure (bad task move, action failed, ...)
EXIT_CONFIG = 2           # configuration / usage error
EXIT_GUARD = 3            # transition refused (guard, unknown event, ambiguity)
EXIT_SCHEMA = 4           # persisted document violates the schema
EXIT_IO = 5               # read/write/rename failure, missing state file
EXIT_DEPENDENCY = 6       # cycle, self reference, unknown dependency
EXIT_LOCK = 7             # another invocation holds the project lock

# =============================================================================
# Paths
# =============================================================================

WORKSPACE_DIR = ".phasekit"
CONFIG_FILE = "config.env"
DEFAULT_STATE_PATH = "project/state.yaml"

# =============================================================================
# Identifiers
# =============================================================================

TASK_ID_PATTERN = re.compile(r"^[0-9]{3}$")
TASK_ID_STEP = 10
PROJECT_NAME_MAX_LENGTH = 50

# =============================================================================
# Statuses
# =============================================================================

TASK_STATUSES = ("pending", "in_progress", "needs_review", "completed", "abandoned")
TASK_TERMINAL_STATUSES = frozenset({"completed", "abandoned"})

# Allowed task status moves; terminal statuses have none.
TASK_STATUS_MOVES = {
    "pending": {"in_progress", "abandoned"},
    "in_progress": {"needs_review", "completed", "abandoned"},
    "needs_review": {"completed", "in_progress", "abandoned"},
    "completed": set(),
    "abandoned": set(),
}

PHASE_STATUSES = (
    "pending",
    "in_progress",
    "active",
    "summarizing",
    "publishing",
    "completed",
    "failed",
    "skipped",
    "abandoned",
)

# Metadata key holding a task's dependency ids.
DEPENDENCIES_KEY = "dependencies"
