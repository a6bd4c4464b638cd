"""Configuration constants.

Values here are layout and protocol constraints, not user settings.
For configurable values, see models.py.
"""

# =============================================================================
# Data root layout
# =============================================================================

STATE_DIR = ".capsuleos"
"""Per-data-root directory for config, logs and PID files. Never indexed."""

ARCHIVE_DIR = "archive"
"""Top-level folder whose contents are archived."""

DEFAULT_FOLDERS = ("notes", "capsules", "planner", "tracker", "tracker/logs")
"""Module folders created by `caps init`."""

HABITS_FILE = "tracker/habits.json"
"""Habit tracker seed file."""

INDEXABLE_EXTENSIONS = frozenset({".md", ".json"})
"""Free-text (.md) and structured (.json) files."""

DOCUMENT_EXTENSION = ".json"
"""Extension of DocumentStore version files."""

# =============================================================================
# Search
# =============================================================================

SEARCH_MAX_LIMIT = 100
"""Maximum results for a single query."""

TITLE_WEIGHT = 0.4
TAGS_WEIGHT = 0.2
BODY_WEIGHT = 0.1
"""Fixed field weights for ranking."""

# =============================================================================
# Protocol/Validation Constants
# =============================================================================

PORT_MIN = 0
PORT_MAX = 65535
"""Valid port range."""
