from pathlib import Path

"""Global constants and filesystem layout for Git Sync Utils.

This module defines the install directory, configuration and log locations,
and the fixed values shared by the sync tool, the reminder, and the file
relocator.
"""

# --- Identity ---
APP_NAME = "git-sync-utils"
"""str: The human-readable application name (also the logger name)."""

APP_LABEL = "com.gitsyncutils.reminder"
"""str: The identifier used for scheduler units."""

VERSION = "1.0.0"
"""str: The version reported by `git-sync --version`."""

# --- Paths ---
INSTALL_DIR: Path = Path.home() / ".git-sync-utils"
"""Path: The directory holding the config, logs and backups."""

CONFIG_FILE: Path = INSTALL_DIR / "config.json"
"""Path: The JSON configuration file."""

LOG_FILE: Path = INSTALL_DIR / "sync.log"
"""Path: The operation log for sync runs and reminders."""

RELOCATE_LOG_FILE: Path = INSTALL_DIR / "move_researched_files.log"
"""Path: The operation log for the file relocator."""

BACKUP_DIR: Path = INSTALL_DIR / "backups"
"""Path: Where timestamped copies of ~/.gitconfig are kept."""

GIT_CONFIG_CLONE_DIR: Path = INSTALL_DIR / "git-config-repo"
"""Path: Local clone of the canonical git config repository."""

RELOCATE_CONFIG_FILE: Path = Path.home() / ".config/git-sync-utils/relocate.toml"
"""Path: Optional TOML file with relocator defaults."""

MAX_LOG_SIZE = 5 * 1024 * 1024
"""int: Max bytes for a log file before rotation."""

# --- Sync ---
DEFAULT_REMOTE = "origin"

DEFAULT_EXCLUDE_PATTERNS = [
    "archived/*",
    "*/node_modules",
    "*/.venv",
    "*/vendor",
]
"""list[str]: Exclude patterns written into a freshly installed config."""

LOG_LEVELS = ("debug", "info", "warn", "error")

MAX_DEPTH_LIMIT = 10

FILE_DISPLAY_LIMIT = 10
"""int: Files listed per category before collapsing into '... and N more'."""

COMMIT_DISPLAY_LIMIT = 5

DETACHED = "detached"
"""str: Branch sentinel for a detached HEAD."""

# --- Relocator ---
METADATA_FILE = ".move-researched-files-metadata.json"

DEFAULT_EXTENSION = ".md"

EXCLUDED_DIR_NAMES = frozenset(
    {
        "node_modules",
        "vendor",
        ".venv",
        "venv",
        "__pycache__",
        ".git",
        "dist",
        "build",
    }
)
"""frozenset[str]: Dependency, build and VCS directories never scanned."""

EXCLUDED_FILE_NAMES = frozenset({"README.md", METADATA_FILE})

# --- Toolbox ---
NOTES_RETRY_DELAY = 300
"""int: Seconds between retries of a failed notes pull/push."""

NOTES_PROMPT_FILE: Path = INSTALL_DIR / "notes_prompt_data"
"""Path: Date and answer of the last daily notes sync prompt."""

COMMIT_ALIAS_TYPES = [
    "feat",
    "fix",
    "docs",
    "style",
    "refactor",
    "perf",
    "test",
    "build",
    "ci",
    "chore",
    "revert",
]
"""list[str]: Conventional commit types installed as git aliases."""
