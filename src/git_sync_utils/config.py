import getpass
import json
import logging
import os
import re
import shutil
import subprocess
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from rich.console import Console

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_EXCLUDE_PATTERNS,
    DEFAULT_EXTENSION,
    LOG_LEVELS,
    MAX_DEPTH_LIMIT,
    RELOCATE_CONFIG_FILE,
)

logger = logging.getLogger(APP_NAME)
console = Console()

REQUIRED_KEYS = ("projectsRoot", "branchPrefix", "maxDepth")

# JSON key -> dataclass attribute
_KEY_MAP = {
    "projectsRoot": "projects_root",
    "branchPrefix": "branch_prefix",
    "syncTime": "sync_time",
    "maxDepth": "max_depth",
    "excludePatterns": "exclude_patterns",
    "excludeRepos": "exclude_repos",
    "gitConfigRepo": "git_config_repo",
    "autoStashRemaining": "auto_stash_remaining",
    "notificationEnabled": "notification_enabled",
    "logLevel": "log_level",
}

_LOGGING_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class ConfigError(ValueError):
    """Raised when the configuration file is missing or invalid."""


def expand_path(value: str) -> Path:
    """Expands a leading '~' and returns an absolute path."""
    return Path(os.path.expanduser(value)).absolute()


def parse_sync_time(value: str) -> tuple[int, int]:
    """Converts an 'HH:MM' (24h) string to an (hour, minute) tuple."""
    match = re.match(r"^(\d{1,2}):(\d{2})$", str(value).strip())
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time format '{value}'")
    return hour, minute


def default_branch_prefix() -> str:
    """Derives a branch prefix from the git user name (e.g. 'jane-doe/*')."""
    try:
        name = subprocess.run(
            ["git", "config", "user.name"], capture_output=True, text=True
        ).stdout.strip()
    except FileNotFoundError:
        name = ""
    if not name:
        name = getpass.getuser()
    return f"{name.lower().replace(' ', '-')}/*"


@dataclass
class Config:
    """Typed view of config.json, parsed once per invocation.

    Attributes:
        projects_root (Path): Directory scanned for repositories.
        branch_prefix (str): Branch prefix pattern, may contain one '*'.
        max_depth (int): Maximum scan depth (1-10).
        sync_time (str): Daily reminder time, 'HH:MM'.
        exclude_patterns (list[str]): Glob-like patterns matched in repo paths.
        exclude_repos (list[str]): Repository paths excluded verbatim.
        git_config_repo (str | None): Canonical git config repository URL.
        auto_stash_remaining (bool): Stash leftovers after a partial commit
            without asking.
        notification_enabled (bool): Whether the reminder notifies.
        log_level (str): One of debug, info, warn, error.
    """

    projects_root: Path
    branch_prefix: str
    max_depth: int
    sync_time: str = "17:00"
    exclude_patterns: list[str] = field(default_factory=list)
    exclude_repos: list[str] = field(default_factory=list)
    git_config_repo: str | None = None
    auto_stash_remaining: bool = False
    notification_enabled: bool = True
    log_level: str = "info"

    @property
    def logging_level(self) -> int:
        """The stdlib logging level matching `log_level`."""
        return _LOGGING_LEVELS[self.log_level]

    @classmethod
    def load(cls, path: Path = CONFIG_FILE) -> "Config":
        """Reads and validates the configuration file.

        Args:
            path (Path): The JSON configuration file.

        Returns:
            Config: The parsed configuration.

        Raises:
            ConfigError: If the file is missing, malformed, or invalid.
        """
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in configuration file {path}: {e}") from e
        except UnicodeDecodeError as e:
            raise ConfigError(f"Config file {path} is not valid UTF-8: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read configuration file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration in {path} must be a JSON object")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Builds a validated Config from the raw JSON mapping."""
        missing = [k for k in REQUIRED_KEYS if data.get(k) in (None, "")]
        if missing:
            raise ConfigError(
                f"Required configuration field missing: {', '.join(missing)}"
            )

        unknown = set(data) - set(_KEY_MAP)
        if unknown:
            logger.warning(
                f"Unknown config keys: {', '.join(sorted(unknown))}. Ignoring."
            )

        values = {_KEY_MAP[k]: v for k, v in data.items() if k in _KEY_MAP}
        # An empty string means "no repo" in existing config files.
        if not values.get("git_config_repo"):
            values["git_config_repo"] = None

        instance = cls(**values)
        instance.validate()
        instance.projects_root = expand_path(str(instance.projects_root))
        return instance

    def validate(self) -> None:
        """Checks field types and ranges.

        Raises:
            ConfigError: On the first invalid field.
        """
        root = expand_path(str(self.projects_root))
        if not root.is_dir():
            raise ConfigError(f"Projects root directory does not exist: {root}")

        if (
            isinstance(self.max_depth, bool)
            or not isinstance(self.max_depth, int)
            or not 1 <= self.max_depth <= MAX_DEPTH_LIMIT
        ):
            raise ConfigError(
                f"maxDepth must be an integer between 1 and {MAX_DEPTH_LIMIT}, "
                f"got: {self.max_depth!r}"
            )

        if not isinstance(self.branch_prefix, str):
            raise ConfigError("branchPrefix must be a string")

        try:
            parse_sync_time(self.sync_time)
        except ValueError as e:
            raise ConfigError(f"syncTime must be HH:MM (24h): {e}") from e

        for name in ("exclude_patterns", "exclude_repos"):
            value = getattr(self, name)
            if not isinstance(value, list) or not all(
                isinstance(v, str) for v in value
            ):
                raise ConfigError(f"{_json_key(name)} must be a list of strings")

        for name in ("auto_stash_remaining", "notification_enabled"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{_json_key(name)} must be true or false")

        if self.log_level not in LOG_LEVELS:
            raise ConfigError(
                f"logLevel must be one of {', '.join(LOG_LEVELS)}, "
                f"got: {self.log_level!r}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Serializes back to the camelCase JSON layout."""
        out: dict[str, Any] = {}
        for key, attr in _KEY_MAP.items():
            value = getattr(self, attr)
            if isinstance(value, Path):
                value = str(value)
            if attr == "git_config_repo" and value is None:
                value = ""
            out[key] = value
        return out


def _json_key(attr: str) -> str:
    return next(k for k, v in _KEY_MAP.items() if v == attr)


def write_config(config: Config, path: Path = CONFIG_FILE) -> None:
    """Writes the configuration atomically (temp file, then swap)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = path.with_suffix(".tmp")
    with open(tmp_file, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
        f.write("\n")
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_file, path)


def new_config(
    projects_root: Path,
    branch_prefix: str,
    sync_time: str = "17:00",
    max_depth: int = 3,
    git_config_repo: str | None = None,
) -> Config:
    """Builds a fresh configuration with the install-time defaults."""
    return Config(
        projects_root=projects_root,
        branch_prefix=branch_prefix,
        max_depth=max_depth,
        sync_time=sync_time,
        exclude_patterns=list(DEFAULT_EXCLUDE_PATTERNS),
        git_config_repo=git_config_repo or None,
    )


def _mutate(path: Path, update: Any) -> dict[str, Any]:
    """Applies `update` to the raw JSON mapping with a backup copy.

    The file is copied to `<name>.bak` first; if writing fails the backup is
    restored.
    """
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    backup = path.with_name(path.name + ".bak")
    shutil.copy2(path, backup)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        update(data)
        tmp_file = path.with_suffix(".tmp")
        with open(tmp_file, "w") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp_file, path)
        return data
    except (OSError, ValueError) as e:
        logger.error(f"Failed to update configuration {path}: {e}")
        shutil.copy2(backup, path)
        raise ConfigError(f"Failed to update configuration: {e}") from e


def set_config_value(key: str, value: Any, path: Path = CONFIG_FILE) -> None:
    """Sets one top-level key in config.json.

    Args:
        key (str): The JSON key (e.g. 'syncTime').
        value (Any): The new value. Strings are decoded as JSON when possible
            so that `true`, `3` and `["a"]` keep their types.
        path (Path): The configuration file.
    """
    if key not in _KEY_MAP:
        raise ConfigError(f"Unknown configuration key: {key}")

    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            pass

    def update(data: dict[str, Any]) -> None:
        candidate = dict(data)
        candidate[key] = value
        Config.from_dict(candidate)
        data[key] = value

    _mutate(path, update)
    logger.info(f"Updated configuration: {key} = {value}")
    console.print(
        f"[bold green]SUCCESS:[/bold green] Updated configuration: {key} = {value}"
    )


def add_excluded_repo(repo_path: str, path: Path = CONFIG_FILE) -> bool:
    """Adds a repository to `excludeRepos`. Returns False if already present."""
    target = str(expand_path(repo_path))
    config = Config.load(path)
    if target in {str(expand_path(p)) for p in config.exclude_repos}:
        console.print(
            f"[bold yellow]WARNING:[/bold yellow] Repository already excluded: {target}"
        )
        return False

    def update(data: dict[str, Any]) -> None:
        repos = data.get("excludeRepos") or []
        data["excludeRepos"] = sorted(set(repos) | {target})

    _mutate(path, update)
    console.print(
        f"[bold green]SUCCESS:[/bold green] Added repository to exclude list: {target}"
    )
    return True


def remove_excluded_repo(repo_path: str, path: Path = CONFIG_FILE) -> bool:
    """Removes a repository from `excludeRepos`. Returns False if absent."""
    target = str(expand_path(repo_path))
    removed = False

    def update(data: dict[str, Any]) -> None:
        nonlocal removed
        repos = data.get("excludeRepos") or []
        kept = [r for r in repos if str(expand_path(r)) != target]
        removed = len(kept) != len(repos)
        data["excludeRepos"] = kept

    _mutate(path, update)
    if removed:
        console.print(
            f"[bold green]SUCCESS:[/bold green] "
            f"Removed repository from exclude list: {target}"
        )
    else:
        console.print(f"[blue]INFO:[/blue] Not in exclude list: {target}")
    return removed


def show_config(config: Config, path: Path = CONFIG_FILE) -> None:
    """Prints the current configuration (the `--config` flag)."""
    console.print("[bold cyan]═══ Current Configuration ═══[/bold cyan]\n")
    console.print(f"[cyan]Location:[/cyan] {path}\n")

    console.print("[bold]General Settings:[/bold]")
    console.print(f"  Projects Root:  [green]{config.projects_root}[/green]")
    console.print(f"  Branch Prefix:  [green]{config.branch_prefix}[/green]")
    console.print(f"  Sync Time:      [green]{config.sync_time}[/green]")
    console.print(f"  Max Depth:      [green]{config.max_depth}[/green]")
    console.print(f"  Log Level:      [green]{config.log_level}[/green]\n")

    for title, items in (
        ("Exclude Patterns", config.exclude_patterns),
        ("Excluded Repositories", config.exclude_repos),
    ):
        console.print(f"[bold]{title}:[/bold]")
        if not items:
            console.print("  (none)")
        for item in items:
            console.print(f"  [yellow]•[/yellow] {item}")
        console.print()

    if config.git_config_repo:
        console.print("[bold]Git Config Repository:[/bold]")
        console.print(f"  [green]{config.git_config_repo}[/green]\n")

    console.print("[bold]Features:[/bold]")
    console.print(f"  Auto-stash remaining:  {str(config.auto_stash_remaining).lower()}")
    console.print(f"  Notifications:         {str(config.notification_enabled).lower()}")


@dataclass
class RelocateConfig:
    """Defaults for the file relocator.

    Attributes:
        preserve_structure (bool): Mirror relative paths (False means flat).
        auto_cleanup_empty (bool): Remove emptied directories after a move.
        default_mode (str): 'move' or 'copy'.
        extension (str): Document extension to relocate.
    """

    preserve_structure: bool = True
    auto_cleanup_empty: bool = True
    default_mode: str = "move"
    extension: str = DEFAULT_EXTENSION

    @classmethod
    def load(cls, path: Path = RELOCATE_CONFIG_FILE) -> "RelocateConfig":
        """Loads relocator defaults from TOML, falling back to built-ins."""
        instance = cls()
        if not path.exists():
            return instance

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
            return instance
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return instance

        return instance._update(data)

    def _update(self, updates: dict) -> "RelocateConfig":
        """Returns a copy with valid updates applied, warning on the rest."""
        valid_keys = {f.name for f in fields(self)}
        invalid_keys = set(updates) - valid_keys
        if invalid_keys:
            logger.warning(
                f"Unknown relocate config keys: {', '.join(sorted(invalid_keys))}. "
                "Ignoring."
            )

        filtered = {}
        for k, v in updates.items():
            if k not in valid_keys:
                continue
            if k == "default_mode" and v not in ("move", "copy"):
                logger.warning(
                    f"Config error in default_mode: '{v}' is not move or copy. "
                    "Falling back to default."
                )
                continue
            if k in ("preserve_structure", "auto_cleanup_empty") and not isinstance(
                v, bool
            ):
                logger.warning(
                    f"Config error in {k}: expected true/false. Falling back to default."
                )
                continue
            if k == "extension":
                v = v if str(v).startswith(".") else f".{v}"
            filtered[k] = v

        return replace(self, **filtered)
