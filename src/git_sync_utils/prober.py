import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .config import Config
from .constants import APP_NAME, DETACHED
from .git_wrapper import GitRepo
from .matcher import RepoMatcher

logger = logging.getLogger(APP_NAME)


@dataclass
class RepoDescriptor:
    """Point-in-time status of one repository.

    Attributes:
        path (Path): Absolute repository root.
        branch (str): Current branch, or "detached".
        has_tracking (bool): Whether the branch has an upstream.
        ahead (int): Local commits missing upstream.
        behind (int): Upstream commits missing locally.
        staged (int): Files staged in the index.
        modified (int): Tracked files with unstaged edits.
        untracked (int): Untracked, non-ignored files.
    """

    path: Path
    branch: str
    has_tracking: bool = False
    ahead: int = 0
    behind: int = 0
    staged: int = 0
    modified: int = 0
    untracked: int = 0

    @property
    def is_detached(self) -> bool:
        return self.branch == DETACHED


def find_repositories(root: Path, max_depth: int) -> list[Path]:
    """Finds repositories whose `.git` entry lies within `max_depth` of root.

    The walk does not descend into a repository once found, and unreadable
    directories are skipped.

    Args:
        root (Path): Directory to scan.
        max_depth (int): Maximum depth of the `.git` marker below root.

    Returns:
        list[Path]: Repository roots in traversal order.
    """
    root = root.absolute()
    repos: list[Path] = []

    def on_error(err: OSError) -> None:
        logger.debug(f"Skipping unreadable directory {err.filename}: {err}")

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        current = Path(dirpath)
        depth = len(current.relative_to(root).parts)

        if ".git" in dirnames or ".git" in filenames:
            repos.append(current)
            dirnames[:] = []
            continue

        # Children sit at depth + 1; their marker would be at depth + 2.
        if depth + 2 > max_depth:
            dirnames[:] = []
        else:
            dirnames.sort()

    return repos


def probe(path: Path) -> RepoDescriptor:
    """Reads branch, upstream and working tree counts for a repository.

    Raises:
        RuntimeError: If a git command fails.
        ValueError: If the path is not a repository.
    """
    repo = GitRepo(path)
    branch = repo.current_branch()
    if branch is None:
        return RepoDescriptor(path=path, branch=DETACHED)

    ahead, behind = repo.ahead_behind()
    return RepoDescriptor(
        path=path,
        branch=branch,
        has_tracking=repo.tracking_branch() is not None,
        ahead=ahead,
        behind=behind,
        staged=len(repo.staged_files()),
        modified=len(repo.modified_files()),
        untracked=len(repo.untracked_files()),
    )


def _qualifies(path: Path, matcher: RepoMatcher) -> bool:
    if matcher.is_excluded(path):
        logger.debug(f"Skipping excluded repo: {path}")
        return False

    repo = GitRepo(path)
    branch = repo.current_branch()
    if branch is None:
        logger.debug(f"Skipping {path} (detached HEAD)")
        return False

    if not matcher.branch_matches(branch):
        logger.debug(f"Skipping {path} (branch '{branch}' doesn't match prefix)")
        return False

    return repo.has_uncommitted_changes() or repo.has_unpushed_commits()


def discover_repositories(
    config: Config, matcher: RepoMatcher | None = None
) -> list[Path]:
    """Lists repositories that need syncing.

    A repository qualifies when it is not excluded, is on a branch matching
    the configured prefix, and has uncommitted changes or unpushed commits.

    Args:
        config (Config): The loaded configuration.
        matcher (RepoMatcher | None): Pre-compiled rules; built from config
            when omitted.

    Returns:
        list[Path]: Qualifying repositories in traversal order.
    """
    matcher = matcher or RepoMatcher.from_config(config)
    logger.info(f"Starting repository discovery in {config.projects_root}")

    found = []
    for path in find_repositories(config.projects_root, config.max_depth):
        try:
            if _qualifies(path, matcher):
                found.append(path)
        except (RuntimeError, ValueError, OSError) as e:
            logger.debug(f"Skipping {path}: {e}")

    logger.info(f"Discovery found {len(found)} repositories needing sync")
    return found
