"""Interactive end-of-day sync across every qualifying repository.

Repositories are processed strictly one after another. For each one the user
chooses to stage everything, stage interactively, skip, or quit; commits are
pushed through the Safe Push Guard. The tally is carried in a `SyncResult`
that is returned to the caller and always summarised exactly once.
"""

import datetime
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from rich.console import Console

from . import ui
from .config import Config
from .constants import APP_NAME
from .git_wrapper import GitRepo
from .prober import discover_repositories, probe
from .push import PushOutcome, safe_push

logger = logging.getLogger(APP_NAME)
console = Console()

ACTIONS = [
    ("a", "Add all and commit"),
    ("i", "Interactive staging"),
    ("s", "Skip this repository"),
    ("q", "Quit sync"),
]

REMAINING_ACTIONS = [
    ("s", "Stash with message"),
    ("l", "Leave unstaged"),
]


class RepoOutcome(Enum):
    """What happened to a single repository."""

    SYNCED = "synced"
    SKIPPED = "skipped"
    ERRORED = "errored"
    QUIT = "quit"


@dataclass
class SyncResult:
    """Counters for one sync run.

    Attributes:
        synced (int): Repositories committed and pushed.
        skipped (int): Repositories skipped by choice, dry run, or nothing staged.
        errored (int): Repositories where staging, committing or pushing failed.
    """

    synced: int = 0
    skipped: int = 0
    errored: int = 0

    def record(self, outcome: RepoOutcome) -> None:
        if outcome is RepoOutcome.SYNCED:
            self.synced += 1
        elif outcome is RepoOutcome.SKIPPED:
            self.skipped += 1
        elif outcome is RepoOutcome.ERRORED:
            self.errored += 1


def _today() -> str:
    return datetime.date.today().isoformat()


def _dry(message: str) -> None:
    console.print(f"[blue]INFO:[/blue] [DRY RUN] {message}")
    logger.info(f"[DRY RUN] {message}")


def _push(repo: GitRepo, branch: str) -> RepoOutcome:
    outcome = safe_push(repo, branch)
    if outcome is PushOutcome.SUCCESS:
        return RepoOutcome.SYNCED
    if outcome is PushOutcome.CONFLICT:
        console.print(
            f"[bold yellow]WARNING:[/bold yellow] {repo.path.name}: remote diverged. "
            "Pull and resolve manually, then push."
        )
    console.print("[bold red]ERROR:[/bold red] Failed to push changes")
    return RepoOutcome.ERRORED


def _commit_and_push(repo: GitRepo, branch: str, default_message: str) -> RepoOutcome:
    message = ui.prompt_input("Commit message", default_message)
    try:
        repo.commit(message)
    except RuntimeError as e:
        console.print(f"[bold red]ERROR:[/bold red] Failed to commit changes: {e}")
        logger.error(f"COMMIT ERROR {repo.path}: {e}")
        return RepoOutcome.ERRORED
    return _push(repo, branch)


def process_add_all(repo: GitRepo, branch: str, dry_run: bool = False) -> RepoOutcome:
    """Stages everything, commits with a prompted message, then pushes.

    Args:
        repo (GitRepo): The repository.
        branch (str): Its current branch.
        dry_run (bool): Only report what would happen.

    Returns:
        RepoOutcome: SYNCED, ERRORED, or SKIPPED for a dry run.
    """
    if dry_run:
        _dry(f"Would stage all changes in {repo.path.name}")
        _dry(f"Would commit with 'WIP: End of day sync {_today()}'")
        _dry(f"Would push {branch}")
        return RepoOutcome.SKIPPED

    try:
        repo.add_all()
    except RuntimeError as e:
        console.print(f"[bold red]ERROR:[/bold red] Failed to stage changes: {e}")
        logger.error(f"STAGE ERROR {repo.path}: {e}")
        return RepoOutcome.ERRORED

    if repo.has_staged_changes():
        outcome = _commit_and_push(repo, branch, f"WIP: End of day sync {_today()}")
    else:
        # Only unpushed commits: nothing to commit, push them as they are.
        console.print("[blue]INFO:[/blue] Nothing to commit, pushing existing commits")
        outcome = _push(repo, branch)

    if outcome is RepoOutcome.SYNCED:
        console.print(
            f"[bold green]SUCCESS:[/bold green] Successfully synced {repo.path.name}"
        )
        logger.info(f"Synced: {repo.path} (add all)")
    return outcome


def handle_remaining_changes(repo: GitRepo, config: Config) -> None:
    """Offers to stash what is left after a partial commit.

    With `autoStashRemaining` the leftovers are stashed without asking.
    """
    console.print()
    console.print("[blue]INFO:[/blue] You have remaining unstaged changes:")
    console.print(repo.status_short(), highlight=False)
    console.print()

    default_message = f"Unstaged changes {_today()}"
    if config.auto_stash_remaining:
        message = default_message
    else:
        choice = ui.prompt_action("What to do with remaining changes?", REMAINING_ACTIONS)
        if choice != "s":
            console.print("[blue]INFO:[/blue] Leaving changes unstaged")
            return
        message = ui.prompt_input("Stash message", default_message)

    try:
        repo.stash_push(message)
    except RuntimeError as e:
        console.print(f"[bold red]ERROR:[/bold red] Failed to stash changes: {e}")
        logger.error(f"STASH ERROR {repo.path}: {e}")
        return
    console.print("[bold green]SUCCESS:[/bold green] Stashed remaining changes")
    logger.info(f"Stashed remaining changes in {repo.path}: {message}")


def process_interactive(
    repo: GitRepo, branch: str, config: Config, dry_run: bool = False
) -> RepoOutcome:
    """Runs `git add -p`, then commits and pushes whatever was staged.

    Returns:
        RepoOutcome: SYNCED, ERRORED, or SKIPPED when nothing was staged or
        on a dry run.
    """
    if dry_run:
        _dry(f"Would run interactive staging in {repo.path.name}")
        return RepoOutcome.SKIPPED

    console.print(
        "[blue]INFO:[/blue] Starting interactive staging "
        "(use 'y' to stage, 'n' to skip, 'q' to quit)..."
    )
    try:
        repo.add_patch()
    except RuntimeError as e:
        console.print(
            "[bold yellow]WARNING:[/bold yellow] "
            "Interactive staging cancelled or no changes selected"
        )
        logger.info(f"Interactive staging aborted in {repo.path}: {e}")
        return RepoOutcome.SKIPPED

    if not repo.has_staged_changes():
        console.print(
            "[bold yellow]WARNING:[/bold yellow] No changes staged, skipping commit"
        )
        return RepoOutcome.SKIPPED

    outcome = _commit_and_push(repo, branch, f"WIP: Partial sync {_today()}")
    if outcome is not RepoOutcome.SYNCED:
        return outcome

    console.print(
        f"[bold green]SUCCESS:[/bold green] Successfully synced {repo.path.name}"
    )
    logger.info(f"Synced: {repo.path} (interactive)")

    try:
        if repo.has_uncommitted_changes():
            handle_remaining_changes(repo, config)
    except RuntimeError as e:
        # The push already succeeded; leftovers stay in the working tree.
        console.print(
            f"[bold yellow]WARNING:[/bold yellow] Could not check remaining changes: {e}"
        )
        logger.warning(f"Remaining changes check failed in {repo.path}: {e}")
    return outcome


def process_repository(path: Path, config: Config, dry_run: bool = False) -> RepoOutcome:
    """Shows a repository's status and carries out the chosen action.

    Args:
        path (Path): The repository root.
        config (Config): The loaded configuration.
        dry_run (bool): Simulate every mutating step.

    Returns:
        RepoOutcome: The outcome, or QUIT when the user ends the run.
    """
    try:
        repo = GitRepo(path)
        branch = repo.current_branch()
        if not branch:
            raise RuntimeError("detached HEAD")

        logger.info(f"Processing repository: {path} ({branch})")
        ui.print_repo_header(path.name, branch)
        ui.show_git_status(repo)
        console.print()

        action = ui.prompt_action("What would you like to do?", ACTIONS)

        if action == "a":
            return process_add_all(repo, branch, dry_run)
        if action == "i":
            return process_interactive(repo, branch, config, dry_run)
        if action == "q":
            return RepoOutcome.QUIT
        if action == "s":
            console.print(f"[blue]INFO:[/blue] Skipping {path.name}")
        else:
            console.print(
                "[bold yellow]WARNING:[/bold yellow] Invalid choice, skipping repository"
            )
        logger.info(f"Skipped: {path}")
        return RepoOutcome.SKIPPED

    except (RuntimeError, ValueError, OSError) as e:
        console.print(f"[bold red]ERROR:[/bold red] Cannot process {path}: {e}")
        logger.error(f"ERROR {path}: {e}")
        return RepoOutcome.ERRORED


def run_sync(config: Config, dry_run: bool = False) -> SyncResult:
    """Runs the interactive sync over every discovered repository.

    The summary is printed exactly once, whether the run completes, the user
    quits, or it is interrupted. A KeyboardInterrupt is re-raised after the
    summary.

    Args:
        config (Config): The loaded configuration.
        dry_run (bool): Simulate every mutating step.

    Returns:
        SyncResult: The final counters.
    """
    result = SyncResult()
    try:
        ui.print_banner()
        if dry_run:
            console.print(
                "[blue]INFO:[/blue] Running in DRY RUN mode - no changes will be made\n"
            )

        console.print(
            f"[blue]INFO:[/blue] Scanning for repositories in {config.projects_root}..."
        )
        repos = discover_repositories(config)
        if not repos:
            console.print(
                "[bold green]SUCCESS:[/bold green] "
                "No repositories with uncommitted changes found."
            )
            return result

        console.print(
            f"[blue]INFO:[/blue] Found {len(repos)} repository(ies) "
            "with uncommitted changes\n"
        )
        for path in repos:
            console.print(f"  • {path}", highlight=False)
        console.print()

        if not ui.confirm("Process these repositories?"):
            console.print("[blue]INFO:[/blue] Sync cancelled by user")
            return result

        for path in repos:
            console.print()
            outcome = process_repository(path, config, dry_run)
            if outcome is RepoOutcome.QUIT:
                console.print("[blue]INFO:[/blue] Sync cancelled by user")
                logger.info("Sync cancelled by user")
                break
            result.record(outcome)
            console.print()
            ui.print_separator()

    except KeyboardInterrupt:
        console.print("\n[bold red]ERROR:[/bold red] Sync interrupted")
        logger.warning("Sync interrupted by user")
        raise
    finally:
        ui.print_summary(result)
        logger.info(
            f"Summary: synced={result.synced}, skipped={result.skipped}, "
            f"errors={result.errored}"
        )

    return result


def show_status(config: Config) -> int:
    """Prints one status block per repository needing sync (`--status`).

    Returns:
        int: The number of repositories shown.
    """
    repos = discover_repositories(config)
    if not repos:
        console.print(
            "[bold green]SUCCESS:[/bold green] "
            "No repositories with uncommitted changes found."
        )
        return 0

    ui.print_header("Repository Status")
    console.print()

    shown = 0
    for path in repos:
        try:
            desc = probe(path)
        except (RuntimeError, ValueError) as e:
            logger.debug(f"Status probe failed for {path}: {e}")
            continue
        if desc.is_detached:
            logger.debug(f"Skipping {path} (detached HEAD)")
            continue

        ui.print_repo_header(path.name, desc.branch)
        if desc.staged:
            console.print(f"  • {desc.staged} staged files")
        if desc.modified:
            console.print(f"  • {desc.modified} modified files")
        if desc.untracked:
            console.print(f"  • {desc.untracked} untracked files")
        if desc.ahead:
            console.print(f"  • {desc.ahead} unpushed commits")
        if desc.behind:
            console.print(f"  • {desc.behind} commits behind upstream")
        console.print()
        shown += 1

    return shown
