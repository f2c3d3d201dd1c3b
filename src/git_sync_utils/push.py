"""Safe Push Guard: pushes the current branch without ever forcing.

Before pushing to an existing upstream the remote refs are refreshed and the
ahead/behind counts compared. A remote that has commits missing locally is
reported as a conflict and left for the user to resolve.
"""

import logging
import re
from enum import Enum

from rich.console import Console

from .constants import APP_NAME, DEFAULT_REMOTE
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)
console = Console()

_CONFLICT_PATTERNS = re.compile(
    r"non-fast-forward|\[rejected\]|fetch first|tip of your current branch is behind",
    re.IGNORECASE,
)
_AUTH_PATTERNS = re.compile(r"authentication failed|could not read username", re.I)
_PERMISSION_PATTERNS = re.compile(r"permission denied|403|access denied", re.I)


class PushOutcome(Enum):
    """Result of a guarded push."""

    SUCCESS = "success"
    CONFLICT = "conflict"
    FAILURE = "failure"


def classify_push_error(message: str) -> tuple[PushOutcome, str]:
    """Maps a git push error message to an outcome and a readable cause.

    Args:
        message (str): The error text from git.

    Returns:
        tuple[PushOutcome, str]: CONFLICT for rejected non-fast-forward
        updates, FAILURE for everything else.
    """
    if _CONFLICT_PATTERNS.search(message):
        return (
            PushOutcome.CONFLICT,
            "Remote has changes that are not in local branch. "
            "Run 'git pull' to merge remote changes first.",
        )
    if _AUTH_PATTERNS.search(message):
        return (
            PushOutcome.FAILURE,
            "Authentication failed - check your Git credentials.",
        )
    if _PERMISSION_PATTERNS.search(message):
        return PushOutcome.FAILURE, "Permission denied - check repository access."
    return PushOutcome.FAILURE, message.strip() or "Push failed."


def safe_push(
    repo: GitRepo,
    branch: str | None = None,
    remote: str = DEFAULT_REMOTE,
    dry_run: bool = False,
) -> PushOutcome:
    """Pushes a branch to its remote with divergence detection.

    Args:
        repo (GitRepo): The repository.
        branch (str | None): Branch to push. Defaults to the current branch.
        remote (str): Remote used when no upstream exists yet.
        dry_run (bool): Report the intended push without touching anything.

    Returns:
        PushOutcome: SUCCESS, CONFLICT (remote diverged or rejected the
        update), or FAILURE.
    """
    name = repo.path.name
    branch = branch or repo.current_branch()
    if not branch:
        console.print(
            "[bold red]ERROR:[/bold red] Cannot push: not on a branch (detached HEAD?)"
        )
        logger.error(f"PUSH ERROR {name}: detached HEAD")
        return PushOutcome.FAILURE

    if dry_run:
        console.print(f"[blue]INFO:[/blue] [DRY RUN] Would push {branch} to {remote}")
        logger.info(f"[DRY RUN] push {name} {branch}")
        return PushOutcome.SUCCESS

    tracking = repo.tracking_branch()

    # 1. No upstream: push while establishing one.
    if not tracking:
        console.print(f"[blue]INFO:[/blue] Setting upstream branch: {remote}/{branch}")
        try:
            with console.status(
                f"[bold blue]Pushing {name}...[/bold blue]", spinner="dots"
            ):
                repo.push(remote, branch, set_upstream=True)
        except RuntimeError as e:
            outcome, cause = classify_push_error(str(e))
            console.print(
                f"[bold red]ERROR:[/bold red] Failed to push to {remote}/{branch}: "
                f"{cause}"
            )
            logger.error(f"PUSH ERROR {name}: {e}")
            return outcome
        console.print(
            f"[bold green]SUCCESS:[/bold green] Pushed to {remote}/{branch} "
            "(new upstream)"
        )
        logger.info(f"PUSHED {name}: {remote}/{branch} (new upstream)")
        return PushOutcome.SUCCESS

    # 2. Refresh remote refs and check for divergence.
    try:
        repo.fetch()
        ahead, behind = repo.ahead_behind()
    except RuntimeError as e:
        console.print(
            f"[bold red]ERROR:[/bold red] Could not refresh {tracking}: {e}"
        )
        logger.error(f"FETCH ERROR {name}: {e}")
        return PushOutcome.FAILURE

    if behind > 0:
        console.print(
            "[bold red]ERROR:[/bold red] Remote branch has diverged. "
            "Cannot push safely."
        )
        console.print(
            "[bold yellow]WARNING:[/bold yellow] "
            "Fetch latest changes and resolve conflicts manually."
        )
        console.print(f"[bold yellow]WARNING:[/bold yellow] Remote: {tracking}")
        console.print(f"[blue]INFO:[/blue] Your branch is ahead by {ahead} commit(s)")
        console.print(
            f"[blue]INFO:[/blue] Remote branch is ahead by {behind} commit(s)"
        )
        logger.warning(f"CONFLICT {name}: ahead={ahead} behind={behind} ({tracking})")
        return PushOutcome.CONFLICT

    # 3. Push.
    remote_name = tracking.split("/", 1)[0]
    try:
        with console.status(f"[bold blue]Pushing {name}...[/bold blue]", spinner="dots"):
            repo.push(remote_name, branch)
    except RuntimeError as e:
        outcome, cause = classify_push_error(str(e))
        console.print(f"[bold red]ERROR:[/bold red] Push failed: {cause}")
        logger.error(f"PUSH ERROR {name}: {e}")
        return outcome

    console.print(f"[bold green]SUCCESS:[/bold green] Pushed to {tracking}")
    logger.info(f"PUSHED {name}: {tracking}")
    return PushOutcome.SUCCESS
