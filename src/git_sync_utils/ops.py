"""Toolbox operations behind `git-sync-tools`.

Batch pulls across a directory tree, the notes repository sync with
indefinite retries, conventional-commit aliases, the port killer and the
workspace launcher.
"""

import datetime
import logging
import os
import signal
import subprocess
import time
from collections.abc import Callable
from pathlib import Path
from typing import TextIO

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt
from rich.rule import Rule

from .constants import (
    APP_NAME,
    COMMIT_ALIAS_TYPES,
    DEFAULT_REMOTE,
    EXCLUDED_DIR_NAMES,
    NOTES_PROMPT_FILE,
    NOTES_RETRY_DELAY,
)
from .git_wrapper import GitRepo

console = Console()
logger = logging.getLogger(APP_NAME)

PULL_LOG_NAME = "update_git_log.txt"
NOTES_STASH_MESSAGE = "Auto stash before sync"
WORKSPACE_ACTIONS = {
    "cd": "Open a shell in the project",
    "code": "Open in VS Code",
    "idea": "Open in IntelliJ",
}


def find_all_repositories(root: Path) -> list[Path]:
    """Lists every repository below root, including nested ones.

    Hidden and dependency directories are not entered.
    """
    repos = []
    for dirpath, dirnames, filenames in os.walk(root):
        if ".git" in dirnames or ".git" in filenames:
            repos.append(Path(dirpath))
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d not in EXCLUDED_DIR_NAMES
        )
    return repos


def pull_all(
    root: Path, checkout_main: bool = False, log_file: Path | None = None
) -> tuple[int, int]:
    """Fetches and pulls every repository below root.

    A failing repository is reported and the walk continues.

    Args:
        root (Path): Directory to walk.
        checkout_main (bool): Switch to `main` first (when it exists) and pull
            with rebase.
        log_file (Path | None): Run log, rewritten on each run. Defaults to a
            file inside root.

    Returns:
        tuple[int, int]: (updated, failed) repository counts.
    """
    if not root.is_dir():
        console.print(
            f"[bold red]ERROR:[/bold red] Directory {root} does not exist. "
            "Please check the path."
        )
        return 0, 0

    log_file = log_file or root / PULL_LOG_NAME
    updated = failed = 0

    with open(log_file, "w", encoding="utf-8") as log:

        def report(message: str, style: str = "") -> None:
            log.write(message + "\n")
            text = escape(message)
            console.print(f"[{style}]{text}[/{style}]" if style else text)

        report(f"🚀 Starting sync from: {root}")
        report(f"🕒 Started at: {datetime.datetime.now():%Y-%m-%d %H:%M:%S}\n")

        for path in find_all_repositories(root):
            report(f"📂 Repo: {path}", "bold")
            if _pull_one(path, checkout_main, report, log):
                updated += 1
                report(f"✅ Completed: {path}\n", "green")
            else:
                failed += 1
                report("")

        report(f"🎉 Updated {updated} repositories, {failed} failed")
        report(f"🕒 Completed at: {datetime.datetime.now():%Y-%m-%d %H:%M:%S}")

    console.print(f"[dim]📄 Log saved at: {log_file}[/dim]")
    logger.info(f"pull-all {root}: updated={updated} failed={failed}")
    return updated, failed


def _pull_one(
    path: Path, checkout_main: bool, report: Callable[..., None], log: TextIO
) -> bool:
    try:
        repo = GitRepo(path)
        if checkout_main:
            if repo.has_branch("main"):
                report("➡️ Switching to the 'main' branch...")
                repo.checkout("main")
            else:
                report(f"No 'main' branch found in {path}. Skipping branch switch.")

        report("➡️ Fetching latest branches...")
        repo.fetch()
        report("➡️ Pulling latest changes...")
        output = repo.pull(rebase=checkout_main)
        if output:
            log.write(output + "\n")
        return True
    except (RuntimeError, ValueError) as e:
        report(f"❌ Failed in {path}: {e}", "red")
        logger.error(f"PULL ERROR {path}: {e}")
        return False


def _retry(
    action: Callable[[], object],
    what: str,
    retry_delay: float,
    sleep: Callable[[float], None],
) -> None:
    """Calls `action` until it stops raising RuntimeError."""
    while True:
        try:
            action()
            return
        except RuntimeError as e:
            console.print(
                f"[bold yellow]WARNING:[/bold yellow] {what} failed. "
                f"Retrying in {retry_delay / 60:g} minutes..."
            )
            logger.warning(f"{what} failed, retrying in {retry_delay}s: {e}")
            sleep(retry_delay)


def sync_notes(
    path: Path,
    remote: str = DEFAULT_REMOTE,
    branch: str = "main",
    retry_delay: float = NOTES_RETRY_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Pulls, commits everything and pushes a notes repository.

    Network failures on pull and push are retried indefinitely with a fixed
    delay. Local tracked changes are stashed around the pull.

    Args:
        path (Path): The notes repository.
        remote (str): Remote to sync with.
        branch (str): Branch to sync.
        retry_delay (float): Seconds between retries.
        sleep (Callable[[float], None]): Sleep function.

    Returns:
        bool: False if the repository is missing or the stash could not be
        re-applied.
    """
    try:
        repo = GitRepo(path)
    except ValueError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        return False

    console.print(f"[blue]INFO:[/blue] Starting sync in {path}")
    logger.info(f"Notes sync started: {path}")

    if repo.staged_files() or repo.modified_files():
        console.print("[blue]INFO:[/blue] Stashing local changes...")
        repo.stash_push(NOTES_STASH_MESSAGE, include_untracked=False, keep_index=True)

    _retry(
        lambda: repo.pull("--autostash", remote, branch, rebase=True),
        "Pull",
        retry_delay,
        sleep,
    )

    if any(NOTES_STASH_MESSAGE in entry for entry in repo.stash_list()):
        console.print("[blue]INFO:[/blue] Applying stashed changes...")
        try:
            repo.stash_pop()
        except RuntimeError as e:
            console.print(
                "[bold red]ERROR:[/bold red] Conflict during stash pop. "
                "Please resolve manually."
            )
            logger.error(f"Notes stash pop failed in {path}: {e}")
            return False

    if repo.has_uncommitted_changes():
        repo.add_all()
        message = f"obsidian sync - {datetime.date.today().isoformat()}"
        repo.commit(message)
        _retry(lambda: repo.push(remote, branch), "Push", retry_delay, sleep)
        console.print(
            "[bold green]SUCCESS:[/bold green] Changes committed and pushed successfully."
        )
        logger.info(f"Notes synced: {path} ({message})")
    else:
        console.print("[blue]INFO:[/blue] No changes to commit.")

    repo.stash_clear()
    console.print(f"[bold green]SUCCESS:[/bold green] Sync completed for {path}")
    return True


def read_prompt_state(state_file: Path = NOTES_PROMPT_FILE) -> tuple[str, str] | None:
    """Returns the (date, answer) of the last daily prompt, if recorded."""
    try:
        parts = state_file.read_text(encoding="utf-8").split()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"No notes prompt state in {state_file}: {e}")
        return None
    if len(parts) != 2:
        return None
    return parts[0], parts[1]


def write_prompt_state(
    date: str, answer: str, state_file: Path = NOTES_PROMPT_FILE
) -> None:
    state_file.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = state_file.with_name(f"{state_file.name}.tmp")
    with open(tmp_file, "w", encoding="utf-8") as f:
        f.write(f"{date} {answer}\n")
    os.replace(tmp_file, state_file)


def sync_notes_once_per_day(
    path: Path,
    remote: str = DEFAULT_REMOTE,
    branch: str = "main",
    state_file: Path = NOTES_PROMPT_FILE,
    today: datetime.date | None = None,
) -> bool:
    """Asks once per calendar day whether to sync the notes repository.

    The date and the answer are recorded after asking; later calls on the
    same day return without prompting.

    Args:
        path (Path): The notes repository.
        remote (str): Remote to sync with.
        branch (str): Branch to sync.
        state_file (Path): Where the last date and answer are kept.
        today (datetime.date | None): The current date; defaults to today.

    Returns:
        bool: False only if the sync itself failed.
    """
    date = (today or datetime.date.today()).isoformat()
    state = read_prompt_state(state_file)
    if state and state[0] == date:
        logger.debug(f"Notes prompt already answered today ({state[1]})")
        return True

    ok = True
    if Confirm.ask("Do you want to sync your notes today?", default=True):
        answer = "y"
        ok = sync_notes(path, remote=remote, branch=branch)
    else:
        answer = "n"
        console.print("[blue]INFO:[/blue] Sync skipped for today.")
        logger.info("Notes sync skipped for today")

    write_prompt_state(date, answer, state_file)
    return ok


def install_commit_aliases(types: list[str] | None = None) -> list[str]:
    """Installs global aliases such as `git feat "msg"` -> `[feat] msg`.

    Returns:
        list[str]: The alias names installed.
    """
    installed = []
    for kind in types or COMMIT_ALIAS_TYPES:
        subprocess.run(
            [
                "git",
                "config",
                "--global",
                f"alias.{kind}",
                f'!f() {{ git commit -m "[{kind}] $1"; }}; f',
            ],
            check=True,
        )
        installed.append(kind)

    console.print(
        "[bold green]SUCCESS:[/bold green] All Git aliases have been successfully created."
    )
    console.print('Try them out with a command like: [cyan]git feat "your new feature"[/cyan]')
    return installed


def find_port_pids(port: int) -> list[int]:
    try:
        res = subprocess.run(
            ["lsof", "-t", "-i", f":{port}"], capture_output=True, text=True
        )
    except FileNotFoundError as e:
        raise RuntimeError("lsof is not installed") from e
    return sorted({int(token) for token in res.stdout.split() if token.isdigit()})


def kill_port(port: int) -> list[int]:
    """Sends SIGKILL to every process listening on `port`.

    Returns:
        list[int]: The PIDs that were killed.
    """
    killed = []
    for pid in find_port_pids(port):
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            logger.debug(f"PID {pid} already gone")
            continue
        except PermissionError:
            console.print(f"[bold red]ERROR:[/bold red] Not permitted to kill PID {pid}")
            continue
        killed.append(pid)

    if killed:
        pids = " ".join(str(p) for p in killed)
        console.print(
            f"[bold green]SUCCESS:[/bold green] Port {port} cleared successfully "
            f"(PID: {pids})."
        )
        logger.info(f"Killed PIDs {pids} on port {port}")
    else:
        console.print(
            f"[bold yellow]WARNING:[/bold yellow] No process found running on port {port}."
        )
    return killed


def kill_port_loop() -> None:
    """Prompts for ports to clear until the user enters 0."""
    while True:
        answer = Prompt.ask("Enter port number to kill (or 0 to exit)").strip()
        if answer == "0":
            console.print("Exiting.")
            return
        if not answer.isdigit():
            console.print(f"[bold red]ERROR:[/bold red] Not a port number: {answer}")
            continue
        try:
            kill_port(int(answer))
        except RuntimeError as e:
            console.print(f"[bold red]ERROR:[/bold red] {e}")
            return
        console.print(Rule(style="dim"))


def list_projects(root: Path) -> list[Path]:
    if not root.is_dir():
        return []
    return sorted(p for p in root.iterdir() if p.is_dir() and not p.name.startswith("."))


def resolve_project(projects: list[Path], choice: str) -> Path | None:
    """Resolves a 1-based number or a directory name to a project."""
    choice = choice.strip()
    if choice.isdigit():
        index = int(choice)
        return projects[index - 1] if 1 <= index <= len(projects) else None
    return next((p for p in projects if p.name == choice), None)


def launch_workspace(
    root: Path, name: str | None = None, action: str | None = None
) -> Path | None:
    """Picks a project under root and opens it.

    Args:
        root (Path): Directory whose subdirectories are the projects.
        name (str | None): Number or name of the project; prompted if omitted.
        action (str | None): 'cd', 'code' or 'idea'; prompted if omitted.

    Returns:
        Path | None: The selected project, or None for an invalid choice.
    """
    projects = list_projects(root)
    if not projects:
        console.print(f"[bold red]ERROR:[/bold red] No projects found in {root}")
        return None

    if name is None:
        console.print("[bold]📁 Projects:[/bold]")
        for i, project in enumerate(projects, 1):
            console.print(f"  {i}) → {project.name}")
        name = Prompt.ask("Enter number or project name")

    project = resolve_project(projects, name)
    if project is None:
        console.print("[bold red]ERROR:[/bold red] Invalid choice.")
        return None
    console.print(f"[bold green]SUCCESS:[/bold green] Selected: {project}")

    if action is None:
        for key, desc in WORKSPACE_ACTIONS.items():
            console.print(f"  [green]\\[{key}][/green] {desc}")
        action = Prompt.ask(
            "What do you want to do?", choices=list(WORKSPACE_ACTIONS), default="cd"
        )

    if action not in WORKSPACE_ACTIONS:
        console.print(f"[bold red]ERROR:[/bold red] Invalid option: {action}")
        return None

    try:
        if action == "cd":
            subprocess.run([os.environ.get("SHELL", "/bin/sh")], cwd=project)
        else:
            subprocess.run([action, str(project)], check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        console.print(f"[bold red]ERROR:[/bold red] Could not run {action}: {e}")
        return None
    return project
