"""Terminal presentation for the sync tool: prompts, headers and status views."""

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.rule import Rule

from .constants import COMMIT_DISPLAY_LIMIT, FILE_DISPLAY_LIMIT, VERSION
from .git_wrapper import GitRepo

if TYPE_CHECKING:
    from .sync import SyncResult

console = Console()


def print_banner() -> None:
    console.print(
        Panel(
            f"[bold]Git Sync Utility v{VERSION}[/bold]\n"
            "End-of-Day Repository Backup Tool",
            expand=False,
            border_style="cyan",
        )
    )


def print_header(title: str) -> None:
    console.print(f"[bold cyan]═══ {title} ═══[/bold cyan]")


def print_repo_header(name: str, branch: str) -> None:
    console.print(f"[bold magenta]📦 {name}[/bold magenta] [dim](branch: {branch})[/dim]")


def print_separator() -> None:
    console.print(Rule(style="dim"))


def confirm(prompt: str) -> bool:
    """Asks a yes/no question. Defaults to no."""
    return Confirm.ask(f"[yellow]{prompt}[/yellow]", default=False)


def prompt_action(prompt: str, options: list[tuple[str, str]]) -> str:
    """Shows keyed options and returns the lower-cased answer.

    Validation is left to the caller so that unrecognised input can be
    handled (the orchestrator treats it as skip).

    Args:
        prompt (str): The question.
        options (list[tuple[str, str]]): (key, description) pairs.

    Returns:
        str: The raw answer, stripped and lower-cased.
    """
    console.print(f"[cyan]{prompt}[/cyan]")
    for key, desc in options:
        console.print(f"  [green]\\[{key}][/green] {desc}")
    return Prompt.ask(">").strip().lower()


def prompt_input(prompt: str, default: str = "") -> str:
    """Asks for free text, returning `default` on empty input."""
    if default:
        answer = Prompt.ask(f"[cyan]{prompt}[/cyan]", default=default)
    else:
        answer = Prompt.ask(f"[cyan]{prompt}[/cyan]")
    return answer.strip() or default


def _print_capped(title: str, style: str, items: list[str], limit: int) -> None:
    console.print(f"[{style}]{title} ({len(items)}):[/{style}]")
    for item in items[:limit]:
        console.print(f"  {item}", highlight=False)
    if len(items) > limit:
        console.print(f"  ... and {len(items) - limit} more")


def show_git_status(repo: GitRepo) -> None:
    """Prints staged, modified and untracked files plus unpushed commits.

    Each list is capped, with a '... and N more' line for the remainder.
    """
    staged = repo.staged_files()
    modified = repo.modified_files()
    untracked = repo.untracked_files()

    if staged:
        _print_capped("Staged files", "green", staged, FILE_DISPLAY_LIMIT)
    if modified:
        _print_capped("Modified files", "yellow", modified, FILE_DISPLAY_LIMIT)
    if untracked:
        _print_capped("Untracked files", "blue", untracked, FILE_DISPLAY_LIMIT)

    unpushed = repo.unpushed_commits()
    if unpushed:
        console.print()
        _print_capped("Unpushed commits", "magenta", unpushed, COMMIT_DISPLAY_LIMIT)


def print_summary(result: "SyncResult") -> None:
    console.print()
    print_header("Sync Summary")
    console.print()
    console.print(f"  [green]✅ Synced:[/green]  {result.synced} repositories")
    console.print(f"  [yellow]⏭️  Skipped:[/yellow] {result.skipped} repositories")
    console.print(f"  [red]❌ Errors:[/red]  {result.errored} repositories")
    console.print()

    if result.synced > 0:
        console.print("[bold green]SUCCESS:[/bold green] Sync completed successfully!")
    elif result.skipped > 0:
        console.print("[blue]INFO:[/blue] All repositories were skipped")
    else:
        console.print("[bold yellow]WARNING:[/bold yellow] No repositories were synced")
