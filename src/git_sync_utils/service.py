import datetime
import logging
import shutil
import subprocess
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt

from . import config as config_mod
from .constants import (
    APP_LABEL,
    APP_NAME,
    BACKUP_DIR,
    CONFIG_FILE,
    GIT_CONFIG_CLONE_DIR,
    INSTALL_DIR,
    LOG_FILE,
    MAX_DEPTH_LIMIT,
)

console = Console()
logger = logging.getLogger(APP_NAME)

REMINDER_COMMAND = "git-sync-remind"


def get_executable() -> str:
    """Locates the installed reminder executable in the system path.

    Returns:
        str: The absolute path to the 'git-sync-remind' executable.

    Raises:
        SystemExit: If the executable is not found in the PATH.
    """
    exe = shutil.which(REMINDER_COMMAND)
    if not exe:
        console.print(
            f"[bold red]ERROR:[/bold red] Could not find '{REMINDER_COMMAND}'. "
            "Ensure the package is installed."
        )
        sys.exit(1)
    return exe


def get_unit_dir() -> Path:
    return Path.home() / ".config/systemd/user"


def use_systemd() -> bool:
    """True on Linux hosts where systemctl is available."""
    return sys.platform.startswith("linux") and shutil.which("systemctl") is not None


def install_systemd_timer(
    executable: str, hour: int, minute: int, unit_dir: Path | None = None
) -> None:
    """Configures and enables a daily systemd user timer.

    Creates the .service and .timer unit files in the user's systemd
    configuration directory, reloads the daemon, and enables the timer.

    Args:
        executable (str): The path to the reminder executable.
        hour (int): Hour of the daily run.
        minute (int): Minute of the daily run.
        unit_dir (Path | None): Target directory for the unit files.
    """
    base_dir = unit_dir or get_unit_dir()
    base_dir.mkdir(parents=True, exist_ok=True)

    service_file = base_dir / f"{APP_LABEL}.service"
    timer_file = base_dir / f"{APP_LABEL}.timer"

    service_content = f"""[Unit]
Description=Git Sync daily reminder

[Service]
Type=oneshot
ExecStart={executable}
"""
    timer_content = f"""[Unit]
Description=Remind to run git-sync at {hour:02d}:{minute:02d}

[Timer]
OnCalendar=*-*-* {hour:02d}:{minute:02d}:00
Persistent=true
Unit={APP_LABEL}.service

[Install]
WantedBy=timers.target
"""

    with open(service_file, "w") as f:
        f.write(service_content)
    with open(timer_file, "w") as f:
        f.write(timer_content)

    subprocess.run(["systemctl", "--user", "daemon-reload"], check=True)
    subprocess.run(
        ["systemctl", "--user", "enable", "--now", f"{APP_LABEL}.timer"], check=True
    )
    console.print(
        f"[bold green]SUCCESS:[/bold green] Reminder timer active for "
        f"{hour:02d}:{minute:02d} daily.\n"
        f"Check status: systemctl --user status {APP_LABEL}.timer"
    )


def read_crontab() -> str:
    """Returns the current user crontab, or an empty string if there is none."""
    try:
        res = subprocess.run(["crontab", "-l"], capture_output=True, text=True)
    except FileNotFoundError:
        return ""
    return res.stdout if res.returncode == 0 else ""


def write_crontab(content: str) -> None:
    subprocess.run(["crontab", "-"], input=content, text=True, check=True)


def cron_line(executable: str, hour: int, minute: int) -> str:
    return f"{minute} {hour} * * * {executable}"


def install_crontab(executable: str, hour: int, minute: int) -> bool:
    """Adds the daily reminder to the user crontab.

    Returns:
        bool: False if an entry was already present.
    """
    existing = read_crontab()
    if REMINDER_COMMAND in existing:
        console.print(
            "[bold yellow]WARNING:[/bold yellow] Cron entry already exists, skipping"
        )
        return False

    lines = existing.rstrip("\n")
    new_content = f"{lines}\n" if lines else ""
    new_content += cron_line(executable, hour, minute) + "\n"
    write_crontab(new_content)
    console.print(
        f"[bold green]SUCCESS:[/bold green] Cron job installed for "
        f"{hour:02d}:{minute:02d} daily"
    )
    logger.info(f"Installed cron reminder at {hour:02d}:{minute:02d}")
    return True


def remove_crontab_entry() -> bool:
    """Drops reminder lines from the user crontab. Returns True if any were removed."""
    existing = read_crontab()
    if REMINDER_COMMAND not in existing:
        return False
    kept = [line for line in existing.splitlines() if REMINDER_COMMAND not in line]
    write_crontab("\n".join(kept) + "\n" if kept else "")
    return True


def schedule_reminder(sync_time: str, executable: str | None = None) -> None:
    """Installs the daily reminder with the platform scheduler.

    Args:
        sync_time (str): 'HH:MM' time of day.
        executable (str | None): Reminder command. Looked up on PATH if omitted.
    """
    hour, minute = config_mod.parse_sync_time(sync_time)
    executable = executable or get_executable()
    if use_systemd():
        install_systemd_timer(executable, hour, minute)
    else:
        install_crontab(executable, hour, minute)


def sync_git_config_repo(
    url: str | None,
    clone_dir: Path = GIT_CONFIG_CLONE_DIR,
    backup_dir: Path = BACKUP_DIR,
    gitconfig: Path | None = None,
) -> Path | None:
    """Clones or updates the canonical git config repository.

    The user's ~/.gitconfig is backed up but never overwritten; merging is
    left to the user. Every failure is reported as a warning.

    Args:
        url (str | None): Repository URL. Nothing happens when empty.
        clone_dir (Path): Where the repository is cloned.
        backup_dir (Path): Where the timestamped .gitconfig backup goes.
        gitconfig (Path | None): The user's git config. Defaults to ~/.gitconfig.

    Returns:
        Path | None: The backup file, if one was written.
    """
    if not url:
        console.print("[blue]INFO:[/blue] No Git config repo specified, skipping")
        return None

    console.print(f"[blue]INFO:[/blue] Syncing Git configuration from {url}...")
    try:
        if clone_dir.is_dir():
            subprocess.run(["git", "pull", "-q"], cwd=clone_dir, check=True)
        else:
            subprocess.run(["git", "clone", "-q", url, str(clone_dir)], check=True)
    except (subprocess.CalledProcessError, OSError) as e:
        console.print(
            f"[bold yellow]WARNING:[/bold yellow] Failed to update config repo: {e}"
        )
        logger.warning(f"Git config repo sync failed: {e}")
        return None

    gitconfig = gitconfig or Path.home() / ".gitconfig"
    backup = None
    if gitconfig.is_file():
        backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        backup = backup_dir / f"gitconfig.backup.{stamp}"
        shutil.copy2(gitconfig, backup)
        console.print(f"[blue]INFO:[/blue] Backed up existing .gitconfig to {backup}")

    if (clone_dir / ".gitconfig").is_file():
        console.print(
            "[bold yellow]WARNING:[/bold yellow] Manual merge required: compare "
            f"{gitconfig} with {clone_dir / '.gitconfig'}"
        )

    console.print("[bold green]SUCCESS:[/bold green] Git config sync completed")
    return backup


def setup_directories(install_dir: Path = INSTALL_DIR, log_file: Path = LOG_FILE) -> None:
    for sub in ("lib", "logs", "backups"):
        (install_dir / sub).mkdir(parents=True, exist_ok=True)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    log_file.touch(exist_ok=True)


def _prompt_projects_root() -> Path | None:
    answer = Prompt.ask(
        "[cyan]Enter projects root directory[/cyan]", default=str(Path.home() / "projects")
    )
    root = config_mod.expand_path(answer)
    if root.is_dir():
        return root
    if Confirm.ask(f"[yellow]Directory {root} does not exist. Create it?[/yellow]"):
        root.mkdir(parents=True, exist_ok=True)
        return root
    return None


def _prompt_sync_time() -> str:
    while True:
        answer = Prompt.ask(
            "[cyan]Enter daily sync reminder time (HH:MM, 24h format)[/cyan]",
            default="17:00",
        )
        try:
            config_mod.parse_sync_time(answer)
            return answer.strip()
        except ValueError as e:
            console.print(f"[bold red]ERROR:[/bold red] {e}")


def _prompt_max_depth() -> int:
    while True:
        depth = IntPrompt.ask(
            "[cyan]Maximum directory depth to search[/cyan]", default=3
        )
        if 1 <= depth <= MAX_DEPTH_LIMIT:
            return depth
        console.print(
            f"[bold red]ERROR:[/bold red] Depth must be between 1 and {MAX_DEPTH_LIMIT}"
        )


def install(
    config_path: Path = CONFIG_FILE,
    install_dir: Path = INSTALL_DIR,
    schedule: bool = True,
) -> None:
    """Interactive first-time setup.

    Creates the install directories, asks for the settings, writes the
    configuration, installs the daily reminder and syncs the git config repo.

    Args:
        config_path (Path): Where config.json is written.
        install_dir (Path): The install directory.
        schedule (bool): Whether to register the reminder with the scheduler.
    """
    console.print(
        Panel("[bold]Git Sync Utility - Installation[/bold]", border_style="green")
    )

    if not shutil.which("git"):
        console.print(
            "[bold red]ERROR:[/bold red] Git is not installed. Please install Git first."
        )
        sys.exit(1)

    if config_path.exists() and not Confirm.ask(
        f"[yellow]{config_path} already exists. Overwrite?[/yellow]", default=False
    ):
        console.print("[blue]INFO:[/blue] Keeping existing configuration")
        return

    setup_directories(install_dir, install_dir / LOG_FILE.name)

    root = _prompt_projects_root()
    if root is None:
        console.print("[bold red]ERROR:[/bold red] Invalid directory")
        sys.exit(1)

    prefix = Prompt.ask(
        "[cyan]Enter branch prefix to sync (e.g., username/*)[/cyan]",
        default=config_mod.default_branch_prefix(),
    )
    sync_time = _prompt_sync_time()
    repo_url = Prompt.ask(
        "[cyan]Git config repository URL (optional, press Enter to skip)[/cyan]",
        default="",
        show_default=False,
    ).strip()
    max_depth = _prompt_max_depth()

    cfg = config_mod.new_config(root, prefix.strip(), sync_time, max_depth, repo_url)
    cfg.validate()
    config_mod.write_config(cfg, config_path)
    console.print(
        f"[bold green]SUCCESS:[/bold green] Configuration created at {config_path}"
    )
    logger.info(f"Installed configuration at {config_path}")

    if schedule:
        try:
            schedule_reminder(sync_time)
        except (subprocess.CalledProcessError, OSError) as e:
            console.print(
                f"[bold yellow]WARNING:[/bold yellow] Could not install reminder: {e}"
            )

    sync_git_config_repo(
        cfg.git_config_repo,
        clone_dir=install_dir / "git-config-repo",
        backup_dir=install_dir / "backups",
    )

    console.print()
    console.print("[bold green]Git Sync Utility installed successfully![/bold green]")
    console.print("  1. Run [cyan]git-sync[/cyan] to perform your first sync")
    console.print(f"  2. You'll receive daily reminders at {sync_time}")
    console.print(f"\n[blue]Configuration:[/blue] {config_path}")


def uninstall(unit_dir: Path | None = None) -> None:
    """Removes the scheduled reminder. The configuration is kept."""
    if use_systemd():
        base_dir = unit_dir or get_unit_dir()
        timer_name = f"{APP_LABEL}.timer"
        subprocess.run(
            ["systemctl", "--user", "disable", "--now", timer_name],
            stderr=subprocess.DEVNULL,
        )

        # Remove .service and .timer files.
        for unit in (base_dir / f"{APP_LABEL}.service", base_dir / timer_name):
            if unit.exists():
                unit.unlink()

        subprocess.run(["systemctl", "--user", "daemon-reload"])

    if remove_crontab_entry():
        console.print("[blue]INFO:[/blue] Removed cron entry")

    console.print("[bold green]SUCCESS:[/bold green] Reminder uninstalled.")
