import argparse
import logging
import subprocess
import sys
from pathlib import Path

from rich.console import Console

from . import ops, reminder, service
from .config import (
    Config,
    ConfigError,
    RelocateConfig,
    add_excluded_repo,
    remove_excluded_repo,
    set_config_value,
    show_config,
)
from .constants import APP_NAME, CONFIG_FILE, LOG_FILE, RELOCATE_LOG_FILE, VERSION
from .relocator import RelocateOptions, RelocationError, run
from .reminder import setup_logging
from .sync import run_sync, show_status

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)

EXIT_INTERRUPTED = 130


class SyncArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on usage errors."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        err_console.print(f"[bold red]ERROR:[/bold red] {message}")
        err_console.print(f"Run '{self.prog} --help' for usage information.")
        sys.exit(1)


class ToolsHelpFormatter(argparse.HelpFormatter):
    """Groups the toolbox subcommands under headers in `--help` output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Setup": ["install", "uninstall", "remind"],
                "Configuration": ["config", "set", "exclude", "include"],
                "Repositories": ["pull-all", "notes-sync"],
                "Utilities": ["aliases", "kill-port", "launch"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def _load_config(path: Path = CONFIG_FILE) -> Config:
    """Loads the configuration or exits with status 1."""
    try:
        return Config.load(path)
    except ConfigError as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        err_console.print("Run 'git-sync-tools install' to create a configuration.")
        sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """Entry point for `git-sync`, the interactive end-of-day sync."""
    parser = SyncArgumentParser(
        prog="git-sync",
        description="Interactive end-of-day backup of your in-progress branches.",
    )
    parser.add_argument(
        "-d",
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )
    parser.add_argument(
        "-v", "--version", action="store_true", help="Show version information"
    )
    parser.add_argument(
        "--config", action="store_true", help="Show current configuration"
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Show status of repositories without syncing",
    )
    args = parser.parse_args(argv)

    if args.version:
        console.print(f"Git Sync Utility v{VERSION}")
        return

    config = _load_config()
    setup_logging(
        LOG_FILE,
        config.logging_level,
        sys.stderr if config.log_level == "debug" else None,
    )

    if args.config:
        show_config(config)
        return
    if args.status:
        show_status(config)
        return

    try:
        run_sync(config, dry_run=args.dry_run)
    except KeyboardInterrupt:
        sys.exit(EXIT_INTERRUPTED)


def relocate_main(argv: list[str] | None = None) -> None:
    """Entry point for `move-researched-files`."""
    defaults = RelocateConfig.load()
    parser = SyncArgumentParser(
        prog="move-researched-files",
        description=(
            f"Move or copy {defaults.extension} files between directories "
            "with structure preservation."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "commands:\n"
            "  store     move/copy files from a working directory into an archive\n"
            "  restore   move/copy files from an archive back to a working directory\n"
            "\n"
            "examples:\n"
            "  move-researched-files store ./proj ./archive\n"
            "  move-researched-files --copy store ./proj ./archive\n"
            "  move-researched-files --restore-exact restore ./archive ./proj\n"
            "  move-researched-files --dry-run --flat store ./proj ./archive"
        ),
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would happen without making changes",
    )
    parser.add_argument(
        "--copy", action="store_true", help="Copy files instead of moving them"
    )
    parser.add_argument(
        "--flat",
        action="store_true",
        help="Don't preserve directory structure (flat storage)",
    )
    parser.add_argument(
        "--restore-exact",
        action="store_true",
        help="Restore files to their exact original locations (requires metadata)",
    )
    parser.add_argument(
        "--no-cleanup",
        action="store_true",
        help="Don't remove empty directories after moving",
    )
    parser.add_argument("action", metavar="<store|restore>")
    parser.add_argument("from_dir", type=Path)
    parser.add_argument("to_dir", type=Path)
    args = parser.parse_args(argv)

    setup_logging(RELOCATE_LOG_FILE, logging.INFO)

    options = RelocateOptions(
        dry_run=args.dry_run,
        mode="copy" if args.copy else defaults.default_mode,
        preserve_structure=defaults.preserve_structure and not args.flat,
        restore_exact=args.restore_exact,
        cleanup=defaults.auto_cleanup_empty and not args.no_cleanup,
        extension=defaults.extension,
    )

    try:
        run(args.action, args.from_dir, args.to_dir, options)
    except RelocationError as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        logger.error(str(e))
        sys.exit(1)
    except OSError as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        logger.error(f"Relocation failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(EXIT_INTERRUPTED)


def tools_main(argv: list[str] | None = None) -> None:
    """Entry point for `git-sync-tools`, the setup and utility toolbox."""
    parser = SyncArgumentParser(
        prog="git-sync-tools",
        formatter_class=ToolsHelpFormatter,
        description="Setup, configuration and one-off repository utilities.",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("install", help="Interactive setup and daily reminder")
    subparsers.add_parser("uninstall", help="Remove the daily reminder")
    subparsers.add_parser("remind", help="Run the reminder check once")

    subparsers.add_parser("config", help="Show current configuration")
    set_parser = subparsers.add_parser("set", help="Set a configuration value")
    set_parser.add_argument("key", help="Configuration key (e.g. syncTime)")
    set_parser.add_argument("value", help="New value, JSON-decoded when possible")
    exclude_parser = subparsers.add_parser(
        "exclude", help="Exclude a repository from sync"
    )
    exclude_parser.add_argument("path", help="Repository path")
    include_parser = subparsers.add_parser(
        "include", help="Re-include an excluded repository"
    )
    include_parser.add_argument("path", help="Repository path")

    pull_parser = subparsers.add_parser(
        "pull-all", help="Fetch and pull every repository below a directory"
    )
    pull_parser.add_argument("root", type=Path, help="Directory to walk")
    pull_parser.add_argument(
        "--main",
        action="store_true",
        help="Switch to 'main' first and pull with rebase",
    )
    pull_parser.add_argument("--log", type=Path, help="Log file (default: in root)")

    notes_parser = subparsers.add_parser(
        "notes-sync", help="Pull, commit and push a notes repository"
    )
    notes_parser.add_argument("path", type=Path, help="Notes repository")
    notes_parser.add_argument("--remote", default="origin")
    notes_parser.add_argument("--branch", default="main")
    notes_parser.add_argument(
        "--once-per-day",
        action="store_true",
        help="Ask first, at most once per day",
    )

    subparsers.add_parser("aliases", help="Install conventional commit git aliases")
    kill_parser = subparsers.add_parser(
        "kill-port", help="Kill processes listening on a port"
    )
    kill_parser.add_argument("port", type=int, nargs="?", help="Port (prompt if omitted)")

    launch_parser = subparsers.add_parser("launch", help="Open a project workspace")
    launch_parser.add_argument("root", type=Path, help="Directory of projects")
    launch_parser.add_argument("name", nargs="?", help="Project number or name")
    launch_parser.add_argument(
        "--action", choices=list(ops.WORKSPACE_ACTIONS), help="What to open"
    )

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return

    setup_logging(LOG_FILE, logging.INFO)

    try:
        if args.command == "install":
            service.install()
        elif args.command == "uninstall":
            service.uninstall()
        elif args.command == "remind":
            reminder.main()
        elif args.command == "config":
            show_config(_load_config())
        elif args.command == "set":
            set_config_value(args.key, args.value)
        elif args.command == "exclude":
            add_excluded_repo(args.path)
        elif args.command == "include":
            remove_excluded_repo(args.path)
        elif args.command == "pull-all":
            _, failed = ops.pull_all(args.root, checkout_main=args.main, log_file=args.log)
            if failed:
                sys.exit(1)
        elif args.command == "notes-sync":
            sync = (
                ops.sync_notes_once_per_day if args.once_per_day else ops.sync_notes
            )
            if not sync(args.path, remote=args.remote, branch=args.branch):
                sys.exit(1)
        elif args.command == "aliases":
            ops.install_commit_aliases()
        elif args.command == "kill-port":
            if args.port is None:
                ops.kill_port_loop()
            else:
                ops.kill_port(args.port)
        elif args.command == "launch":
            if ops.launch_workspace(args.root, args.name, args.action) is None:
                sys.exit(1)
    except ConfigError as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)
    except (RuntimeError, subprocess.CalledProcessError) as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(EXIT_INTERRUPTED)


if __name__ == "__main__":
    main()
