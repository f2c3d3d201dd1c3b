"""Daily reminder fired by the job scheduler.

Counts the repositories that would be offered by `git-sync` and, if there are
any, raises a desktop notification. It never syncs anything itself.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TextIO

from rich.console import Console

from .config import Config, ConfigError
from .constants import APP_NAME, CONFIG_FILE, LOG_FILE, MAX_LOG_SIZE
from .prober import discover_repositories
from .system import SystemStrategy, get_system

logger = logging.getLogger(APP_NAME)
err_console = Console(stderr=True)

REMINDER_TITLE = "Git Sync Reminder"


def setup_logging(
    log_file: Path = LOG_FILE,
    level: int = logging.INFO,
    stream: TextIO | None = None,
) -> None:
    """Configures the application logger.

    Args:
        log_file (Path): Rotating operation log to append to.
        level (int): Logging level for the application logger.
        stream (TextIO | None): Also echo records to this stream when given.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    logger.setLevel(level)

    # Re-running in one process (tests, repeated CLI calls) must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=MAX_LOG_SIZE, backupCount=5, encoding="utf-8"
        )
    except OSError as e:
        err_console.print(
            f"[bold yellow]WARNING:[/bold yellow] Cannot write log file {log_file}: {e}"
        )
    else:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if stream is not None:
        stream_handler = logging.StreamHandler(stream)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)


def send_reminder(config: Config, system: SystemStrategy | None = None) -> int:
    """Notifies the user when repositories are waiting to be synced.

    Args:
        config (Config): The loaded configuration.
        system (SystemStrategy | None): Notification backend. Defaults to the
            platform strategy.

    Returns:
        int: The number of repositories needing sync (0 when notifications
        are disabled).
    """
    if not config.notification_enabled:
        logger.debug("Notifications disabled; reminder skipped")
        return 0

    count = len(discover_repositories(config))
    if count > 0:
        system = system or get_system()
        system.notify(REMINDER_TITLE, f"Found {count} repos with uncommitted changes")
        logger.info(f"Reminder sent: {count} repos with changes")
    else:
        logger.info("Reminder: no repos with changes")
    return count


def main(config_path: Path = CONFIG_FILE) -> None:
    """Entry point for `git-sync-remind`.

    Runs one reminder pass. Failures are logged and never propagate to the
    scheduler as a traceback.
    """
    setup_logging(LOG_FILE, logging.INFO, sys.stderr)
    try:
        config = Config.load(config_path)
    except ConfigError as e:
        logger.error(f"Reminder skipped: {e}")
        return

    logger.setLevel(config.logging_level)
    try:
        send_reminder(config)
    except (OSError, RuntimeError, ValueError) as e:
        logger.error(f"Reminder failed: {e}")


if __name__ == "__main__":
    main()
