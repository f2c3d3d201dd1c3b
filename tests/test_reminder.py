import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_sync_utils import reminder
from git_sync_utils.config import Config
from git_sync_utils.reminder import REMINDER_TITLE, send_reminder, setup_logging


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(projects_root=tmp_path, branch_prefix="alice/*", max_depth=2)


def test_reminder_notifies_with_count(
    config: Config, mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies the notification text and the log line.

    Args:
        config (Config): Test configuration.
        mocker (MagicMock): Pytest fixture for mocking.
        caplog (pytest.LogCaptureFixture): Pytest fixture for log capture.
    """
    mocker.patch(
        "git_sync_utils.reminder.discover_repositories",
        return_value=[Path("/a"), Path("/b")],
    )
    notifier = MagicMock()
    caplog.set_level(logging.INFO, logger="git-sync-utils")

    assert send_reminder(config, notifier) == 2

    notifier.notify.assert_called_once_with(
        REMINDER_TITLE, "Found 2 repos with uncommitted changes"
    )
    assert "Reminder sent: 2 repos with changes" in caplog.text


def test_reminder_silent_without_changes(
    config: Config, mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that nothing is shown when no repository needs syncing."""
    mocker.patch("git_sync_utils.reminder.discover_repositories", return_value=[])
    notifier = MagicMock()
    caplog.set_level(logging.INFO, logger="git-sync-utils")

    assert send_reminder(config, notifier) == 0

    notifier.notify.assert_not_called()
    assert "no repos with changes" in caplog.text


def test_reminder_disabled(config: Config, mocker: MagicMock) -> None:
    """Verifies that disabled notifications skip discovery entirely."""
    config.notification_enabled = False
    discover = mocker.patch("git_sync_utils.reminder.discover_repositories")

    assert send_reminder(config, MagicMock()) == 0
    discover.assert_not_called()


def test_main_logs_config_error(
    tmp_path: Path, mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a missing config is logged instead of raised."""
    mocker.patch("git_sync_utils.reminder.setup_logging")
    send = mocker.patch("git_sync_utils.reminder.send_reminder")
    caplog.set_level(logging.INFO, logger="git-sync-utils")

    reminder.main(tmp_path / "missing.json")

    send.assert_not_called()
    assert "Reminder skipped" in caplog.text


def test_setup_logging_writes_file_once(tmp_path: Path) -> None:
    """Verifies that repeated setup does not duplicate handlers.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    log_file = tmp_path / "logs" / "sync.log"
    app_logger = logging.getLogger("git-sync-utils")

    try:
        setup_logging(log_file, logging.INFO)
        setup_logging(log_file, logging.INFO)
        app_logger.info("Synced: /tmp/p/app")

        assert len(app_logger.handlers) == 1
        content = log_file.read_text()
        assert content.count("INFO: Synced: /tmp/p/app") == 1
        assert content.startswith("[")
    finally:
        for handler in list(app_logger.handlers):
            app_logger.removeHandler(handler)
            handler.close()
        app_logger.setLevel(logging.NOTSET)
