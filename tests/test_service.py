from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_sync_utils import service
from git_sync_utils.constants import APP_LABEL

EXE = "/usr/local/bin/git-sync-remind"


def test_install_systemd_timer_writes_units(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies the unit files and the systemctl calls.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    mock_run = mocker.patch("git_sync_utils.service.subprocess.run")

    service.install_systemd_timer(EXE, 17, 5, unit_dir=tmp_path)

    timer = (tmp_path / f"{APP_LABEL}.timer").read_text()
    unit = (tmp_path / f"{APP_LABEL}.service").read_text()
    assert "OnCalendar=*-*-* 17:05:00" in timer
    assert "Persistent=true" in timer
    assert f"ExecStart={EXE}" in unit

    commands = [c.args[0] for c in mock_run.call_args_list]
    assert ["systemctl", "--user", "daemon-reload"] in commands
    assert ["systemctl", "--user", "enable", "--now", f"{APP_LABEL}.timer"] in commands


def test_install_crontab_appends_entry(mocker: MagicMock) -> None:
    """Verifies that the reminder line is added after existing entries."""
    mocker.patch(
        "git_sync_utils.service.read_crontab", return_value="0 1 * * * backup.sh\n"
    )
    write = mocker.patch("git_sync_utils.service.write_crontab")

    assert service.install_crontab(EXE, 17, 0) is True

    write.assert_called_once_with(f"0 1 * * * backup.sh\n0 17 * * * {EXE}\n")


def test_install_crontab_skips_existing(mocker: MagicMock) -> None:
    """Verifies that an existing reminder entry is never duplicated."""
    mocker.patch(
        "git_sync_utils.service.read_crontab", return_value=f"0 17 * * * {EXE}\n"
    )
    write = mocker.patch("git_sync_utils.service.write_crontab")

    assert service.install_crontab(EXE, 9, 30) is False
    write.assert_not_called()


def test_remove_crontab_entry_keeps_others(mocker: MagicMock) -> None:
    mocker.patch(
        "git_sync_utils.service.read_crontab",
        return_value=f"0 1 * * * backup.sh\n0 17 * * * {EXE}\n",
    )
    write = mocker.patch("git_sync_utils.service.write_crontab")

    assert service.remove_crontab_entry() is True
    write.assert_called_once_with("0 1 * * * backup.sh\n")


@pytest.mark.parametrize("systemd", [True, False])
def test_schedule_reminder_picks_scheduler(mocker: MagicMock, systemd: bool) -> None:
    """Verifies systemd on capable Linux hosts and cron everywhere else."""
    mocker.patch("git_sync_utils.service.use_systemd", return_value=systemd)
    timer = mocker.patch("git_sync_utils.service.install_systemd_timer")
    cron = mocker.patch("git_sync_utils.service.install_crontab")

    service.schedule_reminder("08:45", executable=EXE)

    if systemd:
        timer.assert_called_once_with(EXE, 8, 45)
        cron.assert_not_called()
    else:
        cron.assert_called_once_with(EXE, 8, 45)
        timer.assert_not_called()


def test_schedule_reminder_rejects_bad_time(mocker: MagicMock) -> None:
    with pytest.raises(ValueError, match="Invalid time format"):
        service.schedule_reminder("5pm", executable=EXE)


def test_get_executable_missing_exits(mocker: MagicMock) -> None:
    mocker.patch("git_sync_utils.service.shutil.which", return_value=None)

    with pytest.raises(SystemExit) as exc:
        service.get_executable()
    assert exc.value.code == 1


def test_uninstall_removes_units(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that uninstall disables the timer and deletes its units."""
    mocker.patch("git_sync_utils.service.use_systemd", return_value=True)
    mocker.patch("git_sync_utils.service.remove_crontab_entry", return_value=False)
    mock_run = mocker.patch("git_sync_utils.service.subprocess.run")
    for suffix in ("service", "timer"):
        (tmp_path / f"{APP_LABEL}.{suffix}").write_text("[Unit]\n")

    service.uninstall(unit_dir=tmp_path)

    assert list(tmp_path.iterdir()) == []
    assert mock_run.call_args_list[0].args[0][:3] == ["systemctl", "--user", "disable"]


def test_sync_git_config_repo_backs_up(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that ~/.gitconfig is copied aside but never replaced."""
    mock_run = mocker.patch("git_sync_utils.service.subprocess.run")
    gitconfig = tmp_path / ".gitconfig"
    gitconfig.write_text("[user]\n\tname = Alice\n")

    backup = service.sync_git_config_repo(
        "git@example.com:alice/dotfiles.git",
        clone_dir=tmp_path / "clone",
        backup_dir=tmp_path / "backups",
        gitconfig=gitconfig,
    )

    assert backup is not None
    assert backup.name.startswith("gitconfig.backup.")
    assert backup.read_text() == gitconfig.read_text()
    assert mock_run.call_args.args[0][:3] == ["git", "clone", "-q"]


def test_sync_git_config_repo_failure_is_warning(
    tmp_path: Path, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that a failed clone is reported, not raised."""
    mocker.patch(
        "git_sync_utils.service.subprocess.run",
        side_effect=service.subprocess.CalledProcessError(128, ["git", "clone"]),
    )

    assert (
        service.sync_git_config_repo(
            "bad-url", clone_dir=tmp_path / "clone", backup_dir=tmp_path / "b"
        )
        is None
    )
    assert "Failed to update config repo" in capsys.readouterr().out


def test_sync_git_config_repo_without_url(mocker: MagicMock) -> None:
    mock_run = mocker.patch("git_sync_utils.service.subprocess.run")

    assert service.sync_git_config_repo(None) is None
    mock_run.assert_not_called()


def test_install_writes_config(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies the interactive install from prompts to a valid config file.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    root = tmp_path / "projects"
    root.mkdir()
    mocker.patch("git_sync_utils.service.shutil.which", return_value="/usr/bin/git")
    mocker.patch(
        "git_sync_utils.service.Prompt.ask",
        side_effect=[str(root), "alice/*", "18:30", ""],
    )
    mocker.patch("git_sync_utils.service.IntPrompt.ask", return_value=2)
    mocker.patch(
        "git_sync_utils.service.config_mod.default_branch_prefix",
        return_value="alice/*",
    )
    schedule = mocker.patch("git_sync_utils.service.schedule_reminder")
    sync_repo = mocker.patch("git_sync_utils.service.sync_git_config_repo")
    cfg_file = tmp_path / "install" / "config.json"

    service.install(cfg_file, install_dir=tmp_path / "install")

    config = service.config_mod.Config.load(cfg_file)
    assert config.projects_root == root
    assert config.branch_prefix == "alice/*"
    assert config.sync_time == "18:30"
    assert config.max_depth == 2
    assert config.git_config_repo is None
    schedule.assert_called_once_with("18:30")
    sync_repo.assert_called_once()
    assert (tmp_path / "install" / "backups").is_dir()
