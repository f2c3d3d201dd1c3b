import datetime
import signal
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock, call

import pytest
from conftest import git, requires_git

from git_sync_utils import ops


@pytest.fixture
def notes_repo(mocker: MagicMock) -> MagicMock:
    """A mocked notes repository with one modified tracked file.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.

    Returns:
        MagicMock: The instance returned by `GitRepo(...)`.
    """
    repo = MagicMock()
    repo.staged_files.return_value = []
    repo.modified_files.return_value = ["daily.md"]
    repo.stash_list.return_value = [f"stash@{{0}}: On main: {ops.NOTES_STASH_MESSAGE}"]
    repo.has_uncommitted_changes.return_value = True
    mocker.patch("git_sync_utils.ops.GitRepo", return_value=repo)
    return repo


def test_find_all_repositories_includes_nested(tmp_path: Path) -> None:
    """Verifies that nested repositories are found and hidden dirs skipped.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    (tmp_path / "app" / ".git").mkdir(parents=True)
    (tmp_path / "app" / "plugins" / "ext" / ".git").mkdir(parents=True)
    (tmp_path / ".cache" / "mirror" / ".git").mkdir(parents=True)
    (tmp_path / "web" / "node_modules" / "pkg" / ".git").mkdir(parents=True)

    assert ops.find_all_repositories(tmp_path) == [
        tmp_path / "app",
        tmp_path / "app" / "plugins" / "ext",
    ]


def test_pull_all_continues_after_failure(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that a failing repository is logged and the walk continues."""
    (tmp_path / "bad" / ".git").mkdir(parents=True)
    (tmp_path / "good" / ".git").mkdir(parents=True)

    def make(path: Path) -> MagicMock:
        repo = MagicMock()
        repo.pull.return_value = "Already up to date."
        if path.name == "bad":
            repo.fetch.side_effect = RuntimeError("Git error: no remote")
        return repo

    mocker.patch("git_sync_utils.ops.GitRepo", side_effect=make)

    assert ops.pull_all(tmp_path) == (1, 1)

    log = (tmp_path / ops.PULL_LOG_NAME).read_text()
    assert "Failed in" in log
    assert "no remote" in log
    assert "Already up to date." in log
    assert "Updated 1 repositories, 1 failed" in log


def test_pull_all_main_switches_branch(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies `--main`: checkout main when present, then pull with rebase."""
    (tmp_path / "app" / ".git").mkdir(parents=True)
    repo = MagicMock()
    repo.has_branch.return_value = True
    repo.pull.return_value = ""
    mocker.patch("git_sync_utils.ops.GitRepo", return_value=repo)

    ops.pull_all(tmp_path, checkout_main=True, log_file=tmp_path / "run.log")

    repo.checkout.assert_called_once_with("main")
    repo.pull.assert_called_once_with(rebase=True)
    assert not (tmp_path / ops.PULL_LOG_NAME).exists()


def test_pull_all_missing_root(tmp_path: Path) -> None:
    assert ops.pull_all(tmp_path / "missing") == (0, 0)


def test_sync_notes_stashes_and_commits(notes_repo: MagicMock) -> None:
    """Verifies the full notes cycle: stash, pull, pop, commit, push, clear."""
    assert ops.sync_notes(Path("/notes"), sleep=MagicMock()) is True

    notes_repo.stash_push.assert_called_once_with(
        ops.NOTES_STASH_MESSAGE, include_untracked=False, keep_index=True
    )
    notes_repo.pull.assert_called_once_with("--autostash", "origin", "main", rebase=True)
    notes_repo.stash_pop.assert_called_once()
    assert notes_repo.commit.call_args.args[0].startswith("obsidian sync - ")
    notes_repo.push.assert_called_once_with("origin", "main")
    notes_repo.stash_clear.assert_called_once()


def test_sync_notes_retries_until_network_returns(notes_repo: MagicMock) -> None:
    """Verifies that pull and push failures are retried with the fixed delay."""
    notes_repo.pull.side_effect = [RuntimeError("offline"), RuntimeError("offline"), ""]
    notes_repo.push.side_effect = [RuntimeError("offline"), ""]
    sleep = MagicMock()

    assert ops.sync_notes(Path("/notes"), retry_delay=300, sleep=sleep) is True

    assert notes_repo.pull.call_count == 3
    assert notes_repo.push.call_count == 2
    assert sleep.call_args_list == [call(300)] * 3


def test_sync_notes_stash_conflict(notes_repo: MagicMock) -> None:
    """Verifies that a failing stash pop stops before committing."""
    notes_repo.stash_pop.side_effect = RuntimeError("Git error: conflict")

    assert ops.sync_notes(Path("/notes"), sleep=MagicMock()) is False
    notes_repo.commit.assert_not_called()


def test_sync_notes_clean_tree(notes_repo: MagicMock) -> None:
    """Verifies that a clean notes repo is pulled but nothing is committed."""
    notes_repo.modified_files.return_value = []
    notes_repo.stash_list.return_value = []
    notes_repo.has_uncommitted_changes.return_value = False

    assert ops.sync_notes(Path("/notes"), sleep=MagicMock()) is True

    notes_repo.stash_push.assert_not_called()
    notes_repo.commit.assert_not_called()
    notes_repo.push.assert_not_called()


def test_install_commit_aliases(mocker: MagicMock) -> None:
    """Verifies the git config command for each alias."""
    mock_run = mocker.patch("git_sync_utils.ops.subprocess.run")

    assert ops.install_commit_aliases(["feat", "fix"]) == ["feat", "fix"]

    first = mock_run.call_args_list[0].args[0]
    assert first[:4] == ["git", "config", "--global", "alias.feat"]
    assert first[4] == '!f() { git commit -m "[feat] $1"; }; f'


def test_kill_port_kills_listeners(mocker: MagicMock) -> None:
    """Verifies that every PID reported by lsof gets SIGKILL."""
    mocker.patch(
        "git_sync_utils.ops.subprocess.run",
        return_value=MagicMock(stdout="123\n456\n123\n"),
    )
    mock_kill = mocker.patch("git_sync_utils.ops.os.kill")

    assert ops.kill_port(3000) == [123, 456]
    mock_kill.assert_has_calls([call(123, signal.SIGKILL), call(456, signal.SIGKILL)])


def test_kill_port_nothing_listening(
    mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    mocker.patch(
        "git_sync_utils.ops.subprocess.run", return_value=MagicMock(stdout="")
    )
    mock_kill = mocker.patch("git_sync_utils.ops.os.kill")

    assert ops.kill_port(8080) == []
    mock_kill.assert_not_called()
    assert "No process found" in capsys.readouterr().out


def test_kill_port_without_lsof(mocker: MagicMock) -> None:
    mocker.patch("git_sync_utils.ops.subprocess.run", side_effect=FileNotFoundError)

    with pytest.raises(RuntimeError, match="lsof"):
        ops.kill_port(3000)


@pytest.mark.parametrize(
    "choice, expected", [("2", "beta"), ("alpha", "alpha"), ("9", None), ("x", None)]
)
def test_resolve_project(tmp_path: Path, choice: str, expected: str | None) -> None:
    """Verifies selection by 1-based number or by directory name."""
    for name in ("alpha", "beta", ".hidden"):
        (tmp_path / name).mkdir()
    projects = ops.list_projects(tmp_path)

    result = ops.resolve_project(projects, choice)

    assert (result.name if result else None) == expected


def test_launch_workspace_opens_editor(tmp_path: Path, mocker: MagicMock) -> None:
    (tmp_path / "alpha").mkdir()
    mock_run = mocker.patch("git_sync_utils.ops.subprocess.run")

    assert ops.launch_workspace(tmp_path, "1", "code") == tmp_path / "alpha"
    mock_run.assert_called_once_with(["code", str(tmp_path / "alpha")], check=True)


def test_launch_workspace_shell_uses_cwd(
    tmp_path: Path, mocker: MagicMock, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Verifies that 'cd' starts a subshell inside the project."""
    (tmp_path / "alpha").mkdir()
    monkeypatch.setenv("SHELL", "/bin/zsh")
    mock_run = mocker.patch("git_sync_utils.ops.subprocess.run")

    ops.launch_workspace(tmp_path, "alpha", "cd")

    mock_run.assert_called_once_with(["/bin/zsh"], cwd=tmp_path / "alpha")


def test_launch_workspace_invalid_choice(tmp_path: Path, mocker: MagicMock) -> None:
    (tmp_path / "alpha").mkdir()
    mock_run = mocker.patch("git_sync_utils.ops.subprocess.run")

    assert ops.launch_workspace(tmp_path, "7", "code") is None
    mock_run.assert_not_called()


@requires_git
def test_pull_all_real_repositories(
    tmp_path: Path, make_repo: Callable[..., Path]
) -> None:
    """Verifies pull-all against a clone that is one commit behind.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        make_repo (Callable[..., Path]): Factory fixture for real repositories.
    """
    seed = make_repo(tmp_path / "seed")
    root = tmp_path / "root"
    root.mkdir()
    git(root, "clone", "-q", str(seed), "clone")

    (seed / "new.txt").write_text("new\n")
    git(seed, "add", "new.txt")
    git(seed, "commit", "-q", "-m", "new")

    assert ops.pull_all(root) == (1, 0)
    assert (root / "clone" / "new.txt").exists()


def test_kill_port_loop_until_zero(mocker: MagicMock) -> None:
    """Verifies that the loop clears each entered port and stops at 0."""
    mocker.patch("git_sync_utils.ops.Prompt.ask", side_effect=["3000", "abc", "0"])
    kill = mocker.patch("git_sync_utils.ops.kill_port", return_value=[])

    ops.kill_port_loop()

    kill.assert_called_once_with(3000)


def test_notes_prompt_skips_when_answered_today(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies that a second call on the same day neither asks nor syncs.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    state_file = tmp_path / "notes_prompt_data"
    state_file.write_text("2024-03-05 n\n")
    ask = mocker.patch("git_sync_utils.ops.Confirm.ask")
    sync = mocker.patch("git_sync_utils.ops.sync_notes")

    assert ops.sync_notes_once_per_day(
        Path("/notes"), state_file=state_file, today=datetime.date(2024, 3, 5)
    )

    ask.assert_not_called()
    sync.assert_not_called()
    assert state_file.read_text() == "2024-03-05 n\n"


def test_notes_prompt_new_day_syncs_and_records(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies that a yes on a new day syncs and stores the date and answer."""
    state_file = tmp_path / "state" / "notes_prompt_data"
    mocker.patch("git_sync_utils.ops.Confirm.ask", return_value=True)
    sync = mocker.patch("git_sync_utils.ops.sync_notes", return_value=True)

    assert ops.sync_notes_once_per_day(
        Path("/notes"), state_file=state_file, today=datetime.date(2024, 3, 6)
    )

    sync.assert_called_once_with(Path("/notes"), remote="origin", branch="main")
    assert ops.read_prompt_state(state_file) == ("2024-03-06", "y")


def test_notes_prompt_declined_is_recorded(tmp_path: Path, mocker: MagicMock) -> None:
    state_file = tmp_path / "notes_prompt_data"
    state_file.write_text("2024-03-05 y\n")
    mocker.patch("git_sync_utils.ops.Confirm.ask", return_value=False)
    sync = mocker.patch("git_sync_utils.ops.sync_notes")

    assert ops.sync_notes_once_per_day(
        Path("/notes"), state_file=state_file, today=datetime.date(2024, 3, 6)
    )

    sync.assert_not_called()
    assert state_file.read_text() == "2024-03-06 n\n"
