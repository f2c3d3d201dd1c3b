import logging
import subprocess
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    Every command runs with `cwd` set to the repository, so the process-wide
    working directory is never changed while walking many repositories.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git entry.
        """
        self.path = path
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    def _run(self, args: list[str], capture: bool = True) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True. Interactive commands
                                        (`add -p`) must not be captured.

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=capture,
                text=True,
                check=True,
            )
            return res.stdout.strip() if capture else ""
        except subprocess.CalledProcessError as e:
            # `push --porcelain` reports rejections on stdout.
            detail = ((e.stderr or "") + (e.stdout or "")).strip()
            raise RuntimeError(f"Git error: {detail or e}") from e

    def _lines(self, args: list[str]) -> list[str]:
        output = self._run(args)
        return output.splitlines() if output else []

    def current_branch(self) -> str | None:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str | None: The branch name, or None on a detached HEAD.
        """
        try:
            return self._run(["symbolic-ref", "--short", "HEAD"]) or None
        except RuntimeError:
            return None

    def tracking_branch(self) -> str | None:
        """Returns the upstream of the current branch (e.g. 'origin/main').

        Returns:
            str | None: The upstream name, or None if none is configured.
        """
        try:
            return (
                self._run(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"])
                or None
            )
        except RuntimeError:
            return None

    def ahead_behind(self) -> tuple[int, int]:
        """Counts commits on HEAD missing upstream, and upstream missing locally.

        Returns:
            tuple[int, int]: (ahead, behind). (0, 0) when there is no upstream.
        """
        if not self.tracking_branch():
            return 0, 0
        output = self._run(["rev-list", "--left-right", "--count", "HEAD...@{u}"])
        ahead, behind = output.split()
        return int(ahead), int(behind)

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision to a full SHA-1 hash, or None."""
        try:
            return self._run(["rev-parse", rev])
        except RuntimeError as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    def status_porcelain(self) -> list[str]:
        """Returns the lines of `git status --porcelain`."""
        return self._lines(["status", "--porcelain"])

    def staged_files(self) -> list[str]:
        return self._lines(["diff", "--cached", "--name-only"])

    def modified_files(self) -> list[str]:
        return self._lines(["diff", "--name-only"])

    def untracked_files(self) -> list[str]:
        """Lists files that are not tracked by git and are not ignored."""
        return self._lines(["ls-files", "--others", "--exclude-standard"])

    def unpushed_commits(self) -> list[str]:
        """Lists `--oneline` subjects of commits not on the upstream yet."""
        if not self.tracking_branch():
            return []
        return self._lines(["log", "@{u}..", "--oneline"])

    def has_uncommitted_changes(self) -> bool:
        """True if anything is staged, modified, or untracked."""
        return bool(self.status_porcelain())

    def has_unpushed_commits(self) -> bool:
        """True if HEAD differs from its upstream.

        A branch without an upstream never reports unpushed commits.
        """
        tracking = self.tracking_branch()
        if not tracking:
            return False
        return self.rev_parse("HEAD") != self.rev_parse(tracking)

    def has_staged_changes(self) -> bool:
        """True if the index differs from HEAD."""
        try:
            self._run(["diff", "--cached", "--quiet"])
            return False
        except RuntimeError:
            return True

    def add_all(self) -> None:
        """Stages all changes, including deletions and untracked files."""
        self._run(["add", "-A"], capture=False)

    def add_patch(self) -> None:
        """Hands the terminal to `git add -p` for hunk-by-hunk staging."""
        self._run(["add", "-p"], capture=False)

    def commit(self, message: str) -> None:
        """Creates a new commit with the provided message."""
        self._run(["commit", "-m", message])

    def fetch(self, remote: str | None = None, quiet: bool = True) -> None:
        cmd = ["fetch"]
        if quiet:
            cmd.append("--quiet")
        if remote:
            cmd.append(remote)
        self._run(cmd)

    def pull(self, *extra: str, rebase: bool = False) -> str:
        cmd = ["pull"]
        if rebase:
            cmd.append("--rebase")
        cmd.extend(extra)
        return self._run(cmd)

    def push(self, remote: str, branch: str, set_upstream: bool = False) -> str:
        """Pushes a branch without any force flag.

        Args:
            remote (str): The remote name.
            branch (str): The local branch to push.
            set_upstream (bool): Whether to record the upstream on success.

        Returns:
            str: The push output.
        """
        cmd = ["push"]
        if set_upstream:
            cmd.append("--set-upstream")
        else:
            cmd.append("--porcelain")
        cmd.extend([remote, branch])
        return self._run(cmd)

    def stash_push(
        self, message: str, include_untracked: bool = True, keep_index: bool = False
    ) -> None:
        cmd = ["stash", "push", "-m", message]
        if include_untracked:
            cmd.append("-u")
        if keep_index:
            cmd.append("--keep-index")
        self._run(cmd)

    def stash_pop(self) -> None:
        self._run(["stash", "pop"])

    def stash_clear(self) -> None:
        self._run(["stash", "clear"])

    def stash_list(self) -> list[str]:
        return self._lines(["stash", "list"])

    def status_short(self) -> str:
        return self._run(["status", "--short"])

    def checkout(self, branch: str) -> None:
        self._run(["checkout", branch])

    def has_branch(self, branch: str) -> bool:
        return bool(self._run(["branch", "--list", branch]))
