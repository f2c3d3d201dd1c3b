"""Compiled matchers for repository exclusion and branch prefixes.

Patterns are translated to regular expressions once per discovery run. Every
character except the wildcards is escaped, so prefixes such as `team.x/*` or
`feat+(wip)/*` match literally.
"""

import re
from dataclasses import dataclass
from pathlib import Path

from .config import Config, expand_path


def _translate(pattern: str) -> str:
    parts = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return "".join(parts)


def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compiles an exclude pattern for substring search within a path.

    Args:
        pattern (str): A glob-like pattern (e.g. '*/node_modules').

    Returns:
        re.Pattern[str]: An unanchored regex; use `.search()`.
    """
    return re.compile(_translate(pattern))


def compile_branch_prefix(pattern: str) -> re.Pattern[str]:
    """Compiles a branch prefix pattern anchored at the start of the name.

    Args:
        pattern (str): A prefix such as 'alice/*'. Empty matches everything.

    Returns:
        re.Pattern[str]: A regex; use `.match()`.
    """
    return re.compile(_translate(pattern))


@dataclass(frozen=True)
class RepoMatcher:
    """Include/exclude rules compiled from a Config.

    Attributes:
        excluded_paths (frozenset[str]): Expanded `excludeRepos` entries.
        exclude_patterns (tuple[re.Pattern[str], ...]): Compiled patterns.
        branch_prefix (re.Pattern[str]): Compiled branch prefix.
    """

    excluded_paths: frozenset[str]
    exclude_patterns: tuple[re.Pattern[str], ...]
    branch_prefix: re.Pattern[str]

    @classmethod
    def from_config(cls, config: Config) -> "RepoMatcher":
        return cls(
            excluded_paths=frozenset(str(expand_path(p)) for p in config.exclude_repos),
            exclude_patterns=tuple(compile_glob(p) for p in config.exclude_patterns),
            branch_prefix=compile_branch_prefix(config.branch_prefix),
        )

    def is_excluded(self, repo_path: Path) -> bool:
        """True if the path is listed verbatim or contains an exclude pattern."""
        path_str = str(repo_path)
        if path_str in self.excluded_paths:
            return True
        return any(p.search(path_str) for p in self.exclude_patterns)

    def branch_matches(self, branch: str) -> bool:
        return self.branch_prefix.match(branch) is not None
