"""Git Sync Utils: end-of-day backup of in-progress work across many repositories.

This package provides the interactive sync command, the repository prober and
safe push guard it is built on, the scheduled reminder, the markdown file
relocator, and a handful of toolbox operations for working with many local
git repositories.
"""

from . import (
    cli,
    config,
    constants,
    git_wrapper,
    matcher,
    ops,
    prober,
    push,
    relocator,
    reminder,
    service,
    sync,
    system,
    ui,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "git_wrapper",
    "matcher",
    "ops",
    "prober",
    "push",
    "relocator",
    "reminder",
    "service",
    "sync",
    "system",
    "ui",
]
