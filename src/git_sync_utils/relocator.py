"""File Relocator: moves or copies documents between a working tree and an archive.

Each relocated file gets one `MoveRecord` in a JSON sidecar at the root of the
destination, so that a later `restore --restore-exact` can put files back at
the relative paths they were stored from.
"""

import contextlib
import datetime
import json
import logging
import os
import shutil
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .constants import (
    APP_NAME,
    DEFAULT_EXTENSION,
    EXCLUDED_DIR_NAMES,
    EXCLUDED_FILE_NAMES,
    METADATA_FILE,
)

logger = logging.getLogger(APP_NAME)
console = Console()

ACTIONS = ("store", "restore")
MODES = ("move", "copy")


class RelocationError(Exception):
    """Raised for invocations the relocator cannot carry out."""


@dataclass
class MoveRecord:
    """One relocated file.

    Attributes:
        source (str): Absolute path the file was taken from.
        relative_path (str): Path relative to `original_base`, POSIX style.
        destination (str): Absolute path the file was written to.
        timestamp (str): ISO-8601 time of the operation.
        original_base (str): Root the relative path was computed against.
    """

    source: str
    relative_path: str
    destination: str
    timestamp: str
    original_base: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MoveRecord":
        """Builds a record from a parsed JSON object.

        Raises:
            ValueError: If a field is missing.
        """
        missing = [f.name for f in fields(cls) if f.name not in data]
        if missing:
            raise ValueError(f"Move record missing fields: {', '.join(missing)}")
        return cls(**{f.name: str(data[f.name]) for f in fields(cls)})


class MetadataStore:
    """The JSON array of move records kept in a destination root.

    Appends rewrite the whole file through a temporary file and `os.replace`,
    so the array is valid after every append or not replaced at all.
    """

    def __init__(self, directory: Path):
        self.directory = directory
        self.path = directory / METADATA_FILE

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> list[MoveRecord]:
        """Returns all records in append order.

        Raises:
            RelocationError: If the file is not a JSON array of records.
        """
        if not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RelocationError(f"Corrupt metadata file {self.path}: {e}") from e

        if not isinstance(data, list):
            raise RelocationError(f"Metadata file {self.path} is not a JSON array")
        try:
            return [MoveRecord.from_dict(item) for item in data]
        except (TypeError, ValueError) as e:
            raise RelocationError(f"Invalid record in {self.path}: {e}") from e

    def append(self, record: MoveRecord) -> None:
        records = self.load()
        records.append(record)

        tmp_file = self.path.with_name(f"{self.path.name}.tmp")
        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump([r.to_dict() for r in records], f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_file, self.path)
        except OSError:
            with contextlib.suppress(OSError):
                tmp_file.unlink()
            raise

    def find_by_destination(self, path: Path) -> MoveRecord | None:
        """Returns the latest record whose destination is `path`."""
        wanted = Path(path).resolve()
        for record in reversed(self.load()):
            if Path(record.destination).resolve() == wanted:
                return record
        return None


def is_backup_name(name: str) -> bool:
    """True for the hidden `.stem.backup.ext` copies written before overwrites."""
    return name.startswith(".") and ".backup" in name


def find_documents(root: Path, extension: str = DEFAULT_EXTENSION) -> list[Path]:
    """Lists documents below root, skipping dependency and build directories.

    `README.md`, the metadata sidecar and overwrite backups are never
    returned.

    Args:
        root (Path): Directory to search.
        extension (str): File suffix to match, including the dot.

    Returns:
        list[Path]: Matching files, sorted.
    """
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in EXCLUDED_DIR_NAMES]
        for name in filenames:
            if not name.endswith(extension):
                continue
            if name in EXCLUDED_FILE_NAMES or is_backup_name(name):
                continue
            found.append(Path(dirpath) / name)
    return sorted(found)


def relative_to_root(path: Path, root: Path) -> Path:
    return path.resolve().relative_to(root.resolve())


def target_path(src: Path, from_dir: Path, to_dir: Path, preserve: bool = True) -> Path:
    """Computes where `src` lands under `to_dir`.

    Args:
        src (Path): The file being relocated.
        from_dir (Path): The root `src` lives under.
        to_dir (Path): The destination root.
        preserve (bool): Mirror the relative path; otherwise use the filename.

    Returns:
        Path: The target file path.
    """
    if preserve:
        return to_dir / relative_to_root(src, from_dir)
    return to_dir / src.name


def backup_path(target: Path) -> Path:
    return target.with_name(f".{target.stem}.backup{target.suffix}")


@dataclass
class RelocateOptions:
    """Flags for one relocator run.

    Attributes:
        dry_run (bool): Print intended actions only.
        mode (str): 'move' or 'copy'.
        preserve_structure (bool): Mirror relative paths (False is `--flat`).
        restore_exact (bool): Restore to recorded relative paths.
        cleanup (bool): Remove emptied source directories after a move.
        extension (str): Document suffix to relocate.
    """

    dry_run: bool = False
    mode: str = "move"
    preserve_structure: bool = True
    restore_exact: bool = False
    cleanup: bool = True
    extension: str = DEFAULT_EXTENSION


def _say(message: str) -> None:
    console.print(f"  {escape(message)}", highlight=False)


class Relocator:
    """Carries out store and restore operations for one set of options."""

    def __init__(self, options: RelocateOptions):
        self.options = options

    def relocate_file(self, src: Path, target: Path, from_dir: Path, to_dir: Path) -> None:
        """Moves or copies one file and records it in the destination store.

        An existing target is backed up once (an existing backup is kept)
        before being replaced.

        Args:
            src (Path): The file to relocate.
            target (Path): Where it goes.
            from_dir (Path): Root used for the recorded relative path.
            to_dir (Path): Destination root holding the metadata store.
        """
        op = self.options.mode
        if self.options.dry_run:
            _say(f"[dry-run] Would {op} '{src}' → '{target}'")
            logger.info(f"[dry-run] {op} '{src}' → '{target}'")
            return

        target.parent.mkdir(parents=True, exist_ok=True)

        if target.exists():
            backup = backup_path(target)
            if not backup.exists():
                shutil.copy2(target, backup)
                _say(f"Created backup: '{backup}'")
                logger.info(f"Created backup: '{backup}'")

        relative = relative_to_root(src, from_dir).as_posix()
        source = src.resolve()
        if op == "copy":
            shutil.copy2(src, target)
            verb = "Copied"
        else:
            shutil.move(src, target)
            verb = "Moved"
        _say(f"{verb} '{src}' → '{target}'")
        logger.info(f"{verb} '{src}' → '{target}'")

        MetadataStore(to_dir).append(
            MoveRecord(
                source=str(source),
                relative_path=relative,
                destination=str(target.resolve()),
                timestamp=datetime.datetime.now().astimezone().isoformat(
                    timespec="seconds"
                ),
                original_base=str(from_dir.resolve()),
            )
        )

    def _transfer(self, from_dir: Path, to_dir: Path) -> int:
        files = find_documents(from_dir, self.options.extension)
        if not files:
            _say(f"No {self.options.extension} files found in '{from_dir}'. Nothing to do.")
            return 0

        console.print("\n[bold]─── Processing Files ───[/bold]")
        # Fail on an unreadable destination store before anything moves.
        MetadataStore(to_dir).load()
        _say(f"Found {len(files)} file(s) to process")
        for src in files:
            target = target_path(src, from_dir, to_dir, self.options.preserve_structure)
            self.relocate_file(src, target, from_dir, to_dir)
        return len(files)

    def store(self, from_dir: Path, to_dir: Path) -> int:
        """Relocates documents from a working tree into an archive."""
        return self._transfer(from_dir, to_dir)

    def restore(self, from_dir: Path, to_dir: Path) -> int:
        """Relocates documents from an archive back into a working tree."""
        return self._transfer(from_dir, to_dir)

    def restore_exact(self, from_dir: Path, to_dir: Path) -> int:
        """Restores archived documents to the relative paths they were stored from.

        Files without a record fall back to filename-only placement.

        Raises:
            RelocationError: If `from_dir` has no metadata store.
        """
        store = MetadataStore(from_dir)
        if not store.exists():
            raise RelocationError(
                f"Metadata file not found: '{store.path}'. Cannot use "
                "--restore-exact without metadata. Use regular restore instead."
            )

        _say(f"Restoring from metadata: '{store.path}'")
        files = find_documents(from_dir, self.options.extension)
        to_root = to_dir.resolve()
        MetadataStore(to_dir).load()
        for src in files:
            record = store.find_by_destination(src)
            target = None
            if record:
                candidate = (to_root / record.relative_path).resolve()
                if candidate.is_relative_to(to_root) and candidate != to_root:
                    target = candidate
            if target is None:
                console.print(
                    f"[bold yellow]WARNING:[/bold yellow] No metadata found for "
                    f"'{escape(str(src))}', using filename only"
                )
                logger.warning(f"No metadata for '{src}', using filename only")
                target = to_dir / src.name
            self.relocate_file(src, target, from_dir, to_dir)
        return len(files)

    def cleanup_empty_dirs(self, base_dir: Path) -> list[Path]:
        """Removes empty directories below `base_dir`, deepest first.

        `base_dir` itself and excluded directories are left alone.

        Returns:
            list[Path]: Directories removed (or, in a dry run, reported).
        """
        _say(f"Cleaning up empty directories in '{base_dir}'...")
        candidates = []
        for dirpath, dirnames, _ in os.walk(base_dir):
            dirnames[:] = [d for d in dirnames if d not in EXCLUDED_DIR_NAMES]
            candidates.extend(Path(dirpath) / d for d in dirnames)

        removed = []
        for directory in reversed(candidates):
            if any(directory.iterdir()):
                continue
            if self.options.dry_run:
                _say(f"[dry-run] Would remove empty directory: '{directory}'")
                removed.append(directory)
                continue
            try:
                directory.rmdir()
            except OSError as e:
                logger.warning(f"Could not remove {directory}: {e}")
                continue
            logger.info(f"Removed empty directory: '{directory}'")
            removed.append(directory)

        if not self.options.dry_run:
            _say("Empty directories removed")
        return removed


def print_configuration(
    action: str, from_dir: Path, to_dir: Path, options: RelocateOptions
) -> None:
    console.print()
    console.print("[bold cyan]Move Researched Files Utility[/bold cyan]")
    console.print("\n[bold]─── Configuration ───[/bold]")

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="dim", justify="right")
    table.add_column("Value")
    table.add_row("dry_run", str(options.dry_run))
    table.add_row("action", action)
    table.add_row("from_dir", escape(str(from_dir)))
    table.add_row("to_dir", escape(str(to_dir)))
    table.add_row("preserve_structure", str(options.preserve_structure))
    table.add_row("operation_mode", options.mode)
    table.add_row("restore_exact_mode", str(options.restore_exact))
    table.add_row("auto_cleanup", str(options.cleanup))
    console.print(table)


def run(action: str, from_dir: Path, to_dir: Path, options: RelocateOptions) -> int:
    """Validates the invocation and carries out a store or restore.

    Args:
        action (str): 'store' or 'restore'.
        from_dir (Path): Existing directory to take documents from.
        to_dir (Path): Destination root, created if missing.
        options (RelocateOptions): Run flags.

    Returns:
        int: The number of files processed.

    Raises:
        RelocationError: For an invalid action or missing source directory.
    """
    if action not in ACTIONS:
        raise RelocationError(f"Invalid action '{action}'")
    if options.mode not in MODES:
        raise RelocationError(f"Invalid mode '{options.mode}'")
    if not from_dir.is_dir():
        raise RelocationError(f"Directory does not exist: '{from_dir}'")

    print_configuration(action, from_dir, to_dir, options)

    if not to_dir.is_dir():
        _say(f"Creating directory: '{to_dir}'")
        if not options.dry_run:
            to_dir.mkdir(parents=True, exist_ok=True)

    relocator = Relocator(options)
    if action == "restore" and options.restore_exact:
        count = relocator.restore_exact(from_dir, to_dir)
    elif action == "restore":
        count = relocator.restore(from_dir, to_dir)
    else:
        count = relocator.store(from_dir, to_dir)

    if action == "store" and options.mode == "move" and options.cleanup:
        relocator.cleanup_empty_dirs(from_dir)

    console.print("\n[bold]─── Done ───[/bold]")
    _say(f"Operation '{action}' completed successfully.")
    logger.info(
        f"Completed '{action}' ({options.mode}) from '{from_dir}' to '{to_dir}'"
    )
    return count
