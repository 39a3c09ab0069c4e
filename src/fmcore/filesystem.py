"""Local filesystem primitives driven by jobs."""

from __future__ import annotations

import configparser
import errno
import logging
import os
import shutil
import stat
from datetime import datetime
from pathlib import Path
from typing import Callable
from urllib.parse import quote, unquote

from .errors import DestinationExists, JobItemError, TrashUnsupported
from .models import AttrChange, EntryType, ErrorSeverity, FileRef
from .ports import ItemReporter

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
TRASH_INFO_SECTION = "Trash Info"


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def detect_entry_type(path: Path) -> EntryType:
    """Determine the ``EntryType`` for ``path``."""

    if path.is_symlink():
        return EntryType.SYMLINK
    if path.is_dir():
        return EntryType.DIRECTORY
    return EntryType.FILE


def tree_size(path: Path) -> int:
    """Return the number of bytes stored under ``path`` without following symlinks."""

    entry_type = detect_entry_type(path)
    if entry_type == EntryType.SYMLINK:
        return 0
    if entry_type == EntryType.FILE:
        return path.lstat().st_size

    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            child = Path(dirpath) / name
            if not child.is_symlink():
                total += child.lstat().st_size
    return total


class _ByteCounter:
    def __init__(self, total: int, progress: Callable[[int, int], None] | None) -> None:
        self.total = total
        self.done = 0
        self._progress = progress

    def advance(self, count: int) -> None:
        self.done += count
        if self._progress is not None:
            self._progress(self.done, self.total)


def _copy_file(source: Path | str, destination: Path | str, counter: _ByteCounter) -> None:
    with open(source, "rb") as reader, open(destination, "wb") as writer:
        for chunk in iter(lambda: reader.read(CHUNK_SIZE), b""):
            writer.write(chunk)
            counter.advance(len(chunk))
    shutil.copystat(source, destination)


def copy_entry(
    source: Path,
    destination: Path,
    progress: Callable[[int, int], None] | None = None,
) -> EntryType:
    """Copy ``source`` into ``destination`` preserving metadata.

    An existing ``destination`` is replaced. ``progress`` receives
    ``(bytes_done, bytes_total)`` as data is written. A copy that fails
    partway removes what it wrote, so ``destination`` is left absent.
    """

    entry_type = detect_entry_type(source)
    ensure_parent(destination)

    if destination.exists() or destination.is_symlink():
        remove_path(destination)

    counter = _ByteCounter(tree_size(source), progress)
    try:
        if entry_type == EntryType.SYMLINK:
            destination.symlink_to(os.readlink(source))
        elif entry_type == EntryType.DIRECTORY:
            shutil.copytree(
                source,
                destination,
                symlinks=True,
                copy_function=lambda src, dst: _copy_file(src, dst, counter),
                dirs_exist_ok=False,
            )
        else:
            _copy_file(source, destination, counter)
    except Exception:
        remove_path(destination)
        raise

    return entry_type


def remove_path(path: Path) -> None:
    """Delete ``path`` whether it is a file, directory, or symlink."""

    if not path.exists() and not path.is_symlink():
        return
    if path.is_symlink() or path.is_file():
        path.unlink()
        return
    shutil.rmtree(path)


def query_file(location: str, *, follow_symlinks: bool = True) -> FileRef:
    """Build a ``FileRef`` for a local path. Raises ``OSError`` if it is missing."""

    path = Path(location).expanduser()
    info = path.stat() if follow_symlinks else path.lstat()
    is_dir = stat.S_ISDIR(info.st_mode)
    is_regular = stat.S_ISREG(info.st_mode)
    return FileRef(
        location=os.path.abspath(path),
        display_name=path.name,
        is_directory=is_dir,
        is_desktop_entry=is_regular and path.suffix == ".desktop",
        is_executable=is_regular and os.access(path, os.X_OK),
        size=None if is_dir else info.st_size,
        mtime=info.st_mtime,
    )


class LocalFileInfo:
    """``FileInfoSource`` for local paths.

    URIs of other schemes cannot be queried locally; they come back as
    shortcuts pointing at themselves so the launcher hands them to the
    scheme's handler.
    """

    def query(self, location: str) -> FileRef:
        ref = FileRef(location=location)
        if ref.is_native:
            return query_file(ref.path or location)
        return FileRef(location=location, is_shortcut=True, target=location)


def _local_path(ref: FileRef) -> Path:
    path = ref.path
    if path is None:
        raise JobItemError(f"'{ref.location}' is not a local file")
    return Path(path)


class LocalFileOperations:
    """``FileOperations`` backed by the local filesystem and a freedesktop trash."""

    def __init__(self, trash_dir: Path) -> None:
        self.trash_dir = trash_dir

    @property
    def files_dir(self) -> Path:
        return self.trash_dir / "files"

    @property
    def info_dir(self) -> Path:
        return self.trash_dir / "info"

    def stat(self, location: str) -> FileRef | None:
        if not os.path.lexists(location):
            return None
        return query_file(location, follow_symlinks=False)

    def copy_one(self, source: FileRef, target: str, item: ItemReporter, *, overwrite: bool) -> None:
        src = _local_path(source)
        dst = Path(target)
        self._check_not_self(src, dst, "copied")
        self._claim_target(dst, overwrite=overwrite)
        copy_entry(src, dst, item.report)

    def move_one(self, source: FileRef, target: str, item: ItemReporter, *, overwrite: bool) -> None:
        src = _local_path(source)
        dst = Path(target)
        self._check_not_self(src, dst, "moved")
        self._claim_target(dst, overwrite=overwrite)
        self._relocate(src, dst, item)

    def delete_one(self, source: FileRef, item: ItemReporter) -> None:
        path = _local_path(source)
        if not path.exists() and not path.is_symlink():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path))
        remove_path(path)
        item.report(1, 1)

    def trash_one(self, source: FileRef, item: ItemReporter) -> None:
        path = _local_path(source)
        device = path.lstat().st_dev
        self.files_dir.mkdir(parents=True, exist_ok=True)
        self.info_dir.mkdir(parents=True, exist_ok=True)
        if device != self.files_dir.stat().st_dev:
            raise TrashUnsupported(f"'{path}' is on a file system without trash support")

        name, info_path = self._reserve_trash_name(path)
        try:
            os.rename(path, self.files_dir / name)
        except OSError:
            info_path.unlink(missing_ok=True)
            raise
        logger.debug("Trashed %s as %s", path, name)
        item.report(1, 1)

    def original_location(self, source: FileRef) -> str:
        path = _local_path(source)
        info_path = self.info_dir / f"{path.name}.trashinfo"
        parser = configparser.ConfigParser(interpolation=None)
        try:
            parser.read_string(info_path.read_text(encoding="utf-8"))
            raw = parser.get(TRASH_INFO_SECTION, "Path")
        except FileNotFoundError:
            raise JobItemError(f"'{path.name}' has no trash information") from None
        except configparser.Error as exc:
            raise JobItemError(f"Invalid trash information for '{path.name}': {exc}") from None

        original = unquote(raw)
        if not os.path.isabs(original):
            original = os.path.join(self.trash_dir.parent, original)
        return original

    def untrash_one(self, source: FileRef, target: str, item: ItemReporter, *, overwrite: bool) -> None:
        src = _local_path(source)
        dst = Path(target)
        parent = dst.parent
        if not parent.exists():
            choice = item.ask(
                f"The original folder '{parent}' no longer exists. Do you want to recreate it?",
                ["Recreate", "Skip"],
            )
            if choice != 0:
                raise JobItemError(
                    f"Original folder '{parent}' no longer exists",
                    severity=ErrorSeverity.MILD,
                    handled=True,
                )
            parent.mkdir(parents=True, exist_ok=True)

        self._claim_target(dst, overwrite=overwrite)
        self._relocate(src, dst, item)
        (self.info_dir / f"{src.name}.trashinfo").unlink(missing_ok=True)

    def link_one(self, source: FileRef, target: str, item: ItemReporter, *, overwrite: bool) -> None:
        src = _local_path(source)
        dst = Path(target)
        self._claim_target(dst, overwrite=overwrite)
        dst.symlink_to(os.path.abspath(src))
        item.report(1, 1)

    def set_attr_one(self, source: FileRef, change: AttrChange, item: ItemReporter) -> None:
        root = _local_path(source)
        if (change.uid is not None or change.gid is not None) and not hasattr(os, "lchown"):
            raise JobItemError("Changing ownership is not supported on this platform")
        paths = [root]
        if change.recursive and root.is_dir() and not root.is_symlink():
            for dirpath, dirnames, filenames in os.walk(root):
                paths.extend(Path(dirpath) / name for name in dirnames + filenames)

        for index, path in enumerate(paths, start=1):
            is_link = path.is_symlink()
            if change.mode is not None and not is_link:
                os.chmod(path, change.mode)
            if change.uid is not None or change.gid is not None:
                uid = change.uid if change.uid is not None else -1
                gid = change.gid if change.gid is not None else -1
                try:
                    os.lchown(path, uid, gid)
                except PermissionError:
                    raise JobItemError(
                        f"Unable to set ownership on '{path}'. Re-run with elevated privileges."
                    ) from None
            item.report(index, len(paths))

    # ------------------------------------------------------------------
    # Internal helpers

    @staticmethod
    def _check_not_self(src: Path, dst: Path, verb: str) -> None:
        if dst.exists() and src.exists() and os.path.samefile(src, dst):
            raise JobItemError(f"'{src}' cannot be {verb} onto itself")
        if src.is_dir() and not src.is_symlink():
            if dst.resolve(strict=False).is_relative_to(src.resolve(strict=False)):
                raise JobItemError(f"Cannot put folder '{src}' inside itself")

    @staticmethod
    def _claim_target(dst: Path, *, overwrite: bool) -> None:
        if not dst.exists() and not dst.is_symlink():
            return
        if not overwrite:
            raise DestinationExists(query_file(str(dst), follow_symlinks=False))
        remove_path(dst)

    @staticmethod
    def _relocate(src: Path, dst: Path, item: ItemReporter) -> None:
        ensure_parent(dst)
        try:
            os.rename(src, dst)
        except OSError as exc:
            if exc.errno != errno.EXDEV:
                raise
            copy_entry(src, dst, item.report)
            remove_path(src)
        item.report(1, 1)

    def _reserve_trash_name(self, path: Path) -> tuple[str, Path]:
        stem, suffix = os.path.splitext(path.name)
        deleted_at = datetime.now().strftime("%Y-%m-%dT%H:%M:%S")
        body = f"[{TRASH_INFO_SECTION}]\nPath={quote(os.path.abspath(path))}\nDeletionDate={deleted_at}\n"

        name = path.name
        counter = 1
        while True:
            info_path = self.info_dir / f"{name}.trashinfo"
            if not (self.files_dir / name).exists():
                try:
                    fd = os.open(info_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
                except FileExistsError:
                    pass
                else:
                    with os.fdopen(fd, "w", encoding="utf-8") as handle:
                        handle.write(body)
                    return name, info_path
            counter += 1
            name = f"{stem}.{counter}{suffix}"
