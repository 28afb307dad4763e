"""Recursive copying of directory trees that keeps file modes and symlinks."""

from __future__ import annotations

import logging
import os
import shutil
import stat

logger = logging.getLogger(__name__)


def copy_tree(src: str, dst: str) -> None:
    """Recursively copy ``src`` into ``dst`` with the source's file modes.

    Symbolic links are recreated rather than followed.
    """
    src = os.path.abspath(src)
    logger.info("copying files: src=%s dest=%s", src, dst)
    try:
        _copy_entry(src, dst)
    except OSError as exc:
        raise type(exc)(
            exc.errno, f"failed to copy {src} to {dst}: {exc.strerror or exc}"
        ) from exc


def _copy_entry(path: str, target: str) -> None:
    info = os.lstat(path)
    if stat.S_ISDIR(info.st_mode):
        os.makedirs(target, mode=stat.S_IMODE(info.st_mode), exist_ok=True)
        for name in sorted(os.listdir(path)):
            _copy_entry(os.path.join(path, name), os.path.join(target, name))
    elif stat.S_ISLNK(info.st_mode):
        os.symlink(os.readlink(path), target)
    else:
        _copy_file(path, target, stat.S_IMODE(info.st_mode))


def _copy_file(src: str, dst: str, mode: int) -> None:
    fd = os.open(dst, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, mode)
    with open(src, "rb") as original, os.fdopen(fd, "wb") as copy:
        shutil.copyfileobj(original, copy)