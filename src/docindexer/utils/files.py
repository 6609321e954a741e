"""Utility helpers for walking the docs tree."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterator

LOGGER = logging.getLogger(__name__)


def _log_walk_error(exc: OSError) -> None:
    LOGGER.error("Cannot list %s: %s", exc.filename, exc)


def iter_files(
    root: Path, *, onerror: Callable[[OSError], None] | None = _log_walk_error
) -> Iterator[Path]:
    """Yield regular files under ``root`` depth-first, in name order.

    A root that is not a directory is yielded as is. Symbolic links to
    directories are not followed, so link cycles cannot loop forever.
    Sub-directories that cannot be listed are reported to ``onerror`` and
    skipped; the root itself must be listable.
    """
    root = Path(root)
    if not root.is_dir():
        yield root
        return

    with os.scandir(root) as it:
        entries = sorted(it, key=lambda entry: entry.name)
    yield from _walk(entries, onerror)


def _walk(entries: list[os.DirEntry], onerror: Callable[[OSError], None] | None) -> Iterator[Path]:
    for entry in entries:
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            is_dir = False
        if is_dir:
            try:
                with os.scandir(entry.path) as it:
                    children = sorted(it, key=lambda child: child.name)
            except OSError as exc:
                if onerror is None:
                    raise
                onerror(exc)
                continue
            yield from _walk(children, onerror)
        else:
            try:
                is_file = entry.is_file()
            except OSError:
                is_file = False
            if is_file:
                yield Path(entry.path)


def modified_millis(path: Path) -> int:
    """Last-modified time of ``path`` in milliseconds since the epoch."""
    return path.stat().st_mtime_ns // 1_000_000
