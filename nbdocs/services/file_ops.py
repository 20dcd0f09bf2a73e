"""
Filesystem helpers shared by the build stages.

Writes go to a temporary file in the destination directory and are renamed into
place, so readers only ever see a complete file.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, text: str) -> None:
    """Write text to `path` atomically (write to a temp file, then rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def atomic_copy_file(source: Path, destination: Path) -> None:
    """Copy a file into place atomically."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=destination.parent, prefix=f".{destination.name}.", suffix=".tmp")
    os.close(fd)
    try:
        shutil.copyfile(source, tmp_name)
        os.replace(tmp_name, destination)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def replace_directory(source: Optional[Path], destination: Path) -> None:
    """
    Make `destination` a copy of `source`, dropping whatever was there before.

    With `source` None (or missing), `destination` is simply removed.
    """
    remove_path(destination)
    if source is None or not source.is_dir():
        return
    destination.parent.mkdir(parents=True, exist_ok=True)
    staging = destination.with_name(f".{destination.name}.tmp")
    remove_path(staging)
    shutil.copytree(source, staging)
    os.replace(staging, destination)


def remove_path(path: Union[str, Path]) -> bool:
    """
    Delete a file or directory tree.

    Returns:
        True if something was removed, False if the path was already absent.
    """
    path = Path(path)
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()
    else:
        return False
    logger.debug(f"Removed {path}")
    return True


def is_up_to_date(source: Path, target: Path) -> bool:
    """Make-style freshness check: target exists and is not older than source."""
    if not target.exists() or not source.exists():
        return False
    return target.stat().st_mtime_ns >= source.stat().st_mtime_ns
