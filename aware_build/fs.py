"""Filesystem helpers used by the staging targets."""

from __future__ import annotations

import logging
import shutil
from enum import Enum
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


class FileExistsPolicy(str, Enum):
    FAIL = "fail"
    SKIP = "skip"
    OVERWRITE = "overwrite"


def ensure_directory(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def ensure_clean_directory(path: Path) -> Path:
    """Create ``path`` or, if it exists, delete everything inside it."""

    if path.exists():
        clear_directory(path)
    else:
        path.mkdir(parents=True)
    return path


def clear_directory(path: Path) -> None:
    for entry in path.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def copy_file(src: Path, dst: Path, policy: FileExistsPolicy = FileExistsPolicy.FAIL) -> bool:
    """Copy ``src`` to ``dst``; returns ``False`` when skipped by ``policy``."""

    if dst.exists():
        if policy is FileExistsPolicy.SKIP:
            logger.debug("Skipping existing file %s", dst)
            return False
        if policy is FileExistsPolicy.FAIL:
            raise FileExistsError(f"Destination already exists: {dst}")
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, dst)
    return True


def copy_directory(src: Path, dst: Path) -> None:
    if not src.is_dir():
        raise FileNotFoundError(f"Source directory not found: {src}")
    shutil.copytree(src, dst, dirs_exist_ok=True)


def glob_files(directory: Path, pattern: str) -> List[Path]:
    if not directory.is_dir():
        return []
    return sorted(path for path in directory.glob(pattern) if path.is_file())
