"""
Host maintenance — local directories the containers write into.

Two chores that live outside the container engine:

- ``fix_permissions``: make sure bind-mounted directories exist, belong
  to the invoking user, and are ``0755``.
- ``purge_caches``: delete local build caches (node_modules, build
  output, ``__pycache__``) so the next build starts clean.

Paths are resolved relative to the project root.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from stackctl.core.models.outcome import ErrorKind, Outcome

logger = logging.getLogger(__name__)

DIR_MODE = 0o755


def _resolve(project_root: Path, rel: str) -> Path:
    return (project_root / rel).resolve()


def _fix_tree(root: Path, uid: int, gid: int) -> list[str]:
    """chown/chmod ``root`` and everything below it; return paths that failed."""
    failed: list[str] = []

    def _fix(path: Path, mode: int | None) -> None:
        try:
            if path.stat().st_uid != uid or path.stat().st_gid != gid:
                os.chown(path, uid, gid)
            if mode is not None:
                path.chmod(mode)
        except OSError as e:
            logger.debug("Cannot fix %s: %s", path, e)
            failed.append(str(path))

    _fix(root, DIR_MODE)
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        for name in dirnames:
            _fix(base / name, DIR_MODE)
        for name in filenames:
            path = base / name
            if not path.is_symlink():
                _fix(path, DIR_MODE)
    return failed


def fix_permissions(project_root: Path, paths: list[str]) -> Outcome:
    """Create ``paths`` if missing and hand them to the current user.

    Returns a recoverable failure listing what could not be changed
    (typically files created by root inside a container).
    """
    uid, gid = os.getuid(), os.getgid()
    fixed: list[str] = []
    failed: list[str] = []

    for rel in paths:
        target = _resolve(project_root, rel)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Cannot create %s: %s", target, e)
            failed.append(str(target))
            continue
        problems = _fix_tree(target, uid, gid)
        if problems:
            failed.extend(problems)
        else:
            fixed.append(str(target))
        logger.info("Permissions set on %s", target)

    metadata = {"fixed": fixed, "failed": failed}
    if failed:
        return Outcome.recoverable(
            f"Could not change {len(failed)} path(s); re-run with elevated privileges",
            kind=ErrorKind.COMMAND_FAILED,
            metadata=metadata,
        )
    return Outcome.success(metadata=metadata)


def purge_caches(project_root: Path, paths: list[str], globs: list[str]) -> Outcome:
    """Delete cache directories. Missing paths are not an error."""
    removed: list[str] = []
    failed: list[str] = []

    targets = [_resolve(project_root, rel) for rel in paths]
    for pattern in globs:
        # Path.glob() needs a concrete anchor; split "../backend/**/__pycache__"
        anchor, sep, rest = pattern.partition("**")
        if not sep:
            targets.extend(sorted(project_root.glob(pattern)))
            continue
        base = _resolve(project_root, anchor or ".")
        if base.is_dir():
            targets.extend(sorted(base.glob(f"**{rest}")))

    for target in targets:
        if not target.exists():
            continue
        try:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            else:
                target.unlink()
            removed.append(str(target))
        except OSError as e:
            logger.warning("Cannot remove %s: %s", target, e)
            failed.append(str(target))

    metadata = {"removed": removed, "failed": failed}
    if failed:
        return Outcome.recoverable(
            f"Could not remove {len(failed)} path(s)",
            kind=ErrorKind.COMMAND_FAILED,
            metadata=metadata,
        )
    return Outcome.success(metadata=metadata)
