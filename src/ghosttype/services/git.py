"""Read the working-tree diff of a file through the ``git`` executable."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

__all__ = ["read_git_diff"]

LOGGER = logging.getLogger(__name__)


async def read_git_diff(path: Path | str) -> str | None:
    """Return ``git diff`` for *path*, or ``None`` when it cannot be produced.

    A missing git binary or any git error output yields ``None``.
    """

    executable = shutil.which("git")
    if executable is None:
        return None
    target = Path(path).expanduser()
    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            "diff",
            "--",
            target.name,
            cwd=str(target.parent),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
    except OSError as exc:
        LOGGER.debug("git diff could not start for %s: %s", target, exc)
        return None
    if process.returncode != 0 or stderr:
        LOGGER.debug("git diff unavailable for %s (code=%s)", target, process.returncode)
        return None
    return stdout.decode("utf-8", errors="replace")
