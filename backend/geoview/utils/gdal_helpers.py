"""Safe execution wrapper for GDAL command-line utilities.

Export generators delegate tile cutting to GDAL tools (gdal2tiles.py,
gdalinfo) run as subprocesses. This module runs them with captured output
and turns a non-zero exit code into CommandError carrying the tool's
stderr, so callers can report the tool's own explanation.

Example:
    Cut an XYZ tile pyramid:
        >>> from geoview.utils.gdal_helpers import run_command, CommandError

        >>> try:
        ...     run_command([
        ...         "gdal2tiles.py",
        ...         "--xyz",
        ...         "--zoom=10-16",
        ...         "input.tif",
        ...         "tiles/",
        ...     ])
        ... except CommandError as e:
        ...     print(f"Tiling failed: {e}")
"""

from __future__ import annotations

import logging
import subprocess
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


class CommandError(RuntimeError):
    """Exception raised when a GDAL subprocess command fails.

    Contains the error message from the failed command's stderr output,
    or a note that the executable could not be found.
    """


def run_command(
    command: Iterable[str | pathlib.Path],
    workdir: pathlib.Path | None = None,
) -> str:
    """Execute a command and raise on non-zero exit.

    Args:
        command: Iterable arguments to execute (e.g. ["gdal2tiles.py", ...]).
        workdir: Optional working directory for the command execution.

    Returns:
        The command's standard output.

    Raises:
        CommandError: if the executable is missing or exits with a non-zero
            status code. The message holds the command's stderr.
    """
    args = [str(part) for part in command]
    logger.debug("Running %s", " ".join(args))
    try:
        result = subprocess.run(
            args,
            cwd=workdir,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        raise CommandError(f"{args[0]} not found on PATH") from exc

    if result.returncode != 0:
        logger.error("%s exited with %d", args[0], result.returncode)
        raise CommandError(result.stderr.strip() or "Unknown command failure")
    return result.stdout
