from __future__ import annotations

from pathlib import Path
from typing import Any
import subprocess
import time

from ..error_handling import ToolExecutionError, clean_error_message

__all__ = [
    "run_command",
]


def run_command(
    cmd: list[str], *, engine: str, output_path: Path, timeout: float | None = 60
) -> dict[str, Any]:
    """Execute *cmd* and return StickerLab-style metadata.

    The helper blocks until *cmd* completes and treats every failure mode as
    a :class:`ToolExecutionError`: non-zero exit status, a timeout (the child
    is killed), a binary that cannot be started, and a missing or empty
    *output_path*.

    Parameters
    ----------
    cmd
        Full command as a list of strings (never passed through a shell).
    engine
        Human-readable engine key, e.g. "cwebp", "ffmpeg", "imagemagick".
    output_path
        File the command is expected to produce.
    timeout
        Hard timeout in seconds – *None* disables the limit.

    Returns
    -------
    dict
        Metadata with the keys ``render_ms``, ``engine``, ``command``,
        ``bytes`` and ``output`` (combined stdout/stderr).
    """
    command_str = " ".join(cmd)
    context = {"engine": engine, "command": command_str}
    start = time.perf_counter()
    try:
        completed = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise ToolExecutionError(
            f"{engine} timed out after {timeout}s", cause=e, context=context
        ) from e
    except OSError as e:
        raise ToolExecutionError(f"{engine} could not be started", cause=e, context=context) from e

    duration_ms = int((time.perf_counter() - start) * 1000)
    output = completed.stdout.decode("utf-8", errors="replace") if completed.stdout else ""

    if completed.returncode != 0:
        raise ToolExecutionError(
            f"{engine} command failed (exit {completed.returncode}): "
            f"{clean_error_message(output) or 'no output'}",
            context={**context, "exit_code": completed.returncode},
        )

    try:
        size = output_path.stat().st_size
    except OSError:
        size = 0
    if size == 0:
        raise ToolExecutionError(
            f"{engine} exited cleanly but produced no output file",
            context={**context, "output_path": str(output_path)},
        )

    return {
        "render_ms": duration_ms,
        "engine": engine,
        "command": command_str,
        "bytes": size,
        "output": output,
    }
