"""
Process Runner - Blocking Subprocess Calls

Runs external tools in the foreground with their output inherited by the CI
log, and turns every kind of failure into an ExecutionError.
"""

import os
import subprocess
import time
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence
import logging

from covpipe.coreutils.logging import log_function_call
from covpipe.errors import ExecutionError

logger = logging.getLogger(__name__)


def run_command(
    command: Sequence[str],
    step: str = "execute",
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
    secrets: Iterable[Optional[str]] = (),
) -> subprocess.CompletedProcess:
    """
    Run ``command`` and wait for it to finish

    Args:
        command: Executable and arguments
        step: Pipeline step name attached to any raised error
        cwd: Working directory (defaults to the current one)
        env: Extra environment variables layered over ``os.environ``
        timeout: Seconds before the process is killed (None waits forever)
        secrets: Argument values shown as ``***`` in log output

    Returns:
        subprocess.CompletedProcess: The finished process (exit code 0)

    Raises:
        ExecutionError: If the process cannot start, times out or exits non-zero
    """
    hidden = {secret for secret in secrets if secret}
    shown = ["***" if str(part) in hidden else str(part) for part in command]
    log_function_call("run_command", command=shown, step=step, cwd=cwd)
    logger.info(f"▶️  {' '.join(shown)}")

    process_env = None
    if env:
        process_env = dict(os.environ)
        process_env.update(env)

    start = time.time()
    try:
        completed = subprocess.run(
            [str(part) for part in command],
            cwd=str(cwd) if cwd is not None else None,
            env=process_env,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise ExecutionError(
            f"{command[0]} timed out after {timeout}s", cause=e, step=step
        ) from e
    except OSError as e:
        raise ExecutionError(
            f"Could not start {command[0]}", cause=e, step=step
        ) from e

    elapsed = time.time() - start
    if completed.returncode != 0:
        logger.error(
            f"❌ {command[0]} exited with code {completed.returncode} after {elapsed:.2f} seconds"
        )
        raise ExecutionError(
            f"{command[0]} exited with code {completed.returncode}",
            step=step,
            returncode=completed.returncode,
        )

    logger.info(f"✅ {command[0]} finished in {elapsed:.2f} seconds")
    return completed
