"""
External command execution.

Package management, service control, quota tools and data moves are all
driven through host binaries. Only the exit status and the combined output
of a command are observed; the output is logged, never parsed here.
"""

import logging
import subprocess
from typing import Dict, List, Optional, Tuple

from ..errors import CommandError

logger = logging.getLogger(__name__)


def run_command(argv: List[str], env: Optional[Dict[str, str]] = None,
                timeout: Optional[float] = None) -> Tuple[int, str]:
    """
    Run a command and return its exit code and combined output.

    Args:
        argv: Command and arguments
        env: Environment for the child, inherits ours when None
        timeout: Seconds to wait before giving up

    Returns:
        Tuple of (returncode, stdout + stderr)
    """
    logger.debug(f"exec: {' '.join(argv)}")
    result = subprocess.run(
        argv,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        env=env,
        timeout=timeout,
    )
    return result.returncode, result.stdout or ""


def exec_command(argv: List[str], env: Optional[Dict[str, str]] = None,
                 timeout: Optional[float] = None) -> str:
    """
    Run a command, raising CommandError when it fails.

    Returns:
        Combined output of the command
    """
    try:
        returncode, output = run_command(argv, env=env, timeout=timeout)
    except FileNotFoundError as e:
        raise CommandError(argv, 127, str(e)) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(argv, -1, f"timed out after {timeout}s") from e

    if returncode != 0:
        logger.error(f"{' '.join(argv)} failed: {output.strip()}")
        raise CommandError(argv, returncode, output)
    return output
