"""Utility helpers for k3sctl."""
import logging
import shlex
import subprocess
from typing import List

logger = logging.getLogger("utils")


def run_command(cmd: List[str]) -> subprocess.CompletedProcess:
    """Run an operator supplied command attached to this terminal.

    Raises:
        subprocess.CalledProcessError: If the command exits non-zero
    """
    cmd_str = shlex.join(cmd)
    logger.debug(f"💻 Running: {cmd_str}")
    try:
        return subprocess.run(cmd, check=True)
    except subprocess.CalledProcessError as e:
        logger.error(f"❌ Command failed: {cmd_str} (exit code: {e.returncode})")
        raise
