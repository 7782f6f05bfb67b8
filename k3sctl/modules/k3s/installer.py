"""Run the upstream k3s install script for a compiled plan."""
import logging
import os
import shlex
import subprocess
from typing import Optional

import requests

from ...config import Config
from ...logging import redact_env
from .errors import InstallFailed
from .models import InstallPlan

logger = logging.getLogger("k3s.installer")


def fetch_install_script(url: Optional[str] = None) -> str:
    """Download the install script.

    Raises:
        InstallFailed: If the script cannot be downloaded
    """
    url = url or Config.K3S_INSTALL_SCRIPT_URL
    logger.info(f"⬇️  Downloading k3s install script from {url}")
    try:
        response = requests.get(url, timeout=Config.HTTP_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        raise InstallFailed(-1, f"Could not download install script from {url}: {e}") from e
    if not response.text.strip():
        raise InstallFailed(-1, f"Install script from {url} is empty")
    return response.text


def run_install(
    plan: InstallPlan,
    script_url: Optional[str] = None,
    dry_run: bool = False,
    timeout: Optional[int] = None,
) -> None:
    """Execute the install script with the plan's environment.

    The plan's bindings are layered over the current process environment for
    the child process only; this process's environment is left untouched.

    Args:
        plan: Compiled install plan
        script_url: Override for ``Config.K3S_INSTALL_SCRIPT_URL``
        dry_run: Log what would run without downloading or executing anything
        timeout: Seconds before the installer is abandoned

    Raises:
        InstallFailed: If the script cannot be fetched or exits non-zero
    """
    env = dict(plan.env)
    logger.debug(f"Installer environment: {redact_env(env)}")

    if dry_run:
        logger.info(f"[dry-run] Would run k3s installer: {shlex.join(plan.installer_argv())}")
        return

    script = fetch_install_script(script_url)
    timeout = timeout or Config.INSTALL_TIMEOUT
    logger.info(f"🚀 Installing k3s {plan.role.value}")
    try:
        result = subprocess.run(
            plan.installer_argv(),
            input=script,
            text=True,
            env={**os.environ, **env},
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise InstallFailed(-1, f"Installer did not finish within {timeout}s") from e
    except OSError as e:
        raise InstallFailed(-1, f"Could not start installer: {e}") from e

    if result.returncode != 0:
        logger.error(f"❌ Installer exited with status {result.returncode}")
        raise InstallFailed(result.returncode)
    logger.info("✅ k3s installer finished")
