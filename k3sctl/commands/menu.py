"""Interactive main menu, one action per run of the loop."""

import logging
import os
import subprocess

import typer
from kubernetes.client.rest import ApiException

from ..config import Config
from ..modules.k3s.errors import K3sSetupError
from ..modules.k3s.models import NodeRole
from ..modules.k3s.prompts import collect_role_request
from ..modules.k3s.settings import get_settings
from ..utils import run_command
from .check import run_check
from .install import run_role
from .postconfig import run_wizard

logger = logging.getLogger("menu")

MENU = """========================================
  k3s deployment helper
========================================
Choose what this machine should do:

  1) Initialize node (run on every node first)
  2) Configure NFS storage server (optional)
  3) Install k3s server (first control plane)
  4) Install k3s server (join existing control plane)
  5) Install k3s agent (worker / ingress)
  6) Post-config wizard (ingress placement + NFS StorageClass)
  7) Quick cluster check (needs kubeconfig)

  0) Exit"""


def hand_off(script: str, variable: str, title: str) -> None:
    """Run an operator supplied script for an OS-level step.

    Raises:
        K3sSetupError: If the script exits non-zero
    """
    if not script:
        typer.echo(
            f"{title} is OS-level provisioning and is not performed by k3sctl. "
            f"Set {variable} to a script that does it to run it from this menu."
        )
        return
    if not os.access(script, os.X_OK):
        raise K3sSetupError(f"{variable}={script} is not an executable file")
    logger.info(f"Running {title.lower()} script {script}")
    try:
        run_command([script])
    except subprocess.CalledProcessError as e:
        raise K3sSetupError(f"{title} script exited with status {e.returncode}") from e


def _install(role: NodeRole) -> None:
    run_role(collect_role_request(role, get_settings()))


ACTIONS = {
    '1': lambda: hand_off(Config.NODE_PREP_SCRIPT, 'NODE_PREP_SCRIPT', 'Node initialization'),
    '2': lambda: hand_off(Config.NFS_SERVER_SCRIPT, 'NFS_SERVER_SCRIPT', 'NFS server setup'),
    '3': lambda: _install(NodeRole.FIRST_CONTROL_PLANE),
    '4': lambda: _install(NodeRole.JOINING_CONTROL_PLANE),
    '5': lambda: _install(NodeRole.WORKER),
    '6': run_wizard,
    '7': run_check,
}


def run_menu() -> None:
    """Show the menu until the operator exits."""
    while True:
        typer.echo(MENU)
        choice = typer.prompt("Enter option number", default='', show_default=False).strip()
        if choice == '0':
            typer.echo("Bye.")
            return

        action = ACTIONS.get(choice)
        if action is None:
            typer.echo(f"Invalid option: {choice}")
            continue

        try:
            action()
        except (K3sSetupError, ApiException) as e:
            logger.error(f"❌ {type(e).__name__}: {e}")
            typer.echo(f"❌ {e}", err=True)
        except typer.Exit:
            # Errors were already reported by the action
            pass

        typer.echo("")
        typer.prompt("Press Enter to return to the menu", default='', show_default=False)


app = typer.Typer(help="Interactive menu")


@app.callback(invoke_without_command=True)
def menu():
    """Open the interactive menu."""
    run_menu()
