"""Show and persist the wizard defaults."""
import logging
from typing import Optional

import typer

from . import fail
from ..modules.k3s.settings import DEFAULT_CONFIG_PATHS, get_settings

logger = logging.getLogger("settings")

app = typer.Typer(help="Wizard defaults (file plus K3SCTL_* overrides)")

USER_CONFIG_PATH = DEFAULT_CONFIG_PATHS[1]


@app.command("show")
def show():
    """Print the effective settings as YAML."""
    typer.echo(get_settings().to_yaml(), nl=False)


@app.command("save")
def save(
    path: Optional[str] = typer.Argument(
        None, help=f"Destination file (default: {USER_CONFIG_PATH})"
    ),
):
    """Write the effective settings to a file only its owner can read."""
    try:
        saved = get_settings().save(path or USER_CONFIG_PATH)
    except OSError as e:
        fail(logger, e)
    typer.echo(f"✅ Settings saved to {saved}")
