import logging
import sys
from typing import Optional

import typer

from k3sctl.commands import check, install, menu, postconfig, settings, token
from k3sctl.config import Config
from k3sctl.modules.k3s.settings import WizardSettings, set_settings

app = typer.Typer(help="k3sctl - k3s node installer and post-config wizard")

# Global debug flag
debug_mode = False

# Configure logging
def setup_logging(debug_mode: bool = False, log_file: Optional[str] = None, level: str = "INFO"):
    """Configure logging based on debug mode."""
    log_level = logging.DEBUG if debug_mode else getattr(logging, level.upper(), logging.INFO)
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=log_level,
        format=Config.LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # Disable debug logging for noisy libraries
    if not debug_mode:
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('kubernetes').setLevel(logging.WARNING)

# Add all command groups
app.add_typer(install.app, name="install")
app.add_typer(postconfig.app, name="postconfig")
app.add_typer(check.app, name="check")
app.add_typer(token.app, name="token")
app.add_typer(menu.app, name="menu")
app.add_typer(settings.app, name="config")

# Global options callback
@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a k3sctl settings file"),
):
    """k3sctl - run on each machine and pick the role it plays."""
    global debug_mode
    debug_mode = debug
    try:
        Config.validate()
    except ValueError as e:
        typer.echo(f"❌ Invalid configuration: {e}", err=True)
        raise typer.Exit(code=1)
    loaded = WizardSettings.load(config)
    setup_logging(debug, loaded.logging.file, loaded.logging.level)
    set_settings(loaded)
    if debug:
        logging.debug("Debug mode enabled")

    if ctx.invoked_subcommand is None:
        menu.run_menu()

if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logging.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)
