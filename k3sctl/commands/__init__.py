import logging

import typer


def fail(logger: logging.Logger, error: Exception) -> None:
    """Report a k3sctl error to the operator and exit non-zero."""
    logger.error(f"❌ {type(error).__name__}: {error}", exc_info=logger.isEnabledFor(logging.DEBUG))
    typer.echo(f"❌ {error}", err=True)
    raise typer.Exit(code=1)
