import typer

from ..modules.k3s.token import TOKEN_LENGTH, generate_token

app = typer.Typer(help="Cluster token helpers")


@app.command("generate")
def generate(
    length: int = typer.Option(TOKEN_LENGTH, '--length', help='Token length (minimum 32)'),
):
    """Print a new random cluster token."""
    token, insecure = generate_token(length)
    if insecure:
        typer.echo("⚠️  No secure random source; this placeholder token is INSECURE", err=True)
    typer.echo(token)
