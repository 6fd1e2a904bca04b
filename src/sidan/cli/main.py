"""CLI entry point."""

import asyncio
from urllib.parse import urlparse

import typer
from rich.console import Console
from rich.json import JSON
from rich.panel import Panel
from rich.table import Table

from sidan.cli.device_client import (
    DeviceClient,
    DeviceClientError,
    config_path,
    load_config,
    mask_token,
    save_config,
)

app = typer.Typer(name="sidan", help="Sidan member API CLI")
token_app = typer.Typer(help="Manage access tokens obtained with the device flow")
config_app = typer.Typer(help="Show and edit the local CLI configuration")
app.add_typer(token_app, name="token")
app.add_typer(config_app, name="config")

console = Console()


def _fail(error: DeviceClientError) -> None:
    console.print(f"[red]Error: {error}[/red]")
    raise typer.Exit(code=error.exit_code)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="API server host"),
    port: int = typer.Option(8000, help="API server port"),
    reload: bool = typer.Option(False, help="Auto-reload on code changes"),
) -> None:
    """Start the Sidan API server.

    Examples:
        sidan serve
        sidan serve --reload
        sidan serve --host 127.0.0.1 --port 8080
    """
    import uvicorn

    console.print(f"[green]Starting Sidan API server on {host}:{port}[/green]")
    console.print(f"[dim]Device flow:[/dim] http://{host}:{port}/auth/device")
    console.print(f"[dim]Docs:[/dim] http://{host}:{port}/docs")

    uvicorn.run(
        "sidan.api.main:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command("gen-key")
def gen_key() -> None:
    """Print a new SIDAN_AUTH__TOKEN_ENCRYPTION_KEY (64 hex characters)."""
    from sidan.auth.crypto import generate_key

    typer.echo(generate_key())


@app.command()
def version() -> None:
    """Show version information."""
    from sidan import __version__

    typer.echo(f"Sidan v{__version__}")


@token_app.command("add")
def token_add(
    provider: str = typer.Argument("google", help="Login provider (google, github)"),
) -> None:
    """Sign in with the device flow and store the access token.

    Examples:
        sidan token add
        sidan token add github
    """
    try:
        config = load_config()
    except DeviceClientError as e:
        _fail(e)

    client = DeviceClient(config.api_endpoint)

    async def run():
        auth = await client.start(provider)
        console.print(
            Panel(
                f"Open [bold]{auth.verification_uri}[/bold]\n"
                f"and confirm the code [bold cyan]{auth.user_code}[/bold cyan]",
                title="Device authorization",
            )
        )
        with console.status("Waiting for approval..."):
            return await client.wait_for_token(auth)

    try:
        token = asyncio.run(run())
        config.tokens[provider] = token.access_token
        path = save_config(config)
    except DeviceClientError as e:
        _fail(e)

    console.print(f"[green]✓ Token for {provider} saved to {path}[/green]")


@token_app.command("list")
def token_list() -> None:
    """List stored tokens (masked)."""
    try:
        config = load_config()
    except DeviceClientError as e:
        _fail(e)

    if not config.tokens:
        console.print("[yellow]No tokens stored[/yellow]")
        return

    table = Table(title="Stored tokens")
    table.add_column("Provider", style="cyan")
    table.add_column("Token", style="dim")
    for name, value in sorted(config.tokens.items()):
        table.add_row(name, mask_token(value))
    console.print(table)


@token_app.command("remove")
def token_remove(
    provider: str = typer.Argument("google", help="Provider whose token to remove"),
) -> None:
    """Remove a stored token."""
    try:
        config = load_config()
        if provider not in config.tokens:
            console.print(f"[red]No token stored for {provider}[/red]")
            raise typer.Exit(code=1)
        del config.tokens[provider]
        save_config(config)
    except DeviceClientError as e:
        _fail(e)

    console.print(f"[green]✓ Removed token for {provider}[/green]")


@config_app.command("show")
def config_show() -> None:
    """Show the configuration (tokens masked)."""
    try:
        config = load_config()
    except DeviceClientError as e:
        _fail(e)

    shown = config.model_dump()
    shown["tokens"] = {k: mask_token(v) for k, v in config.tokens.items()}
    console.print(f"[dim]{config_path()}[/dim]")
    console.print(JSON.from_data(shown))


@config_app.command("set-api")
def config_set_api(
    url: str = typer.Argument(..., help="API endpoint, e.g. https://api.chalmerslosers.com"),
) -> None:
    """Set the API endpoint used by token commands."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        console.print(f"[red]Invalid URL: {url}[/red]")
        raise typer.Exit(code=1)

    try:
        config = load_config()
        config.api_endpoint = url.rstrip("/")
        save_config(config)
    except DeviceClientError as e:
        _fail(e)

    console.print(f"[green]✓ API endpoint set to {config.api_endpoint}[/green]")


if __name__ == "__main__":
    app()
