"""`node-agent` command line: run the agent or fetch its configuration."""

import asyncio
from pathlib import Path

from rich.console import Console
import typer
import uvicorn

from shared.contracts import NodeConfiguration

from .errors import PanelRequestError
from .panel_client import PanelClient

app = typer.Typer()
console = Console()


@app.callback()
def callback():
    """
    Gameplane node agent
    """


@app.command()
def run(
    host: str | None = typer.Option(None, "--host", help="Overrides AGENT_API_HOST"),
    port: int | None = typer.Option(None, "--port", help="Overrides AGENT_API_PORT"),
):
    """Serve the agent API."""
    from .config import get_settings

    settings = get_settings()
    uvicorn.run(
        "node_agent.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_config=None,
    )


def render_env(config: NodeConfiguration, panel_url: str) -> str:
    """agent.env contents for a node configuration document."""
    values = {
        "AGENT_NODE_ID": config.uuid,
        "AGENT_TOKEN_ID": config.token_id,
        "AGENT_TOKEN": config.token,
        "AGENT_PANEL_URL": config.remote or panel_url,
        "AGENT_API_PORT": str(config.api.port),
        "AGENT_DATA_PATH": config.system.data,
        "AGENT_LOG_LEVEL": "DEBUG" if config.debug else "INFO",
    }
    return "".join(f"{key}={value}\n" for key, value in values.items())


async def fetch_configuration(panel_url: str, node_id: str, token: str) -> NodeConfiguration:
    client = PanelClient(panel_url, node_id, token)
    try:
        return await client.fetch_configuration()
    finally:
        await client.close()


@app.command()
def configure(
    panel_url: str = typer.Option(..., "--panel-url", help="Base URL of the panel"),
    node_id: str = typer.Option(..., "--node-id", help="Node UUID"),
    token: str = typer.Option(..., "--token", help="Node credential, <token_id>.<token>"),
    output: Path = typer.Option(Path("agent.env"), "--output", "-o"),
):
    """Fetch this node's configuration from the panel and write agent.env."""
    try:
        config = asyncio.run(fetch_configuration(panel_url, node_id, token))
    except PanelRequestError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(code=1) from e

    output.write_text(render_env(config, panel_url))
    console.print(f"[bold green]✓ Configuration written to {output}[/bold green]")
    console.print(f"Node: [cyan]{config.uuid}[/cyan]")
    console.print(f"Listen port: [magenta]{config.api.port}[/magenta]")


if __name__ == "__main__":
    app()
